"""wg-apply - converge a WireGuard interface to its configuration file.

Applies link, address, route and peer changes in place instead of tearing
the interface down, so live peers keep their handshakes and counters.
"""

__version__ = "0.1.0"
