"""Normalized configuration model.

Every parser produces a Configuration; the network reconciler and the
WireGuard differ only ever look at these types.
"""
import base64
import binascii
import ipaddress
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Union

KEY_LEN = 32

IPInterface = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


@dataclass(frozen=True)
class Key:
    """A 32-byte WireGuard key (private, public or preshared)."""
    raw: bytes

    def __post_init__(self):
        if len(self.raw) != KEY_LEN:
            raise ValueError(f"key must be {KEY_LEN} bytes, got {len(self.raw)}")

    @classmethod
    def parse(cls, text: str) -> "Key":
        """Parse a base64 encoded key."""
        try:
            raw = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"invalid base64 key: {e}") from e
        return cls(raw)

    def __str__(self) -> str:
        return base64.b64encode(self.raw).decode("ascii")

    def __repr__(self) -> str:
        return f"Key({str(self)[:8]}...)"


@dataclass(frozen=True)
class Endpoint:
    """Resolved UDP endpoint of a peer."""
    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass
class PeerConfig:
    """Desired settings of one peer, or a removal marker."""
    public_key: Key
    preshared_key: Optional[Key] = None
    endpoint: Optional[Endpoint] = None
    allowed_ips: list[IPNetwork] = field(default_factory=list)
    persistent_keepalive: Optional[timedelta] = None
    # Replace this peer's allowed-IP set, not the whole peer set
    replace_allowed_ips: bool = False
    remove: bool = False


@dataclass
class WireGuardConfig:
    """Desired WireGuard device settings."""
    private_key: Optional[Key] = None
    listen_port: Optional[int] = None
    firewall_mark: Optional[int] = None
    peers: list[PeerConfig] = field(default_factory=list)


@dataclass
class NetworkConfig:
    """Desired link, address and route state of the interface."""
    device: str
    mtu: Optional[int] = None
    addresses: list[IPInterface] = field(default_factory=list)
    routes: list[IPNetwork] = field(default_factory=list)
    # None selects the main table
    table: Optional[int] = None
    # False when peer allowed-IPs must not be turned into routes
    auto_routes: bool = True


@dataclass(frozen=True)
class Configuration:
    """
    Complete desired state for one WireGuard interface.

    Frozen at the top level only: the nested models are built up by the
    parser and must not be mutated afterwards. The differ returns copies.
    """
    interface: str
    wireguard: WireGuardConfig
    network: NetworkConfig

    def __post_init__(self):
        if not self.interface:
            raise ValueError("interface name must not be empty")
