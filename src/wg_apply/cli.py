#!/usr/bin/env python3
"""wg-apply command line entry point.

Usage:
    wg-apply [INTERFACE | CONFIG_FILE] [-i INTERFACE] [-f FILE] [-p PARSER] [-N]

Examples:
    # Apply /etc/wireguard/wg0.conf to wg0
    wg-apply wg0

    # Apply a file, interface name taken from the file name
    wg-apply ./wg0.conf

    # Only touch the WireGuard device, not link/addresses/routes
    wg-apply -N wg0
"""
import argparse
import errno
import logging
import sys
from contextlib import ExitStack
from typing import Optional

from . import __version__
from .config.settings import load_settings
from .engine import ApplyEngine
from .errors import UsageError, WgApplyError
from .network.backend import PyRoute2Backend
from .utils.logging_config import setup_logging
from .wgconf.registry import default_registry
from .wireguard.backend import PyRoute2WireGuard

logger = logging.getLogger("wg_apply.cli")

EXIT_FAILURE = errno.EINVAL


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wg-apply",
        description="Apply a WireGuard configuration without resetting live peers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
    WGAPPLY_SETTINGS      Settings file (YAML)
    WGAPPLY_CONFIG_DIR    Directory holding <interface>.conf files
    WGAPPLY_LOG_LEVEL     DEBUG, INFO, WARNING, ERROR
""",
    )
    parser.add_argument(
        "target",
        nargs="?",
        metavar="INTERFACE | CONFIG_FILE",
        help="Interface name or config file path",
    )
    parser.add_argument("-i", "--interface", default="", help="wireguard interface to config")
    parser.add_argument("-f", "--file", default="", help="wireguard config file path")
    parser.add_argument("-p", "--parser", default="", help="config parser to use")
    parser.add_argument(
        "-N", "--skip-network",
        action="store_true",
        help="skip changes on network adapter (interface, addresses, routes)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="print the changes without applying them",
    )
    parser.add_argument("--settings", default=None, help="settings file (YAML)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_target(interface: str, file: str, target: Optional[str]) -> tuple[str, str]:
    """
    Merge the positional argument into the interface/file options.

    Raises:
        UsageError: If the positional argument is redundant or ambiguous
    """
    if not target:
        return interface, file

    if interface and file:
        raise UsageError(f"redundant argument: {target}")
    if not interface and not file:
        if "/" in target:
            return "", target
        return target, ""
    if not interface:
        if "/" in target:
            raise UsageError(f"redundant argument or invalid interface name: {target}")
        return target, file
    return interface, target


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.settings)
        setup_logging(
            "DEBUG" if args.verbose else settings.log_level,
            log_file=settings.log_file,
            max_size_mb=settings.log_max_size_mb,
            backup_count=settings.log_backups,
        )

        interface, file = resolve_target(args.interface, args.file, args.target)
        if not interface and not file:
            raise UsageError("missing interface name or conf file path")

        with ExitStack() as stack:
            wireguard_backend = stack.enter_context(PyRoute2WireGuard())
            network_backend = None
            if not args.skip_network:
                network_backend = stack.enter_context(PyRoute2Backend())

            engine = ApplyEngine(
                default_registry(settings),
                network_backend,
                wireguard_backend,
                settings,
            )
            engine.apply(
                interface=interface,
                path=file,
                parser=args.parser,
                skip_network=args.skip_network,
                dry_run=args.dry_run,
            )
    except WgApplyError as e:
        logger.error(f"Error: {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_FAILURE

    return 0


if __name__ == "__main__":
    sys.exit(main())
