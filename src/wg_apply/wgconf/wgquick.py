"""Parser for wg-quick(8) style configuration files.

Handles the [Interface] and [Peer] sections understood by wg-quick. Keys that
only matter to wg-quick's shell hooks (DNS, PreUp, PostDown, ...) are
accepted and ignored.
"""
import ipaddress
import logging
import os
import socket
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

from ..errors import ConfigError, UsageError, WgApplyError
from .document import DocumentParser, Pair, Section
from .registry import Failed, Matched, NotApplicable, ParseOutcome, ParserOptions
from .rt_tables import DEFAULT_RT_TABLES_PATHS, RouteTables, parse_uint32
from .schema import (
    Configuration,
    Endpoint,
    Key,
    NetworkConfig,
    PeerConfig,
    WireGuardConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = "/etc/wireguard"
DEFAULT_SUFFIX = ".conf"

IGNORED_INTERFACE_KEYS = frozenset({
    "DNS",
    "PreUp",
    "PostUp",
    "PreDown",
    "PostDown",
    "SaveConfig",
})

EndpointResolver = Callable[[str, int], str]


def resolve_udp_host(host: str, port: int) -> str:
    """Resolve a host name to the first UDP address."""
    infos = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
    if not infos:
        raise ValueError(f"no address for {host}")
    return infos[0][4][0]


class WgQuickParser:
    """Parse wg-quick configuration files into a Configuration."""

    def __init__(
        self,
        config_dir: str = DEFAULT_CONFIG_DIR,
        suffix: str = DEFAULT_SUFFIX,
        route_tables: Optional[RouteTables] = None,
        resolve_host: EndpointResolver = resolve_udp_host,
    ):
        self.config_dir = Path(config_dir)
        self.suffix = suffix
        self.route_tables = route_tables or RouteTables(DEFAULT_RT_TABLES_PATHS)
        self.resolve_host = resolve_host
        self.document_parser = DocumentParser()

    @classmethod
    def from_settings(cls, settings=None) -> "WgQuickParser":
        if settings is None:
            return cls()
        return cls(
            config_dir=settings.config_dir,
            suffix=settings.config_suffix,
            route_tables=RouteTables(settings.rt_tables_paths),
        )

    def __call__(self, options: ParserOptions) -> ParseOutcome:
        try:
            source = self._locate(options)
            if isinstance(source, NotApplicable):
                return source
            interface, path = source
            return Matched(self.parse_file(interface, path))
        except WgApplyError as e:
            return Failed(e)

    def _locate(self, options: ParserOptions):
        """Work out the interface name and file path from the hints."""
        if not options.interface and not options.path:
            raise UsageError("missing interface name or conf file path")

        if options.path:
            path = Path(options.path)
            stem = path.name[:-len(self.suffix)] if path.name.endswith(self.suffix) else path.name
            if options.interface and options.interface != stem:
                raise UsageError(
                    f"interface {options.interface} does not match conf file {options.path}"
                )

            if options.probe:
                abs_path = Path(os.path.abspath(path))
                if abs_path.parent != self.config_dir:
                    return NotApplicable(f"{abs_path} is not in {self.config_dir}")
                if not abs_path.name.endswith(self.suffix):
                    return NotApplicable(f"{abs_path} does not end with {self.suffix}")

            return options.interface or stem, path

        path = self.config_dir / f"{options.interface}{self.suffix}"
        if not os.access(path, os.R_OK):
            if options.probe:
                return NotApplicable(f"{path} is not readable")
            raise ConfigError(f"failed to access conf file {path}")
        return options.interface, path

    def parse_file(self, interface: str, path: Path) -> Configuration:
        """Read and convert one configuration file."""
        try:
            sections = self.document_parser.parse_file(path)
        except OSError as e:
            raise ConfigError(f"failed to open conf file {path}: {e}") from e
        except ConfigError as e:
            raise ConfigError(f"failed to parse conf file {path}: {e}") from e
        except ValueError as e:
            raise ConfigError(f"failed to read conf file {path}: {e}") from e

        logger.debug(f"Parsed {len(sections)} sections from {path}")
        return self.convert(interface, sections)

    def convert(self, interface: str, sections: list[Section]) -> Configuration:
        """
        Convert parsed sections into a Configuration.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        network = NetworkConfig(device=interface)
        wireguard = WireGuardConfig()
        seen_keys: set[Key] = set()

        for section in sections:
            if section.name == "Interface":
                self._apply_interface(section, wireguard, network)
            elif section.name == "Peer":
                peer = self._parse_peer(section)
                if peer.public_key in seen_keys:
                    raise ConfigError(f"duplicate peer with public key {peer.public_key}")
                seen_keys.add(peer.public_key)
                wireguard.peers.append(peer)
            else:
                logger.warning(f"Ignoring unknown section [{section.name}]")

        if network.auto_routes:
            for peer in wireguard.peers:
                network.routes.extend(peer.allowed_ips)

        return Configuration(interface=interface, wireguard=wireguard, network=network)

    def _apply_interface(
        self,
        section: Section,
        wireguard: WireGuardConfig,
        network: NetworkConfig,
    ) -> None:
        for pair in section.pairs:
            key, value = pair.key, pair.value

            if key == "Address":
                for item in _split_list(value):
                    try:
                        network.addresses.append(ipaddress.ip_interface(item))
                    except ValueError as e:
                        raise _value_error(pair, f"failed to parse address {item}", e) from e

            elif key == "MTU":
                network.mtu = _parse_ranged_int(pair, "MTU", 0, 65535)

            elif key == "PrivateKey":
                wireguard.private_key = _parse_key(pair, "private key")

            elif key == "ListenPort":
                wireguard.listen_port = _parse_ranged_int(pair, "listen port", 0, 65535)

            elif key == "Table":
                self._apply_table(pair, network)

            elif key == "FwMark":
                try:
                    wireguard.firewall_mark = parse_uint32(value)
                except ValueError as e:
                    raise _value_error(pair, "failed to parse fwmark", e) from e

            elif key in IGNORED_INTERFACE_KEYS:
                logger.debug(f"Ignoring unsupported key {key} in [Interface]")

            else:
                raise ConfigError(
                    f"unknown key-value pair in [Interface] section: {key} = {value}"
                )

    def _apply_table(self, pair: Pair, network: NetworkConfig) -> None:
        value = pair.value
        if value == "off":
            network.auto_routes = False
            return
        if value == "auto":
            network.table = None
            return

        try:
            network.table = parse_uint32(value)
            return
        except ValueError:
            pass

        table = self.route_tables.lookup(value)
        if table is None:
            raise ConfigError(f"unknown table {value}")
        network.table = table

    def _parse_peer(self, section: Section) -> PeerConfig:
        public_key: Optional[Key] = None
        peer_fields: dict = {}
        allowed_ips = []

        for pair in section.pairs:
            key, value = pair.key, pair.value

            if key == "PublicKey":
                public_key = _parse_key(pair, "public key")

            elif key == "PresharedKey":
                peer_fields["preshared_key"] = _parse_key(pair, "preshared key")

            elif key == "AllowedIPs":
                for item in _split_list(value):
                    try:
                        allowed_ips.append(ipaddress.ip_network(item, strict=False))
                    except ValueError as e:
                        raise _value_error(pair, f"failed to parse prefix {item}", e) from e

            elif key == "Endpoint":
                peer_fields["endpoint"] = self._parse_endpoint(pair)

            elif key == "PersistentKeepalive":
                seconds = _parse_ranged_int(pair, "persistent keepalive", 0, 65535)
                peer_fields["persistent_keepalive"] = timedelta(seconds=seconds)

            else:
                raise ConfigError(
                    f"unknown key-value pair in [Peer] section: {key} = {value}"
                )

        if public_key is None:
            raise ConfigError("missing PublicKey in [Peer] section")

        return PeerConfig(
            public_key=public_key,
            allowed_ips=allowed_ips,
            replace_allowed_ips=True,
            **peer_fields,
        )

    def _parse_endpoint(self, pair: Pair) -> Endpoint:
        try:
            host, port = split_host_port(pair.value)
            return Endpoint(host=self.resolve_host(host, port), port=port)
        except (ValueError, OSError) as e:
            raise _value_error(pair, "failed to parse endpoint", e) from e


def split_host_port(text: str) -> tuple[str, int]:
    """
    Split `host:port` or `[v6addr]:port`.

    Raises:
        ValueError: If the port is missing or not a valid port number
    """
    if text.startswith("["):
        end = text.find("]")
        if end == -1 or not text[end + 1:].startswith(":"):
            raise ValueError(f"invalid endpoint {text}")
        host, port_str = text[1:end], text[end + 2:]
    else:
        host, sep, port_str = text.rpartition(":")
        if not sep or ":" in host:
            raise ValueError(f"missing port in endpoint {text}")

    if not host:
        raise ValueError(f"missing host in endpoint {text}")
    if not port_str.isdigit() or int(port_str) > 65535:
        raise ValueError(f"invalid port in endpoint {text}")
    return host, int(port_str)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_key(pair: Pair, what: str) -> Key:
    try:
        return Key.parse(pair.value)
    except ValueError as e:
        raise _value_error(pair, f"failed to parse {what}", e) from e


def _parse_ranged_int(pair: Pair, what: str, low: int, high: int) -> int:
    if not (pair.value.isascii() and pair.value.isdigit()):
        raise ConfigError(
            f'failed to parse {what} in "{pair.key} = {pair.value}": not a decimal number'
        )
    value = int(pair.value)
    if value < low or value > high:
        raise ConfigError(f'invalid {what} {value} in "{pair.key} = {pair.value}"')
    return value


def _value_error(pair: Pair, message: str, cause: Exception) -> ConfigError:
    return ConfigError(f'{message} in "{pair.key} = {pair.value}": {cause}')
