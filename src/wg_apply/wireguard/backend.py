"""Access to live WireGuard devices."""
import base64
import errno
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from pyroute2 import WireGuard
from pyroute2.netlink.exceptions import NetlinkError

from ..errors import DeviceNotFoundError, WireGuardError
from ..wgconf.schema import Key, PeerConfig, WireGuardConfig

logger = logging.getLogger(__name__)


@dataclass
class PeerState:
    """A peer as reported by the kernel, including live counters."""
    public_key: Key
    rx_bytes: int = 0
    tx_bytes: int = 0
    last_handshake: int = 0


@dataclass
class DeviceState:
    """A WireGuard device as reported by the kernel."""
    name: str
    listen_port: Optional[int] = None
    firewall_mark: Optional[int] = None
    peers: list[PeerState] = field(default_factory=list)


class WireGuardBackend(ABC):
    """Abstract access to the WireGuard control interface."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        pass

    @abstractmethod
    def get_device(self, name: str) -> DeviceState:
        """
        Query a device.

        Raises:
            DeviceNotFoundError: If no such WireGuard device exists
        """
        pass

    @abstractmethod
    def configure_device(self, name: str, config: WireGuardConfig) -> None:
        """Apply a device configuration delta."""
        pass


class PyRoute2WireGuard(WireGuardBackend):
    """WireGuardBackend on top of pyroute2's generic netlink WireGuard socket."""

    def __init__(self, wg: Optional[WireGuard] = None):
        if wg is None:
            try:
                wg = WireGuard()
            except (NetlinkError, OSError) as e:
                raise WireGuardError(f"cannot obtain wireguard control socket: {e}") from e
        self._wg = wg

    def close(self) -> None:
        self._wg.close()

    def get_device(self, name: str) -> DeviceState:
        try:
            messages = self._wg.info(name)
        except NetlinkError as e:
            if e.code in (errno.ENODEV, errno.ENOENT):
                raise DeviceNotFoundError(f"wireguard interface {name} does not exist") from e
            raise WireGuardError(f"failed to query wireguard interface {name}: {e}") from e

        device = DeviceState(name=name)
        for msg in messages:
            listen_port = msg.get_attr("WGDEVICE_A_LISTEN_PORT")
            if listen_port is not None:
                device.listen_port = listen_port
            fwmark = msg.get_attr("WGDEVICE_A_FWMARK")
            if fwmark is not None:
                device.firewall_mark = fwmark

            for peer in msg.get_attr("WGDEVICE_A_PEERS") or []:
                handshake = peer.get_attr("WGPEER_A_LAST_HANDSHAKE_TIME") or {}
                device.peers.append(PeerState(
                    public_key=_decode_key(peer.get_attr("WGPEER_A_PUBLIC_KEY")),
                    rx_bytes=peer.get_attr("WGPEER_A_RX_BYTES") or 0,
                    tx_bytes=peer.get_attr("WGPEER_A_TX_BYTES") or 0,
                    last_handshake=handshake.get("tv_sec", 0) if isinstance(handshake, dict) else 0,
                ))
        return device

    def configure_device(self, name: str, config: WireGuardConfig) -> None:
        device_args: dict[str, Any] = {}
        if config.private_key is not None:
            device_args["private_key"] = str(config.private_key)
        if config.listen_port is not None:
            device_args["listen_port"] = config.listen_port
        if config.firewall_mark is not None:
            device_args["fwmark"] = config.firewall_mark

        logger.debug(
            f"Configuring {name}: {sorted(device_args)} and {len(config.peers)} peer entries"
        )
        try:
            if device_args:
                self._wg.set(name, **device_args)
            for peer in config.peers:
                self._wg.set(name, peer=peer_to_pyroute2(peer))
        except NetlinkError as e:
            raise WireGuardError(f"failed to configure wireguard interface {name}: {e}") from e


def peer_to_pyroute2(peer: PeerConfig) -> dict[str, Any]:
    """Build the peer dict understood by pyroute2's WireGuard.set()."""
    attrs: dict[str, Any] = {"public_key": str(peer.public_key)}
    if peer.remove:
        attrs["remove"] = True
        return attrs

    if peer.preshared_key is not None:
        attrs["preshared_key"] = str(peer.preshared_key)
    if peer.endpoint is not None:
        attrs["endpoint_addr"] = peer.endpoint.host
        attrs["endpoint_port"] = peer.endpoint.port
    if peer.persistent_keepalive is not None:
        attrs["persistent_keepalive"] = int(peer.persistent_keepalive.total_seconds())
    # Sets WGPEER_F_REPLACE_ALLOWEDIPS; without it the kernel merges prefixes
    if peer.replace_allowed_ips:
        attrs["replace_allowed_ips"] = True
    if peer.replace_allowed_ips or peer.allowed_ips:
        attrs["allowed_ips"] = [str(prefix) for prefix in peer.allowed_ips]
    return attrs


def _decode_key(value) -> Key:
    if isinstance(value, (bytes, bytearray)):
        if len(value) == 32:
            return Key(bytes(value))
        value = value.decode("ascii")
    return Key(base64.b64decode(value))
