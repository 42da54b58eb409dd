"""WireGuard device access and peer diffing."""
from .backend import (
    DeviceState,
    PeerState,
    PyRoute2WireGuard,
    WireGuardBackend,
    peer_to_pyroute2,
)
from .diff import calc_diff, summarize_diff

__all__ = [
    "DeviceState",
    "PeerState",
    "PyRoute2WireGuard",
    "WireGuardBackend",
    "peer_to_pyroute2",
    "calc_diff",
    "summarize_diff",
]
