"""Diff engine for WireGuard device configuration.

Computes a device configuration delta that upserts every desired peer and
removes only the peers that are gone. The whole peer set is never replaced:
doing so drops every peer first and resets handshakes and transfer counters
even for peers that did not change.
"""
from dataclasses import replace
from typing import Optional

from ..wgconf.schema import PeerConfig, WireGuardConfig
from .backend import DeviceState


def calc_diff(current: Optional[DeviceState], desired: WireGuardConfig) -> WireGuardConfig:
    """
    Calculate the delta that turns the current device into the desired one.

    Args:
        current: Live device state, or None if unknown
        desired: Desired device configuration

    Returns:
        WireGuardConfig to hand to the control interface
    """
    # Scalars are always re-applied; setting them is idempotent
    diff = WireGuardConfig(
        private_key=desired.private_key,
        listen_port=desired.listen_port,
        firewall_mark=desired.firewall_mark,
    )
    peers = [replace(peer, allowed_ips=list(peer.allowed_ips)) for peer in desired.peers]
    if current is None:
        diff.peers = peers
        return diff

    stale = {peer.public_key: peer for peer in current.peers}
    for peer in desired.peers:
        stale.pop(peer.public_key, None)

    diff.peers.extend(peers)
    for public_key in stale:
        diff.peers.append(PeerConfig(public_key=public_key, remove=True))

    return diff


def summarize_diff(diff: WireGuardConfig) -> str:
    """
    Create a human-readable summary of a device delta.

    Useful for dry-run output and logging.
    """
    lines = []

    if diff.private_key is not None:
        lines.append("  [~] Set private key")
    if diff.listen_port is not None:
        lines.append(f"  [~] Set listen port {diff.listen_port}")
    if diff.firewall_mark is not None:
        lines.append(f"  [~] Set fwmark {diff.firewall_mark:#x}")

    for peer in diff.peers:
        if peer.remove:
            lines.append(f"  [-] Remove peer {peer.public_key}")
            continue

        lines.append(f"  [+] Upsert peer {peer.public_key}")
        if peer.endpoint:
            lines.append(f"      Endpoint: {peer.endpoint}")
        if peer.allowed_ips:
            lines.append(f"      Allowed IPs: {', '.join(str(p) for p in peer.allowed_ips)}")
        if peer.persistent_keepalive is not None:
            seconds = int(peer.persistent_keepalive.total_seconds())
            lines.append(f"      Keepalive: {seconds}s")

    if not lines:
        return "No device changes"

    return "Device changes:\n" + "\n".join(lines)
