"""Tests for the WireGuard differ and device backend."""
import errno
import ipaddress
from datetime import timedelta

import pytest
from pyroute2.netlink.exceptions import NetlinkError
from pyroute2.netlink.generic.wireguard import (
    WGPEER_F_REMOVE_ME,
    WGPEER_F_REPLACE_ALLOWEDIPS,
    AsyncWireGuard,
)

from fakes import key_text, make_key
from wg_apply.errors import DeviceNotFoundError, WireGuardError
from wg_apply.wgconf.schema import Endpoint, PeerConfig, WireGuardConfig
from wg_apply.wireguard.backend import (
    DeviceState,
    PeerState,
    PyRoute2WireGuard,
    peer_to_pyroute2,
)
from wg_apply.wireguard.diff import calc_diff, summarize_diff

A, B, C, D = (make_key(i) for i in (10, 11, 12, 13))


def desired_peer(key, *prefixes):
    return PeerConfig(
        public_key=key,
        allowed_ips=[ipaddress.ip_network(p) for p in prefixes],
        replace_allowed_ips=True,
    )


def device(*keys, **kwargs):
    return DeviceState(name="wg0", peers=[PeerState(public_key=k) for k in keys], **kwargs)


class TestCalcDiff:
    """Tests for the peer delta."""

    def test_upserts_desired_and_removes_stale(self):
        """Current {A,B,C}, desired {B,C,D}: upsert B, C, D and remove A."""
        desired = WireGuardConfig(
            listen_port=51820,
            peers=[desired_peer(B, "10.0.0.2/32"), desired_peer(C), desired_peer(D)],
        )

        diff = calc_diff(device(A, B, C), desired)

        upserts = [p for p in diff.peers if not p.remove]
        removals = [p for p in diff.peers if p.remove]
        assert [p.public_key for p in upserts] == [B, C, D]
        assert [p.public_key for p in removals] == [A]
        assert all(p.replace_allowed_ips for p in upserts)
        assert diff.listen_port == 51820

    def test_removal_marker_carries_only_key(self):
        diff = calc_diff(device(A), WireGuardConfig())

        marker = diff.peers[0]
        assert marker == PeerConfig(public_key=A, remove=True)

    def test_unknown_device_applies_desired(self):
        desired = WireGuardConfig(listen_port=1, peers=[desired_peer(A, "10.0.0.2/32")])

        diff = calc_diff(None, desired)

        assert diff == desired
        assert diff is not desired

    def test_delta_does_not_alias_desired(self):
        """Changing the delta leaves the parsed configuration untouched."""
        desired = WireGuardConfig(peers=[desired_peer(A, "10.0.0.2/32")])

        for current in (None, device(B)):
            diff = calc_diff(current, desired)
            diff.peers[0].allowed_ips.clear()
            diff.peers.append(desired_peer(C))

        assert desired.peers == [desired_peer(A, "10.0.0.2/32")]

    def test_unchanged_peer_set_has_no_removals(self):
        diff = calc_diff(device(A, B), WireGuardConfig(peers=[desired_peer(A), desired_peer(B)]))

        assert not any(p.remove for p in diff.peers)
        assert len(diff.peers) == 2

    def test_empty_desired_removes_everything(self):
        diff = calc_diff(device(A, B), WireGuardConfig())

        assert {p.public_key for p in diff.peers} == {A, B}
        assert all(p.remove for p in diff.peers)

    def test_scalars_copied(self):
        desired = WireGuardConfig(private_key=A, listen_port=1, firewall_mark=2)

        diff = calc_diff(device(listen_port=9, firewall_mark=9), desired)

        assert (diff.private_key, diff.listen_port, diff.firewall_mark) == (A, 1, 2)

    def test_current_not_mutated(self):
        current = device(A, B)

        calc_diff(current, WireGuardConfig(peers=[desired_peer(B)]))

        assert [p.public_key for p in current.peers] == [A, B]


class TestSummarizeDiff:
    """Tests for the human readable delta."""

    def test_no_changes(self):
        assert summarize_diff(WireGuardConfig()) == "No device changes"

    def test_summary_lines(self):
        diff = WireGuardConfig(
            listen_port=51820,
            firewall_mark=0x10,
            peers=[
                PeerConfig(
                    public_key=A,
                    endpoint=Endpoint("192.0.2.1", 51820),
                    allowed_ips=[ipaddress.ip_network("10.0.0.2/32")],
                    persistent_keepalive=timedelta(seconds=25),
                ),
                PeerConfig(public_key=B, remove=True),
            ],
        )

        summary = summarize_diff(diff)

        assert summary.startswith("Device changes:\n")
        assert "  [~] Set listen port 51820" in summary
        assert "  [~] Set fwmark 0x10" in summary
        assert f"  [+] Upsert peer {A}" in summary
        assert "      Endpoint: 192.0.2.1:51820" in summary
        assert "      Allowed IPs: 10.0.0.2/32" in summary
        assert "      Keepalive: 25s" in summary
        assert f"  [-] Remove peer {B}" in summary

    def test_private_key_not_printed(self):
        summary = summarize_diff(WireGuardConfig(private_key=A))

        assert str(A) not in summary
        assert "Set private key" in summary


class TestPeerToPyroute2:
    """Tests for the pyroute2 peer mapping."""

    def test_removal(self):
        assert peer_to_pyroute2(PeerConfig(public_key=A, remove=True)) == {
            "public_key": key_text(10),
            "remove": True,
        }

    def test_full_peer(self):
        peer = PeerConfig(
            public_key=A,
            preshared_key=B,
            endpoint=Endpoint("2001:db8::1", 51820),
            allowed_ips=[ipaddress.ip_network("10.0.0.0/24"), ipaddress.ip_network("fd00::/64")],
            persistent_keepalive=timedelta(seconds=25),
            replace_allowed_ips=True,
        )

        assert peer_to_pyroute2(peer) == {
            "public_key": key_text(10),
            "preshared_key": key_text(11),
            "endpoint_addr": "2001:db8::1",
            "endpoint_port": 51820,
            "persistent_keepalive": 25,
            "replace_allowed_ips": True,
            "allowed_ips": ["10.0.0.0/24", "fd00::/64"],
        }

    def test_replace_with_empty_allowed_ips(self):
        """An empty allowed-IP list still replaces the peer's existing ones."""
        attrs = peer_to_pyroute2(PeerConfig(public_key=A, replace_allowed_ips=True))

        assert attrs["allowed_ips"] == []

    def test_no_allowed_ips_without_replace(self):
        attrs = peer_to_pyroute2(PeerConfig(public_key=A))

        assert "allowed_ips" not in attrs
        assert "replace_allowed_ips" not in attrs


class PeerEncoder:
    """Borrows pyroute2's peer message builder without opening a socket."""
    _wg_test_key = AsyncWireGuard._wg_test_key
    _wg_build_allowedips = AsyncWireGuard._wg_build_allowedips

    def flags(self, peer: PeerConfig) -> int:
        msg = {"attrs": []}
        AsyncWireGuard._wg_set_peer(self, msg, peer_to_pyroute2(peer))
        (name, wg_peer), = msg["attrs"]
        assert name == "WGDEVICE_A_PEERS"
        return dict(wg_peer[0]["attrs"])["WGPEER_A_FLAGS"]


class TestPeerFlags:
    """Kernel peer flags produced from the pyroute2 peer dict."""

    def test_desired_peer_replaces_allowed_ips(self):
        flags = PeerEncoder().flags(desired_peer(A, "10.0.0.2/32"))

        assert flags & WGPEER_F_REPLACE_ALLOWEDIPS

    def test_emptied_allowed_ips_still_replaced(self):
        flags = PeerEncoder().flags(desired_peer(A))

        assert flags & WGPEER_F_REPLACE_ALLOWEDIPS

    def test_removal_marker(self):
        flags = PeerEncoder().flags(PeerConfig(public_key=A, remove=True))

        assert flags == WGPEER_F_REMOVE_ME


class FakeAttrs:
    """Stand-in for a pyroute2 netlink message."""

    def __init__(self, **attrs):
        self.attrs = attrs

    def get_attr(self, name):
        return self.attrs.get(name)


class FakeSocket:
    """Stand-in for pyroute2.WireGuard."""

    def __init__(self, info=None, error=None):
        self._info = info or []
        self._error = error
        self.sets = []
        self.closed = False

    def info(self, name):
        if self._error:
            raise self._error
        return self._info

    def set(self, name, **kwargs):
        if self._error:
            raise self._error
        self.sets.append((name, kwargs))

    def close(self):
        self.closed = True


class TestPyRoute2WireGuard:
    """Tests for the pyroute2 backed device access."""

    def test_get_device(self):
        msg = FakeAttrs(
            WGDEVICE_A_LISTEN_PORT=51820,
            WGDEVICE_A_FWMARK=0,
            WGDEVICE_A_PEERS=[
                FakeAttrs(
                    WGPEER_A_PUBLIC_KEY=key_text(10).encode("ascii"),
                    WGPEER_A_RX_BYTES=100,
                    WGPEER_A_TX_BYTES=200,
                    WGPEER_A_LAST_HANDSHAKE_TIME={"tv_sec": 1700000000, "tv_nsec": 0},
                ),
                FakeAttrs(WGPEER_A_PUBLIC_KEY=bytes([11]) * 32),
            ],
        )
        backend = PyRoute2WireGuard(wg=FakeSocket(info=[msg]))

        state = backend.get_device("wg0")

        assert state.listen_port == 51820
        assert state.firewall_mark == 0
        assert [p.public_key for p in state.peers] == [A, B]
        assert state.peers[0].rx_bytes == 100
        assert state.peers[0].last_handshake == 1700000000
        assert state.peers[1].tx_bytes == 0

    @pytest.mark.parametrize("code", [errno.ENODEV, errno.ENOENT])
    def test_missing_device(self, code):
        backend = PyRoute2WireGuard(wg=FakeSocket(error=NetlinkError(code)))

        with pytest.raises(DeviceNotFoundError):
            backend.get_device("wg0")

    def test_other_query_error(self):
        backend = PyRoute2WireGuard(wg=FakeSocket(error=NetlinkError(errno.EPERM)))

        with pytest.raises(WireGuardError) as exc_info:
            backend.get_device("wg0")

        assert not isinstance(exc_info.value, DeviceNotFoundError)

    def test_configure_device(self):
        sock = FakeSocket()
        backend = PyRoute2WireGuard(wg=sock)
        config = WireGuardConfig(
            private_key=A,
            listen_port=51820,
            peers=[desired_peer(B, "10.0.0.2/32"), PeerConfig(public_key=C, remove=True)],
        )

        backend.configure_device("wg0", config)

        assert sock.sets[0] == ("wg0", {"private_key": key_text(10), "listen_port": 51820})
        assert sock.sets[1][1]["peer"]["public_key"] == key_text(11)
        assert sock.sets[2][1]["peer"] == {"public_key": key_text(12), "remove": True}

    def test_configure_peers_only(self):
        sock = FakeSocket()

        PyRoute2WireGuard(wg=sock).configure_device("wg0", WireGuardConfig(peers=[desired_peer(A)]))

        assert len(sock.sets) == 1
        assert "peer" in sock.sets[0][1]

    def test_configure_error(self):
        backend = PyRoute2WireGuard(wg=FakeSocket(error=NetlinkError(errno.EINVAL)))

        with pytest.raises(WireGuardError):
            backend.configure_device("wg0", WireGuardConfig(listen_port=1))

    def test_context_manager_closes(self):
        sock = FakeSocket()

        with PyRoute2WireGuard(wg=sock):
            pass

        assert sock.closed
