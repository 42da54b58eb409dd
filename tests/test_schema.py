"""Tests for the configuration model."""
import pytest

from fakes import key_text, make_key
from wg_apply.wgconf.schema import (
    Configuration,
    Endpoint,
    Key,
    NetworkConfig,
    WireGuardConfig,
)


class TestKey:
    """Tests for WireGuard keys."""

    def test_parse_and_format(self):
        text = key_text(7)

        key = Key.parse(text)

        assert key == make_key(7)
        assert str(key) == text

    def test_repr_hides_key(self):
        assert repr(make_key(7)) == f"Key({key_text(7)[:8]}...)"

    def test_hashable(self):
        assert len({make_key(1), make_key(1), make_key(2)}) == 2

    @pytest.mark.parametrize("text", ["", "AAAA", "not base64!", key_text(7) + "AAAA"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            Key.parse(text)

    def test_wrong_length(self):
        with pytest.raises(ValueError):
            Key(b"short")


class TestEndpoint:
    """Tests for endpoint formatting."""

    def test_ipv4(self):
        assert str(Endpoint("192.0.2.1", 51820)) == "192.0.2.1:51820"

    def test_ipv6(self):
        assert str(Endpoint("2001:db8::1", 51820)) == "[2001:db8::1]:51820"


class TestConfiguration:
    """Tests for the top level configuration."""

    def test_empty_interface_rejected(self):
        with pytest.raises(ValueError):
            Configuration(interface="", wireguard=WireGuardConfig(), network=NetworkConfig(device=""))

    def test_defaults(self):
        network = NetworkConfig(device="wg0")

        assert network.auto_routes is True
        assert network.table is None
        assert network.routes == []
