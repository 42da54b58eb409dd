"""Shared fixtures."""
import pytest

from fakes import FakeNetlink, FakeWireGuard


@pytest.fixture
def netlink():
    return FakeNetlink()


@pytest.fixture
def wireguard():
    return FakeWireGuard()


@pytest.fixture
def config_dir(tmp_path):
    """A directory standing in for /etc/wireguard."""
    path = tmp_path / "wireguard"
    path.mkdir()
    return path


@pytest.fixture
def rt_tables_file(tmp_path):
    path = tmp_path / "rt_tables"
    path.write_text(
        "#\n"
        "# reserved values\n"
        "#\n"
        "255\tlocal\n"
        "254\tmain\n"
        "253\tdefault\n"
        "0\tunspec\n"
        "100\tvpn   # tunnel table\n"
        "200\tbroken extra\n"
        "bad\tnames\n"
    )
    return path
