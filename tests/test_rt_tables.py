"""Tests for iproute2 route table names."""
import pytest

from wg_apply.wgconf.rt_tables import RouteTables, parse_rt_tables, parse_uint32


class TestParseUint32:
    """Tests for unsigned integer literals."""

    @pytest.mark.parametrize("text,expected", [
        ("0", 0),
        ("254", 254),
        ("0x10", 16),
        ("0XfF", 255),
        ("010", 8),
        ("0o17", 15),
        ("0b101", 5),
        ("4294967295", 4294967295),
    ])
    def test_valid(self, text, expected):
        assert parse_uint32(text) == expected

    @pytest.mark.parametrize("text", [
        "",
        "-1",
        "+1",
        " 1",
        "main",
        "4294967296",
        "09",
        "0x",
    ])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_uint32(text)


class TestParseRtTables:
    """Tests for rt_tables content parsing."""

    def test_parse_sample(self, rt_tables_file):
        tables = parse_rt_tables(rt_tables_file.read_text().splitlines())

        assert tables == {
            "local": 255,
            "main": 254,
            "default": 253,
            "unspec": 0,
            "vpn": 100,
        }

    def test_comment_field_allowed(self):
        assert parse_rt_tables(["7 seven #note"]) == {"seven": 7}

    def test_short_and_extra_lines_skipped(self):
        assert parse_rt_tables(["7", "8 eight nine", ""]) == {}

    def test_hex_ids(self):
        assert parse_rt_tables(["0x20 hex"]) == {"hex": 32}


class TestRouteTables:
    """Tests for the lazily loaded mapping."""

    def test_first_existing_file_wins(self, tmp_path, rt_tables_file):
        other = tmp_path / "other"
        other.write_text("1 vpn\n")
        missing = tmp_path / "missing"

        tables = RouteTables([str(missing), str(rt_tables_file), str(other)])

        assert tables.lookup("vpn") == 100

    def test_unknown_name(self, rt_tables_file):
        tables = RouteTables([str(rt_tables_file)])

        assert tables.lookup("nope") is None

    def test_no_file_warns_and_is_empty(self, tmp_path, caplog):
        tables = RouteTables([str(tmp_path / "missing")])

        assert tables.lookup("main") is None
        assert "Failed to parse iproute2 rt_tables" in caplog.text

    def test_undecodable_file_skipped(self, tmp_path, caplog):
        broken = tmp_path / "broken"
        broken.write_bytes(b"100 vpn\xff\n")
        other = tmp_path / "other"
        other.write_text("7 vpn\n")

        tables = RouteTables([str(broken), str(other)])

        assert tables.lookup("vpn") == 7
        assert "Failed to decode route tables" in caplog.text

    def test_loaded_once(self, tmp_path):
        path = tmp_path / "rt_tables"
        path.write_text("5 five\n")
        tables = RouteTables([str(path)])

        assert tables.lookup("five") == 5
        path.write_text("6 five\n")
        assert tables.lookup("five") == 5

    def test_not_loaded_until_needed(self, tmp_path, caplog):
        RouteTables([str(tmp_path / "missing")])

        assert "rt_tables" not in caplog.text
