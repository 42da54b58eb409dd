"""Symbolic route table names from the iproute2 rt_tables file."""
import logging
import re
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_RT_TABLES_PATHS = (
    "/etc/iproute2/rt_tables",
    "/usr/share/iproute2/rt_tables",
    "/usr/lib/iproute2/rt_tables",
)

UINT32_MAX = (1 << 32) - 1

_OCTAL_RE = re.compile(r"^0[0-7_]+$")


def parse_uint32(text: str) -> int:
    """
    Parse an unsigned 32-bit integer literal.

    Accepts decimal, 0x/0o/0b prefixed and leading-zero octal forms.

    Raises:
        ValueError: If the text is not a valid literal or out of range
    """
    if not text or not text[0].isdigit():
        raise ValueError(f"invalid unsigned integer: {text!r}")

    if _OCTAL_RE.match(text):
        value = int(text[1:], 8)
    else:
        value = int(text, 0)

    if value > UINT32_MAX:
        raise ValueError(f"value out of range: {text}")
    return value


def parse_rt_tables(lines: Iterable[str]) -> dict[str, int]:
    """
    Parse rt_tables content into a name -> table id mapping.

    Each line is `<id> <name> [# comment]`. Comment lines, short lines,
    lines with a non-comment third field and lines with a bad id are
    skipped.
    """
    tables: dict[str, int] = {}

    for line in lines:
        if line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        if len(fields) > 2 and not fields[2].startswith("#"):
            continue
        try:
            table_id = parse_uint32(fields[0])
        except ValueError:
            continue
        tables[fields[1]] = table_id

    return tables


class RouteTables:
    """Lazily loaded route table name mapping."""

    def __init__(self, paths: Iterable[str] = DEFAULT_RT_TABLES_PATHS):
        self.paths = [Path(p) for p in paths]
        self._tables: Optional[dict[str, int]] = None

    def lookup(self, name: str) -> Optional[int]:
        """Return the table id for a symbolic name, or None if unknown."""
        return self.tables.get(name)

    @property
    def tables(self) -> dict[str, int]:
        if self._tables is None:
            self._tables = self._load()
        return self._tables

    def _load(self) -> dict[str, int]:
        for path in self.paths:
            try:
                with open(path, encoding="utf-8") as f:
                    tables = parse_rt_tables(f)
            except FileNotFoundError:
                continue
            except UnicodeDecodeError as e:
                logger.warning(f"Failed to decode route tables from {path}: {e}")
                continue
            except OSError as e:
                logger.warning(f"Failed to read route tables from {path}: {e}")
                continue
            logger.debug(f"Loaded {len(tables)} route table names from {path}")
            return tables

        logger.warning(
            "Failed to parse iproute2 rt_tables: no readable file among "
            f"{', '.join(str(p) for p in self.paths)}"
        )
        return {}
