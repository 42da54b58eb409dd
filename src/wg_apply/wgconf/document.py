"""Parser for section/key-value documents.

Turns raw text into an ordered list of sections, each an ordered list of
key/value pairs:

    [Interface]
    PrivateKey = yAnz5TF+lXXJte14tji3zlMNq+hd2rYUIgJBgB3fBmk=
    Address = 10.0.0.1/24   # trailing comment is stripped

    [Peer]
    PublicKey = "xTIBA5rboUvnH4htodjb6e697QjLERt1NAB4mZqp8Dg="

Sections may repeat; their order and the order of pairs are preserved.
"""
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from ..errors import DocumentError

_ESCAPE_RE = re.compile(
    r"\\(x[0-9a-fA-F]{2}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[0-7]{3}|[abfnrtv\\\"'])"
)

_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
}


@dataclass
class Pair:
    """A single key/value pair."""
    key: str
    value: str
    line_no: int = 0


@dataclass
class Section:
    """A named section with its pairs in file order."""
    name: str
    pairs: list[Pair] = field(default_factory=list)


class DocumentParser:
    """Parse section/key-value documents."""

    def parse(self, lines: Iterable[str]) -> list[Section]:
        """
        Parse document lines into sections.

        Args:
            lines: Raw lines (with or without trailing newlines)

        Returns:
            Sections in document order

        Raises:
            DocumentError: On malformed section or key-value lines
        """
        sections: list[Section] = []
        current: Optional[Section] = None

        for line_no, raw in enumerate(lines, start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            if line.startswith("["):
                current = Section(name=self._parse_section_name(line, line_no))
                sections.append(current)
                continue

            if current is None:
                raise DocumentError("key-value outside of any section", line_no, line)

            key, value = self._parse_pair(line, line_no)
            current.pairs.append(Pair(key=key, value=value, line_no=line_no))

        return sections

    def parse_file(self, path: Path) -> list[Section]:
        """Read and parse a document from disk."""
        with open(path, encoding="utf-8") as f:
            return self.parse(f)

    def _parse_section_name(self, line: str, line_no: int) -> str:
        end = line.find("]")
        if end == -1:
            raise DocumentError("invalid section line", line_no, line)

        remaining = line[end + 1:].strip()
        if remaining and not remaining.startswith("#"):
            raise DocumentError("invalid section line", line_no, line)

        return line[1:end].strip()

    def _parse_pair(self, line: str, line_no: int) -> tuple[str, str]:
        eq = line.find("=")
        if eq == -1:
            raise DocumentError("invalid key-value line", line_no, line)

        key = line[:eq].strip()
        value = line[eq + 1:].strip()

        unquoted = _try_unquote(value)
        if unquoted is not None:
            return key, unquoted

        comment = value.find("#")
        if comment != -1:
            value = value[:comment].strip()
        return key, value


def _try_unquote(value: str) -> Optional[str]:
    """
    Decode a double-quoted value.

    Returns None when the value is not a well formed quoted string, in which
    case the caller treats it as unquoted.
    """
    if not value.startswith('"'):
        return None

    end = _find_closing_quote(value)
    if end == -1:
        return None

    remaining = value[end + 1:].strip()
    if remaining and not remaining.startswith("#"):
        return None

    return unescape(value[1:end])


def _find_closing_quote(value: str) -> int:
    i = 1
    while i < len(value):
        ch = value[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i
        i += 1
    return -1


def unescape(body: str) -> Optional[str]:
    """
    Decode backslash escapes in the body of a quoted string.

    Returns None if the body contains an unknown or out of range escape.
    """
    out = []
    pos = 0
    while True:
        slash = body.find("\\", pos)
        if slash == -1:
            out.append(body[pos:])
            return "".join(out)

        match = _ESCAPE_RE.match(body, slash)
        if not match:
            return None

        decoded = _decode_escape(match.group(1))
        if decoded is None:
            return None

        out.append(body[pos:slash])
        out.append(decoded)
        pos = match.end()


def _decode_escape(seq: str) -> Optional[str]:
    if seq in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[seq]
    if seq[0] in "xuU":
        code = int(seq[1:], 16)
        limit = sys.maxunicode
    else:
        code = int(seq, 8)
        limit = 0o377
    if code > limit:
        return None
    return chr(code)
