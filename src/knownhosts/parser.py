"""Known-hosts line parsing and canonical serialisation.

Line grammar::

    [@marker] hostname_patterns key_type base64_key [comment]
"""
from typing import Iterable, Iterator, Optional, Union

from .exceptions import KeyFormatError
from .hostnames import normalize_pattern
from .keys import check_key_material, decode_key_material, encode_key_material
from .models import HostKeyEntry, ParseFailure
from .types import KeyType, Marker

ParseResult = Union[HostKeyEntry, ParseFailure]

_MARKERS = {f"@{m.value}": m for m in Marker}


def is_skippable(line: str) -> bool:
    """Blank lines and ``#`` comments carry no entry."""
    stripped = line.strip()
    return not stripped or stripped.startswith("#")


def parse_line(
    line: str, *, line_number: Optional[int] = None, source: Optional[str] = None
) -> ParseResult:
    """Parse one known-hosts line. Never raises for malformed input."""
    raw = line.rstrip("\r\n")

    def fail(reason: str) -> ParseFailure:
        return ParseFailure(reason=reason, raw_line=raw, line_number=line_number, source=source)

    fields = raw.split()
    if not fields:
        return fail("empty line")

    marker: Optional[Marker] = None
    if fields[0].startswith("@"):
        marker = _MARKERS.get(fields[0].lower())
        if marker is None:
            return fail(f"unknown marker {fields[0]!r}")
        fields = fields[1:]

    if len(fields) < 3:
        return fail(
            f"expected hostname, key type and key, got {len(fields)} field(s)"
        )

    patterns, type_name, encoded = fields[0], fields[1], fields[2]
    try:
        key_type = KeyType(type_name)
    except ValueError:
        return fail(f"unsupported key type {type_name!r}")

    hostname_pattern = normalize_pattern(patterns)
    if not hostname_pattern:
        return fail("empty hostname pattern")

    try:
        blob = decode_key_material(encoded)
        check_key_material(key_type, blob)
    except KeyFormatError as e:
        return fail(str(e))

    return HostKeyEntry(
        hostname_pattern=hostname_pattern,
        key_type=key_type,
        key_material=blob,
        marker=marker,
        comment=" ".join(fields[3:]) or None,
    )


def parse_lines(lines: Iterable[str], source: Optional[str] = None) -> Iterator[ParseResult]:
    """Parse every non-comment line, numbering from 1."""
    for number, line in enumerate(lines, start=1):
        if is_skippable(line):
            continue
        yield parse_line(line, line_number=number, source=source)


def parse_key(hostname_pattern: str, key_text: str) -> HostKeyEntry:
    """Build an entry from bare ``key_type base64 [comment]`` text.

    Raises:
        KeyFormatError: If the key text does not parse.
    """
    result = parse_line(f"{hostname_pattern} {key_text.strip()}")
    if isinstance(result, ParseFailure):
        raise KeyFormatError(f"invalid key for {hostname_pattern}: {result.reason}")
    if result.marker is not None:
        raise KeyFormatError(f"invalid key for {hostname_pattern}: markers are not allowed here")
    return result


def serialize_entry(entry: HostKeyEntry) -> str:
    """Canonical single-line form, without the trailing newline."""
    parts = []
    if entry.marker is not None:
        parts.append(f"@{entry.marker.value}")
    parts.append(entry.hostname_pattern)
    parts.append(entry.key_type.value)
    parts.append(encode_key_material(entry.key_material))
    if entry.comment:
        parts.append(entry.comment)
    return " ".join(parts)


def render(entries: Iterable[HostKeyEntry]) -> str:
    """Serialise entries one per line, LF-terminated."""
    return "".join(serialize_entry(e) + "\n" for e in entries)
