"""Host key records and the in-memory store built during one reconciliation run."""
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Union

from .keys import fingerprint as derive_fingerprint
from .types import KeyType, Marker, ScanStatus, SourceKind

# Host keys are identified by (pattern, key_type); CA keys also carry their marker.
Identity = Union[tuple[str, KeyType], tuple[str, KeyType, Marker]]


@dataclass(frozen=True)
class HostKeyEntry:
    """One known-hosts line. The fingerprint is derived once from key_material."""

    hostname_pattern: str
    key_type: KeyType
    key_material: bytes
    marker: Optional[Marker] = None
    comment: Optional[str] = None
    fingerprint: str = field(init=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.key_material, bytes):
            raise TypeError("key_material must be bytes")
        object.__setattr__(self, "fingerprint", derive_fingerprint(self.key_material))

    @property
    def identity(self) -> Identity:
        if self.marker is Marker.CERT_AUTHORITY:
            return (self.hostname_pattern, self.key_type, self.marker)
        return (self.hostname_pattern, self.key_type)

    @property
    def is_revoked(self) -> bool:
        return self.marker is Marker.REVOKED

    def label(self) -> str:
        prefix = f"@{self.marker.value} " if self.marker is not None else ""
        return f"{prefix}{self.hostname_pattern} {self.key_type.value}"


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    raw_line: str
    line_number: Optional[int] = None
    source: Optional[str] = None

    def describe(self) -> str:
        where = self.source or "input"
        if self.line_number is not None:
            where = f"{where}:{self.line_number}"
        return f"{where}: {self.reason}"


@dataclass(frozen=True)
class RotationConflict:
    """Same source listed one identity twice with different key material."""

    hostname_pattern: str
    key_type: KeyType
    source: str
    previous_fingerprint: str
    kept_fingerprint: str

    def describe(self) -> str:
        return (
            f"{self.source}: {self.hostname_pattern} {self.key_type.value} listed twice "
            f"({self.previous_fingerprint} then {self.kept_fingerprint}); keeping the later entry"
        )


@dataclass(frozen=True)
class ScanResult:
    hostname: str
    status: ScanStatus
    entries: tuple[HostKeyEntry, ...] = ()
    error: Optional[str] = None
    used_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.status is ScanStatus.SUCCESS


@dataclass
class SourceBatch:
    """Parse attempts from one origin, in the order they were listed."""

    name: str
    kind: SourceKind
    entries: list[HostKeyEntry] = field(default_factory=list)
    failures: list[ParseFailure] = field(default_factory=list)


class HostKeyStore:
    """Entries unique by identity, kept in first-insertion order."""

    def __init__(self, entries: Iterable[HostKeyEntry] = ()) -> None:
        self._entries: dict[Identity, HostKeyEntry] = {}
        for entry in entries:
            self.put(entry)

    def put(self, entry: HostKeyEntry) -> Optional[HostKeyEntry]:
        """Insert or replace the entry for its identity. Returns the replaced entry."""
        previous = self._entries.get(entry.identity)
        self._entries[entry.identity] = entry
        return previous

    def get(self, identity: Identity) -> Optional[HostKeyEntry]:
        return self._entries.get(identity)

    def discard(self, identity: Identity) -> Optional[HostKeyEntry]:
        return self._entries.pop(identity, None)

    def sorted_entries(self) -> list[HostKeyEntry]:
        """Entries in canonical output order."""
        return sorted(
            self._entries.values(),
            key=lambda e: (e.hostname_pattern, e.key_type.value, e.marker.value if e.marker else ""),
        )

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def __iter__(self) -> Iterator[HostKeyEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)
