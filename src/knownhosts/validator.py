"""Final invariant checks before a store may be installed."""
import logging
from typing import Iterable

from .exceptions import KeyFormatError, ValidationFailure
from .keys import check_key_material, fingerprint
from .models import HostKeyEntry, Identity

logger = logging.getLogger(__name__)


def _entry_problems(entry: HostKeyEntry) -> list[str]:
    problems = []
    label = entry.label()
    pattern = entry.hostname_pattern
    if not pattern or not pattern.strip():
        problems.append(f"entry with {entry.key_type.value} key has an empty hostname pattern")
    elif any(ch.isspace() for ch in pattern):
        problems.append(f"{label}: hostname pattern contains whitespace")
    if fingerprint(entry.key_material) != entry.fingerprint:
        problems.append(f"{label}: fingerprint {entry.fingerprint} does not match key material")
    try:
        check_key_material(entry.key_type, entry.key_material)
    except KeyFormatError as e:
        problems.append(f"{label}: {e}")
    return problems


def validate(
    entries: Iterable[HostKeyEntry],
    *,
    revoked: Iterable[HostKeyEntry] = (),
    allow_empty: bool = False,
) -> None:
    """Check every entry and the store-wide invariants.

    Args:
        entries: Connectable entries, typically a HostKeyStore.
        revoked: Revocation entries that will be written alongside.
        allow_empty: Accept a store with no connectable entries.

    Raises:
        ValidationFailure: Listing every violated invariant.
    """
    entries = list(entries)
    revoked = list(revoked)
    violations: list[str] = []

    if not entries and not allow_empty:
        violations.append("store is empty and empty output was not allowed")

    seen: set[Identity] = set()
    for entry in entries:
        violations.extend(_entry_problems(entry))
        if entry.is_revoked:
            violations.append(f"{entry.label()}: revoked key present as a connectable entry")
        if entry.identity in seen:
            violations.append(f"{entry.label()}: duplicate identity")
        seen.add(entry.identity)

    revoked_identities = set()
    revoked_material = set()
    for entry in revoked:
        violations.extend(_entry_problems(entry))
        if not entry.is_revoked:
            violations.append(f"{entry.label()}: listed as revocation without @revoked marker")
        revoked_identities.add(entry.identity)
        revoked_material.add(entry.key_material)

    for entry in entries:
        if entry.identity in revoked_identities or entry.key_material in revoked_material:
            violations.append(f"{entry.label()}: connectable entry matches a revocation")

    if violations:
        for violation in violations:
            logger.error("Validation: %s", violation)
        raise ValidationFailure(violations)
    logger.debug("Validated %d entries and %d revocations", len(entries), len(revoked))
