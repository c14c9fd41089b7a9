"""Merge per-source batches into one deduplicated store.

Batches are given lowest precedence first. For each identity the entry
from the highest-precedence batch survives. Within a single batch a
repeated identity with different key material is a rotation conflict and
the later line wins. Revocations override everything: a revoked identity
or revoked key never survives as a connectable entry.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from .models import HostKeyEntry, HostKeyStore, Identity, RotationConflict, SourceBatch
from .types import DEFAULT_PRECEDENCE, SourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeResult:
    store: HostKeyStore
    conflicts: tuple[RotationConflict, ...]
    revoked: tuple[HostKeyEntry, ...]
    suppressed: tuple[HostKeyEntry, ...]


def order_batches(
    batches: Iterable[SourceBatch], precedence: Sequence[SourceKind] = DEFAULT_PRECEDENCE
) -> list[SourceBatch]:
    """Sort batches lowest precedence first, keeping declaration order within a kind.

    Kinds missing from precedence rank below every listed kind.
    """
    rank = {kind: i for i, kind in enumerate(precedence)}
    return sorted(batches, key=lambda b: rank.get(b.kind, -1))


def _dedupe_batch(batch: SourceBatch) -> tuple[dict[Identity, HostKeyEntry], list[RotationConflict]]:
    kept: dict[Identity, HostKeyEntry] = {}
    conflicts: list[RotationConflict] = []
    for entry in batch.entries:
        if entry.is_revoked:
            continue
        previous = kept.get(entry.identity)
        if previous is not None and previous.key_material != entry.key_material:
            conflict = RotationConflict(
                hostname_pattern=entry.hostname_pattern,
                key_type=entry.key_type,
                source=batch.name,
                previous_fingerprint=previous.fingerprint,
                kept_fingerprint=entry.fingerprint,
            )
            logger.warning("Rotation conflict: %s", conflict.describe())
            conflicts.append(conflict)
        kept[entry.identity] = entry
    return kept, conflicts


def merge(batches: Sequence[SourceBatch]) -> MergeResult:
    """Merge batches given lowest precedence first."""
    store = HostKeyStore()
    conflicts: list[RotationConflict] = []
    revoked: dict[tuple[Identity, bytes], HostKeyEntry] = {}

    for batch in batches:
        for entry in batch.entries:
            if entry.is_revoked:
                revoked.setdefault((entry.identity, entry.key_material), entry)

        kept, batch_conflicts = _dedupe_batch(batch)
        conflicts.extend(batch_conflicts)
        for entry in kept.values():
            replaced = store.put(entry)
            if replaced is not None and replaced.key_material != entry.key_material:
                logger.info(
                    "%s from %s overrides %s", entry.label(), batch.name, replaced.fingerprint
                )

    revoked_identities = {identity for identity, _ in revoked}
    revoked_material = {material for _, material in revoked}
    suppressed: list[HostKeyEntry] = []
    for entry in store:
        if entry.identity in revoked_identities or entry.key_material in revoked_material:
            store.discard(entry.identity)
            suppressed.append(entry)
            logger.warning("Suppressing revoked key %s %s", entry.label(), entry.fingerprint)

    return MergeResult(
        store=store,
        conflicts=tuple(conflicts),
        revoked=tuple(revoked.values()),
        suppressed=tuple(suppressed),
    )
