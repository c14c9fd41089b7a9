"""CLI commands."""

from . import fingerprints, lookup, reconcile, scan, verify

__all__ = [
    "fingerprints",
    "lookup",
    "reconcile",
    "scan",
    "verify",
]
