"""Known-hosts reconciler: merge, validate and atomically install SSH host keys."""

from .exceptions import InstallFailure, KeyFormatError, KnownHostsError, ScanError, SourceError, ValidationFailure
from .hostnames import hash_hostname, match_hostname, normalize_pattern
from .installer import InstallResult, install, render_store
from .keys import check_key_material, fingerprint
from .loaders import load_file, load_scan_results, load_text
from .merger import MergeResult, merge, order_batches
from .models import HostKeyEntry, HostKeyStore, ParseFailure, RotationConflict, ScanResult, SourceBatch
from .parser import parse_key, parse_line, parse_lines, render, serialize_entry
from .reconciler import ReconcileOptions, ReconcileReport, Reconciler, reconcile
from .scanner import KeyscanTransport, LiveScanner, ScanTarget, ScanTransport, parse_fallbacks
from .types import DEFAULT_PRECEDENCE, KeyType, Marker, ReconcileOutcome, ScanStatus, SourceKind
from .validator import validate

__all__ = [
    "HostKeyEntry", "HostKeyStore", "ParseFailure", "RotationConflict", "ScanResult", "SourceBatch",
    "KeyType", "Marker", "ScanStatus", "SourceKind", "ReconcileOutcome", "DEFAULT_PRECEDENCE",
    "parse_line", "parse_lines", "parse_key", "serialize_entry", "render",
    "fingerprint", "check_key_material", "hash_hostname", "match_hostname", "normalize_pattern",
    "load_file", "load_text", "load_scan_results",
    "merge", "order_batches", "MergeResult", "validate",
    "LiveScanner", "KeyscanTransport", "ScanTarget", "ScanTransport", "parse_fallbacks",
    "install", "render_store", "InstallResult",
    "Reconciler", "ReconcileOptions", "ReconcileReport", "reconcile",
    "KnownHostsError", "KeyFormatError", "SourceError", "ScanError", "ValidationFailure", "InstallFailure",
]

__version__ = "0.1.0"
