"""Reconciliation pipeline: load, scan, merge, validate, install.

Every run produces a ReconcileReport, including failed runs, so callers
can show what was attempted, what succeeded and what was skipped.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from .exceptions import InstallFailure, SourceError, ValidationFailure
from .installer import install, render_store
from .loaders import load_file, load_scan_results, load_text
from .merger import merge, order_batches
from .models import ParseFailure, RotationConflict, ScanResult, SourceBatch
from .scanner import (
    DEFAULT_CONCURRENCY,
    DEFAULT_TIMEOUT,
    KeyscanTransport,
    LiveScanner,
    ScanTransport,
    parse_fallbacks,
)
from .types import DEFAULT_KEY_FAMILIES, DEFAULT_PRECEDENCE, ReconcileOutcome, SourceKind
from .validator import validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileOptions:
    """Inputs for one reconciliation run."""

    destination: Path
    files: tuple[Path, ...] = ()
    secret: Optional[str] = None
    scan_hosts: tuple[str, ...] = ()
    scan_timeout: float = DEFAULT_TIMEOUT
    run_timeout: Optional[float] = None
    concurrency: int = DEFAULT_CONCURRENCY
    key_families: tuple[str, ...] = DEFAULT_KEY_FAMILIES
    fallbacks: Mapping[str, Sequence[str]] = field(default_factory=dict)
    precedence: tuple[SourceKind, ...] = DEFAULT_PRECEDENCE
    allow_empty: bool = False
    keep_revoked: bool = False
    dry_run: bool = False


@dataclass
class SourceReport:
    name: str
    kind: SourceKind
    entries: int = 0
    failures: int = 0
    error: Optional[str] = None


@dataclass
class ReconcileReport:
    outcome: ReconcileOutcome
    destination: str
    dry_run: bool = False
    entries_written: int = 0
    revocations_written: int = 0
    changed: bool = False
    sources: list[SourceReport] = field(default_factory=list)
    parse_failures: list[ParseFailure] = field(default_factory=list)
    rotation_conflicts: list[RotationConflict] = field(default_factory=list)
    scan_results: list[ScanResult] = field(default_factory=list)
    suppressed: int = 0
    violations: list[str] = field(default_factory=list)
    error: Optional[str] = None
    rendered: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is ReconcileOutcome.SUCCESS

    @property
    def scan_failures_with_fallback(self) -> int:
        return sum(1 for r in self.scan_results if not r.ok and r.used_fallback)

    @property
    def scan_failures_without_fallback(self) -> int:
        return sum(1 for r in self.scan_results if not r.ok and not r.used_fallback)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "destination": self.destination,
            "dry_run": self.dry_run,
            "entries_written": self.entries_written,
            "revocations_written": self.revocations_written,
            "changed": self.changed,
            "rotation_conflicts": len(self.rotation_conflicts),
            "scan_failures_with_fallback": self.scan_failures_with_fallback,
            "scan_failures_without_fallback": self.scan_failures_without_fallback,
            "parse_failures": [
                {"source": f.source, "line": f.line_number, "reason": f.reason}
                for f in self.parse_failures
            ],
            "conflicts": [c.describe() for c in self.rotation_conflicts],
            "scans": [
                {
                    "host": r.hostname,
                    "status": r.status.value,
                    "keys": len(r.entries),
                    "fallback": r.used_fallback,
                    **({"error": r.error} if r.error else {}),
                }
                for r in self.scan_results
            ],
            "sources": [
                {
                    "name": s.name,
                    "kind": s.kind.value,
                    "entries": s.entries,
                    "failures": s.failures,
                    **({"error": s.error} if s.error else {}),
                }
                for s in self.sources
            ],
            "suppressed_revoked": self.suppressed,
            "violations": list(self.violations),
            "error": self.error,
        }


class Reconciler:
    """Runs one reconciliation described by ReconcileOptions."""

    def __init__(self, options: ReconcileOptions, transport: Optional[ScanTransport] = None) -> None:
        self._options = options
        self._transport = transport
        # Parsed eagerly so a bad fallback key fails before anything runs.
        self._fallbacks = parse_fallbacks(options.fallbacks)

    async def run(self) -> ReconcileReport:
        opts = self._options
        report = ReconcileReport(
            outcome=ReconcileOutcome.SUCCESS,
            destination=str(Path(opts.destination).expanduser()),
            dry_run=opts.dry_run,
        )
        batches: list[SourceBatch] = []
        source_errors: list[str] = []

        for path in opts.files:
            try:
                batches.append(load_file(path))
            except SourceError as e:
                logger.error("%s", e)
                source_errors.append(str(e))
                report.sources.append(SourceReport(str(path), SourceKind.FILE, error=str(e)))

        if opts.secret:
            batches.append(load_text(opts.secret))

        if opts.scan_hosts:
            report.scan_results = await self._scan()
            batches.append(load_scan_results(report.scan_results))

        for batch in batches:
            report.sources.append(
                SourceReport(batch.name, batch.kind, len(batch.entries), len(batch.failures))
            )
            report.parse_failures.extend(batch.failures)

        merged = merge(order_batches(batches, opts.precedence))
        report.rotation_conflicts = list(merged.conflicts)
        report.suppressed = len(merged.suppressed)
        revoked = merged.revoked if opts.keep_revoked else ()

        try:
            if source_errors:
                raise ValidationFailure(source_errors)
            validate(merged.store, revoked=revoked, allow_empty=opts.allow_empty)
        except ValidationFailure as e:
            report.outcome = ReconcileOutcome.VALIDATION_FAILURE
            report.violations = e.violations
            logger.error("Refusing to install %s: %s", report.destination, e)
            return report

        if opts.dry_run:
            report.rendered = render_store(merged.store, revoked)
            report.entries_written = len(merged.store)
            report.revocations_written = len(revoked)
            return report

        try:
            result = install(merged.store, Path(opts.destination), revoked=revoked)
        except InstallFailure as e:
            report.outcome = ReconcileOutcome.INSTALL_FAILURE
            report.error = e.reason
            logger.error("%s", e.reason)
            return report

        report.entries_written = result.entries_written
        report.revocations_written = result.revocations_written
        report.changed = result.changed
        return report

    async def _scan(self) -> list[ScanResult]:
        opts = self._options
        transport = self._transport or KeyscanTransport(opts.key_families)
        scanner = LiveScanner(
            transport,
            timeout=opts.scan_timeout,
            concurrency=opts.concurrency,
            run_timeout=opts.run_timeout,
            fallbacks=self._fallbacks,
        )
        return await scanner.scan(opts.scan_hosts)


def reconcile(options: ReconcileOptions, transport: Optional[ScanTransport] = None) -> ReconcileReport:
    """Synchronous entry point for a reconciliation run."""
    return asyncio.run(Reconciler(options, transport).run())
