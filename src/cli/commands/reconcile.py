"""Reconcile host-key sources into an installed known_hosts file."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from src.cli.output import format_error, format_key_value, format_success, format_warning, json_output
from src.cli.utils import (
    ConfigError,
    ConfigManager,
    ReconcileConfig,
    parse_fallback_option,
    validate_concurrency,
    validate_precedence,
    validate_timeout,
)
from src.knownhosts import KeyFormatError, ReconcileOptions, ReconcileReport, reconcile
from src.knownhosts.types import ReconcileOutcome

console = Console()

EXIT_CONFIG_ERROR = 1
EXIT_VALIDATION_FAILURE = 2
EXIT_INSTALL_FAILURE = 3


def _load_config(config_path: Optional[str]) -> ReconcileConfig:
    """Explicit --config must exist; the default file is optional."""
    if config_path:
        return ConfigManager(Path(config_path)).load()
    manager = ConfigManager()
    return manager.load() if manager.exists() else ReconcileConfig()


def build_options(
    config: ReconcileConfig,
    dest: Optional[str],
    files: list[str],
    secret: Optional[str],
    scan_hosts: list[str],
    timeout: Optional[float],
    run_timeout: Optional[float],
    concurrency: Optional[int],
    precedence: Optional[str],
    fallbacks: list[str],
    allow_empty: Optional[bool],
    keep_revoked: Optional[bool],
    dry_run: bool,
) -> ReconcileOptions:
    """Combine config file values with command-line overrides. Raises ValueError."""
    destination = Path(dest).expanduser() if dest else config.destination
    if destination is None:
        raise ValueError("No destination given (use --dest or 'destination' in config)")

    merged_fallbacks: dict[str, list[str]] = {
        host: list(keys) for host, keys in config.scan.fallback.items()
    }
    for item in fallbacks:
        host, key = parse_fallback_option(item)
        merged_fallbacks.setdefault(host, []).append(key)

    return ReconcileOptions(
        destination=destination,
        files=tuple(config.files) + tuple(Path(f).expanduser() for f in files),
        secret=secret if secret is not None else config.secret,
        scan_hosts=tuple(config.scan.hosts) + tuple(scan_hosts),
        scan_timeout=validate_timeout(timeout) if timeout is not None else config.scan.timeout,
        run_timeout=(
            validate_timeout(run_timeout) if run_timeout is not None else config.scan.run_timeout
        ),
        concurrency=(
            validate_concurrency(concurrency) if concurrency is not None else config.scan.concurrency
        ),
        key_families=config.scan.key_families,
        fallbacks=merged_fallbacks,
        precedence=(
            validate_precedence(precedence.split(",")) if precedence else config.precedence
        ),
        allow_empty=allow_empty if allow_empty is not None else config.allow_empty,
        keep_revoked=keep_revoked if keep_revoked is not None else config.keep_revoked,
        dry_run=dry_run,
    )


def _print_report(report: ReconcileReport) -> None:
    for failure in report.parse_failures:
        format_warning(console, f"Skipped line {escape(failure.describe())}")
    for conflict in report.rotation_conflicts:
        format_warning(console, f"Rotation conflict {escape(conflict.describe())}")
    for result in report.scan_results:
        if result.ok:
            continue
        action = "using fallback keys" if result.used_fallback else "host omitted"
        format_warning(
            console, f"Scan of {escape(result.hostname)} failed ({result.status.value}: {escape(str(result.error))}); {action}"
        )

    if report.outcome is ReconcileOutcome.VALIDATION_FAILURE:
        format_error(console, f"Validation failed; {escape(report.destination)} was not modified")
        for violation in report.violations:
            console.print(f"  [red]-[/red] {escape(violation)}")
    elif report.outcome is ReconcileOutcome.INSTALL_FAILURE:
        format_error(console, f"Install failed: {escape(str(report.error))}", hint="Destination was left unmodified")
    elif report.dry_run:
        console.print(report.rendered or "", end="", markup=False, highlight=False, soft_wrap=True)
        format_success(console, f"Dry run: {report.entries_written} entries validated, nothing written")
    elif report.changed:
        format_success(console, f"Installed {report.entries_written} entries to {escape(report.destination)}")
    else:
        format_success(console, f"{escape(report.destination)} already up to date ({report.entries_written} entries)")

    format_key_value(
        console,
        {
            "Sources": len(report.sources),
            "Entries": report.entries_written,
            "Rotation conflicts": len(report.rotation_conflicts),
            "Scan fallbacks": report.scan_failures_with_fallback,
            "Scan failures": report.scan_failures_without_fallback,
            "Parse failures": len(report.parse_failures),
            "Revoked suppressed": report.suppressed,
        },
    )


def reconcile_command(
    dest: Optional[str],
    files: list[str],
    secret: Optional[str],
    scan_hosts: list[str],
    timeout: Optional[float],
    run_timeout: Optional[float],
    concurrency: Optional[int],
    precedence: Optional[str],
    fallbacks: list[str],
    allow_empty: Optional[bool],
    keep_revoked: Optional[bool],
    config_path: Optional[str],
    dry_run: bool,
    json_flag: bool,
) -> None:
    """Merge sources, validate, and atomically install the known_hosts file."""
    try:
        config = _load_config(config_path)
        options = build_options(
            config, dest, files, secret, scan_hosts, timeout, run_timeout,
            concurrency, precedence, fallbacks, allow_empty, keep_revoked, dry_run,
        )
        report = reconcile(options)
    except ConfigError as e:
        format_error(console, escape(str(e)), hint="Check the reconcile config file")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)
    except (KeyFormatError, ValueError) as e:
        format_error(console, escape(str(e)))
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    if json_flag:
        data = report.to_dict()
        if dry_run:
            data["rendered"] = report.rendered
        json_output(console, data)
    else:
        _print_report(report)

    if report.outcome is ReconcileOutcome.VALIDATION_FAILURE:
        raise typer.Exit(code=EXIT_VALIDATION_FAILURE)
    if report.outcome is ReconcileOutcome.INSTALL_FAILURE:
        raise typer.Exit(code=EXIT_INSTALL_FAILURE)
