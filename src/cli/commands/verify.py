"""Verify an existing known_hosts file without modifying it."""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from src.cli.output import format_error, format_success, format_warning, json_output
from src.knownhosts import SourceError, ValidationFailure, load_file, merge, validate

console = Console()


def verify_command(path: str, allow_empty: bool, json_flag: bool) -> None:
    """Parse and validate a known_hosts file; exit 2 on any problem."""
    try:
        batch = load_file(Path(path))
    except SourceError as e:
        format_error(console, escape(str(e)))
        raise typer.Exit(code=1)

    merged = merge([batch])
    violations: list[str] = []
    try:
        validate(merged.store, allow_empty=allow_empty)
    except ValidationFailure as e:
        violations = e.violations

    ok = not batch.failures and not merged.conflicts and not violations
    if json_flag:
        json_output(
            console,
            {
                "path": str(path),
                "valid": ok,
                "entries": len(batch.entries),
                "parse_failures": [
                    {"line": f.line_number, "reason": f.reason} for f in batch.failures
                ],
                "rotation_conflicts": [c.describe() for c in merged.conflicts],
                "violations": violations,
            },
        )
    else:
        for failure in batch.failures:
            format_warning(console, f"Line {failure.line_number}: {escape(failure.reason)}")
        for conflict in merged.conflicts:
            format_warning(console, escape(conflict.describe()))
        for violation in violations:
            format_error(console, escape(violation))
        if ok:
            format_success(console, f"{escape(str(path))}: {len(batch.entries)} entries OK")

    if not ok:
        raise typer.Exit(code=2)
