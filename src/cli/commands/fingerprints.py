"""List SHA256 fingerprints of the entries in a known_hosts file."""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from src.cli.output import format_error, format_table, format_warning, json_output
from src.knownhosts import SourceError, load_file

console = Console()


def fingerprints_command(path: str, json_flag: bool) -> None:
    """Show hostname, key type and fingerprint for every entry."""
    try:
        batch = load_file(Path(path))
    except SourceError as e:
        format_error(console, escape(str(e)))
        raise typer.Exit(code=1)

    entries = sorted(batch.entries, key=lambda e: (e.hostname_pattern, e.key_type.value))
    if json_flag:
        json_output(
            console,
            [
                {
                    "host": e.hostname_pattern,
                    "key_type": e.key_type.value,
                    "fingerprint": e.fingerprint,
                    "marker": e.marker.value if e.marker else None,
                }
                for e in entries
            ],
        )
        return

    for failure in batch.failures:
        format_warning(console, f"Line {failure.line_number}: {escape(failure.reason)}")
    rows = [
        (
            escape(e.hostname_pattern),
            e.key_type.value,
            e.fingerprint,
            f"@{e.marker.value}" if e.marker else "",
        )
        for e in entries
    ]
    format_table(console, f"Fingerprints in {escape(str(path))}", ["Host", "Type", "Fingerprint", "Marker"], rows)
