"""Find the entries that apply to a host, hashed entries included."""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from src.cli.output import format_error, json_output
from src.knownhosts import SourceError, load_file, match_hostname, serialize_entry

console = Console()


def lookup_command(host: str, path: str, port: int, json_flag: bool) -> None:
    """Print matching lines; exit 1 when the host is not known."""
    try:
        batch = load_file(Path(path))
    except SourceError as e:
        format_error(console, escape(str(e)))
        raise typer.Exit(code=1)

    matches = [e for e in batch.entries if match_hostname(e.hostname_pattern, host, port)]
    if json_flag:
        json_output(
            console,
            {
                "host": host,
                "port": port,
                "matches": [
                    {"line": serialize_entry(e), "fingerprint": e.fingerprint} for e in matches
                ],
            },
        )
    else:
        for entry in matches:
            console.print(serialize_entry(entry), markup=False, highlight=False, soft_wrap=True)

    if not matches:
        if not json_flag:
            format_error(console, f"{escape(host)} not found in {escape(str(path))}")
        raise typer.Exit(code=1)
