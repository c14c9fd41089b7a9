"""Scan hosts and print their keys as known_hosts lines."""

import asyncio

import typer
from rich.console import Console
from rich.markup import escape

from src.cli.output import format_error, format_warning, json_output
from src.cli.utils import validate_concurrency, validate_key_families, validate_timeout
from src.knownhosts import KeyscanTransport, LiveScanner, ScanResult, render

console = Console()


async def _scan(
    hosts: list[str], timeout: float, concurrency: int, key_types: tuple[str, ...]
) -> list[ScanResult]:
    scanner = LiveScanner(KeyscanTransport(key_types), timeout=timeout, concurrency=concurrency)
    return await scanner.scan(hosts)


def scan_command(
    hosts: list[str],
    timeout: float,
    concurrency: int,
    key_types: str,
    json_flag: bool,
) -> None:
    """Scan hosts concurrently; exit 1 if no host answered."""
    try:
        results = asyncio.run(
            _scan(
                hosts,
                validate_timeout(timeout),
                validate_concurrency(concurrency),
                validate_key_families(key_types.split(",")),
            )
        )
    except ValueError as e:
        format_error(console, escape(str(e)))
        raise typer.Exit(code=1)

    if json_flag:
        json_output(
            console,
            [
                {
                    "host": r.hostname,
                    "status": r.status.value,
                    "error": r.error,
                    "keys": [{"key_type": e.key_type.value, "fingerprint": e.fingerprint} for e in r.entries],
                }
                for r in results
            ],
        )
    else:
        for result in results:
            if result.ok:
                console.print(render(result.entries), end="", markup=False, highlight=False, soft_wrap=True)
            else:
                format_warning(
                    console, f"{escape(result.hostname)}: {result.status.value} ({escape(str(result.error))})"
                )

    if not any(r.ok for r in results):
        raise typer.Exit(code=1)
