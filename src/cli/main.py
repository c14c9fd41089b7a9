"""Main CLI entry point for the known-hosts reconciler."""

import logging
from typing import Optional

import typer
from rich.console import Console

from src.cli.commands.fingerprints import fingerprints_command
from src.cli.commands.lookup import lookup_command
from src.cli.commands.reconcile import reconcile_command
from src.cli.commands.scan import scan_command
from src.cli.commands.verify import verify_command

app = typer.Typer(
    name="known-hosts",
    help="Known-hosts reconciler - merge, verify and atomically install SSH host keys",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()

DEFAULT_KNOWN_HOSTS = "~/.ssh/known_hosts"


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


@app.command("reconcile")
def reconcile(
    dest: str = typer.Option(None, "-d", "--dest", envvar="KNOWN_HOSTS_DEST", help="Destination file"),
    files: list[str] = typer.Option(None, "-f", "--file", help="Static known_hosts file (repeatable)"),
    secret: str = typer.Option(
        None, "--secret", envvar="KNOWN_HOSTS_SECRET", help="Inline known_hosts text", show_default=False,
    ),
    scan_hosts: list[str] = typer.Option(None, "-s", "--scan", help="Host to scan (repeatable)"),
    timeout: float = typer.Option(None, "-t", "--timeout", help="Per-host scan timeout (s)"),
    run_timeout: float = typer.Option(None, "--run-timeout", help="Overall scan timeout (s)"),
    concurrency: int = typer.Option(None, "-c", "--concurrency", help="Parallel scans"),
    precedence: str = typer.Option(None, "--precedence", help="Lowest first, e.g. scan,file,secret"),
    fallbacks: list[str] = typer.Option(None, "--fallback", help="host=KEYTYPE BASE64 (repeatable)"),
    allow_empty: Optional[bool] = typer.Option(
        None, "--allow-empty/--no-allow-empty", help="Allow an empty result", show_default=False,
    ),
    keep_revoked: Optional[bool] = typer.Option(
        None, "--keep-revoked/--no-keep-revoked", help="Write @revoked lines", show_default=False,
    ),
    config_path: str = typer.Option(None, "--config", help="YAML config file"),
    dry_run: bool = typer.Option(False, "-n", "--dry-run", help="Validate without writing"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Merge host-key sources and atomically install the result."""
    reconcile_command(
        dest, files or [], secret, scan_hosts or [], timeout, run_timeout, concurrency,
        precedence, fallbacks or [], allow_empty, keep_revoked, config_path, dry_run, json_flag,
    )


@app.command("verify")
def verify(
    path: str = typer.Argument(DEFAULT_KNOWN_HOSTS, help="known_hosts file"),
    allow_empty: bool = typer.Option(False, "--allow-empty"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Check a known_hosts file for malformed, duplicate or invalid entries."""
    verify_command(path, allow_empty, json_flag)


@app.command("fingerprints")
def fingerprints(
    path: str = typer.Argument(DEFAULT_KNOWN_HOSTS, help="known_hosts file"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """List SHA256 fingerprints."""
    fingerprints_command(path, json_flag)


@app.command("lookup")
def lookup(
    host: str = typer.Argument(..., help="Hostname or IP"),
    path: str = typer.Option(DEFAULT_KNOWN_HOSTS, "-f", "--file", help="known_hosts file"),
    port: int = typer.Option(22, "-p", "--port"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Show the entries that match a host."""
    lookup_command(host, path, port, json_flag)


@app.command("scan")
def scan(
    hosts: list[str] = typer.Argument(..., help="host or host:port"),
    timeout: float = typer.Option(5.0, "-t", "--timeout", help="Per-host timeout (s)"),
    concurrency: int = typer.Option(8, "-c", "--concurrency"),
    key_types: str = typer.Option("ed25519,ecdsa,rsa", "-k", "--key-types"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Scan hosts and print their keys."""
    scan_command(hosts, timeout, concurrency, key_types, json_flag)


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point."""
    try:
        app(args=argv)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(130)
