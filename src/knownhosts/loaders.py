"""Source loaders: turn one origin into a batch of parse attempts."""
import logging
from pathlib import Path
from typing import Iterable

from .exceptions import SourceError
from .models import HostKeyEntry, ParseFailure, ScanResult, SourceBatch
from .parser import parse_lines
from .types import SourceKind

logger = logging.getLogger(__name__)


def _collect(name: str, kind: SourceKind, lines: Iterable[str]) -> SourceBatch:
    batch = SourceBatch(name=name, kind=kind)
    for result in parse_lines(lines, source=name):
        if isinstance(result, ParseFailure):
            logger.warning("Skipping malformed line %s", result.describe())
            batch.failures.append(result)
        else:
            batch.entries.append(result)
    logger.debug(
        "Loaded %d entries (%d failures) from %s", len(batch.entries), len(batch.failures), name
    )
    return batch


def load_text(text: str, name: str = "secret", kind: SourceKind = SourceKind.SECRET) -> SourceBatch:
    """Load an inline text blob, e.g. a CI secret."""
    return _collect(name, kind, text.splitlines())


def load_file(path: Path, kind: SourceKind = SourceKind.FILE) -> SourceBatch:
    """Load a static known-hosts file.

    Raises:
        SourceError: If the file is missing or unreadable.
    """
    path = Path(path).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SourceError(f"Cannot read {path}: {e}", source=str(path)) from e
    return _collect(str(path), kind, text.splitlines())


def load_scan_results(results: Iterable[ScanResult], name: str = "scan") -> SourceBatch:
    """Combine scan results into one batch, ordered by hostname."""
    batch = SourceBatch(name=name, kind=SourceKind.SCAN)
    entries: list[HostKeyEntry] = []
    for result in sorted(results, key=lambda r: r.hostname):
        entries.extend(result.entries)
    batch.entries = entries
    return batch
