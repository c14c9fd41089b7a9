"""Atomic installation of a validated store.

The new content is written to a temporary file in the destination
directory, restricted to the owner, synced, and renamed over the
destination. Readers see either the old file or the complete new one.
"""
import contextlib
import logging
import os
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable

from .exceptions import InstallFailure
from .models import HostKeyEntry, HostKeyStore
from .parser import render

logger = logging.getLogger(__name__)

FILE_MODE = 0o600
DIR_MODE = 0o700


@dataclass(frozen=True)
class InstallResult:
    destination: Path
    entries_written: int
    revocations_written: int
    changed: bool


def render_store(store: HostKeyStore, revoked: Iterable[HostKeyEntry] = ()) -> str:
    """Canonical file content: sorted entries, then sorted revocations."""
    revoked_sorted = sorted(
        revoked, key=lambda e: (e.hostname_pattern, e.key_type.value, e.fingerprint)
    )
    return render(store.sorted_entries()) + render(revoked_sorted)


def _is_current(destination: Path, content: bytes, mode: int) -> bool:
    try:
        st = destination.stat()
        return (st.st_mode & 0o777) == mode and destination.read_bytes() == content
    except OSError:
        return False


def _fsync_directory(directory: Path) -> None:
    with contextlib.suppress(OSError):
        fd = os.open(directory, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)


def install(
    store: HostKeyStore,
    destination: Path,
    *,
    revoked: Iterable[HostKeyEntry] = (),
    mode: int = FILE_MODE,
) -> InstallResult:
    """Atomically replace destination with the serialised store.

    Raises:
        InstallFailure: If any step fails; destination is left as it was.
    """
    destination = Path(destination).expanduser()
    revoked = list(revoked)
    content = render_store(store, revoked).encode("utf-8")
    result = InstallResult(
        destination=destination,
        entries_written=len(store),
        revocations_written=len(revoked),
        changed=True,
    )

    if _is_current(destination, content, mode):
        logger.info("%s already up to date", destination)
        return replace(result, changed=False)

    directory = destination.parent
    try:
        directory.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.", suffix=".tmp", dir=directory
        )
    except OSError as e:
        raise InstallFailure(
            f"Cannot create temporary file in {directory}: {e}", destination=str(destination)
        ) from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            os.fchmod(fh.fileno(), mode)
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, destination)
    except OSError as e:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise InstallFailure(
            f"Failed to install {destination}: {e}", destination=str(destination)
        ) from e

    _fsync_directory(directory)
    logger.info(
        "Installed %d entries and %d revocations to %s",
        result.entries_written, result.revocations_written, destination,
    )
    return result
