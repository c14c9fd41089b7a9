"""Live host key scanning with bounded concurrency.

The network side is an opaque ``ScanTransport``. The default transport
runs ``ssh-keyscan`` as a subprocess; tests substitute their own.
"""
import asyncio
import contextlib
import logging
import math
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional, Protocol, Sequence, Union

from .exceptions import KeyFormatError, ScanError
from .hostnames import host_pattern
from .models import HostKeyEntry, ParseFailure, ScanResult
from .parser import parse_key, parse_lines
from .types import DEFAULT_KEY_FAMILIES, ScanStatus

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_CONCURRENCY = 8


class ScanTransport(Protocol):
    async def fetch(self, host: str, port: int, timeout: float) -> str:
        """Return known-hosts formatted key lines for host, or raise ScanError."""
        ...


@dataclass(frozen=True)
class ScanTarget:
    host: str
    port: int = 22

    @property
    def pattern(self) -> str:
        return host_pattern(self.host, self.port)

    @classmethod
    def parse(cls, text: str) -> "ScanTarget":
        """Parse ``host``, ``host:port``, ``[host]:port`` or a bare IPv6 address."""
        text = text.strip()
        if not text:
            raise ValueError("Scan target cannot be empty")
        if text.startswith("["):
            host, sep, rest = text[1:].partition("]")
            if not sep or not host:
                raise ValueError(f"Invalid scan target: {text!r}")
            if not rest:
                return cls(host.lower())
            if not rest.startswith(":"):
                raise ValueError(f"Invalid scan target: {text!r}")
            return cls(host.lower(), _parse_port(rest[1:], text))
        if text.count(":") == 1:
            host, _, port = text.partition(":")
            if not host:
                raise ValueError(f"Invalid scan target: {text!r}")
            return cls(host.lower(), _parse_port(port, text))
        return cls(text.lower())


def _parse_port(value: str, text: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise ValueError(f"Invalid port in scan target: {text!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range in scan target: {text!r}")
    return port


class KeyscanTransport:
    """Fetch host keys by running ``ssh-keyscan``."""

    def __init__(
        self,
        key_families: Sequence[str] = DEFAULT_KEY_FAMILIES,
        executable: str = "ssh-keyscan",
    ) -> None:
        self._key_families = tuple(key_families)
        self._executable = executable

    def command(self, host: str, port: int, timeout: float) -> list[str]:
        # ssh-keyscan's own timeout sits past ours so a slow host reports as a timeout.
        keyscan_timeout = max(1, math.ceil(timeout)) + 1
        return [
            self._executable,
            "-T", str(keyscan_timeout),
            "-p", str(port),
            "-t", ",".join(self._key_families),
            host,
        ]

    async def fetch(self, host: str, port: int, timeout: float) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command(host, port, timeout),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ScanError(f"Cannot run {self._executable}: {e}") from e

        try:
            stdout, stderr = await proc.communicate()
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                with contextlib.suppress(asyncio.CancelledError):
                    await proc.wait()

        output = stdout.decode("utf-8", errors="replace")
        if not any(line.strip() and not line.lstrip().startswith("#") for line in output.splitlines()):
            err_msg = stderr.decode("utf-8", errors="replace").strip() if stderr else ""
            raise ScanError(err_msg or f"no host keys returned (exit {proc.returncode})")
        return output


def parse_fallbacks(
    fallbacks: Mapping[str, Union[str, Sequence[str]]],
) -> dict[str, tuple[HostKeyEntry, ...]]:
    """Parse ``host -> key line(s)`` into entries keyed by the host's pattern.

    Raises:
        KeyFormatError: If any fallback key does not parse.
    """
    parsed: dict[str, tuple[HostKeyEntry, ...]] = {}
    for text, keys in fallbacks.items():
        try:
            target = ScanTarget.parse(text)
        except ValueError as e:
            raise KeyFormatError(f"Invalid fallback host {text!r}: {e}") from e
        if isinstance(keys, str):
            keys = [keys]
        # Spellings of one host (Host2, host2:22) share a pattern; keep every key.
        parsed[target.pattern] = parsed.get(target.pattern, ()) + tuple(
            parse_key(target.pattern, k) for k in keys
        )
    return parsed


class LiveScanner:
    """Scan many hosts concurrently, substituting fallback keys on failure."""

    def __init__(
        self,
        transport: ScanTransport,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        concurrency: int = DEFAULT_CONCURRENCY,
        run_timeout: Optional[float] = None,
        fallbacks: Optional[Mapping[str, tuple[HostKeyEntry, ...]]] = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("Scan timeout must be positive")
        if concurrency < 1:
            raise ValueError("Scan concurrency must be at least 1")
        if run_timeout is not None and run_timeout <= 0:
            raise ValueError("Run timeout must be positive")
        self._transport = transport
        self._timeout = timeout
        self._concurrency = concurrency
        self._run_timeout = run_timeout
        self._fallbacks = dict(fallbacks or {})

    async def scan(self, hosts: Iterable[Union[str, ScanTarget]]) -> list[ScanResult]:
        """Scan every host; results are sorted by hostname pattern."""
        targets: dict[str, ScanTarget] = {}
        for host in hosts:
            target = host if isinstance(host, ScanTarget) else ScanTarget.parse(host)
            targets.setdefault(target.pattern, target)
        if not targets:
            return []

        semaphore = asyncio.Semaphore(self._concurrency)
        tasks = {
            asyncio.ensure_future(self._scan_one(target, semaphore)): target
            for target in targets.values()
        }
        logger.info(
            "Scanning %d host(s), concurrency=%d timeout=%.1fs",
            len(tasks), self._concurrency, self._timeout,
        )
        _, pending = await asyncio.wait(tasks, timeout=self._run_timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Run timeout reached with %d scan(s) pending", len(pending))

        results = []
        for task, target in tasks.items():
            if task in pending or task.cancelled():
                result = ScanResult(
                    hostname=target.pattern,
                    status=ScanStatus.TIMEOUT,
                    error=f"run timeout of {self._run_timeout}s exceeded",
                )
            else:
                result = task.result()
            results.append(self._apply_fallback(result))
        results.sort(key=lambda r: r.hostname)
        return results

    async def _scan_one(self, target: ScanTarget, semaphore: asyncio.Semaphore) -> ScanResult:
        async with semaphore:
            try:
                output = await asyncio.wait_for(
                    self._transport.fetch(target.host, target.port, self._timeout),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                return ScanResult(
                    hostname=target.pattern,
                    status=ScanStatus.TIMEOUT,
                    error=f"no response within {self._timeout}s",
                )
            except (ScanError, OSError) as e:
                return ScanResult(
                    hostname=target.pattern, status=ScanStatus.UNREACHABLE, error=str(e)
                )
            except Exception as e:
                logger.warning("Transport error scanning %s: %r", target.pattern, e)
                return ScanResult(
                    hostname=target.pattern, status=ScanStatus.UNREACHABLE, error=str(e) or repr(e)
                )
        return self._interpret(target, output)

    def _interpret(self, target: ScanTarget, output: str) -> ScanResult:
        entries: list[HostKeyEntry] = []
        for result in parse_lines(output.splitlines(), source=target.pattern):
            if isinstance(result, ParseFailure):
                return ScanResult(
                    hostname=target.pattern,
                    status=ScanStatus.PROTOCOL_ERROR,
                    error=f"malformed response: {result.reason}",
                )
            if result.marker is not None:
                return ScanResult(
                    hostname=target.pattern,
                    status=ScanStatus.PROTOCOL_ERROR,
                    error="malformed response: unexpected marker",
                )
            entries.append(replace(result, hostname_pattern=target.pattern, comment=None))
        if not entries:
            return ScanResult(
                hostname=target.pattern,
                status=ScanStatus.PROTOCOL_ERROR,
                error="malformed response: no host keys",
            )
        logger.debug("Scanned %s: %d key(s)", target.pattern, len(entries))
        return ScanResult(hostname=target.pattern, status=ScanStatus.SUCCESS, entries=tuple(entries))

    def _apply_fallback(self, result: ScanResult) -> ScanResult:
        if result.ok:
            return result
        fallback = self._fallbacks.get(result.hostname)
        if fallback:
            logger.warning(
                "Scan of %s failed (%s: %s); using %d fallback key(s)",
                result.hostname, result.status.value, result.error, len(fallback),
            )
            return replace(result, entries=fallback, used_fallback=True)
        logger.warning(
            "Scan of %s failed (%s: %s); host omitted",
            result.hostname, result.status.value, result.error,
        )
        return result
