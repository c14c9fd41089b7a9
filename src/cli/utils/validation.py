"""Input validation utilities for CLI commands."""

from typing import Iterable

from src.knownhosts.types import DEFAULT_PRECEDENCE, KeyType, SourceKind


def validate_timeout(timeout: float) -> float:
    """Validate and return a timeout in seconds. Raises ValueError if invalid."""
    if timeout <= 0:
        raise ValueError("Timeout must be greater than zero")
    if timeout > 3600:
        raise ValueError("Timeout cannot exceed 3600 seconds")
    return timeout


def validate_concurrency(concurrency: int) -> int:
    """Validate and return the scan concurrency limit. Raises ValueError if invalid."""
    if concurrency < 1:
        raise ValueError("Concurrency must be at least 1")
    if concurrency > 256:
        raise ValueError("Concurrency cannot exceed 256")
    return concurrency


def validate_precedence(kinds: Iterable[str]) -> tuple[SourceKind, ...]:
    """Parse a lowest-first precedence list such as ``scan,file,secret``."""
    result: list[SourceKind] = []
    for raw in kinds:
        name = str(raw).strip().lower()
        if not name:
            continue
        try:
            kind = SourceKind(name)
        except ValueError:
            valid = ", ".join(k.value for k in DEFAULT_PRECEDENCE)
            raise ValueError(f"Unknown source kind {raw!r} (expected {valid})") from None
        if kind in result:
            raise ValueError(f"Source kind {name!r} listed twice in precedence")
        result.append(kind)
    if not result:
        raise ValueError("Precedence cannot be empty")
    return tuple(result)


def validate_key_families(families: Iterable[str]) -> tuple[str, ...]:
    """Validate key families requested from scans (rsa, ecdsa, ed25519)."""
    result = []
    for raw in families:
        family = str(raw).strip().lower()
        KeyType.for_family(family)
        if family not in result:
            result.append(family)
    if not result:
        raise ValueError("At least one key type is required")
    return tuple(result)


def parse_fallback_option(value: str) -> tuple[str, str]:
    """Split ``host=key_type base64`` into host and key text."""
    host, sep, key = value.partition("=")
    if not sep or not host.strip() or not key.strip():
        raise ValueError(f"Fallback must look like host=KEYTYPE BASE64, got {value!r}")
    return host.strip(), key.strip()
