"""Reconcile configuration file management for the CLI."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from src.knownhosts.types import DEFAULT_KEY_FAMILIES, DEFAULT_PRECEDENCE, SourceKind

from .validation import (
    validate_concurrency,
    validate_key_families,
    validate_precedence,
    validate_timeout,
)

logger = logging.getLogger(__name__)

_RECOGNISED_BOOL_VALUES = frozenset(("1", "true", "yes", "0", "false", "no"))


@dataclass(frozen=True)
class ScanConfig:
    hosts: tuple[str, ...] = ()
    timeout: float = 5.0
    run_timeout: Optional[float] = None
    concurrency: int = 8
    key_families: tuple[str, ...] = DEFAULT_KEY_FAMILIES
    fallback: dict[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ReconcileConfig:
    """Reconcile settings loaded from a YAML file."""

    destination: Optional[Path] = None
    files: tuple[Path, ...] = ()
    secret: Optional[str] = None
    precedence: tuple[SourceKind, ...] = DEFAULT_PRECEDENCE
    allow_empty: bool = False
    keep_revoked: bool = False
    scan: ScanConfig = field(default_factory=ScanConfig)


class ConfigError(Exception):
    """Configuration file error."""

    pass


def _parse_bool(value: Any, default: bool, key: str) -> bool:
    """Accept YAML booleans and the strings true/1/yes, false/0/no.

    Unrecognised values log a warning and fall back to default.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalised = str(value).strip().lower()
    if normalised not in _RECOGNISED_BOOL_VALUES:
        logger.warning(
            "Unrecognised boolean value %r for %s, using default %s. "
            "Expected one of: true/1/yes or false/0/no.",
            value,
            key,
            default,
        )
        return default
    return normalised in ("1", "true", "yes")


def _as_list(value: Any, key: str) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"Invalid config: {key} must be a list")
    return value


class ConfigManager:
    """Loads reconcile settings from ./known-hosts.yaml or a given path."""

    DEFAULT_PATH = Path("known-hosts.yaml")

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._config_path = config_path or self.DEFAULT_PATH

    @property
    def config_path(self) -> Path:
        return self._config_path

    def exists(self) -> bool:
        """Check if the configuration file exists."""
        return self._config_path.is_file()

    def load(self) -> ReconcileConfig:
        """Load configuration from file. Raises ConfigError if missing or invalid."""
        if not self.exists():
            raise ConfigError(f"Config not found at {self._config_path}")

        try:
            with open(self._config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config {self._config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Invalid config: root must be a mapping")

        try:
            return self._build(data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config: {e}") from e

    def _build(self, data: dict) -> ReconcileConfig:
        base_dir = self._config_path.parent
        scan_data = data.get("scan") or {}
        if not isinstance(scan_data, dict):
            raise ConfigError("Invalid config: scan must be a mapping")

        fallback_data = scan_data.get("fallback") or {}
        if not isinstance(fallback_data, dict):
            raise ConfigError("Invalid config: scan.fallback must be a mapping")
        fallback = {
            str(host): tuple(str(k) for k in _as_list(keys, f"scan.fallback.{host}"))
            for host, keys in fallback_data.items()
        }

        run_timeout = scan_data.get("run_timeout")
        scan = ScanConfig(
            hosts=tuple(str(h) for h in _as_list(scan_data.get("hosts"), "scan.hosts")),
            timeout=validate_timeout(float(scan_data.get("timeout", 5.0))),
            run_timeout=validate_timeout(float(run_timeout)) if run_timeout is not None else None,
            concurrency=validate_concurrency(int(scan_data.get("concurrency", 8))),
            key_families=validate_key_families(
                _as_list(scan_data.get("key_types"), "scan.key_types") or list(DEFAULT_KEY_FAMILIES)
            ),
            fallback=fallback,
        )

        destination = data.get("destination")
        secret = data.get("secret")
        secret_env = data.get("secret_env")
        if secret is None and secret_env:
            secret = os.environ.get(str(secret_env))
        precedence = data.get("precedence")
        return ReconcileConfig(
            destination=Path(str(destination)).expanduser() if destination else None,
            files=tuple(
                (base_dir / Path(str(p)).expanduser()) for p in _as_list(data.get("files"), "files")
            ),
            secret=secret,
            precedence=(
                validate_precedence(
                    precedence.split(",") if isinstance(precedence, str)
                    else _as_list(precedence, "precedence")
                )
                if precedence is not None
                else DEFAULT_PRECEDENCE
            ),
            allow_empty=_parse_bool(data.get("allow_empty"), False, "allow_empty"),
            keep_revoked=_parse_bool(data.get("keep_revoked"), False, "keep_revoked"),
            scan=scan,
        )
