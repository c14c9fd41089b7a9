"""CLI utilities."""

from .config import ConfigError, ConfigManager, ReconcileConfig, ScanConfig
from .validation import (
    parse_fallback_option,
    validate_concurrency,
    validate_key_families,
    validate_precedence,
    validate_timeout,
)

__all__ = [
    "ConfigManager",
    "ConfigError",
    "ReconcileConfig",
    "ScanConfig",
    "parse_fallback_option",
    "validate_concurrency",
    "validate_key_families",
    "validate_precedence",
    "validate_timeout",
]
