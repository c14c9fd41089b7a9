"""Enums shared across the known-hosts reconciler."""

from enum import Enum


class KeyType(str, Enum):
    """OpenSSH host key algorithms accepted in a known-hosts file."""

    RSA = "ssh-rsa"
    ED25519 = "ssh-ed25519"
    ECDSA_P256 = "ecdsa-sha2-nistp256"
    ECDSA_P384 = "ecdsa-sha2-nistp384"
    ECDSA_P521 = "ecdsa-sha2-nistp521"

    @property
    def family(self) -> str:
        if self is KeyType.RSA:
            return "rsa"
        if self is KeyType.ED25519:
            return "ed25519"
        return "ecdsa"

    @classmethod
    def for_family(cls, family: str) -> tuple["KeyType", ...]:
        """All key types belonging to a family name (rsa, ed25519, ecdsa)."""
        matches = tuple(t for t in cls if t.family == family.lower())
        if not matches:
            raise ValueError(f"Unknown key family: {family!r}")
        return matches


class Marker(str, Enum):
    REVOKED = "revoked"
    CERT_AUTHORITY = "cert-authority"


class ScanStatus(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    PROTOCOL_ERROR = "protocol-error"


class SourceKind(str, Enum):
    SCAN = "scan"
    FILE = "file"
    SECRET = "secret"


class ReconcileOutcome(str, Enum):
    SUCCESS = "success"
    VALIDATION_FAILURE = "validation-failure"
    INSTALL_FAILURE = "install-failure"


# Lowest precedence first.
DEFAULT_PRECEDENCE: tuple[SourceKind, ...] = (
    SourceKind.SCAN,
    SourceKind.FILE,
    SourceKind.SECRET,
)

DEFAULT_KEY_FAMILIES: tuple[str, ...] = ("ed25519", "ecdsa", "rsa")
