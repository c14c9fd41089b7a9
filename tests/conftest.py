"""Pytest fixtures: real SSH public keys generated with cryptography."""
import struct
from typing import Callable

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

_GENERATORS = {
    "ed25519": ed25519.Ed25519PrivateKey.generate,
    "ecdsa": lambda: ec.generate_private_key(ec.SECP256R1()),
    "ecdsa384": lambda: ec.generate_private_key(ec.SECP384R1()),
    "rsa": lambda: rsa.generate_private_key(public_exponent=65537, key_size=2048),
}


def _public_line(kind: str) -> str:
    """``key_type base64`` text for a freshly generated key."""
    private_key = _GENERATORS[kind]()
    return private_key.public_key().public_bytes(
        Encoding.OpenSSH, PublicFormat.OpenSSH
    ).decode("ascii")


def ssh_string(data: bytes) -> bytes:
    """Length-prefixed SSH wire string."""
    return struct.pack(">I", len(data)) + data


@pytest.fixture
def make_key() -> Callable[..., str]:
    """Factory for ``key_type base64`` text; kind is ed25519, ecdsa, ecdsa384 or rsa."""
    def _make(kind: str = "ed25519") -> str:
        return _public_line(kind)
    return _make


@pytest.fixture
def ed25519_key() -> str:
    return _public_line("ed25519")


@pytest.fixture
def other_ed25519_key() -> str:
    return _public_line("ed25519")


@pytest.fixture
def ecdsa_key() -> str:
    return _public_line("ecdsa")


@pytest.fixture(scope="session")
def rsa_key() -> str:
    return _public_line("rsa")


@pytest.fixture
def ssh_blob() -> Callable[..., bytes]:
    """Build raw SSH key blobs from string fields."""
    def _blob(*fields: bytes) -> bytes:
        return b"".join(ssh_string(f) for f in fields)
    return _blob
