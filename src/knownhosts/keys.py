"""SSH public key blob decoding, size checks and SHA-256 fingerprints."""

import base64
import binascii
import hashlib
import struct

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import load_ssh_public_key

from .exceptions import KeyFormatError
from .types import KeyType

ED25519_KEY_SIZE = 32
MIN_RSA_BITS = 1024

# Uncompressed EC point: 0x04 || X || Y
_ECDSA_POINT_SIZES = {
    KeyType.ECDSA_P256: 65,
    KeyType.ECDSA_P384: 97,
    KeyType.ECDSA_P521: 133,
}


def decode_key_material(encoded: str) -> bytes:
    """Decode the base64 key field of a known-hosts line."""
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyFormatError(f"base64 key does not decode: {e}") from e


def encode_key_material(blob: bytes) -> str:
    """Encode an SSH wire blob as the base64 key field."""
    return base64.b64encode(blob).decode("ascii")


def fingerprint(blob: bytes) -> str:
    """OpenSSH-style SHA256 fingerprint of a key blob (unpadded base64)."""
    digest = hashlib.sha256(blob).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def _read_string(blob: bytes, offset: int) -> tuple[bytes, int]:
    """Read one length-prefixed SSH string starting at offset."""
    if offset + 4 > len(blob):
        raise KeyFormatError("key blob is truncated")
    (length,) = struct.unpack(">I", blob[offset:offset + 4])
    start = offset + 4
    end = start + length
    if end > len(blob):
        raise KeyFormatError("key blob is truncated")
    return blob[start:end], end


def key_size(key_type: KeyType, blob: bytes) -> int:
    """Return the size of the key carried by blob.

    Bytes of raw key for ed25519, bytes of EC point for ecdsa, and modulus
    bits for rsa. The algorithm name embedded in the blob must agree with
    key_type.

    Raises:
        KeyFormatError: If the blob is malformed or names another algorithm.
    """
    name, offset = _read_string(blob, 0)
    if name != key_type.value.encode("ascii"):
        raise KeyFormatError(
            f"key blob declares {name.decode('ascii', 'replace')!r}, "
            f"expected {key_type.value}"
        )

    if key_type is KeyType.ED25519:
        key, offset = _read_string(blob, offset)
        size = len(key)
    elif key_type.family == "ecdsa":
        curve, offset = _read_string(blob, offset)
        expected_curve = key_type.value.rsplit("-", 1)[1]
        if curve.decode("ascii", "replace") != expected_curve:
            raise KeyFormatError(
                f"curve {curve.decode('ascii', 'replace')!r} does not match {key_type.value}"
            )
        point, offset = _read_string(blob, offset)
        if point[:1] != b"\x04":
            raise KeyFormatError("ecdsa point is not in uncompressed form")
        size = len(point)
    else:
        _exponent, offset = _read_string(blob, offset)
        modulus, offset = _read_string(blob, offset)
        size = int.from_bytes(modulus, "big").bit_length()

    if offset != len(blob):
        raise KeyFormatError(f"{len(blob) - offset} trailing byte(s) after key")
    return size


def check_key_material(key_type: KeyType, blob: bytes) -> None:
    """Confirm blob is a well-formed public key of the declared size and type.

    Raises:
        KeyFormatError: On any structural, size or cryptographic mismatch.
    """
    size = key_size(key_type, blob)
    if key_type is KeyType.ED25519 and size != ED25519_KEY_SIZE:
        raise KeyFormatError(
            f"ed25519 key is {size} bytes, expected {ED25519_KEY_SIZE}"
        )
    if key_type in _ECDSA_POINT_SIZES and size != _ECDSA_POINT_SIZES[key_type]:
        raise KeyFormatError(
            f"{key_type.value} point is {size} bytes, "
            f"expected {_ECDSA_POINT_SIZES[key_type]}"
        )
    if key_type is KeyType.RSA and size < MIN_RSA_BITS:
        raise KeyFormatError(f"rsa modulus is {size} bits, minimum is {MIN_RSA_BITS}")

    line = key_type.value.encode("ascii") + b" " + encode_key_material(blob).encode("ascii")
    try:
        load_ssh_public_key(line)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyFormatError(f"invalid {key_type.value} public key: {e}") from e
