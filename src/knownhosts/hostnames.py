"""Hostname pattern normalisation, hashing and matching.

Hashed hostnames use the OpenSSH ``HashKnownHosts`` form
``|1|base64(salt)|base64(HMAC-SHA1(salt, host))``. They are only ever
compared against a candidate host, never reversed.
"""
import base64
import binascii
import hashlib
import hmac
import os
import re

HASH_MAGIC = "|1|"
_SALT_SIZE = 20


def is_hashed(token: str) -> bool:
    return token.startswith(HASH_MAGIC)


def normalize_pattern(patterns: str) -> str:
    """Canonical form of a comma-separated pattern list.

    Plain names are lower-cased; hashed tokens are kept byte-for-byte.
    Empty list items are dropped.
    """
    tokens = []
    for token in patterns.split(","):
        token = token.strip()
        if not token:
            continue
        tokens.append(token if is_hashed(token) else token.lower())
    return ",".join(tokens)


def host_pattern(host: str, port: int = 22) -> str:
    """The known-hosts name for a host, bracketed when on a non-default port."""
    host = host.lower()
    return host if port == 22 else f"[{host}]:{port}"


def hash_hostname(host: str, salt: bytes | None = None) -> str:
    """Hash a hostname the way ``ssh-keygen -H`` does."""
    if salt is None:
        salt = os.urandom(_SALT_SIZE)
    digest = hmac.new(salt, host.encode("utf-8"), hashlib.sha1).digest()
    return (
        HASH_MAGIC
        + base64.b64encode(salt).decode("ascii")
        + "|"
        + base64.b64encode(digest).decode("ascii")
    )


def _hashed_matches(token: str, candidate: str) -> bool:
    parts = token.split("|")
    if len(parts) != 4:
        return False
    try:
        salt = base64.b64decode(parts[2], validate=True)
        expected = base64.b64decode(parts[3], validate=True)
    except (binascii.Error, ValueError):
        return False
    actual = hmac.new(salt, candidate.encode("utf-8"), hashlib.sha1).digest()
    return hmac.compare_digest(actual, expected)


def _wildcard_matches(token: str, candidate: str) -> bool:
    # Only * and ? are special in OpenSSH patterns; brackets are literal.
    regex = re.escape(token).replace(r"\*", ".*").replace(r"\?", ".")
    return re.fullmatch(regex, candidate) is not None


def match_hostname(patterns: str, host: str, port: int = 22) -> bool:
    """Return True if host (on port) is matched by a known-hosts pattern list.

    A matching negated token (``!name``) vetoes the whole list.
    """
    candidate = host_pattern(host, port)
    matched = False
    for token in patterns.split(","):
        token = token.strip()
        negate = token.startswith("!")
        if negate:
            token = token[1:]
        if not token:
            continue
        if is_hashed(token):
            hit = _hashed_matches(token, candidate)
        else:
            hit = _wildcard_matches(token.lower(), candidate)
        if hit and negate:
            return False
        matched = matched or hit
    return matched
