"""Password hashing.

Format: ``base64(salt):base64(key)`` where ``key`` is PBKDF2-HMAC-SHA512 over
the UTF-8 password with a per-hash random salt.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os

ITERATIONS = 100_000
KEY_LENGTH = 64
SALT_LENGTH = 16
DIGEST = "sha512"


def _derive(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac(
        DIGEST, password.encode("utf-8"), salt, ITERATIONS, dklen=KEY_LENGTH
    )


def hash_password(password: str) -> str:
    salt = os.urandom(SALT_LENGTH)
    key = _derive(password, salt)
    return f"{base64.b64encode(salt).decode('ascii')}:{base64.b64encode(key).decode('ascii')}"


def verify_password(password: str, stored_hash: str) -> bool:
    salt_b64, sep, key_b64 = (stored_hash or "").partition(":")
    if not sep or not salt_b64 or not key_b64:
        return False
    try:
        salt = base64.b64decode(salt_b64, validate=True)
        expected = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError):
        return False
    if len(expected) != KEY_LENGTH:
        return False
    return hmac.compare_digest(_derive(password, salt), expected)
