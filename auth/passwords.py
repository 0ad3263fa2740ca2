"""
auth/passwords.py -- One-way password hashing with bcrypt.

bcrypt is salted (a fresh salt per hash_password() call, so equal plaintexts
never produce equal hashes) and adaptive (the cost factor comes from
Settings.bcrypt_rounds, so brute force stays expensive as hardware improves).

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection hashes a >72 byte secret, which bcrypt 4.x rejects outright.

Layer rule: no imports from api/ or moves/. Import from core/ is allowed.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

_settings = get_settings()

_MAX_BCRYPT_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_MAX_BCRYPT_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Only the first 72 bytes take part in the hash. bcrypt 5 raises on longer
    input instead of truncating, so the cut happens here.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(_encode(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext matches the bcrypt hash.

    Fails closed: a missing, truncated or non-bcrypt hash returns False
    instead of raising, so a corrupt record can never be mistaken for a match.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than later ones.
DUMMY_HASH: str = hash_password("movemaster_timing_dummy")
