"""Security helpers (hashing and verification)."""

from __future__ import annotations

from argon2 import PasswordHasher, exceptions as argon_exc

_ph = PasswordHasher()


def hash_password(password: str) -> str:
    """Create an Argon2 hash for storage in User.password."""
    return _ph.hash(password)


def verify_password(password: str, stored_hash: str | None) -> bool:
    stored = stored_hash or ""
    if not stored:
        return False
    try:
        return _ph.verify(stored, password)
    except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
        return False
