"""
auth/passwords.py -- Password hashing, verification and generation.

bcrypt, used directly (no passlib wrapper). passlib's internal wrap-bug
detection creates a password longer than 72 bytes, which bcrypt 4.x rejects
with an explicit error.

The work factor is fixed at 10. It is part of every stored hash, so raising it
later only affects hashes written after the change.

verify_password() reports every failure -- mismatch, malformed hash, encoding
problem -- as False. A caller can never tell "wrong password" from "broken
hash", which removes an oracle.

Layer rule: stdlib + bcrypt only.
"""

from __future__ import annotations

import secrets

import bcrypt

BCRYPT_ROUNDS = 10
MIN_PASSWORD_LENGTH = 8
# bcrypt only reads the first 72 bytes; bcrypt 5 raises ValueError past that.
MAX_PASSWORD_BYTES = 72

_PASSWORD_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*"


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt rejects input longer than MAX_PASSWORD_BYTES with ValueError, so
    new passwords must pass password_problem() first.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def password_problem(plain: str) -> str | None:
    """Return why a new password is unacceptable, or None if it is fine.

    The upper bound counts UTF-8 bytes, not characters: 40 x "é" is 80 bytes.
    """
    if len(plain) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
    return None


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except Exception:
        return False


def generate_secure_password(length: int = 12) -> str:
    """Generate a random password for accounts created without one.

    secrets.choice draws from the OS CSPRNG without the modulo bias of
    indexing the alphabet with raw random bytes.
    """
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. SessionService.login() verifies against it when
# the email is unknown so response time does not reveal account existence.
DUMMY_HASH: str = hash_password("saiqa_timing_dummy")
