"""
auth/tokens.py -- Password hashing, legacy hash verification, JWT and API key utilities.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). The native format is a
       bcrypt hash produced by hash_password(). bcrypt only uses the first 72
       bytes of a password; _pw_bytes() truncates explicitly so long
       passwords behave the same way they did in the app backend (which also
       used bcrypt) instead of raising on newer bcrypt releases.

  Legacy hashes: the app backend produced "$2y$" / "$2a$" / "$2b$" bcrypt
       hashes. "$2y$" is PHP's name for the same algorithm as "$2b$", so it is
       rewritten before bcrypt.checkpw() runs. checkpw compares in constant
       time.

  Placeholders: imported and synced users never get the legacy hash as their
       native hash (the plaintext is unknown). They get a random placeholder
       from generate_placeholder_password(), hashed natively.

  JWT: python-jose with HS256, signed with the injected SECRET_KEY. Decoding
       returns None on any failure -- the route layer turns that into a 401.

  Sync API key: compared with hmac.compare_digest so response timing does
       not reveal how much of a guessed key was correct.

Layer rule: no imports from api/, importer/, lms/, or sync/.
"""

from __future__ import annotations

import hmac
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

if TYPE_CHECKING:
    from auth.models import User

_ALGORITHM = "HS256"
_BCRYPT_MAX_BYTES = 72
_PLACEHOLDER_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*()-_[]{}<>~`+=,.;:/?|"

# ---------------------------------------------------------------------------
# Native password hashing
# ---------------------------------------------------------------------------


def _pw_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a native (bcrypt) hash of the given plaintext password."""
    return bcrypt.hashpw(_pw_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the native hash."""
    try:
        return bcrypt.checkpw(_pw_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("bsabridge_timing_dummy")


def verify_dummy(plain: str) -> None:
    """Spend one bcrypt check on a throwaway hash (unknown-user path)."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Legacy hashes
# ---------------------------------------------------------------------------


def verify_legacy_hash(plain: str, legacy_hash: str) -> bool:
    """Return True if plain matches a bcrypt hash exported by the app backend.

    Malformed hashes are a mismatch, never an exception.
    """
    if not plain or not legacy_hash:
        return False
    candidate = legacy_hash.strip()
    if candidate.startswith("$2y$"):
        candidate = "$2b$" + candidate[4:]
    try:
        return bcrypt.checkpw(_pw_bytes(plain), candidate.encode("utf-8"))
    except ValueError:
        return False


def generate_placeholder_password(length: int = 32) -> str:
    """Return a random password with letters, digits and symbols.

    Used for accounts whose real password is unknown (imported or synced).
    The value is hashed immediately and never shown to anyone.
    """
    return "".join(secrets.choice(_PLACEHOLDER_ALPHABET) for _ in range(length))


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user: User, secret_key: str, expire_seconds: int) -> str:
    """Encode a signed JWT carrying the user's id, login and roles."""
    expire = datetime.now(timezone.utc) + timedelta(seconds=expire_seconds)
    payload = {
        "sub": user.login,
        "user_id": user.id,
        "roles": list(user.roles),
        "exp": expire,
    }
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Shared-secret API key
# ---------------------------------------------------------------------------


def api_key_matches(presented: str | None, expected: str | None) -> bool:
    """Constant-time comparison of a presented API key against the configured one.

    An unconfigured (empty) expected key never matches, nor does an empty
    presented key.
    """
    if not expected or not presented:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))
