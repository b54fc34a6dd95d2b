# =============================================================================
# Key Hashing — Secret Generation, Fingerprint, Slow Hash, Preview
# =============================================================================
#
# Pure functions for access key material. No FastAPI dependency — used by
# the AccessKeyManager, the bootstrap script, and tests.
#
# Two hashes are stored per key:
#
#   fingerprint  SHA-256 hex. Deterministic, so it can back a UNIQUE index
#                and give O(1) lookup without storing the plaintext.
#   key_hash     bcrypt with a per-key salt. Verified after the lookup; a
#                leaked table cannot be brute-forced cheaply.
#
# Collapsing them into one hash forces either an O(n) scan of slow verifies
# or a fast, unsalted verification hash.
# =============================================================================

from __future__ import annotations

import hashlib
import secrets

import bcrypt

DEFAULT_PREFIX = "lr_"
SECRET_BYTES = 32

# bcrypt only reads the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def generate_secret(prefix: str = DEFAULT_PREFIX) -> str:
    """
    Generate a new plaintext access key.

    Returns prefix + 64 hex chars (32 bytes from the OS CSPRNG), e.g.
    "lr_3f9c...". Only ever shown to the user once.
    """
    return f"{prefix}{secrets.token_hex(SECRET_BYTES)}"


def fingerprint(secret: str) -> str:
    """SHA-256 hex digest of the secret. Lookup index only, not a password hash."""
    return hashlib.sha256(secret.encode()).hexdigest()


def slow_hash(secret: str, rounds: int = 12) -> str:
    """Salted bcrypt hash of the secret, as a str for storage."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(secret.encode(), salt).decode()


def verify(stored_hash: str, candidate: str) -> bool:
    """
    Check a candidate secret against a stored bcrypt hash.

    Returns False (never raises) for malformed hashes or candidates longer
    than bcrypt accepts, so callers can map every failure to one response.
    """
    candidate_bytes = candidate.encode()
    if len(candidate_bytes) > _BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(candidate_bytes, stored_hash.encode())
    except ValueError:
        return False


def preview(secret: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Display form: prefix + ellipsis + last 4 characters ("lr_…a1b2")."""
    return f"{prefix}…{secret[-4:]}"
