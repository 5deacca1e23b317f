"""
auth/passwords.py -- Salted scrypt password hashing.

Stored encoding: "<salt>.<hash>"
  salt -- secrets.token_hex(8): 8 random bytes (64 bits) as 16 hex chars,
          generated fresh for every password and never reused.
  hash -- scrypt(password, salt, n=2**14, r=8, p=1, dklen=32) as 64 hex chars.

The salt travels with the hash so verification needs nothing but the stored
string. scrypt is memory-hard and deliberately slow, which is the point: a
stolen table of encodings cannot be brute-forced cheaply, and the per-user
salt defeats precomputed rainbow tables.

The plaintext is only ever held in the local variable of derive(); it is not
logged, stored or returned.

Layer rule: stdlib only. No imports from api/ or reports/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

SALT_BYTES = 8
HASH_LENGTH = 32
_SEPARATOR = "."

# scrypt cost parameters. 2**14 * 8 * 128 bytes = 16 MiB per derivation.
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


def generate_salt() -> str:
    return secrets.token_hex(SALT_BYTES)


def derive(password: str, salt: str) -> str:
    """Return the hex scrypt digest of password under salt. Deterministic."""
    digest = hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        dklen=HASH_LENGTH,
    )
    return digest.hex()


def hash_password(password: str) -> str:
    """Return the "<salt>.<hash>" encoding for a new password."""
    salt = generate_salt()
    return f"{salt}{_SEPARATOR}{derive(password, salt)}"


def split_encoded(encoded: str) -> tuple[str, str]:
    """Split a stored encoding into (salt, hash). Raises ValueError if malformed."""
    salt, sep, stored_hash = encoded.partition(_SEPARATOR)
    if not sep or not salt or not stored_hash:
        raise ValueError("Malformed password encoding.")
    return salt, stored_hash


def verify_password(password: str, encoded: str) -> bool:
    """Return True if password re-derives to the hash stored in encoded.

    Uses hmac.compare_digest so comparison time does not depend on how many
    leading characters match. A malformed encoding never verifies.
    """
    try:
        salt, stored_hash = split_encoded(encoded)
    except ValueError:
        return False
    # Bytes, not str: compare_digest rejects non-ASCII str arguments.
    return hmac.compare_digest(derive(password, salt).encode("ascii"), stored_hash.encode("utf-8"))


# Timing equalization: signin() derives against this when the email is
# unknown, so an unknown email costs the same scrypt run as a wrong password.
# Computed once at import so the first failed signin is not measurably slower.
DUMMY_ENCODING: str = hash_password("carvalue_timing_dummy")
