"""Password hashing — argon2id, with scrypt verification for older hashes.

Both formats are PHC strings. ``verify_password`` picks the algorithm
from the hash prefix, so scrypt hashes stored before the switch to
argon2id keep working and can be upgraded on the next login
(``needs_rehash``).

Usage::

    from perch.security.passwords import hash_password, verify_password

    hashed = hash_password("my-password")
    ok = verify_password("my-password", hashed)
"""

import base64
import hashlib
import hmac
import os

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

# PHC format prefixes
ARGON2_PREFIX = "$argon2"
SCRYPT_PREFIX = "$scrypt$"

DEFAULT_TIME_COST = 3

# Scrypt parameters (balanced for security and compatibility)
_SCRYPT_N = 2**14  # CPU/memory cost
_SCRYPT_R = 8  # Block size
_SCRYPT_P = 1  # Parallelism
_SCRYPT_DKLEN = 64  # Derived key length
_SALT_LENGTH = 16  # Salt length in bytes


def _hasher(time_cost: int) -> PasswordHasher:
    return PasswordHasher(time_cost=time_cost)


# ---------------------------------------------------------------------------
# Scrypt (legacy)
# ---------------------------------------------------------------------------


def hash_scrypt(password: str) -> str:
    """Hash password with scrypt, returning a PHC-format string."""
    salt = os.urandom(_SALT_LENGTH)
    dk = hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        dklen=_SCRYPT_DKLEN,
    )
    salt_b64 = base64.b64encode(salt).decode("ascii")
    dk_b64 = base64.b64encode(dk).decode("ascii")
    return f"$scrypt$n={_SCRYPT_N},r={_SCRYPT_R},p={_SCRYPT_P}${salt_b64}${dk_b64}"


def _verify_scrypt(password: str, phc_hash: str) -> bool:
    # Format: $scrypt$n=N,r=R,p=P$salt_b64$dk_b64
    parts = phc_hash.split("$")
    if len(parts) != 5 or parts[1] != "scrypt":
        return False

    try:
        params = {}
        for param in parts[2].split(","):
            key, _, value = param.partition("=")
            params[key] = int(value)
        salt = base64.b64decode(parts[3])
        expected_dk = base64.b64decode(parts[4])
    except ValueError:
        return False

    dk = hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=params.get("n", _SCRYPT_N),
        r=params.get("r", _SCRYPT_R),
        p=params.get("p", _SCRYPT_P),
        dklen=len(expected_dk),
    )
    return hmac.compare_digest(dk, expected_dk)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def hash_password(password: str, time_cost: int = DEFAULT_TIME_COST) -> str:
    """Hash a password with argon2id.

    Returns a PHC-format string (``$argon2id$...``) safe for database storage.
    """
    if not password:
        msg = "Password must not be empty."
        raise ValueError(msg)
    return _hasher(time_cost).hash(password)


def verify_password(password: str, phc_hash: str) -> bool:
    """Verify a password against an argon2 or scrypt PHC hash.

    Raises:
        ValueError: If the hash format is not recognised.
    """
    if not password or not phc_hash:
        return False

    if phc_hash.startswith(ARGON2_PREFIX):
        try:
            return _hasher(DEFAULT_TIME_COST).verify(phc_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    if phc_hash.startswith(SCRYPT_PREFIX):
        return _verify_scrypt(password, phc_hash)

    msg = f"Unknown hash format: {phc_hash[:20]}..."
    raise ValueError(msg)


def needs_rehash(phc_hash: str, time_cost: int = DEFAULT_TIME_COST) -> bool:
    """Whether *phc_hash* should be replaced by a fresh argon2id hash."""
    if not phc_hash.startswith(ARGON2_PREFIX):
        return True
    try:
        return _hasher(time_cost).check_needs_rehash(phc_hash)
    except (InvalidHashError, ValueError):
        return True
