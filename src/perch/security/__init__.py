"""Security — password hashing, CSRF tokens, and secure random values.

Usage::

    from perch.security import Security, hash_password, verify_password

    hashed = hash_password("my-password")
    ok = verify_password("my-password", hashed)
"""

from perch.security.passwords import hash_password, needs_rehash, verify_password
from perch.security.random import Random
from perch.security.security import CRYPT_ARGON2ID, CRYPT_SCRYPT, Security

__all__ = [
    "CRYPT_ARGON2ID",
    "CRYPT_SCRYPT",
    "Random",
    "Security",
    "hash_password",
    "needs_rehash",
    "verify_password",
]
