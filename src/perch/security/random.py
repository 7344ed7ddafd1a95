"""Random — cryptographically secure random values from ``secrets``."""

from __future__ import annotations

import base64
import secrets
import string
import uuid

_BASE58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE62 = string.digits + string.ascii_letters


class Random:
    """Secure random bytes, strings, and numbers.

    Usage::

        rnd = Random()
        rnd.hex(10)           # 20 hex characters
        rnd.base62(12)        # 12 characters from [0-9A-Za-z]
        rnd.base64_safe(16)   # URL-safe, no padding
        rnd.uuid()            # "1378c906-64bb-4f81-a8d6-4ae1bfcdec22"
        rnd.number(100)       # 0 <= n <= 100
    """

    __slots__ = ()

    def bytes(self, length: int = 16) -> bytes:
        if length <= 0:
            length = 16
        return secrets.token_bytes(length)

    def hex(self, length: int = 16) -> str:
        return self.bytes(length).hex()

    def base58(self, length: int = 16) -> str:
        return "".join(secrets.choice(_BASE58) for _ in range(length or 16))

    def base62(self, length: int = 16) -> str:
        return "".join(secrets.choice(_BASE62) for _ in range(length or 16))

    def base64(self, length: int = 16) -> str:
        return base64.b64encode(self.bytes(length)).decode("ascii")

    def base64_safe(self, length: int = 16, padding: bool = False) -> str:
        value = base64.urlsafe_b64encode(self.bytes(length)).decode("ascii")
        return value if padding else value.rstrip("=")

    def uuid(self) -> str:
        """A version 4 UUID."""
        return str(uuid.uuid4())

    def number(self, maximum: int) -> int:
        """A random integer between 0 and *maximum*, inclusive."""
        if maximum <= 0:
            msg = "Require a positive integer > 0"
            raise ValueError(msg)
        return secrets.randbelow(maximum + 1)
