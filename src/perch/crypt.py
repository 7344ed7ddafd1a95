"""Crypt — signs and verifies string values with itsdangerous.

Used for cookie values and session ids. Values are signed, not
encrypted: the payload stays readable but any tampering is detected.

Usage::

    crypt = Crypt("s3cr3t")
    token = crypt.sign("user-42")
    crypt.unsign(token)                 # "user-42"
    crypt.unsign(token, max_age=3600)   # also rejects tokens older than an hour
"""

from __future__ import annotations

from itsdangerous import BadSignature, SignatureExpired, TimestampSigner

from perch.errors import CryptError

DEFAULT_SALT = "perch.crypt"


class Crypt:
    """Timestamped HMAC signing of string values."""

    __slots__ = ("_key", "_salt", "_signer")

    def __init__(self, key: str = "", salt: str = DEFAULT_SALT) -> None:
        self._key = key
        self._salt = salt
        self._signer: TimestampSigner | None = None

    def set_key(self, key: str) -> Crypt:
        self._key = key
        self._signer = None
        return self

    def get_key(self) -> str:
        return self._key

    def _get_signer(self) -> TimestampSigner:
        if not self._key:
            msg = "Crypt needs a secret key. Set AppConfig.secret_key or call set_key()."
            raise CryptError(msg)
        if self._signer is None:
            self._signer = TimestampSigner(self._key, salt=self._salt)
        return self._signer

    def sign(self, value: str) -> str:
        return self._get_signer().sign(value).decode("utf-8")

    def unsign(self, value: str, max_age: int | None = None) -> str:
        """Verify *value* and return the original string.

        Raises:
            CryptError: If the signature is invalid or older than *max_age*.
        """
        signer = self._get_signer()
        try:
            return signer.unsign(value, max_age=max_age).decode("utf-8")
        except SignatureExpired as exc:
            msg = "Signed value has expired"
            raise CryptError(msg) from exc
        except BadSignature as exc:
            msg = "Signed value failed verification"
            raise CryptError(msg) from exc
