"""Security — password hashing and session-backed CSRF tokens.

CSRF flow::

    # Rendering a form
    key = security.get_token_key()
    value = security.get_token()
    # <input type="hidden" name="{key}" value="{value}">

    # Handling the POST
    if not security.check_token():
        raise HTTPError(status=403, detail="CSRF token invalid")

A new key/value pair is written to the session whenever a form is
rendered. The value issued by the previous request stays available as
the request token, so the POST that follows is checked against it.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any

from perch.di.injectable import Injectable
from perch.errors import PerchError
from perch.security import passwords
from perch.security.random import Random

logger = logging.getLogger("perch.security")

CRYPT_ARGON2ID = "argon2id"
CRYPT_SCRYPT = "scrypt"

TOKEN_KEY_SESSION_ID = "$PERCH/CSRF/KEY$"
TOKEN_VALUE_SESSION_ID = "$PERCH/CSRF$"

CSRF_HEADER = "X-CSRF-Token"


class Security(Injectable):
    """Password hashing plus CSRF token issue and verification."""

    __slots__ = (
        "_default_hash",
        "_number_bytes",
        "_random",
        "_request_token",
        "_token_key",
        "_token_value",
        "_work_factor",
    )

    def __init__(
        self,
        work_factor: int = passwords.DEFAULT_TIME_COST,
        random_bytes: int = 16,
        default_hash: str = CRYPT_ARGON2ID,
    ) -> None:
        self._work_factor = work_factor
        self._number_bytes = random_bytes
        self._default_hash = default_hash
        self._random = Random()
        self._token_key: str | None = None
        self._token_value: str | None = None
        self._request_token: str | None = None

    # -- Passwords --

    def hash(self, password: str, work_factor: int | None = None) -> str:
        """Hash *password* with the default algorithm."""
        if self._default_hash == CRYPT_SCRYPT:
            return passwords.hash_scrypt(password)
        return passwords.hash_password(password, time_cost=work_factor or self._work_factor)

    def check_hash(self, password: str, password_hash: str, max_pass_length: int = 0) -> bool:
        """Verify *password*; passwords longer than *max_pass_length* fail."""
        if max_pass_length and len(password) > max_pass_length:
            return False
        try:
            return passwords.verify_password(password, password_hash)
        except ValueError:
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        if self._default_hash == CRYPT_SCRYPT:
            return not password_hash.startswith(passwords.SCRYPT_PREFIX)
        return passwords.needs_rehash(password_hash, self._work_factor)

    def is_legacy_hash(self, password_hash: str) -> bool:
        """Whether *password_hash* uses the older scrypt format."""
        return password_hash.startswith(passwords.SCRYPT_PREFIX)

    def set_work_factor(self, work_factor: int) -> Security:
        self._work_factor = work_factor
        return self

    def get_work_factor(self) -> int:
        return self._work_factor

    def set_default_hash(self, default_hash: str) -> Security:
        if default_hash not in (CRYPT_ARGON2ID, CRYPT_SCRYPT):
            msg = f"Unsupported hash algorithm {default_hash!r}"
            raise PerchError(msg)
        self._default_hash = default_hash
        return self

    def get_default_hash(self) -> str:
        return self._default_hash

    # -- CSRF --

    def get_token_key(self) -> str:
        """Issue (once per request) the form field name for the token."""
        if self._token_key is None:
            self._token_key = self._random.base64_safe(self._number_bytes)
            self.session.set(TOKEN_KEY_SESSION_ID, self._token_key)
        return self._token_key

    def get_token(self) -> str:
        """Issue (once per request) a new token, keeping the previous one as the request token."""
        if self._token_value is None:
            self._request_token = self.get_session_token()
            self._token_value = self._random.base64_safe(self._number_bytes)
            self.session.set(TOKEN_VALUE_SESSION_ID, self._token_value)
        return self._token_value

    def get_session_token(self) -> str | None:
        return self.session.get(TOKEN_VALUE_SESSION_ID)

    def get_request_token(self) -> str | None:
        """The token the current request should carry."""
        if not self._request_token:
            return self.get_session_token()
        return self._request_token

    def check_token(
        self,
        token_key: str | None = None,
        token_value: str | None = None,
        destroy_if_valid: bool = True,
    ) -> bool:
        """Verify the token sent with the request.

        The value is read from the POST body under the token key,
        falling back to the ``X-CSRF-Token`` header, unless given
        explicitly.
        """
        session = self.session
        if not token_key:
            token_key = session.get(TOKEN_KEY_SESSION_ID)
        if not token_key:
            logger.warning("CSRF check failed: no token key in session")
            return False

        if token_value:
            user_token = token_value
        else:
            request = self.request
            user_token = request.get_post(token_key, "string") or request.get_header(CSRF_HEADER)

        known_token = self.get_request_token()
        if not known_token or not user_token:
            logger.warning("CSRF check failed: missing token")
            return False

        equals = hmac.compare_digest(str(known_token).encode(), str(user_token).encode())
        if not equals:
            logger.warning("CSRF check failed: token mismatch")
        elif destroy_if_valid:
            self.destroy_token()
        return equals

    def destroy_token(self) -> Security:
        """Forget the token key and value, in the session and for this request."""
        session = self.session
        session.remove(TOKEN_KEY_SESSION_ID)
        session.remove(TOKEN_VALUE_SESSION_ID)
        self._token_key = None
        self._token_value = None
        self._request_token = None
        return self

    # -- Utilities --

    def compute_hmac(self, data: str | bytes, key: str | bytes, algo: str, raw: bool = False) -> Any:
        """HMAC of *data*; hex digest unless *raw*."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        if isinstance(key, str):
            key = key.encode("utf-8")
        try:
            mac = hmac.new(key, data, algo)
        except ValueError as exc:
            msg = f"Unknown hashing algorithm: {algo}"
            raise PerchError(msg) from exc
        return mac.digest() if raw else mac.hexdigest()

    def get_random(self) -> Random:
        return self._random

    def set_random_bytes(self, random_bytes: int) -> Security:
        self._number_bytes = random_bytes
        return self

    def get_random_bytes(self) -> int:
        return self._number_bytes
