"""Application configuration.

AppConfig is a frozen dataclass — immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, secret_key="s3cr3t")
    """

    debug: bool = False

    # Security
    secret_key: str = ""
    csrf_token_bytes: int = 16
    work_factor: int = 3  # argon2 time cost

    # Cookies
    sign_cookies: bool = True
    cookie_path: str = "/"
    cookie_domain: str | None = None
    cookie_secure: bool = False
    cookie_httponly: bool = True
    cookie_samesite: str = "lax"

    # Session
    session_enabled: bool = True
    session_cookie_name: str = "perch_session"
    session_max_age: int = 86400  # 24 hours

    # Routing
    default_routes: bool = True
    remove_extra_slashes: bool = False
    default_namespace: str | None = None
    default_controller: str = "index"
    default_action: str = "index"

    # Dispatching
    action_suffix: str = "_action"
    http_method_parameter_override: bool = False

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB
