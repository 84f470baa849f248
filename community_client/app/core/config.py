"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for all fields and are
resolved exactly once, when the module-level ``settings`` instance is
created.  Callers that need a different configuration (tests, the
command line front end) build their own ``Settings`` and pass it to the
services explicitly.

The API base URL follows the deployment mode: ``APP_MODE=production``
selects the hosted backend, any other mode selects the local
development server.  ``API_URL`` overrides both.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


PRODUCTION_API_URL = "https://your-backend-url.vercel.app/api"
DEVELOPMENT_API_URL = "http://localhost:5000/api"


def _default_credentials_path() -> str:
    return str(Path.home() / ".community_client" / "credentials.db")


def resolve_api_url(mode: str, override: str = "") -> str:
    """Return the API base URL for a deployment mode.

    An explicit ``override`` always wins.  Trailing slashes are
    stripped so endpoint paths can be appended verbatim.
    """
    if override:
        return override.rstrip("/")
    if mode.lower() == "production":
        return PRODUCTION_API_URL
    return DEVELOPMENT_API_URL


@dataclass
class Settings:
    """Client settings loaded from environment variables."""

    app_mode: str = field(default_factory=lambda: os.getenv("APP_MODE", "development"))
    api_url: str = field(default_factory=lambda: os.getenv("API_URL", ""))
    request_timeout: float = field(default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "15")))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: str = field(default_factory=lambda: os.getenv("LOG_FILE", ""))

    # Location of the SQLite file holding the persisted ``authToken`` and
    # ``user`` pair.  ``:memory:`` keeps the session for the lifetime of
    # the process only.
    credentials_path: str = field(
        default_factory=lambda: os.getenv("CREDENTIALS_PATH", _default_credentials_path())
    )

    # Email verification.  The countdown window is also the cooldown
    # before another code may be requested.
    otp_window_seconds: int = field(default_factory=lambda: int(os.getenv("OTP_WINDOW_SECONDS", "600")))
    otp_length: int = 6

    # Registration form rules.
    password_min_length: int = field(default_factory=lambda: int(os.getenv("PASSWORD_MIN_LENGTH", "8")))
    username_min_length: int = 3
    username_max_length: int = 20
    username_pad_suffix: str = "123"

    # Interval for periodic background refreshes (event listings).
    refresh_interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("REFRESH_INTERVAL_SECONDS", "30"))
    )

    def __post_init__(self) -> None:
        self.api_url = resolve_api_url(self.app_mode, self.api_url)

    @property
    def is_production(self) -> bool:
        return self.app_mode.lower() == "production"


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables
# should therefore be set before importing this module.
settings = Settings()
