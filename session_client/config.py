"""
Client Configuration.

Pydantic Settings model for the session-aware API client.
All configuration is loaded from environment variables and .env files.
Inject a ClientConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


# Hostname suffix -> API root.  Order matters: the dev host is a
# subdomain of the production host and must be matched first.
_KNOWN_API_HOSTS: tuple[tuple[str, str], ...] = (
    ("dev.unitedwerise.org", "https://dev-api.unitedwerise.org/api"),
    ("unitedwerise.org", "https://api.unitedwerise.org/api"),
)

_LOCAL_API_BASE_URL: str = "http://localhost:3001/api"


class ClientConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Backend ---
    API_BASE_URL: str = ""
    ME_PATH: str = "/auth/me"
    REFRESH_PATH: str = "/auth/refresh"
    HEALTH_PATH: str = "/health"
    REQUEST_TIMEOUT_S: float = 30.0

    # --- CSRF ---
    CSRF_HEADER_NAME: str = "X-CSRF-Token"
    CSRF_COOKIE_NAME: str = "csrf-token"

    # --- Transient-failure retry ---
    MAX_NETWORK_RETRIES: int = Field(default=3, ge=1)
    RETRY_DELAYS_MS: list[int] = Field(default_factory=lambda: [1000, 2000, 4000])

    # --- Auth recovery ---
    REFRESH_WAIT_TIMEOUT_S: float = 10.0
    REFRESH_POLL_INTERVAL_S: float = 0.1
    AUTH_SETTLE_DELAY_S: float = 0.3
    LOGOUT_COOLDOWN_S: float = 2.0

    # --- Response cache (opt-in per GET) ---
    CACHE_TTL_S: float = Field(default=30.0, gt=0)
    CACHE_MAX_ENTRIES: int = Field(default=100, ge=1)

    # --- Navigation entry points ---
    LOGIN_PATH: str = "/admin-dashboard.html"
    STEP_UP_PATH: str = "/admin-dashboard.html"
    TOTP_SETUP_PATH: str = "/"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_retry_table(self) -> "ClientConfig":
        """Reject a delay table that cannot cover the attempt budget and
        warn when no backend URL is configured.
        """
        if len(self.RETRY_DELAYS_MS) < self.MAX_NETWORK_RETRIES:
            raise ValueError(
                f"RETRY_DELAYS_MS needs at least {self.MAX_NETWORK_RETRIES} "
                f"entries, got {len(self.RETRY_DELAYS_MS)}"
            )

        _log = logging.getLogger("session_client.config")

        if not Path(".env").exists():
            _log.debug(
                "No .env file found; configuration loaded from "
                "environment variables or defaults."
            )

        if not self.API_BASE_URL:
            _log.warning(
                "API_BASE_URL is empty; relative endpoints cannot be "
                "resolved until a base URL is supplied."
            )

        return self

    @property
    def log_level(self) -> int:
        """Numeric ``logging`` level for ``LOG_LEVEL`` (INFO when unknown)."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO


def resolve_api_base_url(hostname: str, override: Optional[str] = None) -> str:
    """Pick the API root for the page *hostname*.

    An explicit *override* (e.g. injected deployment config) always wins.
    Unknown hosts are treated as local development.
    """
    if override:
        return override.rstrip("/")

    host = hostname.lower()
    for suffix, api_base in _KNOWN_API_HOSTS:
        if suffix in host:
            return api_base
    return _LOCAL_API_BASE_URL


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[ClientConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> ClientConfig:
    """Return a cached ``ClientConfig`` singleton.

    Uses a check-lock-check pattern to avoid the lock overhead on the
    fast path while remaining thread-safe during first initialisation.
    Prefer constructor injection of ``ClientConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = ClientConfig()
    return _config_instance
