"""scrapequeue application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.

The field name is the **lowercase** version of the env-var name (e.g.
``BLACKLIGHT_API_KEY`` → ``blacklight_api_key``).

Typical usage::

    from scrapequeue.core.settings import Settings

    settings = Settings()
    print(settings.blacklight_configured)   # True / False
"""

from __future__ import annotations

import logging
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _csv_to_list(value: str) -> list[str]:
    """Split a comma-separated string into a list of non-empty, stripped items."""
    if not value or not value.strip():
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    The credentials API usually lives on the same Blacklight host; leave
    ``CREDENTIALS_API_URL`` / ``CREDENTIALS_API_KEY`` empty to reuse the
    queue values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Blacklight backend
    # ------------------------------------------------------------------
    blacklight_api_url: str = Field(
        default="",
        description="Base URL of the Blacklight API (e.g. http://localhost:5000).",
    )
    blacklight_api_key: str = Field(
        default="",
        description="Value sent in the X-Scraper-API-Key header.",
    )
    credentials_api_url: str = Field(
        default="",
        description="Base URL of the credentials queue API; defaults to blacklight_api_url.",
    )
    credentials_api_key: str = Field(
        default="",
        description="API key for the credentials queue API; defaults to blacklight_api_key.",
    )

    # ------------------------------------------------------------------
    # Auto-poll scheduler
    # ------------------------------------------------------------------
    poll_interval_s: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds between queue checks.",
    )
    poll_startup_delay_s: float = Field(
        default=5.0,
        ge=0.0,
        description="Grace period before the first queue check after startup.",
    )

    # ------------------------------------------------------------------
    # Credential leasing
    # ------------------------------------------------------------------
    credential_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Distinct credentials tried per platform before giving up.",
    )
    credential_poll_retries: int = Field(
        default=10,
        ge=1,
        description="Polls of the next-credential endpoint while none is available.",
    )
    credential_poll_delay_s: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds to wait between next-credential polls.",
    )
    rate_limit_cooldown_min: int = Field(
        default=60,
        ge=1,
        description="Cooldown applied to a credential that hit a rate limit before login.",
    )
    post_login_cooldown_min: int = Field(
        default=30,
        ge=1,
        description="Cooldown applied to a credential whose scrape failed after login.",
    )

    # ------------------------------------------------------------------
    # HTTP client
    # ------------------------------------------------------------------
    http_connect_timeout: float = Field(default=10.0, gt=0.0)
    http_read_timeout: float = Field(default=30.0, gt=0.0)
    http_write_timeout: float = Field(default=10.0, gt=0.0)
    http_max_attempts: int = Field(
        default=5,
        ge=1,
        le=5,
        description="Attempts per backend call (bounded by the retry schedule).",
    )
    http_verify_tls: bool = Field(
        default=True,
        description="Verify TLS certificates; disable only for self-signed dev hosts.",
    )

    # ------------------------------------------------------------------
    # Scrapers
    # ------------------------------------------------------------------
    scraper_plugins: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Scraper classes as 'package.module:ClassName' (comma-separated in env).",
    )

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("scraper_plugins", mode="before")
    @classmethod
    def _parse_csv_plugins(cls, v: str | list[str]) -> list[str]:
        """Accept a comma-separated string **or** an already-parsed list."""
        if isinstance(v, str):
            return _csv_to_list(v)
        return v

    @field_validator("scraper_plugins")
    @classmethod
    def _validate_plugin_paths(cls, v: list[str]) -> list[str]:
        for path in v:
            module, sep, attr = path.partition(":")
            if not sep or not module or not attr:
                raise ValueError(
                    f"scraper_plugins entries must look like 'package.module:ClassName', got {path!r}"
                )
        return v

    @field_validator("blacklight_api_url", "credentials_api_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_timeouts(self) -> Settings:
        """The read timeout must cover at least the connect phase."""
        if self.http_read_timeout < self.http_connect_timeout:
            raise ValueError(
                f"http_read_timeout ({self.http_read_timeout}) "
                f"< http_connect_timeout ({self.http_connect_timeout})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def credentials_api_url_resolved(self) -> str:
        """Credentials API base URL, falling back to the Blacklight URL."""
        return self.credentials_api_url or self.blacklight_api_url

    @property
    def credentials_api_key_resolved(self) -> str:
        """Credentials API key, falling back to the Blacklight key."""
        return self.credentials_api_key or self.blacklight_api_key

    @property
    def blacklight_configured(self) -> bool:
        """``True`` if both the Blacklight URL and API key are set."""
        return bool(self.blacklight_api_url and self.blacklight_api_key)

    @property
    def credentials_configured(self) -> bool:
        """``True`` if the credentials API can be reached (own or inherited config)."""
        return bool(self.credentials_api_url_resolved and self.credentials_api_key_resolved)
