"""Service configuration loaded from PREVIEW_* environment variables."""

from __future__ import annotations

import secrets
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class PreviewSettings(BaseSettings):
    """Preview Studio orchestrator settings.

    All fields are read from environment variables with the ``PREVIEW_`` prefix.
    For example, ``PREVIEW_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    Mapping fields (``installations``) are parsed from JSON, e.g.
    ``PREVIEW_INSTALLATIONS='{"acme/site": 1234}'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="PREVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Registry --------------------------------------------------------------
    database_url: str | None = None
    """PostgreSQL connection string (psycopg).  In-memory registry when unset."""

    # -- Sandbox provider ------------------------------------------------------
    sandbox_api_url: str = "https://api.daytona.io"
    sandbox_api_key: SecretStr | None = None
    sandbox_template: str | None = None
    sandbox_auto_stop_interval: int | None = None
    """Minutes of inactivity before the provider stops a sandbox."""

    sandbox_public: bool = True
    sandbox_preview_port: int = 3000
    sandbox_request_timeout: float = 30.0

    # -- Readiness polling -----------------------------------------------------
    ready_max_attempts: int = 30
    ready_interval_ms: int = 5000
    """Spacing between readiness polls.  Defaults give a 150s budget."""

    # -- GitHub ----------------------------------------------------------------
    github_api_url: str = "https://api.github.com"
    github_app_id: int | None = None
    github_private_key: SecretStr | None = None
    github_token: SecretStr | None = None
    """Static token used instead of app installation tokens (development)."""

    bot_login: str = "preview-studio[bot]"
    installations: dict[str, int] = Field(default_factory=dict)
    """``owner/repo`` -> GitHub App installation id."""

    suspended_installations: list[int] = Field(default_factory=list)

    # -- Auth ------------------------------------------------------------------
    auth_token: str | None = None
    """Bearer token expected from the webhook gateway.  Auto-generated if empty."""

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000
    graceful_shutdown_timeout: int = 180
    """Seconds to wait for in-flight PR events during shutdown.

    Slightly above the default readiness budget (30 x 5s) so that a poll
    started just before shutdown can still finish.
    """

    # -- Helpers ---------------------------------------------------------------

    def resolve_auth_token(self) -> str:
        """Return the configured token or generate a random one."""
        if self.auth_token:
            return self.auth_token
        return secrets.token_urlsafe(32)


@lru_cache(maxsize=1)
def get_settings() -> PreviewSettings:
    """Return a cached settings instance.

    Call ``get_settings.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return PreviewSettings()
