"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
All tunables are accessed exclusively through this module; never call
``os.getenv`` directly elsewhere in the codebase.

Usage::

    from pharos_pipeline.config.settings import get_settings

    settings = get_settings()
    timeout = settings.static_fetch_timeout
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline configuration backed by environment variables and an optional .env file.

    Every field has a default so that the pipeline can run without any
    environment set up.  Values are read once and then passed explicitly into
    the fetchers, the coordinator and the relay.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Application behaviour
    # ------------------------------------------------------------------

    app_name: str = "Pharos Pipeline"
    """Human-readable application name shown in the OpenAPI docs."""

    debug: bool = False
    """Enable FastAPI debug mode.  Never True in production."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    allowed_origins: list[str] = ["http://localhost:3000"]
    """Origins permitted by the CORS middleware."""

    # ------------------------------------------------------------------
    # Event-stream relay
    # ------------------------------------------------------------------

    stream_api_url: str = "https://api.oip.onl"
    """Base URL of the backend worker that publishes the upstream SSE feed."""

    stream_path: str = "/api/open-stream"
    """Path of the upstream SSE endpoint.  The session ID is sent as ``?id=``."""

    stream_max_retries: int = Field(default=3, ge=0, le=20)
    """Reconnect attempts after the initial connection before the relay closes."""

    stream_connection_timeout: float = Field(default=300.0, gt=0)
    """Ceiling timeout (seconds) for the upstream connection.  Five minutes
    accommodates long-running backend jobs."""

    # ------------------------------------------------------------------
    # Scraping
    # ------------------------------------------------------------------

    static_fetch_timeout: float = Field(default=10.0, gt=0)
    """Timeout (seconds) for a single static HTTP GET."""

    render_navigation_timeout: float = Field(default=30.0, ge=1.0, le=120.0)
    """Navigation timeout (seconds) for headless-browser page loads."""

    render_settle_delay: float = Field(default=1.5, ge=0.0)
    """Pause (seconds) after DOM-content-loaded so client-side rendering can
    populate the page before the selectors run."""

    default_max_articles: int = Field(default=20, ge=1, le=500)
    """Per-source article cap used when the caller does not supply one."""

    article_delay_min: float = Field(default=1.0, ge=0.0)
    """Minimum pause (seconds) between sequential article fetches in a batch."""

    article_delay_max: float = Field(default=2.0, ge=0.0)
    """Maximum pause (seconds) between sequential article fetches in a batch."""

    @property
    def stream_endpoint(self) -> str:
        """Full URL of the upstream SSE endpoint (without the session query)."""
        return self.stream_api_url.rstrip("/") + self.stream_path


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings object.

    Uses ``functools.lru_cache`` so that Pydantic Settings reads the environment
    and .env file exactly once per process lifetime.  In tests, call
    ``get_settings.cache_clear()`` after patching environment variables.

    Returns:
        Settings: The validated settings object.
    """
    return Settings()
