"""FastAPI application factory and entry point.

Creates the application instance, registers middleware and mounts the
scraping, stream relay and health routers.  Long-lived collaborators are
built here and stored on ``app.state``:

- ``settings``           : the :class:`Settings` the app was created with
- ``extraction_engine``  : :class:`ExtractionRuleEngine` with the default rules
- ``http_client``        : shared ``httpx.AsyncClient`` (lifespan-scoped)
- ``coordinator``        : :class:`SourceFetchCoordinator` (lifespan-scoped)

Usage::

    uvicorn pharos_pipeline.api.main:app --reload
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Callable

import httpx
import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from pharos_pipeline import __version__
from pharos_pipeline.config.settings import Settings, get_settings
from pharos_pipeline.core.logging_config import configure_logging, request_id_var
from pharos_pipeline.scraper.content_extractor import ExtractionRuleEngine
from pharos_pipeline.scraper.coordinator import SourceFetchCoordinator
from pharos_pipeline.scraper.http_fetcher import StaticFetcher
from pharos_pipeline.scraper.playwright_fetcher import RenderedFetcher

configure_logging("INFO")

logger = structlog.get_logger(__name__)


def build_coordinator(client: httpx.AsyncClient, settings: Settings) -> SourceFetchCoordinator:
    """Wire both fetch strategies from ``settings``."""
    return SourceFetchCoordinator(
        static_fetcher=StaticFetcher(client, timeout=settings.static_fetch_timeout),
        rendered_fetcher=RenderedFetcher(
            navigation_timeout=settings.render_navigation_timeout,
            settle_delay=settings.render_settle_delay,
        ),
    )


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    settings: Settings = application.state.settings
    async with httpx.AsyncClient() as client:
        application.state.http_client = client
        application.state.coordinator = build_coordinator(client, settings)
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            debug=settings.debug,
            log_level=settings.log_level,
        )
        yield
    logger.info("application_shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Args:
        settings: Settings to use; defaults to :func:`get_settings`.  Tests
            pass their own instance.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description="Concurrent news-source scraping, article extraction and SSE relay.",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.extraction_engine = ExtractionRuleEngine()

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with its status and duration under a fresh ``request_id``."""
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn("request_complete", status_code=status_code, elapsed_ms=elapsed_ms)

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Routers -----------------------------------------------------------

    from pharos_pipeline.api.routes import health, scraping, stream  # noqa: PLC0415

    application.include_router(health.router)
    application.include_router(scraping.router)
    application.include_router(stream.router)

    return application


app = create_app()
"""The ASGI application passed to Uvicorn."""
