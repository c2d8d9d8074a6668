"""FastAPI dependency injection providers.

Every long-lived collaborator (settings, the shared HTTP client, the
fetch coordinator, the extraction engine) is built once by the application
factory and stored on ``app.state``.  These providers hand them to route
handlers, and tests replace them through ``app.dependency_overrides``.
"""

from __future__ import annotations

import httpx
from fastapi import Request

from pharos_pipeline.config.settings import Settings
from pharos_pipeline.scraper.content_extractor import ExtractionRuleEngine
from pharos_pipeline.scraper.coordinator import SourceFetchCoordinator


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_coordinator(request: Request) -> SourceFetchCoordinator:
    return request.app.state.coordinator


def get_extraction_engine(request: Request) -> ExtractionRuleEngine:
    return request.app.state.extraction_engine
