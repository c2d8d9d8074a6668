"""Scraping route handlers.

Routes:
    POST /scrape/sources   : scrape many front pages concurrently
    POST /scrape/article   : extract one article
    POST /scrape/articles  : extract a list of articles, one outcome each
"""

from __future__ import annotations

from typing import Annotated, Any

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from pharos_pipeline.api.dependencies import (
    get_app_settings,
    get_coordinator,
    get_extraction_engine,
    get_http_client,
)
from pharos_pipeline.config.settings import Settings
from pharos_pipeline.core.exceptions import ExtractionFailure, FetchError, SourceConfigError
from pharos_pipeline.scraper.article_batch import extract_article, extract_articles
from pharos_pipeline.scraper.content_extractor import ExtractionRuleEngine
from pharos_pipeline.scraper.coordinator import SourceFetchCoordinator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/scrape", tags=["scraping"])


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class ScrapeSourcesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sources: list[dict[str, Any]] = Field(min_length=1)
    max_articles: int | None = Field(default=None, alias="maxArticles", ge=1, le=500)


class ArticleRequest(BaseModel):
    url: str = Field(pattern=r"^https?://")


class ArticleBatchRequest(BaseModel):
    urls: list[Annotated[str, Field(pattern=r"^https?://")]] = Field(min_length=1, max_length=100)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/sources")
async def scrape_sources(
    payload: ScrapeSourcesRequest,
    coordinator: Annotated[SourceFetchCoordinator, Depends(get_coordinator)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> dict[str, Any]:
    """Scrape every source and return previews grouped by source name.

    Per-source failures are listed in ``metadata.errors``; the request still
    succeeds.

    Raises:
        HTTPException 422: If any source descriptor is malformed.
    """
    max_articles = payload.max_articles or settings.default_max_articles
    try:
        report = await coordinator.scrape_all(payload.sources, max_articles)
    except SourceConfigError as exc:
        logger.warning("scrape_sources_rejected", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc

    logger.info(
        "scrape_sources_complete",
        total_sources=report.total_sources,
        total_articles=len(report.articles),
        errors=len(report.errors),
    )
    return report.to_payload()


@router.post("/article")
async def scrape_article(
    payload: ArticleRequest,
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    engine: Annotated[ExtractionRuleEngine, Depends(get_extraction_engine)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> dict[str, Any]:
    """Extract one article.

    Raises:
        HTTPException 502: If the article page could not be fetched.
        HTTPException 422: If no extraction path found enough content.
    """
    try:
        result = await extract_article(payload.url, client=client, engine=engine, settings=settings)
    except FetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except ExtractionFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return result.to_payload()


@router.post("/articles")
async def scrape_articles(
    payload: ArticleBatchRequest,
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    engine: Annotated[ExtractionRuleEngine, Depends(get_extraction_engine)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> list[dict[str, Any]]:
    """Extract each URL in turn; failures are annotated per item."""
    outcomes = await extract_articles(payload.urls, client=client, engine=engine, settings=settings)
    return [outcome.to_payload() for outcome in outcomes]
