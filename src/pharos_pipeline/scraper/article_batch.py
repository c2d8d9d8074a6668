"""Sequential article extraction for a list of URLs.

Each URL is fetched with :func:`~pharos_pipeline.scraper.http_fetcher.fetch_html`
and handed to :class:`~pharos_pipeline.scraper.content_extractor.ExtractionRuleEngine`.
A failing URL is annotated in its outcome and the batch moves on; nothing
short of cancellation stops it early.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx

from pharos_pipeline.config.settings import Settings
from pharos_pipeline.core.exceptions import ExtractionFailure, FetchError
from pharos_pipeline.scraper.content_extractor import ExtractionResult, ExtractionRuleEngine
from pharos_pipeline.scraper.http_fetcher import fetch_html

logger = logging.getLogger(__name__)


@dataclass
class ArticleExtractionOutcome:
    """Per-URL result of :func:`extract_articles`."""

    url: str
    success: bool
    result: ExtractionResult | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"url": self.url, "success": self.success}
        if self.result is not None:
            payload["result"] = self.result.to_payload()
        if self.error is not None:
            payload["error"] = self.error
        return payload


async def extract_article(
    url: str,
    *,
    client: httpx.AsyncClient,
    engine: ExtractionRuleEngine,
    settings: Settings,
) -> ExtractionResult:
    """Fetch one article and extract its content.

    Raises:
        FetchError: If the page could not be fetched.
        ExtractionFailure: If no extraction path produced enough text.
    """
    html = await fetch_html(url, client=client, timeout=settings.static_fetch_timeout)
    domain = urlparse(url).hostname or ""
    try:
        return engine.extract(html, domain)
    except ExtractionFailure as exc:
        exc.url = url
        raise


async def extract_articles(
    urls: Iterable[str],
    *,
    client: httpx.AsyncClient,
    engine: ExtractionRuleEngine,
    settings: Settings,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[ArticleExtractionOutcome]:
    """Extract every URL in turn, pausing politely between requests.

    Args:
        urls: Article URLs, processed in order.
        client: Shared HTTP client; the caller owns its lifetime.
        engine: Extraction engine holding the domain rules.
        settings: Supplies the fetch timeout and the inter-request delay.
        sleep: Coroutine used for the pause (injectable for tests).

    Returns:
        One :class:`ArticleExtractionOutcome` per URL, in input order.
    """
    outcomes: list[ArticleExtractionOutcome] = []
    url_list = list(urls)

    for index, url in enumerate(url_list):
        try:
            result = await extract_article(url, client=client, engine=engine, settings=settings)
        except (FetchError, ExtractionFailure) as exc:
            logger.warning("scraper: article %s failed: %s", url, exc)
            outcomes.append(ArticleExtractionOutcome(url=url, success=False, error=str(exc)))
        else:
            logger.info("scraper: extracted %d chars from %s", len(result.content), url)
            outcomes.append(ArticleExtractionOutcome(url=url, success=True, result=result))

        if index < len(url_list) - 1:
            await sleep(random.uniform(settings.article_delay_min, settings.article_delay_max))

    succeeded = sum(1 for outcome in outcomes if outcome.success)
    logger.info("scraper: article batch done, %d/%d succeeded", succeeded, len(outcomes))
    return outcomes
