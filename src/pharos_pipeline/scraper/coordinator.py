"""Fan-out / fan-in over many news sources.

:class:`SourceFetchCoordinator` validates every descriptor up front, then
issues every static and every rendered fetch concurrently on the event loop.
Results are settled, not raced: one source failing (HTTP 500, browser crash,
timeout) is recorded as ``"<source name>: <reason>"`` and never cancels its
siblings.  The call itself only raises for configuration errors, before any
network activity.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from pharos_pipeline.scraper.config import DEFAULT_MAX_ARTICLES
from pharos_pipeline.scraper.http_fetcher import SourceFetchResult
from pharos_pipeline.scraper.sources import (
    ArticlePreview,
    FetchStrategy,
    SourceDescriptor,
    load_sources,
)

logger = logging.getLogger(__name__)


class SourceFetcher(Protocol):
    async def fetch(self, source: SourceDescriptor, max_articles: int) -> SourceFetchResult: ...


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass
class ScrapeReport:
    """Aggregate result of :meth:`SourceFetchCoordinator.scrape_all`.

    Attributes:
        articles: Every accepted preview, grouped by source in completion
            order; DOM order is kept within a source.
        errors: One ``"<source>: <reason>"`` string per failed source.
        data: Previews keyed by source name, one key per successful source.
        total_sources: Number of descriptors scraped.
        static_sources: How many used the static strategy.
        rendered_sources: How many used the rendered strategy.
        processing_time_ms: Wall-clock time of the whole call.
    """

    articles: list[ArticlePreview] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    data: dict[str, list[ArticlePreview]] = field(default_factory=dict)
    total_sources: int = 0
    static_sources: int = 0
    rendered_sources: int = 0
    processing_time_ms: int = 0

    def to_payload(self) -> dict[str, Any]:
        """Render the report in the JSON shape returned to API callers."""
        return {
            "data": {
                name: [article.model_dump(mode="json") for article in articles]
                for name, articles in self.data.items()
            },
            "metadata": {
                "totalSources": self.total_sources,
                "staticSources": self.static_sources,
                "renderedSources": self.rendered_sources,
                "totalArticles": len(self.articles),
                "processingTimeMs": self.processing_time_ms,
                "errors": list(self.errors),
            },
        }


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class SourceFetchCoordinator:
    """Dispatch each source to the fetcher for its strategy and merge results.

    Args:
        static_fetcher: Handles :attr:`FetchStrategy.STATIC` sources.
        rendered_fetcher: Handles :attr:`FetchStrategy.RENDERED` sources.
    """

    def __init__(
        self,
        *,
        static_fetcher: SourceFetcher,
        rendered_fetcher: SourceFetcher,
    ) -> None:
        self._fetchers: dict[FetchStrategy, SourceFetcher] = {
            FetchStrategy.STATIC: static_fetcher,
            FetchStrategy.RENDERED: rendered_fetcher,
        }

    async def _fetch_one(
        self, source: SourceDescriptor, max_articles: int
    ) -> tuple[SourceDescriptor, SourceFetchResult | None, BaseException | None]:
        fetcher = self._fetchers[source.strategy]
        try:
            result = await fetcher.fetch(source, max_articles)
        except Exception as exc:  # noqa: BLE001
            logger.warning("scraper: source %s failed: %s", source.name, exc)
            return source, None, exc
        return source, result, None

    async def scrape_all(
        self,
        sources: Iterable[Mapping[str, Any] | SourceDescriptor],
        max_articles_per_source: int = DEFAULT_MAX_ARTICLES,
    ) -> ScrapeReport:
        """Scrape every source concurrently and merge the outcomes.

        Args:
            sources: Raw wire-format mappings or built descriptors.  All are
                validated before any fetch is issued.
            max_articles_per_source: Cap applied to each source.

        Returns:
            A :class:`ScrapeReport`.  Partial failure is reported through
            ``errors``; it never raises.

        Raises:
            SourceConfigError: If any descriptor is malformed.
            ValueError: If ``max_articles_per_source`` is not positive.
        """
        if max_articles_per_source < 1:
            raise ValueError("max_articles_per_source must be >= 1")

        descriptors = load_sources(sources)
        start = time.perf_counter()

        static = [s for s in descriptors if s.strategy is FetchStrategy.STATIC]
        rendered = [s for s in descriptors if s.strategy is FetchStrategy.RENDERED]
        report = ScrapeReport(
            total_sources=len(descriptors),
            static_sources=len(static),
            rendered_sources=len(rendered),
        )
        logger.info(
            "scraper: starting %d sources (%d static, %d rendered)",
            len(descriptors),
            len(static),
            len(rendered),
        )

        tasks = [
            asyncio.ensure_future(self._fetch_one(source, max_articles_per_source))
            for source in static + rendered
        ]
        try:
            for completed in asyncio.as_completed(tasks):
                source, result, error = await completed
                if result is None:
                    report.errors.append(f"{source.name}: {error}")
                else:
                    report.data[source.name] = list(result.articles)
                    report.articles.extend(result.articles)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                logger.info("scraper: cancelled %d unfinished source fetches", len(pending))
                await asyncio.gather(*pending, return_exceptions=True)

        report.processing_time_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "scraper: finished %d sources -> %d articles, %d errors in %d ms",
            report.total_sources,
            len(report.articles),
            len(report.errors),
            report.processing_time_ms,
        )
        return report
