"""Unit tests for sequential batch article extraction."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from pharos_pipeline.config.settings import Settings
from pharos_pipeline.core.exceptions import ExtractionFailure, FetchError
from pharos_pipeline.scraper.article_batch import extract_article, extract_articles
from pharos_pipeline.scraper.content_extractor import ExtractionRuleEngine

BODY = "Officials confirmed the bridge will reopen after inspections are complete. " * 4
ARTICLE_HTML = f"<html><body><h1>Bridge to reopen</h1><article>{BODY}</article></body></html>"
EMPTY_HTML = "<html><body><p>Cookie settings</p></body></html>"


def _html(text: str) -> httpx.Response:
    return httpx.Response(200, text=text, headers={"content-type": "text/html"})


@pytest.mark.asyncio
class TestExtractArticle:
    async def test_success(self, settings: Settings) -> None:
        with respx.mock() as mock:
            mock.get("https://www.example.com/a").mock(return_value=_html(ARTICLE_HTML))
            async with httpx.AsyncClient() as client:
                result = await extract_article(
                    "https://www.example.com/a",
                    client=client,
                    engine=ExtractionRuleEngine(),
                    settings=settings,
                )

        assert result.title == "Bridge to reopen"
        assert result.content.startswith("Officials confirmed")

    async def test_extraction_failure_carries_url(self, settings: Settings) -> None:
        with respx.mock() as mock:
            mock.get("https://example.com/empty").mock(return_value=_html(EMPTY_HTML))
            async with httpx.AsyncClient() as client:
                with pytest.raises(ExtractionFailure) as exc_info:
                    await extract_article(
                        "https://example.com/empty",
                        client=client,
                        engine=ExtractionRuleEngine(),
                        settings=settings,
                    )

        assert exc_info.value.url == "https://example.com/empty"
        assert exc_info.value.domain == "example.com"

    async def test_fetch_error_propagates(self, settings: Settings) -> None:
        with respx.mock() as mock:
            mock.get("https://example.com/gone").mock(return_value=httpx.Response(404))
            async with httpx.AsyncClient() as client:
                with pytest.raises(FetchError):
                    await extract_article(
                        "https://example.com/gone",
                        client=client,
                        engine=ExtractionRuleEngine(),
                        settings=settings,
                    )


@pytest.mark.asyncio
class TestExtractArticles:
    async def test_failures_are_annotated_and_batch_continues(self, settings: Settings) -> None:
        urls = [
            "https://example.com/ok",
            "https://example.com/gone",
            "https://example.com/empty",
            "https://example.com/ok-again",
        ]
        sleep = AsyncMock()
        with respx.mock() as mock:
            mock.get("https://example.com/ok").mock(return_value=_html(ARTICLE_HTML))
            mock.get("https://example.com/gone").mock(return_value=httpx.Response(404))
            mock.get("https://example.com/empty").mock(return_value=_html(EMPTY_HTML))
            mock.get("https://example.com/ok-again").mock(return_value=_html(ARTICLE_HTML))
            async with httpx.AsyncClient() as client:
                outcomes = await extract_articles(
                    urls,
                    client=client,
                    engine=ExtractionRuleEngine(),
                    settings=settings,
                    sleep=sleep,
                )

        assert [o.url for o in outcomes] == urls
        assert [o.success for o in outcomes] == [True, False, False, True]
        assert outcomes[1].error == "HTTP 404"
        assert "meaningful content" in (outcomes[2].error or "")
        assert sleep.await_count == len(urls) - 1

    async def test_payload_shape(self, settings: Settings) -> None:
        with respx.mock() as mock:
            mock.get("https://example.com/ok").mock(return_value=_html(ARTICLE_HTML))
            async with httpx.AsyncClient() as client:
                (outcome,) = await extract_articles(
                    ["https://example.com/ok"],
                    client=client,
                    engine=ExtractionRuleEngine(),
                    settings=settings,
                    sleep=AsyncMock(),
                )

        payload = outcome.to_payload()
        assert payload["success"] is True
        assert set(payload["result"]) == {"title", "author", "content", "publicationDate"}
        assert "error" not in payload
