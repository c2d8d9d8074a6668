"""Shared pytest fixtures for Pharos pipeline tests.

Fixture summary
---------------
settings           : Settings with zero polite delays and short timeouts.
static_source      : raw wire-format static source descriptor.
rendered_source    : raw wire-format rendered ("puppeteer") source descriptor.
front_page_html    : a small front page with article, nav and newsletter links.

No test needs network access or a real browser: httpx is mocked with
``respx`` and Playwright is replaced by fake launchers.
"""

from __future__ import annotations

from typing import Any

import pytest

from pharos_pipeline.config.settings import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        article_delay_min=0.0,
        article_delay_max=0.0,
        static_fetch_timeout=5.0,
        stream_api_url="https://backend.test",
        stream_path="/api/open-stream",
    )


@pytest.fixture
def static_source() -> dict[str, Any]:
    return {
        "name": "Example News",
        "url": "https://news.example.com",
        "method": "static",
        "selectors": {"linkFilter": "a[href*='/article/']"},
    }


@pytest.fixture
def rendered_source() -> dict[str, Any]:
    return {
        "name": "Dynamic Daily",
        "url": "https://dynamic.example.com",
        "method": "puppeteer",
        "selectors": {"linkFilter": "a[data-testid='headline']"},
    }


@pytest.fixture
def front_page_html() -> str:
    return """
    <html><body>
      <nav><a href="/about/">About us and our mission</a></nav>
      <a href="/article/one">Parliament passes the long-debated budget bill</a>
      <a href="/article/two">Storm warning issued for the northern coast</a>
      <a href="/article/short">Tiny</a>
      <a href="/article/subscribe">Subscribe to our daily briefing today</a>
      <a href="https://news.example.com/article/three">Researchers map a new deep-sea ecosystem</a>
    </body></html>
    """
