"""Async static fetcher: one HTTP GET plus BeautifulSoup DOM queries.

Uses ``httpx`` for the request and ``BeautifulSoup`` (``html.parser``) for
selector evaluation.  Sources that need JavaScript to populate their front
page use :mod:`pharos_pipeline.scraper.playwright_fetcher` instead; both
strategies share :func:`build_previews`, so filtering and link resolution
behave the same whichever strategy fetched the page.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup, Tag

from pharos_pipeline.core.exceptions import FetchError
from pharos_pipeline.scraper.config import (
    STATIC_FETCH_TIMEOUT,
    STATIC_REQUEST_HEADERS,
)
from pharos_pipeline.scraper.filters import (
    DEFAULT_FILTER_POLICY,
    LinkFilterPolicy,
    normalize_title,
)
from pharos_pipeline.scraper.sources import (
    ArticlePreview,
    Selector,
    SourceDescriptor,
    SourceSelectors,
)

logger = logging.getLogger(__name__)

#: Content-Type prefixes that can never hold a front page.
BINARY_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/zip",
        "application/octet-stream",
        "image/",
        "video/",
        "audio/",
        "font/",
    }
)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class SourceFetchResult:
    """Outcome of fetching one source.

    Attributes:
        articles: Accepted previews in DOM order, at most ``max_articles``.
        processing_time_ms: Wall-clock time spent on the source.
    """

    articles: list[ArticlePreview]
    processing_time_ms: int


# ---------------------------------------------------------------------------
# Shared candidate → preview mapping
# ---------------------------------------------------------------------------


def resolve_link(href: str | None, origin: str) -> str | None:
    """Resolve ``href`` against the source origin.

    Returns ``None`` for empty hrefs and non-HTTP schemes (``javascript:``,
    ``mailto:``) so they never become articles.
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None
    if not href.startswith("http"):
        href = urljoin(origin + "/", href)
    if urlparse(href).scheme not in ("http", "https"):
        return None
    return href


def build_previews(
    candidates: Iterable[Mapping[str, str | None]],
    descriptor: SourceDescriptor,
    max_articles: int,
    policy: LinkFilterPolicy = DEFAULT_FILTER_POLICY,
) -> list[ArticlePreview]:
    """Filter raw ``{title, link, image}`` records into previews.

    Candidates are consumed in order and the result is cut at
    ``max_articles``, so DOM order is preserved.
    """
    articles: list[ArticlePreview] = []
    rejected = 0
    for candidate in candidates:
        if len(articles) >= max_articles:
            break
        title = normalize_title(candidate.get("title"))
        link = resolve_link(candidate.get("link"), descriptor.origin)
        reason = policy.rejection_reason(title, link or "", descriptor.name)
        if reason is not None:
            rejected += 1
            continue
        image = resolve_link(candidate.get("image"), descriptor.origin)
        articles.append(
            ArticlePreview.for_source(descriptor, title=title, link=link, image=image)
        )
    logger.debug(
        "scraper: %s kept %d candidates, rejected %d",
        descriptor.name,
        len(articles),
        rejected,
    )
    return articles


def _first_match(element: Tag, selector: Selector | None) -> Tag | None:
    if selector is None:
        return None
    for css in selector.candidates:
        match = element.select_one(css)
        if match is not None:
            return match
    return None


def _candidate_record(element: Tag, selectors: SourceSelectors) -> dict[str, str | None]:
    title_el = _first_match(element, selectors.title)
    title = normalize_title(title_el.get_text(" ")) if title_el is not None else ""
    if not title:
        title = normalize_title(element.get_text(" "))

    link_el = _first_match(element, selectors.link)
    href = link_el.get("href") if link_el is not None else None
    if not href:
        href = element.get("href")
    if not href:
        anchor = element.select_one("a[href]")
        href = anchor.get("href") if anchor is not None else None

    image = None
    image_el = _first_match(element, selectors.image)
    if image_el is not None:
        image = image_el.get("src") or image_el.get("data-src")

    return {"title": title, "link": href, "image": image}


def extract_candidates(html: str, descriptor: SourceDescriptor) -> list[dict[str, str | None]]:
    """Return raw candidate records for ``descriptor`` in DOM order."""
    soup = BeautifulSoup(html, "html.parser")
    elements: list[Tag] = []
    for css in descriptor.candidate_selectors:
        elements = soup.select(css)
        if elements:
            break
    return [_candidate_record(element, descriptor.selectors) for element in elements]


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def _is_binary_content_type(content_type: str) -> bool:
    """Return ``True`` if the Content-Type indicates a non-text binary resource."""
    ct = content_type.lower().split(";")[0].strip()
    return any(ct.startswith(prefix) for prefix in BINARY_CONTENT_TYPES)


async def fetch_html(
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout: float = STATIC_FETCH_TIMEOUT,
    source: str | None = None,
) -> str:
    """GET ``url`` with browser-like headers and return the body text.

    No retries: one failed attempt is final.

    Raises:
        FetchError: On timeout, transport error, HTTP status >= 400 or a
            binary Content-Type.
    """
    try:
        response = await client.get(
            url,
            timeout=timeout,
            follow_redirects=True,
            headers=STATIC_REQUEST_HEADERS,
        )
    except httpx.TimeoutException as exc:
        logger.warning("scraper: timeout fetching %s", url)
        raise FetchError(f"timeout after {timeout:g}s", url=url, source=source) from exc
    except httpx.TooManyRedirects as exc:
        logger.warning("scraper: too many redirects for %s", url)
        raise FetchError("too many redirects", url=url, source=source) from exc
    except httpx.RequestError as exc:
        logger.warning("scraper: request error for %s: %s", url, exc)
        raise FetchError(f"request error: {exc}", url=url, source=source) from exc

    if response.status_code >= 400:
        logger.info("scraper: HTTP %d for %s", response.status_code, url)
        raise FetchError(
            f"HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
            source=source,
        )

    content_type = response.headers.get("content-type", "")
    if _is_binary_content_type(content_type):
        raise FetchError(
            f"binary content-type: {content_type}",
            url=url,
            status_code=response.status_code,
            source=source,
        )

    return response.text


class StaticFetcher:
    """Fetch a source with a single HTTP GET and query it with CSS selectors.

    Args:
        client: Shared :class:`httpx.AsyncClient`; the caller owns its lifetime.
        timeout: Per-request timeout in seconds.
        policy: Filtering policy applied to every candidate.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = STATIC_FETCH_TIMEOUT,
        policy: LinkFilterPolicy = DEFAULT_FILTER_POLICY,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._policy = policy

    async def fetch(self, source: SourceDescriptor, max_articles: int) -> SourceFetchResult:
        """Fetch ``source`` and return up to ``max_articles`` previews.

        Raises:
            FetchError: If the HTTP call fails or times out.
        """
        start = time.perf_counter()
        html = await fetch_html(
            source.url, client=self._client, timeout=self._timeout, source=source.name
        )
        candidates = extract_candidates(html, source)
        articles = build_previews(candidates, source, max_articles, self._policy)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "scraper: static %s -> %d articles in %d ms",
            source.name,
            len(articles),
            elapsed_ms,
        )
        return SourceFetchResult(articles=articles, processing_time_ms=elapsed_ms)
