"""Playwright-based headless browser fetcher for JavaScript-heavy front pages.

Every call launches its own Chromium process, so rendered sources never share
a browser.  The process is closed in a ``finally`` block on every exit path:
success, empty result, navigation timeout, evaluation error.

Install the browser binary once per machine::

    playwright install chromium
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from playwright.async_api import Browser, Playwright, Route, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pharos_pipeline.core.exceptions import RenderError
from pharos_pipeline.scraper.config import (
    BLOCKED_RESOURCE_TYPES,
    CHROMIUM_LAUNCH_ARGS,
    RENDER_CANDIDATE_FACTOR,
    RENDER_NAVIGATION_TIMEOUT,
    RENDER_SETTLE_DELAY,
    USER_AGENT,
)
from pharos_pipeline.scraper.filters import DEFAULT_FILTER_POLICY, LinkFilterPolicy
from pharos_pipeline.scraper.http_fetcher import SourceFetchResult, build_previews
from pharos_pipeline.scraper.sources import SourceDescriptor

logger = logging.getLogger(__name__)

#: Runs inside the page.  Receives one plain object and returns plain
#: records; nothing from the Python side is captured by closure.  Links are
#: read from the ``href`` property, which the browser has already resolved
#: against the document URL and any ``<base>`` element.
COLLECT_CANDIDATES_JS = """
(args) => {
  const firstMatch = (root, selectors) => {
    for (const css of selectors || []) {
      const el = root.querySelector(css);
      if (el) return el;
    }
    return null;
  };
  const absoluteHref = (node) =>
    node && typeof node.href === 'string' && node.href ? node.href : null;
  let elements = [];
  for (const css of args.candidateSelectors) {
    elements = Array.from(document.querySelectorAll(css));
    if (elements.length) break;
  }
  return elements.slice(0, args.limit).map((el) => {
    const titleEl = firstMatch(el, args.titleSelectors);
    let title = titleEl ? (titleEl.textContent || '').trim() : '';
    if (!title) title = (el.textContent || '').trim();
    const linkEl = firstMatch(el, args.linkSelectors);
    let link = absoluteHref(linkEl) || absoluteHref(el);
    if (!link) link = absoluteHref(el.querySelector('a[href]'));
    const imageEl = firstMatch(el, args.imageSelectors);
    const image = imageEl ? (imageEl.src || imageEl.getAttribute('data-src')) : null;
    return { title, link, image };
  });
}
"""


def build_evaluation_args(source: SourceDescriptor, max_articles: int) -> dict[str, Any]:
    """Build the serialisable argument handed to :data:`COLLECT_CANDIDATES_JS`."""
    selectors = source.selectors

    def _candidates(selector: Any) -> list[str]:
        return list(selector.candidates) if selector is not None else []

    return {
        "candidateSelectors": list(source.candidate_selectors),
        "titleSelectors": _candidates(selectors.title),
        "linkSelectors": _candidates(selectors.link),
        "imageSelectors": _candidates(selectors.image),
        "limit": max_articles * RENDER_CANDIDATE_FACTOR,
    }


# ---------------------------------------------------------------------------
# Browser launching
# ---------------------------------------------------------------------------


class LaunchedBrowser(Protocol):
    """What the fetcher needs from a launched browser."""

    async def new_page(self, **kwargs: Any) -> Any: ...

    async def close(self) -> None: ...


class BrowserLauncher(Protocol):
    async def launch(self) -> LaunchedBrowser: ...


class _OwnedBrowser:
    """A Chromium instance together with the Playwright driver that started it."""

    def __init__(self, playwright: Playwright, browser: Browser) -> None:
        self._playwright = playwright
        self._browser = browser

    async def new_page(self, **kwargs: Any) -> Any:
        return await self._browser.new_page(**kwargs)

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightLauncher:
    """Launch one headless Chromium per call with minimal-footprint flags."""

    def __init__(self, *, args: tuple[str, ...] = CHROMIUM_LAUNCH_ARGS) -> None:
        self._args = list(args)

    async def launch(self) -> LaunchedBrowser:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=True, args=self._args)
        except BaseException:
            await playwright.stop()
            raise
        return _OwnedBrowser(playwright, browser)


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class RenderedFetcher:
    """Fetch a source by rendering it in an exclusive headless browser.

    Args:
        launcher: Starts a browser per call; defaults to
            :class:`PlaywrightLauncher`.
        navigation_timeout: Seconds allowed for DOM-content-loaded.
        settle_delay: Seconds to wait after navigation before querying.
        policy: Filtering policy applied to every candidate.
        sleep: Coroutine used for the settle delay (injectable for tests).
    """

    def __init__(
        self,
        *,
        launcher: BrowserLauncher | None = None,
        navigation_timeout: float = RENDER_NAVIGATION_TIMEOUT,
        settle_delay: float = RENDER_SETTLE_DELAY,
        policy: LinkFilterPolicy = DEFAULT_FILTER_POLICY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._launcher = launcher or PlaywrightLauncher()
        self._navigation_timeout_ms = int(navigation_timeout * 1000)
        self._settle_delay = settle_delay
        self._policy = policy
        self._sleep = sleep

    async def fetch(self, source: SourceDescriptor, max_articles: int) -> SourceFetchResult:
        """Render ``source`` and return up to ``max_articles`` previews.

        Raises:
            RenderError: If launch, navigation or evaluation fails.  The
                browser has been closed by the time this propagates.
        """
        start = time.perf_counter()
        browser: LaunchedBrowser | None = None
        try:
            browser = await self._launcher.launch()
            page = await browser.new_page(user_agent=USER_AGENT)
            await page.route("**/*", _block_heavy_resources)
            await page.goto(
                source.url,
                wait_until="domcontentloaded",
                timeout=self._navigation_timeout_ms,
            )
            await self._sleep(self._settle_delay)
            raw = await page.evaluate(
                COLLECT_CANDIDATES_JS, build_evaluation_args(source, max_articles)
            )
            articles = build_previews(raw or [], source, max_articles, self._policy)
        except PlaywrightTimeoutError as exc:
            logger.warning("scraper: render timeout for %s: %s", source.url, exc)
            raise RenderError(
                f"navigation timeout after {self._navigation_timeout_ms} ms",
                url=source.url,
                source=source.name,
            ) from exc
        except Exception as exc:
            logger.warning("scraper: render failed for %s: %s", source.url, exc)
            raise RenderError(
                f"render error: {exc}", url=source.url, source=source.name
            ) from exc
        finally:
            if browser is not None:
                try:
                    await browser.close()
                except Exception as exc:  # noqa: BLE001
                    logger.warning("scraper: browser close failed for %s: %s", source.url, exc)

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "scraper: rendered %s -> %d articles in %d ms",
            source.name,
            len(articles),
            elapsed_ms,
        )
        return SourceFetchResult(articles=articles, processing_time_ms=elapsed_ms)
