"""Article text extraction from raw HTML.

Extraction is a fallback chain, first success wins:

1. Site rules registered for the page's domain, in order
   (see :mod:`pharos_pipeline.scraper.rules`).  A rule succeeds when its
   content is longer than 100 characters.
2. Generic containers (``article``, ``[role="main"]``, common CMS classes,
   ``main`` ...) after stripping navigation and ads; accepted above 200
   characters.
3. Paragraph fallback: the text of every ``<p>`` joined with blank lines,
   accepted above 200 characters.

When a generic path wins without a publication date, the date is looked up
in ``time``/``meta`` tags and finally in ``trafilatura``'s metadata.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import trafilatura  # type: ignore[import-untyped]
from bs4 import BeautifulSoup, Tag

from pharos_pipeline.core.exceptions import ExtractionFailure
from pharos_pipeline.scraper.config import (
    GENERIC_AUTHOR_SELECTOR,
    GENERIC_CONTENT_MIN_LENGTH,
    GENERIC_CONTENT_SELECTORS,
    GENERIC_DATE_SELECTORS,
    GENERIC_NOISE_SELECTOR,
    GENERIC_TITLE_SELECTORS,
    PARAGRAPH_MIN_LENGTH,
    RULE_CONTENT_MIN_LENGTH,
)
from pharos_pipeline.scraper.rules import ExtractionRuleConfig, RuleRegistry, normalize_domain
from pharos_pipeline.scraper.sources import SelectorList

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n")
_BYLINE_PREFIX_RE = re.compile(r"^(by|author:)\s*", re.IGNORECASE)

# ---------------------------------------------------------------------------
# Output dataclass
# ---------------------------------------------------------------------------


@dataclass
class ExtractionResult:
    """Structured article content.

    Attributes:
        content: Cleaned article body.  Its length is the success criterion.
        title: Headline, or ``None`` if not found.
        author: Byline with any "By " prefix removed, or ``None``.
        publication_date: Date string as found on the page, or ``None``.
        method: Which path produced the content: ``"rule"``, ``"generic"``
            or ``"paragraphs"``.
    """

    content: str
    title: str | None = None
    author: str | None = None
    publication_date: str | None = None
    method: str = "rule"

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "content": self.content,
            "publicationDate": self.publication_date,
        }


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def clean_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and normalise blank lines."""
    text = _WHITESPACE_RE.sub(" ", text)
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def clean_author(text: str | None) -> str | None:
    if not text:
        return None
    author = _BYLINE_PREFIX_RE.sub("", text.strip()).strip()
    return author or None


def text_for_selector(soup: BeautifulSoup, css: str) -> str:
    """Return the cleaned text of every element matching ``css``.

    Several matches are joined with blank lines; empty ones are skipped.
    """
    elements = soup.select(css)
    if not elements:
        return ""
    if len(elements) == 1:
        return clean_text(elements[0].get_text())
    texts = (clean_text(element.get_text()) for element in elements)
    return "\n\n".join(text for text in texts if text)


def _first_text(soup: BeautifulSoup, css: str) -> str | None:
    element = soup.select_one(css)
    if element is None:
        return None
    return clean_text(element.get_text()) or None


def _remove(soup: BeautifulSoup, css: str) -> None:
    for element in soup.select(css):
        element.decompose()


def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# ---------------------------------------------------------------------------
# Date enrichment
# ---------------------------------------------------------------------------


def _date_from_tags(soup: BeautifulSoup) -> str | None:
    for css, attr in GENERIC_DATE_SELECTORS:
        element = soup.select_one(css)
        if not isinstance(element, Tag):
            continue
        value = element.get(attr)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _date_from_trafilatura(html: str) -> str | None:
    try:
        metadata = trafilatura.extract_metadata(html)
    except Exception as exc:  # noqa: BLE001
        logger.warning("scraper: trafilatura metadata extraction failed: %s", exc)
        return None
    if metadata is None:
        return None
    return getattr(metadata, "date", None) or None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ExtractionRuleEngine:
    """Turn article HTML into an :class:`ExtractionResult`.

    Args:
        registry: Domain rules to try before the generic paths.
    """

    def __init__(self, registry: RuleRegistry | None = None) -> None:
        self._registry = registry or RuleRegistry()

    def extract(self, html: str, domain: str) -> ExtractionResult:
        """Extract article content from ``html``.

        Args:
            html: Raw page HTML.
            domain: Hostname the page was served from; ``www.`` is ignored.

        Raises:
            ExtractionFailure: If no path produced enough text.
        """
        domain = normalize_domain(domain)

        for index, rule in enumerate(self._registry.rules_for(domain)):
            result = self.apply_rule(html, rule)
            if len(result.content) > RULE_CONTENT_MIN_LENGTH:
                logger.debug("scraper: rule #%d matched for %s", index, domain)
                return result

        result = self.extract_generic(html)
        if result is not None:
            logger.debug("scraper: %s extraction matched for %s", result.method, domain)
            return result

        raise ExtractionFailure(
            "could not extract meaningful content from article", domain=domain
        )

    def apply_rule(self, html: str, rule: ExtractionRuleConfig) -> ExtractionResult:
        """Apply one site rule.  ``content`` is empty when nothing qualified."""
        soup = _parse(html)
        for css in rule.remove_selectors:
            _remove(soup, css)

        title = _first_text(soup, rule.title.css) if rule.title else None
        author = _first_text(soup, rule.author.css) if rule.author else None
        date = _first_text(soup, rule.date.css) if rule.date else None

        if isinstance(rule.content, SelectorList):
            content = ""
            for css in rule.content.options:
                text = text_for_selector(soup, css)
                if len(text) > RULE_CONTENT_MIN_LENGTH:
                    content = text
                    break
        else:
            content = text_for_selector(soup, rule.content.css)

        return ExtractionResult(
            content=content,
            title=title,
            author=clean_author(author),
            publication_date=date,
            method="rule",
        )

    def extract_generic(self, html: str) -> ExtractionResult | None:
        """Run the generic container and paragraph paths.

        Returns:
            The result, or ``None`` when neither path cleared its threshold.
        """
        soup = _parse(html)
        date = _date_from_tags(soup)
        _remove(soup, GENERIC_NOISE_SELECTOR)

        title = None
        for css in GENERIC_TITLE_SELECTORS:
            title = _first_text(soup, css)
            if title:
                break
        author = clean_author(_first_text(soup, GENERIC_AUTHOR_SELECTOR))

        content = ""
        method = "generic"
        for css in GENERIC_CONTENT_SELECTORS:
            text = text_for_selector(soup, css)
            if len(text) > GENERIC_CONTENT_MIN_LENGTH:
                content = text
                break

        if not content:
            method = "paragraphs"
            content = self._paragraph_text(soup)

        if not content:
            return None

        return ExtractionResult(
            content=content,
            title=title,
            author=author,
            publication_date=date or _date_from_trafilatura(html),
            method=method,
        )

    @staticmethod
    def _paragraph_text(soup: BeautifulSoup) -> str:
        paragraphs = [p.get_text().strip() for p in soup.find_all("p")]
        paragraphs = [text for text in paragraphs if text]

        long_ones = "\n\n".join(text for text in paragraphs if len(text) > PARAGRAPH_MIN_LENGTH)
        if len(long_ones) > GENERIC_CONTENT_MIN_LENGTH:
            return long_ones

        # Pages built from short paragraphs: every non-empty one.
        everything = "\n\n".join(paragraphs)
        if len(everything) > GENERIC_CONTENT_MIN_LENGTH:
            return everything
        return ""
