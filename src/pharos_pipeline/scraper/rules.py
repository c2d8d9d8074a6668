"""Site-specific article extraction rules.

Each known domain maps to an ordered tuple of :class:`ExtractionRuleConfig`
entries.  :class:`~pharos_pipeline.scraper.content_extractor.ExtractionRuleEngine`
tries them in order and falls back to generic extraction when none yields
enough text.  Every selector is compiled when the rule is built, so a typo
in the registry fails at import time rather than on the first article.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pharos_pipeline.core.exceptions import SourceConfigError
from pharos_pipeline.scraper.sources import Selector, SingleSelector, parse_selector

_NOISE = ("script", "style")


class ExtractionRuleConfig(BaseModel):
    """Selectors for pulling one article out of a known site's page.

    Attributes:
        title: Headline element; the first match is used.
        author: Byline element; the first match is used.
        content: Body selector.  A :class:`SelectorList` is tried option by
            option until one yields enough text.
        date: Publication-date element; the first match is used.
        remove_selectors: Noise removed from the document before anything
            else is read (wire name ``removeSelectors``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    title: SingleSelector | None = None
    author: SingleSelector | None = None
    content: Selector
    date: SingleSelector | None = None
    remove_selectors: tuple[str, ...] = Field(default=(), alias="removeSelectors")

    @field_validator("title", "author", "date", mode="before")
    @classmethod
    def _parse_single(cls, value: Any) -> SingleSelector | None:
        if value is None:
            return None
        selector = parse_selector(value)
        if not isinstance(selector, SingleSelector):
            raise ValueError("expected a single CSS selector")
        return selector

    @field_validator("content", mode="before")
    @classmethod
    def _parse_content(cls, value: Any) -> Selector:
        return parse_selector(value)

    @field_validator("remove_selectors", mode="before")
    @classmethod
    def _parse_remove(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        return parse_selector(list(value)).candidates if value else ()


def build_rule(raw: Mapping[str, Any]) -> ExtractionRuleConfig:
    """Validate one raw rule mapping.

    Raises:
        SourceConfigError: If any selector is missing or does not compile.
    """
    try:
        return ExtractionRuleConfig.model_validate(raw)
    except ValidationError as exc:
        raise SourceConfigError(f"invalid extraction rule: {exc}") from exc


def normalize_domain(domain: str) -> str:
    """Lower-case ``domain`` and drop a leading ``www.``."""
    domain = domain.strip().lower()
    return domain[4:] if domain.startswith("www.") else domain


def _rule(**kwargs: Any) -> ExtractionRuleConfig:
    return build_rule(kwargs)


DEFAULT_RULES: Mapping[str, tuple[ExtractionRuleConfig, ...]] = MappingProxyType(
    {
        "apnews.com": (
            _rule(
                title="h1, .Page-headline",
                author='.Component-bylines-stories, [data-key="bylines"]',
                content='.RichTextStoryBody, [data-key="body"]',
                date=".Component-timestamp",
                removeSelectors=[".ad", ".advertisement", ".related-content", *_NOISE],
            ),
        ),
        "cnn.com": (
            _rule(
                title="h1, .headline__text",
                author=".byline__name, .metadata__byline",
                content=".article__content, .l-container .zn-body__paragraph",
                date=".timestamp",
                removeSelectors=[".ad", ".zn-ads", ".related-content", *_NOISE],
            ),
        ),
        "foxnews.com": (
            _rule(
                title="h1, .headline",
                author=".author-byline, .byline",
                content=".article-body, .content-body",
                date=".article-date, .timestamp",
                removeSelectors=[".ad", ".advertisement", ".related", *_NOISE],
            ),
        ),
        "dailymail.co.uk": (
            _rule(
                title="h1, #js-article-text h1",
                author=".author, .byline-section",
                content="#js-article-text, .article-text",
                date=".article-timestamp",
                removeSelectors=[
                    ".ad",
                    ".related-carousel",
                    ".mol-bullets-with-font",
                    *_NOISE,
                ],
            ),
        ),
        "bbc.com": (
            _rule(
                title="h1, #main-heading",
                author=".ssrcss-68pt20-Text, .gel-body-copy",
                content='[data-component="text-block"], .ssrcss-11r1m41-RichTextContainer',
                date=".ssrcss-1if1g6v-MetadataText",
                removeSelectors=[".ssrcss-pv1rh6-ArticleWrapper", ".related-content", *_NOISE],
            ),
        ),
        "reuters.com": (
            _rule(
                title='h1, [data-testid="headline"]',
                author='[data-testid="AuthorBylineText"], .author',
                content='[data-testid="paragraph"], .article-body__content__17Yit',
                date='[data-testid="timestamp"]',
                removeSelectors=[".ad", ".related-content", *_NOISE],
            ),
        ),
        "washingtonpost.com": (
            _rule(
                title="h1, #main-content h1",
                author=".author-name, .by-author",
                content=".article-body, .teaser-content",
                date=".published-date",
                removeSelectors=[".ad", ".related-content", *_NOISE],
            ),
        ),
    }
)


class RuleRegistry:
    """Read-only lookup of extraction rules by domain."""

    def __init__(
        self, rules: Mapping[str, tuple[ExtractionRuleConfig, ...]] = DEFAULT_RULES
    ) -> None:
        self._rules = {normalize_domain(domain): tuple(configs) for domain, configs in rules.items()}

    def rules_for(self, domain: str) -> tuple[ExtractionRuleConfig, ...]:
        """Return the ordered rules for ``domain``; empty when it is unknown."""
        return self._rules.get(normalize_domain(domain), ())

    def __contains__(self, domain: object) -> bool:
        return isinstance(domain, str) and normalize_domain(domain) in self._rules

    def __len__(self) -> int:
        return len(self._rules)
