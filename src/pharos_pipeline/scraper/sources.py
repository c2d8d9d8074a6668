"""Source descriptors, selectors and article previews.

A :class:`SourceDescriptor` is built from external configuration (a JSON
file, an API payload) and validated completely at load time: URL shape,
strategy name and every CSS selector are checked before any scraping starts.
Selectors are compiled with ``soupsieve``, the same engine BeautifulSoup
uses for ``select()``, so a selector that loads is a selector that runs.

Wire format (one source)::

    {
      "name": "AP News",
      "url": "https://apnews.com",
      "method": "static",
      "selectors": {"linkFilter": "a[href*='/article/']"}
    }
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Union
from urllib.parse import urlparse

import soupsieve
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pharos_pipeline.core.exceptions import SourceConfigError
from pharos_pipeline.scraper.config import DEFAULT_LINK_SELECTOR

# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class FetchStrategy(str, Enum):
    """How a source is fetched.

    The wire value of the rendered strategy keeps its historical name,
    ``"puppeteer"``; ``"rendered"`` is accepted as an alias on input.
    """

    STATIC = "static"
    RENDERED = "puppeteer"

    @classmethod
    def parse(cls, value: Any) -> FetchStrategy:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "rendered":
                return cls.RENDERED
            for member in cls:
                if member.value == normalized:
                    return member
        raise ValueError(
            f"unknown fetch method {value!r}; expected 'static' or 'puppeteer'"
        )


# ---------------------------------------------------------------------------
# Selector tagged union
# ---------------------------------------------------------------------------


def _compile_css(selector: str) -> str:
    """Return the stripped selector or raise ``ValueError`` if it does not compile."""
    if not isinstance(selector, str) or not selector.strip():
        raise ValueError("selector must be a non-empty string")
    selector = selector.strip()
    try:
        soupsieve.compile(selector)
    except soupsieve.SelectorSyntaxError as exc:
        raise ValueError(f"invalid CSS selector {selector!r}: {exc}") from exc
    return selector


@dataclass(frozen=True)
class SingleSelector:
    """One CSS selector string."""

    css: str

    @property
    def candidates(self) -> tuple[str, ...]:
        return (self.css,)


@dataclass(frozen=True)
class SelectorList:
    """An ordered list of candidate CSS selectors, tried first to last."""

    options: tuple[str, ...]

    @property
    def candidates(self) -> tuple[str, ...]:
        return self.options


Selector = Union[SingleSelector, SelectorList]


def parse_selector(value: Any) -> Selector:
    """Build a :data:`Selector` from a string or a list of strings.

    Raises:
        ValueError: If the value is empty or any selector fails to compile.
    """
    if isinstance(value, (SingleSelector, SelectorList)):
        return value
    if isinstance(value, str):
        return SingleSelector(_compile_css(value))
    if isinstance(value, (list, tuple)):
        if not value:
            raise ValueError("selector list must not be empty")
        return SelectorList(tuple(_compile_css(item) for item in value))
    raise ValueError(f"selector must be a string or a list of strings, got {type(value).__name__}")


# ---------------------------------------------------------------------------
# Descriptor models
# ---------------------------------------------------------------------------


class SourceSelectors(BaseModel):
    """CSS selectors locating article links on a source's front page.

    Attributes:
        container: Element wrapping one article teaser.
        title: Title element, relative to the candidate element.
        link: Anchor element, relative to the candidate element.
        image: Teaser image, relative to the candidate element.
        link_filter: Selector picking the candidate elements directly
            (wire name ``linkFilter``); takes precedence over ``container``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    container: Selector | None = None
    title: Selector | None = None
    link: Selector | None = None
    image: Selector | None = None
    link_filter: str | None = Field(default=None, alias="linkFilter")

    @field_validator("container", "title", "link", "image", mode="before")
    @classmethod
    def _parse_selector(cls, value: Any) -> Selector | None:
        if value is None:
            return None
        return parse_selector(value)

    @field_validator("link_filter", mode="before")
    @classmethod
    def _check_link_filter(cls, value: Any) -> str | None:
        if value is None:
            return None
        return _compile_css(value)


class SourceDescriptor(BaseModel):
    """One news source to scrape.  Immutable once loaded."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    url: str
    strategy: FetchStrategy = Field(alias="method")
    selectors: SourceSelectors

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parsed = urlparse(value.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"url must be an absolute http(s) URL, got {value!r}")
        return value.strip()

    @field_validator("strategy", mode="before")
    @classmethod
    def _parse_strategy(cls, value: Any) -> FetchStrategy:
        return FetchStrategy.parse(value)

    @property
    def domain(self) -> str:
        return urlparse(self.url).hostname or ""

    @property
    def origin(self) -> str:
        parsed = urlparse(self.url)
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def candidate_selectors(self) -> tuple[str, ...]:
        """Selectors picking the elements that become article candidates.

        The first selector that matches anything on the page wins.
        """
        if self.selectors.link_filter:
            return (self.selectors.link_filter,)
        if self.selectors.container is not None:
            return self.selectors.container.candidates
        return (DEFAULT_LINK_SELECTOR,)


class ArticleSource(BaseModel):
    """Provenance block attached to every :class:`ArticlePreview`."""

    model_config = ConfigDict(frozen=True)

    site: str
    domain: str
    method: FetchStrategy


class ArticlePreview(BaseModel):
    """A headline link found on a source's front page.  Never mutated."""

    model_config = ConfigDict(frozen=True)

    title: str
    link: str
    source: ArticleSource
    timestamp: str
    image: str | None = None

    @classmethod
    def for_source(
        cls,
        descriptor: SourceDescriptor,
        *,
        title: str,
        link: str,
        image: str | None = None,
    ) -> ArticlePreview:
        return cls(
            title=title,
            link=link,
            image=image,
            source=ArticleSource(
                site=descriptor.name,
                domain=descriptor.domain,
                method=descriptor.strategy,
            ),
            timestamp=datetime.now(UTC).isoformat(),
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(item) for item in err.get("loc", ()))
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts)


def load_sources(
    raw_sources: Iterable[Mapping[str, Any] | SourceDescriptor],
) -> list[SourceDescriptor]:
    """Validate every source eagerly and return immutable descriptors.

    All problems are collected before raising so a broken configuration
    file is reported in one pass.

    Args:
        raw_sources: Mappings in the wire format, or already-built descriptors.

    Returns:
        Descriptors in input order.

    Raises:
        SourceConfigError: If any source is malformed or two sources share
            a name.
    """
    descriptors: list[SourceDescriptor] = []
    problems: list[str] = []
    seen: set[str] = set()

    for index, raw in enumerate(raw_sources):
        if isinstance(raw, SourceDescriptor):
            descriptor = raw
        else:
            label = raw.get("name") if isinstance(raw, Mapping) else None
            try:
                descriptor = SourceDescriptor.model_validate(raw)
            except ValidationError as exc:
                problems.append(
                    f"source #{index} ({label or 'unnamed'}): {_describe_validation_error(exc)}"
                )
                continue

        if descriptor.name in seen:
            problems.append(f"source #{index} ({descriptor.name}): duplicate source name")
            continue
        seen.add(descriptor.name)
        descriptors.append(descriptor)

    if problems:
        raise SourceConfigError("invalid source configuration: " + " | ".join(problems))
    return descriptors


def load_sources_file(path: str | Path) -> list[SourceDescriptor]:
    """Load descriptors from a JSON file.

    Accepts either a bare list of sources or an object with a ``"sources"``
    key (the seed-file layout, where a sibling ``"disabled"`` list is ignored).

    Raises:
        SourceConfigError: If the file is not valid JSON or any source is
            malformed.
    """
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SourceConfigError(f"cannot read source file {path}: {exc}") from exc

    if isinstance(payload, Mapping):
        payload = payload.get("sources", [])
    if not isinstance(payload, list):
        raise SourceConfigError(f"source file {path} must contain a list of sources")
    return load_sources(payload)
