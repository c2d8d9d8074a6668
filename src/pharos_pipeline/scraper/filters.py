"""Headline filtering policy applied to every candidate article.

Front pages link to far more than articles: navigation, newsletter sign-ups,
shopping round-ups.  :class:`LinkFilterPolicy` rejects those by title length,
a keyword blocklist and an href blocklist, with per-source overrides for
sites whose layout needs extra rules (or needs a global rule relaxed).

Both fetch strategies call :meth:`LinkFilterPolicy.rejection_reason` on the
``(title, link)`` pairs they extract, so static and rendered sources are
filtered identically.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from pharos_pipeline.scraper.config import MAX_TITLE_LENGTH, MIN_TITLE_LENGTH

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_title(text: str | None) -> str:
    """Collapse whitespace runs and strip the result."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


# ---------------------------------------------------------------------------
# Policy dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceOverride:
    """Extra (or relaxed) rules for one source, keyed by source name.

    Attributes:
        blocked_href_fragments: Additional href substrings to reject.
        blocked_title_pairs: ``(a, b)`` pairs; a title containing ``a``
            (case-insensitive) and ``b`` (case-sensitive) is rejected.
        exempt_title_keywords: Titles containing any of these bypass the
            global title-keyword blocklist for this source.
    """

    blocked_href_fragments: tuple[str, ...] = ()
    blocked_title_pairs: tuple[tuple[str, str], ...] = ()
    exempt_title_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class LinkFilterPolicy:
    """Rules deciding whether a ``(title, link)`` pair is an article.

    Global keyword matching is case-sensitive; the first half of an
    override title pair is matched case-insensitively.
    """

    min_title_length: int = MIN_TITLE_LENGTH
    max_title_length: int = MAX_TITLE_LENGTH
    blocked_title_keywords: tuple[str, ...] = ()
    blocked_title_pairs: tuple[tuple[str, str], ...] = ()
    blocked_href_fragments: tuple[str, ...] = ()
    guarded_href_fragments: Mapping[str, tuple[str, ...]] = field(
        default_factory=dict
    )
    overrides: Mapping[str, SourceOverride] = field(default_factory=dict)

    def rejection_reason(
        self, title: str, link: str, source_name: str | None = None
    ) -> str | None:
        """Return why the pair is rejected, or ``None`` if it is an article.

        Args:
            title: Normalised candidate title.
            link: Absolute candidate URL.
            source_name: Name of the source, used to look up overrides.
        """
        if not title or not link:
            return "missing title or link"
        if len(title) < self.min_title_length:
            return "title too short"
        if len(title) > self.max_title_length:
            return "title too long"

        override = self.overrides.get(source_name or "")
        exempt = override is not None and any(
            keyword in title for keyword in override.exempt_title_keywords
        )

        if not exempt:
            for keyword in self.blocked_title_keywords:
                if keyword in title:
                    return f"blocked keyword {keyword!r}"
            for first, second in self.blocked_title_pairs:
                if first in title and second in title:
                    return f"blocked keyword pair {first!r}+{second!r}"

        for fragment in self.blocked_href_fragments:
            if fragment in link:
                return f"blocked href {fragment!r}"

        for fragment, allowed_keywords in self.guarded_href_fragments.items():
            if fragment in link and not any(k in title for k in allowed_keywords):
                return f"guarded href {fragment!r}"

        if override is not None:
            for fragment in override.blocked_href_fragments:
                if fragment in link:
                    return f"blocked href {fragment!r} for {source_name}"
            lowered = title.lower()
            for first, second in override.blocked_title_pairs:
                if first.lower() in lowered and second in title:
                    return f"blocked keyword pair {first!r}+{second!r} for {source_name}"

        return None

    def accepts(self, title: str, link: str, source_name: str | None = None) -> bool:
        return self.rejection_reason(title, link, source_name) is None


# ---------------------------------------------------------------------------
# Default policy
# ---------------------------------------------------------------------------

DEFAULT_SOURCE_OVERRIDES: Mapping[str, SourceOverride] = MappingProxyType(
    {
        "Yahoo News": SourceOverride(
            blocked_href_fragments=("shopping.yahoo.com",),
            blocked_title_pairs=(("best ", "cutting"), ("best ", "vacuum")),
        ),
    }
)

DEFAULT_FILTER_POLICY = LinkFilterPolicy(
    blocked_title_keywords=(
        "Subscribe",
        "Newsletter",
        "Sign up",
        "Today's news",
        "Entertainment",
    ),
    blocked_title_pairs=(
        ("Best ", "cutting boards"),
        ("Best ", "vacuums"),
    ),
    blocked_href_fragments=("/about/", "/privacy/", "/shopping/"),
    guarded_href_fragments=MappingProxyType(
        {"/finance/news/": ("Trump", "UnitedHealth")}
    ),
    overrides=DEFAULT_SOURCE_OVERRIDES,
)
