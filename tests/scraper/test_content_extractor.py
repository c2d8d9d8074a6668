"""Unit tests for the article extraction rule chain."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from bs4 import BeautifulSoup

from pharos_pipeline.core.exceptions import ExtractionFailure, SourceConfigError
from pharos_pipeline.scraper.content_extractor import (
    ExtractionRuleEngine,
    clean_author,
    clean_text,
    text_for_selector,
)
from pharos_pipeline.scraper.rules import (
    DEFAULT_RULES,
    RuleRegistry,
    build_rule,
)
from pharos_pipeline.scraper.sources import SelectorList

LONG = "The committee heard testimony from residents for most of the afternoon. " * 3


def _page(body: str, head: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


# ---------------------------------------------------------------------------
# Rule registry
# ---------------------------------------------------------------------------


class TestRules:
    def test_known_domains(self) -> None:
        registry = RuleRegistry()
        for domain in ("apnews.com", "cnn.com", "foxnews.com", "dailymail.co.uk", "bbc.com", "reuters.com", "washingtonpost.com"):
            assert domain in registry
        assert len(registry) == len(DEFAULT_RULES)

    def test_www_prefix_ignored(self) -> None:
        registry = RuleRegistry()
        assert registry.rules_for("www.BBC.com") == registry.rules_for("bbc.com")
        assert registry.rules_for("unknown.example.com") == ()

    def test_wire_names_accepted(self) -> None:
        rule = build_rule({"content": ["div.body", "article"], "removeSelectors": [".ad"]})
        assert isinstance(rule.content, SelectorList)
        assert rule.remove_selectors == (".ad",)

    def test_bad_selector_rejected_eagerly(self) -> None:
        with pytest.raises(SourceConfigError):
            build_rule({"content": "div[", "title": "h1"})

    def test_content_is_required(self) -> None:
        with pytest.raises(SourceConfigError):
            build_rule({"title": "h1"})


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


class TestTextHelpers:
    def test_clean_text_collapses_whitespace(self) -> None:
        assert clean_text("  a\n\n\n  b\t c ") == "a b c"

    def test_multiple_matches_joined_with_blank_lines(self) -> None:
        soup = BeautifulSoup("<p class='x'> one  two </p><p class='x'></p><p class='x'>three</p>", "html.parser")
        assert text_for_selector(soup, "p.x") == "one two\n\nthree"

    def test_no_match_is_empty(self) -> None:
        soup = BeautifulSoup("<p>x</p>", "html.parser")
        assert text_for_selector(soup, "div") == ""

    @pytest.mark.parametrize("raw", ["By Jane Doe", "by Jane Doe", "Author: Jane Doe", "  Jane Doe "])
    def test_byline_prefix_removed(self, raw: str) -> None:
        assert clean_author(raw) == "Jane Doe"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestDomainRules:
    def test_first_rule_yielding_content_wins(self) -> None:
        rules = (
            build_rule({"content": "div.missing"}),
            build_rule({"content": "div.second", "title": "h1.second"}),
            build_rule({"content": "div.third", "title": "h1.third"}),
        )
        engine = ExtractionRuleEngine(RuleRegistry({"example.com": rules}))
        html = _page(
            f"<h1 class='second'>Second title</h1><h1 class='third'>Third title</h1>"
            f"<div class='second'>{LONG}</div><div class='third'>{LONG}</div>"
        )

        result = engine.extract(html, "www.example.com")

        assert result.title == "Second title"
        assert result.method == "rule"

    def test_ordering_law_with_short_first_rule(self) -> None:
        rules = (
            build_rule({"content": "div.r0", "title": "h1.r0"}),
            build_rule({"content": "div.r1", "title": "h1.r1"}),
            build_rule({"content": "div.r2", "title": "h1.r2"}),
        )
        engine = ExtractionRuleEngine(RuleRegistry({"example.com": rules}))
        html = _page(
            "<h1 class='r0'>R0</h1><h1 class='r1'>R1</h1><h1 class='r2'>R2</h1>"
            "<div class='r0'>too short</div>"
            f"<div class='r1'>{LONG}</div>"
            "<div class='r2'>also short</div>"
        )

        assert engine.extract(html, "example.com").title == "R1"

    def test_content_list_tries_each_option(self) -> None:
        rule = build_rule({"content": ["div.short", "div.long"], "author": ".byline"})
        engine = ExtractionRuleEngine(RuleRegistry({"example.com": (rule,)}))
        html = _page(f"<span class='byline'>By Ana Ruiz</span><div class='short'>brief</div><div class='long'>{LONG}</div>")

        result = engine.extract(html, "example.com")

        assert result.content == clean_text(LONG)
        assert result.author == "Ana Ruiz"

    def test_remove_selectors_strip_noise_first(self) -> None:
        rule = build_rule({"content": "div.body", "removeSelectors": [".ad"]})
        engine = ExtractionRuleEngine(RuleRegistry({"example.com": (rule,)}))
        html = _page(f"<div class='body'>{LONG}<div class='ad'>BUY NOW</div></div>")

        assert "BUY NOW" not in engine.extract(html, "example.com").content

    def test_ap_news_rule(self) -> None:
        html = _page(
            "<h1 class='Page-headline'>Storm batters coast</h1>"
            "<div class='Component-bylines-stories'>By Sam Lee</div>"
            "<span class='Component-timestamp'>Updated 3:14 PM</span>"
            f"<div class='RichTextStoryBody'>{LONG}<div class='ad'>ad</div></div>"
        )

        result = ExtractionRuleEngine().extract(html, "apnews.com")

        assert result.title == "Storm batters coast"
        assert result.author == "Sam Lee"
        assert result.publication_date == "Updated 3:14 PM"
        assert result.content == clean_text(LONG)


class TestGenericExtraction:
    def test_article_container(self) -> None:
        body = "<nav>Home | World | Sport</nav><h1>Generic headline</h1>" + f"<article>{LONG}{LONG}</article>"
        html = _page(body, head='<meta property="article:published_time" content="2024-05-01T10:00:00Z">')

        result = ExtractionRuleEngine().extract(html, "unknown.example.com")

        assert result.method == "generic"
        assert result.title == "Generic headline"
        assert result.publication_date == "2024-05-01T10:00:00Z"
        assert "Home | World" not in result.content

    def test_short_paragraphs_fall_back_to_concatenation(self) -> None:
        paragraphs = [f"Short paragraph {i:02d}." for i in range(12)]
        assert sum(len(p) for p in paragraphs) > 200
        html = _page("<h1>Brief</h1>" + "".join(f"<p>{p}</p>" for p in paragraphs))

        result = ExtractionRuleEngine().extract(html, "nowhere.example.com")

        assert result.method == "paragraphs"
        assert result.content == "\n\n".join(paragraphs)
        assert result.title == "Brief"

    def test_long_paragraphs_preferred(self) -> None:
        long_paragraphs = ["A" * 120, "B" * 120]
        html = _page("<p>short one</p>" + "".join(f"<p>{p}</p>" for p in long_paragraphs))

        result = ExtractionRuleEngine().extract(html, "nowhere.example.com")

        assert result.content == "\n\n".join(long_paragraphs)

    def test_date_from_trafilatura_when_tags_missing(self) -> None:
        html = _page(f"<article>{LONG}{LONG}</article>")
        metadata = type("Meta", (), {"date": "2023-11-02"})()
        with patch(
            "pharos_pipeline.scraper.content_extractor.trafilatura.extract_metadata",
            return_value=metadata,
        ):
            result = ExtractionRuleEngine().extract(html, "nowhere.example.com")

        assert result.publication_date == "2023-11-02"

    def test_nothing_usable_raises(self) -> None:
        with pytest.raises(ExtractionFailure) as exc_info:
            ExtractionRuleEngine().extract(_page("<p>Nothing here.</p>"), "www.empty.example.com")

        assert exc_info.value.domain == "empty.example.com"

    def test_failed_domain_rules_fall_through_to_generic(self) -> None:
        html = _page(f"<main>{LONG}{LONG}</main>")
        result = ExtractionRuleEngine().extract(html, "cnn.com")

        assert result.method == "generic"
        assert result.content == clean_text(LONG + LONG)
