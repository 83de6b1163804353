from __future__ import annotations

from datetime import timedelta

import pytest

from fixtures import FIXED_NOW, make_article, make_source
from newsdesk.services.news_filters import (
    FilterParams,
    apply_filters,
    is_acceptable_url,
    is_placeholder_url,
    matches_keyword,
    normalize_region,
    passes_filters,
    select_sources,
)


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/story",
        "https://www.example.org/story",
        "http://cdn.example.net/a",
        "http://localhost:8000/a",
        "https://site.test/a",
        "not a url",
    ],
)
def test_placeholder_urls(url):
    assert is_placeholder_url(url)


def test_real_domain_is_not_placeholder():
    assert not is_placeholder_url("https://examples-of-news.com/a")
    assert not is_placeholder_url("https://daily.news/a")


def test_acceptable_url_scheme_and_unresolved_policy():
    google = "https://news.google.com/rss/articles/CBMiXYZ"
    assert is_acceptable_url("https://daily.news/a")
    assert not is_acceptable_url("ftp://daily.news/a")
    assert is_acceptable_url(google)
    assert not is_acceptable_url(google, reject_unresolved=True)


def test_keyword_matches_title_or_snippet_case_insensitive():
    assert matches_keyword("EU considers new tariff structure", "", "tariff")
    assert matches_keyword("Trade talks", "New TARIFF schedule published", "Tariff")
    assert not matches_keyword("Weather update", "Sunny with light winds", "tariff")
    assert matches_keyword("Weather update", "", None)
    assert matches_keyword("Weather update", "", "   ")


def test_recency_window_boundaries():
    params = FilterParams(now=FIXED_NOW, retention_hours=72)
    fresh = make_article(url="https://daily.news/fresh", published_at=FIXED_NOW - timedelta(hours=10))
    stale = make_article(url="https://daily.news/stale", published_at=FIXED_NOW - timedelta(hours=100))

    assert passes_filters(fresh, params)
    assert not passes_filters(stale, params)


def test_filter_order_keyword_then_recency():
    params = FilterParams(keyword="tariff", now=FIXED_NOW)
    articles = [
        make_article(url="https://daily.news/1", title="EU considers new tariff structure"),
        make_article(url="https://daily.news/2", title="Weather update", snippet="Rain later"),
        make_article(url="https://example.com/3", title="Tariff placeholder"),
        make_article(
            url="https://daily.news/4",
            title="Old tariff news",
            published_at=FIXED_NOW - timedelta(hours=73),
        ),
    ]

    kept = apply_filters(articles, params)

    assert [a.url for a in kept] == ["https://daily.news/1"]


def test_normalize_region():
    assert normalize_region(None) is None
    assert normalize_region("all") is None
    assert normalize_region(" ALL ") is None
    assert normalize_region("") is None
    assert normalize_region(" Europe ") == "Europe"


def test_select_sources_by_region_keeps_declaration_order():
    sources = [
        make_source(name="A", region="Europe"),
        make_source(name="B", region="Asia"),
        make_source(name="C", region="Europe"),
    ]

    assert [s.name for s in select_sources(sources, "Europe")] == ["A", "C"]
    assert [s.name for s in select_sources(sources, "all")] == ["A", "B", "C"]
    assert [s.name for s in select_sources(sources, None)] == ["A", "B", "C"]
    assert select_sources(sources, "Oceania") == []
