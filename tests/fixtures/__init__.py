# tests/fixtures/__init__.py
"""
Factory functions for pipeline tests:
- make_source()
- make_article()
- make_raw_item()
- rss_feed()
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Tuple

from newsdesk.models.articles import ArticleRecord, RawItem
from newsdesk.models.news_sources import SourceDescriptor

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_source(
    name: str = "Test Source",
    country_code: str = "US",
    region: str = "North America",
    endpoint_url: Optional[str] = None,
    kind: str = "rss",
    key: Optional[str] = None,
) -> SourceDescriptor:
    slug = name.replace(" ", "").lower()
    return SourceDescriptor(
        key=key or f"{kind}:{slug}:{country_code.lower()}",
        name=name,
        country_code=country_code,
        region=region,
        endpoint_url=endpoint_url or f"https://feeds.{slug}.news/rss",
        kind=kind,
    )


def make_article(
    url: str = "https://news.site/a",
    title: str = "Parliament passes the annual budget",
    snippet: str = "The vote came after a long debate.",
    source_name: str = "Test Source",
    source_country: str = "US",
    source_region: str = "North America",
    published_at: Optional[datetime] = None,
) -> ArticleRecord:
    return ArticleRecord(
        title=title,
        snippet=snippet,
        url=url,
        source_name=source_name,
        source_country=source_country,
        source_region=source_region,
        published_at=published_at or FIXED_NOW - timedelta(hours=1),
    )


def make_raw_item(
    raw_title: str = "Parliament passes the annual budget",
    raw_link: str = "https://news.site/a",
    raw_description: str = "",
    published_at: Optional[datetime] = None,
    raw_source_name: Optional[str] = None,
    description_link: Optional[str] = None,
) -> RawItem:
    return RawItem(
        raw_title=raw_title,
        raw_link=raw_link,
        raw_description=raw_description,
        published_at=published_at or FIXED_NOW - timedelta(hours=1),
        raw_source_name=raw_source_name,
        description_link=description_link,
    )


def rss_item(
    title: str,
    link: str,
    description: str = "",
    pub_date: Optional[str] = None,
) -> str:
    parts = [f"<title>{title}</title>", f"<link>{link}</link>"]
    if description:
        parts.append(f"<description>{description}</description>")
    if pub_date:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    return "<item>" + "".join(parts) + "</item>"


def rss_feed(items: Iterable[Tuple[str, str]], pub_date: Optional[str] = None) -> str:
    """Feed document from (title, link) pairs."""
    body = "".join(rss_item(title, link, pub_date=pub_date) for title, link in items)
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>Feed</title>{body}</channel></rss>'
