from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from newsdesk.models.articles import ArticleRecord
from newsdesk.models.news_sources import SourceDescriptor
from newsdesk.services.redirect_resolver import is_indirect_url

RETENTION_WINDOW_HOURS = 72

PLACEHOLDER_DOMAINS = frozenset(
    {
        "example.com",
        "example.org",
        "example.net",
        "localhost",
        "test",
        "invalid",
    }
)


@dataclass(frozen=True)
class FilterParams:
    keyword: Optional[str] = None
    now: Optional[datetime] = None
    retention_hours: int = RETENTION_WINDOW_HOURS
    # Off by default: a link the resolver could not canonicalize is kept as-is.
    reject_unresolved: bool = False

    @property
    def cutoff(self) -> datetime:
        reference = self.now or datetime.now(timezone.utc)
        return reference - timedelta(hours=self.retention_hours)


def is_placeholder_url(url: str) -> bool:
    """True for example/test hosts, subdomains included."""
    try:
        host = (urlparse(url).hostname or "").lower().rstrip(".")
    except ValueError:
        return True
    if not host:
        return True
    return any(host == domain or host.endswith("." + domain) for domain in PLACEHOLDER_DOMAINS)


def is_acceptable_url(url: str, *, reject_unresolved: bool = False) -> bool:
    """URL sanity: http(s), not a placeholder, optionally not an unresolved redirect link."""
    try:
        scheme = urlparse(url).scheme
    except ValueError:
        return False
    if scheme not in ("http", "https"):
        return False
    if is_placeholder_url(url):
        return False
    if reject_unresolved and is_indirect_url(url):
        return False
    return True


def matches_keyword(title: str, snippet: str, keyword: Optional[str]) -> bool:
    """Case-insensitive substring on title OR snippet. No keyword keeps everything."""
    if not keyword or not keyword.strip():
        return True
    needle = keyword.strip().lower()
    return needle in (title or "").lower() or needle in (snippet or "").lower()


def is_recent(published_at: datetime, cutoff: datetime) -> bool:
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)
    return published_at >= cutoff


def passes_filters(article: ArticleRecord, params: FilterParams) -> bool:
    """Placeholder/URL sanity, then keyword, then recency."""
    if not is_acceptable_url(article.url, reject_unresolved=params.reject_unresolved):
        return False
    if not matches_keyword(article.title, article.snippet, params.keyword):
        return False
    return is_recent(article.published_at, params.cutoff)


def apply_filters(articles: Iterable[ArticleRecord], params: FilterParams) -> List[ArticleRecord]:
    return [article for article in articles if passes_filters(article, params)]


def normalize_region(region: Optional[str]) -> Optional[str]:
    """None for absent, blank or "all"; the trimmed region otherwise."""
    if region is None:
        return None
    value = region.strip()
    if not value or value.lower() == "all":
        return None
    return value


def select_sources(
    sources: Sequence[SourceDescriptor],
    region: Optional[str],
) -> List[SourceDescriptor]:
    """Region filter, applied before any fetch so excluded sources cost nothing."""
    wanted = normalize_region(region)
    if wanted is None:
        return list(sources)
    return [source for source in sources if source.region == wanted]
