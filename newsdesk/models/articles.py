from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class RawItem:
    """
    Unprocessed extraction from one feed item or page anchor.

    Title and description arrive entity-decoded and tag-stripped; the
    normalizer still runs its own cleaning pass and owns every decision
    about the final record.
    """

    raw_title: str
    raw_link: str
    published_at: datetime
    raw_description: str = ""
    raw_pub_date: Optional[str] = None
    # Publisher named inside the item (Google News <source>), if any.
    raw_source_name: Optional[str] = None
    # First href found in the description markup, if any.
    description_link: Optional[str] = None


class ArticleRecord(BaseModel):
    """
    Canonical article persisted to the `articles` table.

    `url` is the identity: two records with the same url are the same
    article, whichever source surfaced them.
    """

    title: str
    snippet: str
    url: str
    source_name: str
    source_country: str
    source_region: str
    published_at: datetime

    def as_row(self) -> tuple:
        return (
            self.title,
            self.snippet,
            self.url,
            self.source_name,
            self.source_country,
            self.source_region,
            self.published_at,
        )


@dataclass
class SourceOutcome:
    source_key: str
    source_name: str
    ok: bool
    articles: List[ArticleRecord] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class AggregationResult:
    """Terminal state of one aggregation call."""

    articles: List[ArticleRecord]
    sources_processed: int
    sources_succeeded: int
    per_source: Dict[str, int] = field(default_factory=dict)

    @property
    def sources_failed(self) -> int:
        return self.sources_processed - self.sources_succeeded


class StoredArticle(ArticleRecord):
    """Article row as read back for the UI."""

    id: Optional[int] = Field(default=None)
    created_at: Optional[datetime] = None
