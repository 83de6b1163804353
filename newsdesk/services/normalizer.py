from __future__ import annotations

from typing import Optional

from newsdesk.core.logging import get_logger
from newsdesk.models.articles import ArticleRecord, RawItem
from newsdesk.models.news_sources import SourceDescriptor
from newsdesk.services.news_filters import is_placeholder_url
from newsdesk.services.redirect_resolver import (
    RedirectResolver,
    is_canonical_candidate,
    is_indirect_url,
)
from newsdesk.services.text_cleaning import SNIPPET_MAX_LEN, clean_text, trim_snippet

logger = get_logger().bind(module="normalizer")


async def canonicalize_url(raw: RawItem, resolver: RedirectResolver) -> str:
    """
    Pick the article URL for a raw item.

    Direct links pass through. For aggregator links the description's own
    article link wins, then the resolver (embedded url= parameter, then a
    bounded redirect follow). If all of that fails the raw link is kept.
    """
    link = raw.raw_link.strip()
    if not is_indirect_url(link):
        return link
    alt_link = raw.description_link
    if alt_link and is_canonical_candidate(alt_link):
        return alt_link.strip()
    resolved = await resolver.resolve(link)
    if resolved:
        return resolved
    logger.debug("normalizer_redirect_fallback", url=link)
    return link


async def normalize(
    raw: RawItem,
    source: SourceDescriptor,
    resolver: RedirectResolver,
    *,
    snippet_max_len: int = SNIPPET_MAX_LEN,
) -> Optional[ArticleRecord]:
    """Build the article record for one raw item, or None when it has to be dropped."""
    title = clean_text(raw.raw_title)
    link = (raw.raw_link or "").strip()
    if not title or not link:
        return None
    if is_placeholder_url(link):
        return None

    url = await canonicalize_url(raw, resolver)
    if not url:
        return None

    description = clean_text(raw.raw_description)
    snippet = trim_snippet(description or title, snippet_max_len)
    source_name = clean_text(raw.raw_source_name or "") or source.name

    return ArticleRecord(
        title=title,
        snippet=snippet,
        url=url,
        source_name=source_name,
        source_country=source.country_code,
        source_region=source.region,
        published_at=raw.published_at,
    )
