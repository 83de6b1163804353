from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from newsdesk.core.logging import get_logger
from newsdesk.models.articles import RawItem
from newsdesk.models.news_sources import SourceDescriptor
from newsdesk.services.text_cleaning import strip_markup

logger = get_logger().bind(module="html_headline_parser")

# Navigation labels are short, teaser paragraphs are long; headlines sit between.
MIN_HEADLINE_LEN = 20
MAX_HEADLINE_LEN = 200
DEFAULT_MAX_HEADLINES = 20

_HEADING_TAGS = ("h1", "h2", "h3", "h4")
_REJECTED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")


def _anchor_text(anchor: Tag) -> str:
    return strip_markup(anchor.get_text(" ", strip=True))


def _candidate_anchors(soup: BeautifulSoup) -> Iterable[Tag]:
    """Anchors inside or wrapping headings first, then every other anchor."""
    seen: set[int] = set()
    for heading in soup.find_all(_HEADING_TAGS):
        anchors = heading.find_all("a", href=True)
        parent_anchor = heading.find_parent("a", href=True)
        if parent_anchor is not None:
            anchors.append(parent_anchor)
        for anchor in anchors:
            if id(anchor) not in seen:
                seen.add(id(anchor))
                yield anchor
    for anchor in soup.find_all("a", href=True):
        if id(anchor) not in seen:
            seen.add(id(anchor))
            yield anchor


def _resolve_href(href: str, base_url: str) -> Optional[str]:
    href = (href or "").strip()
    if not href or href.startswith("#"):
        return None
    if href.lower().startswith(_REJECTED_SCHEMES):
        return None
    absolute = urljoin(base_url, href)
    if urlparse(absolute).scheme not in ("http", "https"):
        return None
    return absolute


def parse_headlines(
    html_text: str,
    source: SourceDescriptor,
    *,
    max_items: int = DEFAULT_MAX_HEADLINES,
    now: Optional[datetime] = None,
) -> List[RawItem]:
    """
    Heuristic (title, link) extraction for sources without a usable feed.

    Precision is lower than the feed path; some navigation links will get
    through and that is accepted.
    """
    if not html_text:
        return []

    parsed_at = now or datetime.now(timezone.utc)
    soup = BeautifulSoup(html_text, "html.parser")
    items: List[RawItem] = []
    seen_titles: set[str] = set()

    for anchor in _candidate_anchors(soup):
        if len(items) >= max_items:
            break
        title = _anchor_text(anchor)
        if not (MIN_HEADLINE_LEN <= len(title) <= MAX_HEADLINE_LEN):
            continue
        if title in seen_titles:
            continue
        link = _resolve_href(str(anchor.get("href") or ""), source.endpoint_url)
        if link is None:
            continue
        seen_titles.add(title)
        items.append(RawItem(raw_title=title, raw_link=link, published_at=parsed_at))

    logger.debug("html_headlines_parsed", source=source.name, items=len(items))
    return items
