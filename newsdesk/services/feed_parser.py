"""
Lightweight RSS item and Atom entry extraction.

Feeds are scanned as a flat list of <item> (RSS) or <entry> (Atom) blocks
and each field is pulled out with a tag pattern, no XML document model.
That keeps the parser tolerant of the slightly broken feeds news sites
publish: an unescaped ampersand or a stray tag in one item does not cost
the whole feed, and an item missing its title or link is skipped, not
reported.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional

from newsdesk.core.logging import get_logger
from newsdesk.models.articles import RawItem
from newsdesk.models.news_sources import SourceDescriptor
from newsdesk.services.text_cleaning import clean_text, decode_entities

logger = get_logger().bind(module="feed_parser")

DEFAULT_MAX_ITEMS_PER_FEED = 10

_ITEM_RE = re.compile(
    r"<(?P<tag>item|entry)(?:\s[^>]*)?>(?P<body>[\s\S]*?)</(?P=tag)\s*>",
    re.IGNORECASE,
)
_CDATA_RE = re.compile(r"<!\[CDATA\[([\s\S]*?)\]\]>")
_LINK_TAG_RE = re.compile(r"<link\s([^>]*?)/?>", re.IGNORECASE)
_ATTR_RE = re.compile(r"([\w:-]+)\s*=\s*[\"']([^\"']*)[\"']")
_DESC_HREF_RE = re.compile(r"href=[\"']([^\"']+)[\"']", re.IGNORECASE)
_FEED_MARKER_RE = re.compile(r"<(rss|channel|rdf:RDF|feed)[\s>]", re.IGNORECASE)

_DATE_TAGS = ("pubDate", "dc:date", "published", "updated")


class FeedParseError(Exception):
    """The payload is not a feed at all (empty body, HTML error page...)."""


def _field_pattern(tag: str) -> re.Pattern[str]:
    return re.compile(
        rf"<{re.escape(tag)}(?:\s[^>]*)?>([\s\S]*?)</{re.escape(tag)}\s*>",
        re.IGNORECASE,
    )


_FIELD_PATTERNS = {
    tag: _field_pattern(tag)
    for tag in ("title", "link", "description", "summary", "content", "source", "guid", *_DATE_TAGS)
}


def _unwrap_cdata(value: str) -> str:
    return _CDATA_RE.sub(lambda m: m.group(1), value)


def _extract_field(item_xml: str, tag: str) -> Optional[str]:
    """Text of the first <tag> in the item, CDATA or plain. None when absent or blank."""
    match = _FIELD_PATTERNS[tag].search(item_xml)
    if not match:
        return None
    value = _unwrap_cdata(match.group(1)).strip()
    return value or None


def _link_href(item_xml: str) -> Optional[str]:
    """Atom-style <link href=.../>, preferring rel="alternate" (the default rel)."""
    fallback: Optional[str] = None
    for match in _LINK_TAG_RE.finditer(item_xml):
        attrs = {name.lower(): value for name, value in _ATTR_RE.findall(match.group(1))}
        href = (attrs.get("href") or "").strip()
        if not href:
            continue
        if attrs.get("rel", "alternate").lower() == "alternate":
            return href
        fallback = fallback or href
    return fallback


def _extract_link(item_xml: str) -> Optional[str]:
    link = _extract_field(item_xml, "link")
    if link:
        return decode_entities(link).strip()
    href = _link_href(item_xml)
    if href:
        return decode_entities(href).strip()
    guid = _extract_field(item_xml, "guid")
    if guid and guid.startswith(("http://", "https://")):
        return decode_entities(guid).strip()
    return None


def parse_pub_date(value: Optional[str]) -> Optional[datetime]:
    """RFC-822 (RSS pubDate) or ISO-8601; naive values are taken as UTC."""
    if not value:
        return None
    text = value.strip()
    parsed: Optional[datetime] = None
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _extract_publisher(item_xml: str, tag: str) -> Optional[str]:
    source = _extract_field(item_xml, "source")
    if not source:
        return None
    if tag.lower() == "entry":
        # Atom <source> is a container; its <title> names the publisher.
        return _extract_field(source, "title")
    return source


def _extract_description_link(raw_description: str) -> Optional[str]:
    match = _DESC_HREF_RE.search(decode_entities(raw_description))
    if not match:
        return None
    link = decode_entities(match.group(1)).strip()
    return link or None


def parse_feed(
    xml_text: str,
    source: SourceDescriptor,
    *,
    max_items: int = DEFAULT_MAX_ITEMS_PER_FEED,
    now: Optional[datetime] = None,
) -> List[RawItem]:
    """
    Extract up to `max_items` raw items from an RSS or Atom payload, in feed order.

    Raises:
        FeedParseError: the payload is empty or not a feed document
    """
    if not xml_text or not xml_text.strip():
        raise FeedParseError("empty feed document")

    parsed_at = now or datetime.now(timezone.utc)
    items: List[RawItem] = []
    dropped = 0
    seen_any = False

    for match in _ITEM_RE.finditer(xml_text):
        seen_any = True
        if len(items) >= max_items:
            break
        block_tag = match.group("tag")
        item_xml = match.group("body")

        raw_title = _extract_field(item_xml, "title")
        link = _extract_link(item_xml)
        title = clean_text(raw_title or "")
        if not title or not link:
            dropped += 1
            continue

        raw_description = (
            _extract_field(item_xml, "description")
            or _extract_field(item_xml, "summary")
            or _extract_field(item_xml, "content")
            or ""
        )
        raw_pub_date = next(
            (value for value in (_extract_field(item_xml, tag) for tag in _DATE_TAGS) if value),
            None,
        )
        publisher = _extract_publisher(item_xml, block_tag)

        items.append(
            RawItem(
                raw_title=title,
                raw_link=link,
                raw_description=clean_text(raw_description),
                raw_pub_date=raw_pub_date,
                published_at=parse_pub_date(raw_pub_date) or parsed_at,
                raw_source_name=clean_text(publisher) if publisher else None,
                description_link=_extract_description_link(raw_description) if raw_description else None,
            )
        )

    if not seen_any and not _FEED_MARKER_RE.search(xml_text):
        raise FeedParseError("payload is not a feed document")

    logger.debug(
        "feed_parsed",
        source=source.name,
        items=len(items),
        dropped=dropped,
    )
    return items
