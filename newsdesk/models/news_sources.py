"""
News sources registry loader.

Parses configs/news_sources.yml into immutable SourceDescriptor objects with
structlog-backed validation and caching. The aggregator never reads the
registry itself: callers load it here and pass the list in.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote_plus

import yaml

from newsdesk.core.config import REPO_ROOT, get_settings
from newsdesk.core.logging import get_logger

logger = get_logger().bind(module="news_sources")

NEWS_SOURCES_YML = REPO_ROOT / "configs" / "news_sources.yml"

ALLOWED_REGIONS: Sequence[str] = (
    "Africa",
    "Asia",
    "Europe",
    "North America",
    "Oceania",
    "South America",
)

SOURCE_KIND_RSS = "rss"
SOURCE_KIND_HTML = "html"
SOURCE_KIND_GOOGLE_NEWS = "google_news"
ALLOWED_SOURCE_KINDS: Sequence[str] = (SOURCE_KIND_RSS, SOURCE_KIND_HTML, SOURCE_KIND_GOOGLE_NEWS)

GOOGLE_NEWS_RSS_BASE = "https://news.google.com/rss"


def build_google_news_url(country_code: str, query: Optional[str] = None, *, language: str = "en") -> str:
    """Headline feed for a country, or the search feed when a query is given."""
    country = country_code.upper()
    lang = language.lower()
    params = f"gl={country}&hl={lang}&ceid={country}:{lang}"
    if query and query.strip():
        return f"{GOOGLE_NEWS_RSS_BASE}/search?q={quote_plus(query.strip())}&{params}"
    return f"{GOOGLE_NEWS_RSS_BASE}?{params}"


@dataclass(frozen=True)
class SourceDescriptor:
    """One feed or page endpoint to poll."""

    key: str
    name: str
    country_code: str
    region: str
    endpoint_url: str
    kind: str = SOURCE_KIND_RSS

    def endpoint_for(self, query: Optional[str] = None) -> str:
        if self.kind == SOURCE_KIND_GOOGLE_NEWS:
            return build_google_news_url(self.country_code, query)
        return self.endpoint_url


def load_news_sources_config(path: Optional[Path] = None) -> Dict[str, object]:
    """
    Load raw YAML config.

    Returns empty dict if file is missing or invalid to keep workers running.
    """
    cfg_path = Path(path) if path else NEWS_SOURCES_YML
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("news_sources_config_not_found", path=str(cfg_path))
        return {}
    except OSError as exc:
        logger.error("news_sources_config_read_error", path=str(cfg_path), error=str(exc))
        return {}

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        logger.error("news_sources_config_parse_error", path=str(cfg_path), error=str(exc))
        return {}

    if not isinstance(data, dict):
        logger.error(
            "news_sources_config_invalid_root",
            path=str(cfg_path),
            root_type=type(data).__name__,
        )
        return {}

    return data


def _clean_str(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _is_enabled(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in {"false", "no", "0", "off"}


def _validate_source(raw: Dict[str, object], defaults: Dict[str, object]) -> Optional[SourceDescriptor]:
    """Validate raw dict and convert to SourceDescriptor, logging issues."""
    merged: Dict[str, object] = {**defaults, **raw}

    name = _clean_str(merged.get("name"))
    country = _clean_str(merged.get("country")).upper()
    region = _clean_str(merged.get("region"))
    missing = [k for k, v in (("name", name), ("country", country), ("region", region)) if not v]
    if missing:
        logger.warning("news_source_invalid_missing_fields", missing=missing, raw=raw)
        return None

    if region not in ALLOWED_REGIONS:
        logger.warning(
            "news_source_invalid_region",
            region=region,
            allowed=list(ALLOWED_REGIONS),
            source=name,
        )
        return None

    kind = (_clean_str(merged.get("kind")) or SOURCE_KIND_RSS).lower()
    if kind not in ALLOWED_SOURCE_KINDS:
        logger.warning("news_source_invalid_kind", kind=kind, source=name)
        return None

    if kind == SOURCE_KIND_GOOGLE_NEWS:
        url = build_google_news_url(country)
    else:
        url = _clean_str(merged.get("url"))
        if not url.startswith(("http://", "https://")):
            logger.warning("news_source_invalid_url", url=url, source=name)
            return None

    key = _clean_str(merged.get("key")) or f"{kind}:{name}:{country}".lower()

    return SourceDescriptor(
        key=key,
        name=name,
        country_code=country,
        region=region,
        endpoint_url=url,
        kind=kind,
    )


@lru_cache(maxsize=8)
def _load_sources_from_path(path_str: str) -> List[SourceDescriptor]:
    cfg_path = Path(path_str)
    cfg = load_news_sources_config(cfg_path)
    raw_sources = cfg.get("sources", [])
    defaults = cfg.get("defaults") or {}
    defaults_dict = defaults if isinstance(defaults, dict) else {}

    if not isinstance(raw_sources, list):
        logger.error(
            "news_sources_invalid_sources_type",
            actual_type=type(raw_sources).__name__,
            path=str(cfg_path),
        )
        return []

    result: List[SourceDescriptor] = []
    seen_keys: set[str] = set()
    for idx, raw in enumerate(raw_sources):
        if not isinstance(raw, dict):
            logger.warning(
                "news_source_invalid_entry_type",
                index=idx,
                value_type=type(raw).__name__,
            )
            continue
        if not _is_enabled(raw.get("enabled")):
            continue
        parsed = _validate_source(raw, defaults_dict)
        if parsed is None:
            continue
        if parsed.key in seen_keys:
            logger.warning("news_source_duplicate_key", key=parsed.key)
            continue
        seen_keys.add(parsed.key)
        result.append(parsed)

    logger.info("news_sources_loaded", path=str(cfg_path), total=len(result))
    return result


def get_all_news_sources(path: Optional[Path] = None) -> List[SourceDescriptor]:
    """
    Public accessor for all valid sources, in declaration order.

    Accepts optional path (useful for tests). Results are cached per-path.
    """
    if path is None:
        override = get_settings().NEWS_SOURCES_PATH
        path = Path(override) if override else NEWS_SOURCES_YML
    sources = _load_sources_from_path(str(Path(path).resolve()))
    return list(sources)


def clear_news_sources_cache() -> None:
    """Reset LRU cache (useful for tests)."""
    _load_sources_from_path.cache_clear()
