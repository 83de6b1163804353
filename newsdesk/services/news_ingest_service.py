from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import httpx

from newsdesk.core.config import Settings, get_settings
from newsdesk.core.logging import get_logger
from newsdesk.models.articles import AggregationResult, ArticleRecord, RawItem, SourceOutcome
from newsdesk.models.news_public import ScrapeRequest, ScrapeResponse
from newsdesk.models.news_sources import SOURCE_KIND_HTML, SourceDescriptor, get_all_news_sources
from newsdesk.services.article_store import ArticleStore, PostgresArticleStore
from newsdesk.services.feed_parser import parse_feed
from newsdesk.services.html_headline_parser import parse_headlines
from newsdesk.services.http_fetcher import HttpFetcher
from newsdesk.services.news_filters import FilterParams, apply_filters, matches_keyword, select_sources
from newsdesk.services.normalizer import normalize
from newsdesk.services.redirect_resolver import RedirectResolver

logger = get_logger().bind(module="news_ingest")


class IngestionTimeoutError(Exception):
    """The whole ingestion run exceeded the caller's time budget."""

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"ingestion exceeded {timeout_s:g}s")
        self.timeout_s = timeout_s


def dedupe_by_url(articles: Sequence[ArticleRecord]) -> List[ArticleRecord]:
    """Keep the first record seen for each url, preserving order."""
    seen: set[str] = set()
    unique: List[ArticleRecord] = []
    for article in articles:
        if article.url in seen:
            continue
        seen.add(article.url)
        unique.append(article)
    return unique


class NewsAggregator:
    """
    Runs fetch, parse, normalize and filter for every selected source
    concurrently, then merges the outcomes.

    Per-source failures never escape a unit: they are logged, counted and
    contribute zero articles. Merging happens once every unit has settled,
    in source declaration order, so dedup keeps the same winner on every run
    with the same source list.
    """

    def __init__(self, *, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.max_concurrency = max(1, self.settings.NEWS_INGEST_MAX_CONCURRENCY)
        self.max_articles = self.settings.NEWS_MAX_ARTICLES
        self._client: Optional[httpx.AsyncClient] = None
        self._fetcher: Optional[HttpFetcher] = None
        self._resolver: Optional[RedirectResolver] = None
        self._sem = asyncio.Semaphore(self.max_concurrency)

    async def __aenter__(self) -> "NewsAggregator":
        self._client = httpx.AsyncClient(
            timeout=self.settings.NEWS_INGEST_TIMEOUT_S,
            headers={"User-Agent": self.settings.NEWS_USER_AGENT},
            follow_redirects=True,
        )
        self._fetcher = HttpFetcher(
            user_agent=self.settings.NEWS_USER_AGENT,
            timeout_s=self.settings.NEWS_INGEST_TIMEOUT_S,
            max_retries=self.settings.NEWS_INGEST_MAX_RETRIES,
            backoff_s=self.settings.NEWS_INGEST_BACKOFF_S,
            client=self._client,
        )
        self._resolver = RedirectResolver(
            timeout_s=self.settings.NEWS_REDIRECT_TIMEOUT_S,
            user_agent=self.settings.NEWS_USER_AGENT,
            client=self._client,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client:
            await self._client.aclose()

    async def _fetch_source(self, source: SourceDescriptor, query: Optional[str]) -> str:
        if not self._fetcher:
            raise RuntimeError("NewsAggregator client not initialized")
        return await self._fetcher.fetch_text(source.endpoint_for(query))

    def _parse_source(self, source: SourceDescriptor, body: str, now: datetime) -> List[RawItem]:
        if source.kind == SOURCE_KIND_HTML:
            return parse_headlines(body, source, now=now)
        return parse_feed(
            body,
            source,
            max_items=self.settings.NEWS_MAX_ITEMS_PER_FEED,
            now=now,
        )

    async def _normalize_items(
        self,
        source: SourceDescriptor,
        raw_items: Sequence[RawItem],
    ) -> List[ArticleRecord]:
        if not self._resolver:
            raise RuntimeError("NewsAggregator client not initialized")
        # Redirect lookups for one source overlap; each carries its own deadline.
        normalized = await asyncio.gather(
            *(
                normalize(
                    raw,
                    source,
                    self._resolver,
                    snippet_max_len=self.settings.NEWS_SNIPPET_MAX_LEN,
                )
                for raw in raw_items
            )
        )
        return [record for record in normalized if record is not None]

    async def ingest_source(self, source: SourceDescriptor, params: FilterParams) -> SourceOutcome:
        async with self._sem:
            try:
                body = await self._fetch_source(source, params.keyword)
                now = params.now or datetime.now(timezone.utc)
                raw_items = self._parse_source(source, body, now)
                records = await self._normalize_items(source, raw_items)
                articles = apply_filters(records, params)
            except Exception as exc:
                logger.warning(
                    "news_ingest_source_failed",
                    source=source.name,
                    url=source.endpoint_for(params.keyword),
                    error=str(exc) or exc.__class__.__name__,
                )
                return SourceOutcome(
                    source_key=source.key,
                    source_name=source.name,
                    ok=False,
                    error=str(exc) or exc.__class__.__name__,
                )

        logger.info(
            "news_ingest_source_success",
            source=source.name,
            parsed=len(raw_items),
            normalized=len(records),
            kept=len(articles),
        )
        return SourceOutcome(
            source_key=source.key,
            source_name=source.name,
            ok=True,
            articles=articles,
        )

    async def aggregate(
        self,
        sources: Sequence[SourceDescriptor],
        *,
        keyword: Optional[str] = None,
        region: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AggregationResult:
        selected = select_sources(sources, region)
        params = FilterParams(
            keyword=keyword,
            now=now or datetime.now(timezone.utc),
            retention_hours=self.settings.NEWS_RETENTION_HOURS,
            reject_unresolved=self.settings.NEWS_DROP_UNRESOLVED_REDIRECTS,
        )
        logger.info(
            "news_ingest_fetching",
            sources=len(selected),
            skipped_by_region=len(sources) - len(selected),
            keyword=keyword,
            region=region,
        )

        settled = await asyncio.gather(
            *(self.ingest_source(source, params) for source in selected),
            return_exceptions=True,
        )

        collected: List[ArticleRecord] = []
        per_source: Dict[str, int] = {}
        succeeded = 0
        for source, outcome in zip(selected, settled):
            if isinstance(outcome, Exception):
                logger.warning("news_ingest_source_failed", source=source.name, error=str(outcome))
                per_source[source.key] = 0
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            per_source[source.key] = len(outcome.articles)
            if outcome.ok:
                succeeded += 1
                collected.extend(outcome.articles)

        # Second keyword pass over the merged list, ahead of dedup and the cap.
        relevant = [a for a in collected if matches_keyword(a.title, a.snippet, keyword)]
        unique = dedupe_by_url(relevant)
        capped = unique[: self.max_articles]

        logger.info(
            "news_ingest_summary",
            sources_processed=len(selected),
            sources_succeeded=succeeded,
            collected=len(collected),
            relevant=len(relevant),
            unique=len(unique),
            returned=len(capped),
        )
        return AggregationResult(
            articles=capped,
            sources_processed=len(selected),
            sources_succeeded=succeeded,
            per_source=per_source,
        )


def _summary_message(count: int, keyword: Optional[str], succeeded: int, processed: int) -> str:
    return (
        f'Successfully scraped {count} articles for "{keyword or "general news"}" '
        f"from {succeeded}/{processed} sources"
    )


async def ingest_articles(
    request: ScrapeRequest,
    *,
    sources: Optional[Sequence[SourceDescriptor]] = None,
    store: Optional[ArticleStore] = None,
    settings: Optional[Settings] = None,
    dry_run: bool = False,
) -> ScrapeResponse:
    """
    One complete ingestion run: aggregate, then store.

    Raises:
        StoreError: the batch write failed
    """
    settings = settings or get_settings()
    source_list = list(sources) if sources is not None else get_all_news_sources()
    keyword = request.keyword
    region = request.region_filter

    async with NewsAggregator(settings=settings) as aggregator:
        result = await aggregator.aggregate(source_list, keyword=keyword, region=region)

    articles = result.articles

    inserted = 0
    if articles and not dry_run:
        target = store or PostgresArticleStore()
        inserted = await target.upsert(articles)

    logger.info(
        "news_ingest_run_finished",
        articles=len(articles),
        inserted=inserted,
        dry_run=dry_run,
    )
    return ScrapeResponse(
        success=True,
        articles_scraped=len(articles),
        sources_processed=result.sources_processed,
        sources_succeeded=result.sources_succeeded,
        message=_summary_message(len(articles), keyword, result.sources_succeeded, result.sources_processed),
        region=region or "all",
        search_query=keyword,
    )


async def run_scrape(
    request: ScrapeRequest,
    *,
    sources: Optional[Sequence[SourceDescriptor]] = None,
    store: Optional[ArticleStore] = None,
    settings: Optional[Settings] = None,
) -> ScrapeResponse:
    """
    The ingestion trigger: `ingest_articles` under the caller-side timeout.

    Raises:
        IngestionTimeoutError: the run did not finish within NEWS_RUN_TIMEOUT_S
        StoreError: the batch write failed
    """
    settings = settings or get_settings()
    timeout_s = settings.NEWS_RUN_TIMEOUT_S
    try:
        return await asyncio.wait_for(
            ingest_articles(request, sources=sources, store=store, settings=settings),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError as exc:
        logger.error("news_ingest_run_timeout", timeout_s=timeout_s)
        raise IngestionTimeoutError(timeout_s) from exc
