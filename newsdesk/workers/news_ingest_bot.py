from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from newsdesk.core.logging import configure_logging, get_logger
from newsdesk.core.request_id import with_run_id
from newsdesk.models.news_public import ScrapeRequest
from newsdesk.models.news_sources import get_all_news_sources
from newsdesk.services.db_service import close_pool
from newsdesk.services.news_ingest_service import ingest_articles

configure_logging(service_name="worker")
logger = get_logger().bind(worker="news_ingest_bot")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NewsIngestBot: fetch configured feeds and store articles.")
    parser.add_argument("--query", default=None, help="Optional keyword; only matching articles are kept.")
    parser.add_argument("--region", default=None, help="Optional region restriction ('all' means none).")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional limit on number of sources to ingest during this run.",
    )
    parser.add_argument("--dry-run", action="store_true", help="Aggregate and log, but skip the store write.")
    return parser.parse_args(argv)


async def run_ingest(
    *,
    query: Optional[str] = None,
    region: Optional[str] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
) -> int:
    sources = get_all_news_sources()
    if limit is not None:
        sources = sources[:limit]
    if not sources:
        logger.info("news_ingest_no_sources_configured")
        return 0

    try:
        result = await ingest_articles(
            ScrapeRequest(search_query=query, region=region),
            sources=sources,
            dry_run=dry_run,
        )
    except Exception as exc:
        logger.error("news_ingest_bot_failed", error=str(exc))
        return 1

    logger.info(
        "news_ingest_bot_finished",
        articles=result.articles_scraped,
        sources_processed=result.sources_processed,
        sources_succeeded=result.sources_succeeded,
        dry_run=dry_run,
    )
    return 0


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    with with_run_id():
        try:
            return await run_ingest(
                query=args.query,
                region=args.region,
                limit=args.limit,
                dry_run=args.dry_run,
            )
        finally:
            await close_pool()


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
