from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from newsdesk.core.logging import get_logger
from newsdesk.models.news_public import ArticleListResponse, ScrapeRequest, ScrapeResponse
from newsdesk.services.article_store import PostgresArticleStore
from newsdesk.services.news_ingest_service import IngestionTimeoutError, run_scrape

logger = get_logger().bind(module="scrape_router")

router = APIRouter(tags=["news"])

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def get_article_store() -> PostgresArticleStore:
    return PostgresArticleStore()


async def _read_scrape_request(request: Request) -> ScrapeRequest:
    # Absent or malformed bodies are treated as an empty request.
    raw = await request.body()
    if not raw:
        return ScrapeRequest()
    try:
        body: Any = json.loads(raw)
    except ValueError:
        logger.info("scrape_request_body_ignored", reason="invalid_json")
        return ScrapeRequest()
    if not isinstance(body, dict):
        return ScrapeRequest()
    try:
        return ScrapeRequest.model_validate(body)
    except ValidationError:
        logger.info("scrape_request_body_ignored", reason="invalid_fields")
        return ScrapeRequest()


def _envelope(response: ScrapeResponse, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=response.to_payload(), headers=CORS_HEADERS)


@router.options("/scrape-news")
async def scrape_news_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/scrape-news")
async def scrape_news(request: Request) -> JSONResponse:
    scrape_request = await _read_scrape_request(request)
    logger.info(
        "scrape_news_called",
        search_query=scrape_request.keyword,
        region=scrape_request.region_filter or "all",
    )
    try:
        result = await run_scrape(scrape_request, store=get_article_store())
    except IngestionTimeoutError:
        return _envelope(ScrapeResponse.failure("timeout"), 500)
    except Exception as exc:
        logger.error("scrape_news_failed", error=str(exc), exc_info=True)
        return _envelope(ScrapeResponse.failure(str(exc) or exc.__class__.__name__), 500)
    return _envelope(result, 200)


@router.get("/articles", response_model=ArticleListResponse)
async def list_articles(
    region: Optional[str] = Query(default=None, description="Region name, or 'all'."),
    q: Optional[str] = Query(default=None, description="Case-insensitive match on title or snippet."),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> ArticleListResponse:
    items, total = await get_article_store().list_articles(
        region=region,
        query=q,
        limit=limit,
        offset=offset,
    )
    return ArticleListResponse(items=items, total=total, limit=limit, offset=offset)
