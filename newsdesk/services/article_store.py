from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, Tuple

from newsdesk.core.config import REPO_ROOT
from newsdesk.core.logging import get_logger
from newsdesk.models.articles import ArticleRecord, StoredArticle
from newsdesk.services import db_service
from newsdesk.services.news_filters import normalize_region

logger = get_logger().bind(module="article_store")

SCHEMA_SQL_PATH = REPO_ROOT / "sql" / "001_articles.sql"

INSERT_ARTICLE_SQL = """
    INSERT INTO articles (
        title, snippet, url,
        source_name, source_country, source_region,
        published_at
    ) VALUES (
        $1,$2,$3,
        $4,$5,$6,
        $7
    )
    ON CONFLICT (url) DO NOTHING;
"""


class StoreError(Exception):
    """A storage-layer failure; the whole batch is considered unwritten."""


class ArticleStore(Protocol):
    async def upsert(self, articles: Sequence[ArticleRecord]) -> int:
        ...

    async def list_articles(
        self,
        *,
        region: Optional[str] = None,
        query: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[StoredArticle], int]:
        ...


def _inserted(status: Optional[str]) -> int:
    # asyncpg returns the command tag, e.g. "INSERT 0 1" or "INSERT 0 0".
    if not status:
        return 0
    parts = status.split()
    if len(parts) == 3 and parts[0].upper() == "INSERT":
        try:
            return int(parts[2])
        except ValueError:
            return 0
    return 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgresArticleStore:
    """Insert-if-absent writes and UI reads against the `articles` table."""

    async def upsert(self, articles: Sequence[ArticleRecord]) -> int:
        if not articles:
            return 0
        inserted = 0
        try:
            async with db_service.run_in_transaction() as conn:
                for article in articles:
                    status = await db_service.execute_with_conn(
                        conn, INSERT_ARTICLE_SQL, *article.as_row()
                    )
                    inserted += _inserted(status)
        except Exception as exc:
            logger.error("article_store_upsert_failed", batch=len(articles), error=str(exc))
            raise StoreError(str(exc)) from exc
        logger.info(
            "article_store_upserted",
            batch=len(articles),
            inserted=inserted,
            skipped=len(articles) - inserted,
        )
        return inserted

    async def list_articles(
        self,
        *,
        region: Optional[str] = None,
        query: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[StoredArticle], int]:
        clauses: List[str] = ["TRUE"]
        params: List[Any] = []

        wanted_region = normalize_region(region)
        if wanted_region is not None:
            params.append(wanted_region)
            clauses.append(f"source_region = ${len(params)}")

        needle = (query or "").strip()
        if needle:
            params.append(f"%{_escape_like(needle)}%")
            placeholder = f"${len(params)}"
            clauses.append(f"(title ILIKE {placeholder} OR snippet ILIKE {placeholder})")

        where_clause = " AND ".join(clauses)
        limit_placeholder = f"${len(params) + 1}"
        offset_placeholder = f"${len(params) + 2}"

        sql = f"""
            SELECT
                id, title, snippet, url,
                source_name, source_country, source_region,
                published_at, created_at
            FROM articles
            WHERE {where_clause}
            ORDER BY published_at DESC, id DESC
            LIMIT {limit_placeholder} OFFSET {offset_placeholder}
        """
        try:
            rows = await db_service.fetch(sql, *params, limit, offset)
            count_row = await db_service.fetchrow(
                f"SELECT COUNT(*) AS total FROM articles WHERE {where_clause}", *params
            )
        except Exception as exc:
            logger.error("article_store_query_failed", error=str(exc))
            raise StoreError(str(exc)) from exc

        items = [StoredArticle(**dict(row)) for row in rows]
        total = int(dict(count_row or {"total": 0}).get("total", 0))
        return items, total

    async def ensure_schema(self) -> None:
        ddl = SCHEMA_SQL_PATH.read_text(encoding="utf-8")
        await db_service.execute(ddl)
        logger.info("article_store_schema_applied", path=str(SCHEMA_SQL_PATH))
