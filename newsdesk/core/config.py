# newsdesk/core/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# newsdesk/core/config.py -> parents[2] = repository root
REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = REPO_ROOT / ".env"
load_dotenv(ENV_FILE, override=False)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
)


class Settings(BaseSettings):
    # ---- Storage ----
    # Not required at class level so parsers and tests run without a database;
    # the store checks it when the pool is first created.
    DATABASE_URL: Optional[str] = None

    # ---- Source registry ----
    NEWS_SOURCES_PATH: Optional[str] = None

    # ---- Fetching ----
    NEWS_USER_AGENT: str = DEFAULT_USER_AGENT
    NEWS_INGEST_TIMEOUT_S: float = 15.0
    NEWS_INGEST_MAX_CONCURRENCY: int = 8
    NEWS_INGEST_MAX_RETRIES: int = 2
    NEWS_INGEST_BACKOFF_S: float = 0.5
    NEWS_REDIRECT_TIMEOUT_S: float = 3.0

    # ---- Pipeline limits ----
    NEWS_RETENTION_HOURS: int = 72
    NEWS_MAX_ITEMS_PER_FEED: int = 10
    NEWS_MAX_ARTICLES: int = 50
    NEWS_SNIPPET_MAX_LEN: int = 200
    NEWS_DROP_UNRESOLVED_REDIRECTS: bool = False

    # ---- Trigger ----
    NEWS_RUN_TIMEOUT_S: float = 30.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def require_database_url() -> str:
    """
    Runtime check with a clear message when the store is used without a DSN.
    """
    dsn = (get_settings().DATABASE_URL or "").strip()
    if not dsn:
        raise RuntimeError(
            "DATABASE_URL is not set. Export it or add it to .env "
            f"(looked in: {ENV_FILE})."
        )
    return dsn
