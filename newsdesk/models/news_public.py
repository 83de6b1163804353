from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from newsdesk.models.articles import StoredArticle


class ScrapeRequest(BaseModel):
    """Body of the ingestion trigger. Both fields are optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    search_query: Optional[str] = Field(default=None, alias="searchQuery")
    region: Optional[str] = None

    @property
    def keyword(self) -> Optional[str]:
        if self.search_query is None:
            return None
        value = self.search_query.strip()
        return value or None

    @property
    def region_filter(self) -> Optional[str]:
        if self.region is None:
            return None
        value = self.region.strip()
        if not value or value.lower() == "all":
            return None
        return value


class ScrapeResponse(BaseModel):
    """Envelope returned to the UI for every trigger call."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    articles_scraped: int = Field(default=0, serialization_alias="articlesScraped")
    sources_processed: Optional[int] = Field(default=None, serialization_alias="sourcesProcessed")
    sources_succeeded: Optional[int] = Field(default=None, serialization_alias="sourcesSucceeded")
    message: str = ""
    region: str = "all"
    search_query: Optional[str] = Field(default=None, serialization_alias="searchQuery")
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ScrapeResponse":
        return cls(success=False, error=error)

    def to_payload(self) -> dict:
        # Failures carry only the flag and the error; successes always echo searchQuery.
        if not self.success:
            return {"success": False, "error": self.error or "unknown error"}
        payload = self.model_dump(by_alias=True, exclude={"error"})
        if payload.get("sourcesProcessed") is None:
            payload.pop("sourcesProcessed", None)
            payload.pop("sourcesSucceeded", None)
        return payload


class ArticleListResponse(BaseModel):
    """Paginated response for GET /articles."""

    items: List[StoredArticle]
    total: int
    limit: int
    offset: int
