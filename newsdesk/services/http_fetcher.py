from __future__ import annotations

import asyncio
from typing import Mapping, Optional

import httpx

from newsdesk.core.config import DEFAULT_USER_AGENT
from newsdesk.core.logging import get_logger

logger = get_logger().bind(module="http_fetcher")

TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})

FEED_ACCEPT = "application/rss+xml, application/xml;q=0.9, */*;q=0.8"


class FetchError(Exception):
    """A response that the caller cannot use: a non-2xx status, or transient retries exhausted."""

    def __init__(self, url: str, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        return self.status_code in TRANSIENT_STATUS_CODES


class HttpFetcher:
    """
    GET with a retry budget for transient failures.

    Retries HTTP 429/502/503/504 and transport-level errors (timeouts,
    connection resets, DNS) up to `max_retries` times, sleeping
    `backoff_s * attempt` between tries. Any other status is handed back to
    the caller untouched; what to do with a 404 is not the fetcher's call.

    Can own its httpx client (async context manager) or borrow one.
    """

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_s: float = 15.0,
        max_retries: int = 2,
        backoff_s: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HttpFetcher":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()

    async def fetch(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Return the first non-transient response.

        Raises:
            FetchError: transient status on every attempt
            httpx.TransportError: network failure on every attempt
        """
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")

        request_headers = {"User-Agent": self.user_agent, "Accept": FEED_ACCEPT, "Cache-Control": "no-cache"}
        if headers:
            request_headers.update(headers)
        request_timeout = timeout if timeout is not None else self.timeout_s

        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 2):
            try:
                response = await self._client.get(url, headers=request_headers, timeout=request_timeout)
            except httpx.TransportError as exc:
                last_exc = exc
                logger.debug("http_fetch_transport_error", url=url, attempt=attempt, error=str(exc))
            else:
                if response.status_code not in TRANSIENT_STATUS_CODES:
                    return response
                last_exc = FetchError(
                    url,
                    f"transient status {response.status_code}",
                    status_code=response.status_code,
                )
                logger.debug("http_fetch_transient_status", url=url, attempt=attempt, status=response.status_code)

            if attempt <= self.max_retries:
                await asyncio.sleep(self.backoff_s * attempt)

        assert last_exc is not None
        logger.warning("http_fetch_retries_exhausted", url=url, attempts=self.max_retries + 1, error=str(last_exc))
        raise last_exc

    async def fetch_text(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Fetch and return the body, treating any non-2xx as a FetchError."""
        response = await self.fetch(url, headers=headers, timeout=timeout)
        if not response.is_success:
            raise FetchError(url, f"HTTP {response.status_code}", status_code=response.status_code)
        return response.text
