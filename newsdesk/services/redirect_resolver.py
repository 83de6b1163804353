from __future__ import annotations

import asyncio
from typing import List, Optional
from urllib.parse import parse_qs, unquote, urljoin, urlparse

import httpx

from newsdesk.core.config import DEFAULT_USER_AGENT
from newsdesk.core.logging import get_logger

logger = get_logger().bind(module="redirect_resolver")

AGGREGATOR_HOSTS = frozenset({"news.google.com"})
DEFAULT_REDIRECT_TIMEOUT_S = 3.0


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_aggregator_url(url: str) -> bool:
    return _host(url) in AGGREGATOR_HOSTS


def is_indirect_url(url: str) -> bool:
    """Aggregator article links and google.com/url tracker links."""
    if is_aggregator_url(url):
        return True
    host = _host(url)
    if host == "google.com" or host.endswith(".google.com"):
        return urlparse(url).path == "/url"
    return False


def is_canonical_candidate(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    return not is_indirect_url(url)


def extract_embedded_url(url: str) -> Optional[str]:
    """Pull an external target out of a `url=` (or `q=` on google.com/url) parameter."""
    try:
        params = parse_qs(urlparse(url).query)
    except ValueError:
        return None
    for name in ("url", "q"):
        for value in params.get(name, []):
            candidate = unquote(value).strip()
            if is_canonical_candidate(candidate):
                return candidate
    return None


class RedirectResolver:
    """
    Turns tracker/redirect links into the article URL they point at.

    `resolve` never raises: not being able to canonicalize a link is an
    everyday outcome, reported as None.
    """

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_REDIRECT_TIMEOUT_S,
        user_agent: str = DEFAULT_USER_AGENT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "RedirectResolver":
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"User-Agent": self.user_agent})
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()

    async def resolve(self, url: str, timeout_s: Optional[float] = None) -> Optional[str]:
        """
        Returns:
            the url itself when it is not an indirect link (no network call),
            the canonical destination when one was found,
            None when the link could not be canonicalized.
        """
        if not is_indirect_url(url):
            return url

        embedded = extract_embedded_url(url)
        if embedded:
            return embedded

        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")

        budget = self.timeout_s if timeout_s is None else timeout_s
        try:
            return await asyncio.wait_for(self._follow(url), timeout=budget)
        except asyncio.TimeoutError:
            logger.debug("redirect_resolve_timeout", url=url, timeout_s=budget)
        except Exception as exc:
            logger.debug("redirect_resolve_failed", url=url, error=str(exc))
        return None

    async def _follow(self, url: str) -> Optional[str]:
        assert self._client is not None
        async with self._client.stream(
            "GET",
            url,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        ) as response:
            candidates: List[str] = [str(response.url)]
            # Location headers of every hop, newest first; covers hosts that
            # redirect through the aggregator again at the end of the chain.
            for hop in (response, *reversed(response.history)):
                location = hop.headers.get("location")
                if location:
                    candidates.append(urljoin(str(hop.url), location))

        for candidate in candidates:
            if is_canonical_candidate(candidate):
                return candidate
        return None
