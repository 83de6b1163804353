from __future__ import annotations

import httpx
import pytest

from newsdesk.services.http_fetcher import FetchError, HttpFetcher

FEED_URL = "https://feeds.news.site/rss"


@pytest.mark.asyncio
async def test_fetcher_context_manager_owns_client():
    async with HttpFetcher(user_agent="test-agent/1.0") as fetcher:
        assert isinstance(fetcher._client, httpx.AsyncClient)

    assert fetcher._client is None or fetcher._client.is_closed


@pytest.mark.asyncio
async def test_fetch_requires_context():
    fetcher = HttpFetcher(user_agent="test-agent/1.0")
    with pytest.raises(RuntimeError, match="not initialized"):
        await fetcher.fetch(FEED_URL)


@pytest.mark.asyncio
async def test_fetch_text_returns_body_and_sends_headers(httpx_mock):
    httpx_mock.add_response(url=FEED_URL, text="<rss></rss>")

    async with HttpFetcher(user_agent="test-agent/1.0") as fetcher:
        body = await fetcher.fetch_text(FEED_URL)

    assert body == "<rss></rss>"
    request = httpx_mock.get_requests()[0]
    assert request.headers["User-Agent"] == "test-agent/1.0"
    assert "application/rss+xml" in request.headers["Accept"]


@pytest.mark.asyncio
async def test_fetch_retries_transient_statuses(httpx_mock):
    httpx_mock.add_response(url=FEED_URL, status_code=503)
    httpx_mock.add_response(url=FEED_URL, status_code=429)
    httpx_mock.add_response(url=FEED_URL, text="ok")

    async with HttpFetcher(user_agent="test-agent/1.0", max_retries=2, backoff_s=0) as fetcher:
        response = await fetcher.fetch(FEED_URL)

    assert response.text == "ok"
    assert len(httpx_mock.get_requests()) == 3


@pytest.mark.asyncio
async def test_fetch_retries_exhausted_raises_last_error(httpx_mock):
    for _ in range(3):
        httpx_mock.add_response(url=FEED_URL, status_code=502)

    async with HttpFetcher(user_agent="test-agent/1.0", max_retries=2, backoff_s=0) as fetcher:
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch(FEED_URL)

    assert excinfo.value.status_code == 502
    assert excinfo.value.transient is True
    assert len(httpx_mock.get_requests()) == 3


@pytest.mark.asyncio
async def test_fetch_retries_transport_errors(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=FEED_URL)
    httpx_mock.add_response(url=FEED_URL, text="recovered")

    async with HttpFetcher(user_agent="test-agent/1.0", max_retries=2, backoff_s=0) as fetcher:
        body = await fetcher.fetch_text(FEED_URL)

    assert body == "recovered"


@pytest.mark.asyncio
async def test_fetch_transport_errors_surface_after_retries(httpx_mock):
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"), url=FEED_URL)
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"), url=FEED_URL)

    async with HttpFetcher(user_agent="test-agent/1.0", max_retries=1, backoff_s=0) as fetcher:
        with pytest.raises(httpx.ReadTimeout):
            await fetcher.fetch(FEED_URL)


@pytest.mark.asyncio
async def test_fetch_does_not_retry_permanent_errors(httpx_mock):
    httpx_mock.add_response(url=FEED_URL, status_code=404)

    async with HttpFetcher(user_agent="test-agent/1.0", max_retries=2, backoff_s=0) as fetcher:
        response = await fetcher.fetch(FEED_URL)
        assert response.status_code == 404
        with pytest.raises(FetchError) as excinfo:
            httpx_mock.add_response(url=FEED_URL, status_code=404)
            await fetcher.fetch_text(FEED_URL)

    assert excinfo.value.status_code == 404
    assert excinfo.value.transient is False
    assert len(httpx_mock.get_requests()) == 2
