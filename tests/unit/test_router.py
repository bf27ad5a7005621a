"""Unit tests for zencache.router."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from zencache.classifier import UrlClassifier, Verdict
from zencache.config import Settings
from zencache.errors import ErrorCode, ZenCacheError
from zencache.fetcher import Fetcher, FetchMode
from zencache.models.cache import ResponseSnapshot
from zencache.models.results import StrategyOutcome, StrategyResult
from zencache.router import RequestRouter
from zencache.store import CacheStore

if TYPE_CHECKING:
    from zencache.store import CacheBucket

GOALS = "http://127.0.0.1:5000/api/v1/goals"
STREAM = "http://127.0.0.1:5000/api/v1/analysis/stream"
INDEX = "https://app.example.com/index.html"
LIBRARY = "https://esm.sh/recharts@2"


@pytest.fixture()
def router(settings: Settings, store: CacheStore, http_client: httpx.AsyncClient) -> RequestRouter:
    return RequestRouter(UrlClassifier(settings.routing), store, Fetcher(http_client))


def _spy_router(settings: Settings) -> tuple[RequestRouter, AsyncMock, AsyncMock]:
    storage = AsyncMock()
    fetcher = AsyncMock()
    router = RequestRouter(UrlClassifier(settings.routing), CacheStore(storage, "v2"), fetcher)
    return router, storage, fetcher


class TestPassThrough:
    async def test_streaming_never_touches_store(self, settings: Settings) -> None:
        router, storage, fetcher = _spy_router(settings)
        request = httpx.Request("GET", STREAM)

        assert router.classify(request) is Verdict.STREAMING_ENDPOINT
        assert await router.route(request) is None
        assert await router.handle(request) is None
        assert storage.mock_calls == []
        fetcher.fetch.assert_not_awaited()

    @pytest.mark.parametrize(
        ("method", "url"),
        [
            ("POST", GOALS),
            ("DELETE", "http://127.0.0.1:5000/api/v1/todos/3"),
            ("GET", "https://app.example.com/logo.png"),
            ("GET", "ws://app.example.com/socket"),
        ],
    )
    async def test_unmanaged_never_touches_store(
        self, settings: Settings, method: str, url: str
    ) -> None:
        router, storage, fetcher = _spy_router(settings)
        request = httpx.Request(method, url)

        assert await router.handle(request) is None
        assert storage.mock_calls == []
        fetcher.fetch.assert_not_awaited()


class TestDispatch:
    async def test_api_uses_network_first(
        self, router: RequestRouter, bucket: CacheBucket
    ) -> None:

        cached = ResponseSnapshot(url=GOALS, status_code=200, content=b"cached")
        await bucket.put_url("GET", GOALS, cached)

        with respx.mock:
            route = respx.get(GOALS).mock(return_value=httpx.Response(200, content=b"fresh"))
            result = await router.route(httpx.Request("GET", GOALS))

        assert route.call_count == 1
        assert result is not None
        assert result.outcome is StrategyOutcome.NETWORK
        assert result.response is not None
        assert result.response.content == b"fresh"

    async def test_manifest_asset_uses_cache_first(
        self, router: RequestRouter, bucket: CacheBucket
    ) -> None:

        snapshot = ResponseSnapshot(url=INDEX, status_code=200, content=b"<html>")
        await bucket.put_url("GET", INDEX, snapshot)

        with respx.mock:
            route = respx.get(INDEX).mock(return_value=httpx.Response(200, content=b"new"))
            result = await router.route(httpx.Request("GET", INDEX))

        assert route.call_count == 0
        assert result is not None
        assert result.outcome is StrategyOutcome.CACHE_HIT

    async def test_library_origin_fetched_no_cors(
        self, settings: Settings, store: CacheStore
    ) -> None:
        await store.open()
        fetcher = AsyncMock()
        fetcher.fetch.return_value = httpx.Response(200, content=b"lib")
        router = RequestRouter(UrlClassifier(settings.routing), store, fetcher)
        request = httpx.Request("GET", LIBRARY)

        result = await router.route(request)

        fetcher.fetch.assert_awaited_once_with(request, FetchMode.NO_CORS)
        assert result is not None
        assert result.outcome is StrategyOutcome.NETWORK

    async def test_unmanifested_script_fetched_cors(
        self, settings: Settings, store: CacheStore
    ) -> None:
        await store.open()
        fetcher = AsyncMock()
        fetcher.fetch.return_value = httpx.Response(200, content=b"chunk")
        router = RequestRouter(UrlClassifier(settings.routing), store, fetcher)
        request = httpx.Request("GET", "https://app.example.com/assets/chunk-9a.js")

        await router.route(request)

        fetcher.fetch.assert_awaited_once_with(request, FetchMode.CORS)


class TestHandle:
    async def test_fallback_for_goals(self, router: RequestRouter, bucket: CacheBucket) -> None:

        with respx.mock:
            respx.get(GOALS).mock(
                side_effect=[
                    httpx.Response(200, json=[{"id": 1, "title": "Read"}]),
                    httpx.ConnectError("offline"),
                ]
            )
            await router.handle(httpx.Request("GET", GOALS))
            response = await router.handle(httpx.Request("GET", GOALS))

        assert response is not None
        assert response.json() == [{"id": 1, "title": "Read"}]

    async def test_api_failure_without_cache_raises(
        self, router: RequestRouter, bucket: CacheBucket
    ) -> None:

        with respx.mock:
            respx.get(GOALS).mock(side_effect=httpx.ConnectError("offline"))
            with pytest.raises(ZenCacheError) as exc_info:
                await router.handle(httpx.Request("GET", GOALS))

        assert exc_info.value.code == ErrorCode.API_UNAVAILABLE

    async def test_asset_failure_raises(self, router: RequestRouter, bucket: CacheBucket) -> None:

        with respx.mock:
            respx.get(INDEX).mock(side_effect=httpx.ConnectError("offline"))
            with pytest.raises(ZenCacheError) as exc_info:
                await router.handle(httpx.Request("GET", INDEX))

        assert exc_info.value.code == ErrorCode.ASSET_FETCH_FAILED


class TestConcurrency:
    async def test_concurrent_requests_are_independent(
        self, router: RequestRouter, bucket: CacheBucket
    ) -> None:
        urls = [f"http://127.0.0.1:5000/api/v1/todos/{i}" for i in range(10)]
        with respx.mock:
            for i, url in enumerate(urls):
                respx.get(url).mock(return_value=httpx.Response(200, content=str(i).encode()))
            streaming = respx.get(STREAM).mock(return_value=httpx.Response(200))

            results = await asyncio.gather(
                *(router.route(httpx.Request("GET", url)) for url in urls),
                router.route(httpx.Request("GET", STREAM)),
            )

        assert results[-1] is None
        assert streaming.call_count == 0
        for i, result in enumerate(results[:-1]):
            assert result is not None
            assert result.response is not None
            assert result.response.content == str(i).encode()
        assert len(await bucket.keys()) == 10


class TestStrategyResult:
    def test_unwrap_returns_response(self) -> None:
        response = httpx.Response(200, content=b"ok")
        result = StrategyResult(outcome=StrategyOutcome.CACHE_HIT, response=response)

        assert result.unwrap() is response

    def test_unwrap_raises_failure(self) -> None:
        error = ZenCacheError(
            code=ErrorCode.API_UNAVAILABLE, message="offline", suggestion="reconnect"
        )
        result = StrategyResult(outcome=StrategyOutcome.FAILED, error=error)

        assert not result.ok
        with pytest.raises(ZenCacheError) as exc_info:
            result.unwrap()
        assert exc_info.value is error

    def test_unwrap_without_response_raises(self) -> None:
        result = StrategyResult(outcome=StrategyOutcome.NETWORK)

        with pytest.raises(ValueError, match="no response"):
            result.unwrap()
