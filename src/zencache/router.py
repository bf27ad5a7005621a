"""Per-request entry point: classify, then run exactly one strategy."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from zencache.classifier import Verdict
from zencache.fetcher import FetchMode
from zencache.strategies import cache_first, network_first

if TYPE_CHECKING:
    import httpx

    from zencache.classifier import UrlClassifier
    from zencache.models.results import StrategyResult
    from zencache.protocols import FetcherProtocol
    from zencache.store import CacheStore

log = structlog.get_logger()

PASS_THROUGH_VERDICTS = frozenset({Verdict.STREAMING_ENDPOINT, Verdict.UNMANAGED})


class RequestRouter:
    """Dispatches intercepted requests to the caching strategies.

    Holds no per-request state: concurrent calls are independent tasks that
    only share the store.
    """

    def __init__(
        self,
        classifier: UrlClassifier,
        store: CacheStore,
        fetcher: FetcherProtocol,
    ) -> None:
        self._classifier = classifier
        self._store = store
        self._fetcher = fetcher

    def classify(self, request: httpx.Request) -> Verdict:
        return self._classifier.classify(request.method, str(request.url))

    async def route(self, request: httpx.Request) -> StrategyResult | None:
        """Run the strategy for ``request``; ``None`` means pass through."""
        verdict = self.classify(request)
        if verdict in PASS_THROUGH_VERDICTS:
            return None

        bucket = self._store.current
        if verdict is Verdict.API_ENDPOINT:
            result = await network_first(request, bucket, self._fetcher)
        else:
            mode = FetchMode.NO_CORS if verdict is Verdict.LIBRARY_ORIGIN else FetchMode.CORS
            result = await cache_first(request, bucket, self._fetcher, mode=mode)

        log.debug("request_routed", url=str(request.url), verdict=verdict, outcome=result.outcome)
        return result

    async def handle(self, request: httpx.Request) -> httpx.Response | None:
        """Return the response for ``request``, or ``None`` to pass it through.

        Raises ZenCacheError when the strategy had nothing to serve.
        """
        result = await self.route(request)
        if result is None:
            return None
        return result.unwrap()
