"""Caching strategies.

Each strategy handles one request end to end and reports what it did as a
StrategyResult instead of raising. A response that is both stored and
returned always goes through ``duplicate_response`` before either side
reads it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog

from zencache.errors import ErrorCode, ZenCacheError
from zencache.fetcher import FetchMode
from zencache.models.results import StrategyOutcome, StrategyResult
from zencache.snapshot import duplicate_response

if TYPE_CHECKING:
    from zencache.protocols import FetcherProtocol
    from zencache.store import CacheBucket


def _failure(code: ErrorCode, message: str, suggestion: str, cause: Exception) -> StrategyResult:
    error = ZenCacheError(code=code, message=message, suggestion=suggestion, recoverable=True)
    error.__cause__ = cause
    return StrategyResult(outcome=StrategyOutcome.FAILED, error=error)


async def cache_first(
    request: httpx.Request,
    bucket: CacheBucket,
    fetcher: FetcherProtocol,
    *,
    mode: FetchMode = FetchMode.CORS,
) -> StrategyResult:
    """Serve from the bucket when present, otherwise fetch, store and serve.

    A network failure on a miss is reported as FAILED.
    """
    url = str(request.url)
    log = structlog.get_logger().bind(strategy="cache_first", url=url)

    cached = await bucket.match(request)
    if cached is not None:
        log.debug("cache_hit")
        return StrategyResult(
            outcome=StrategyOutcome.CACHE_HIT,
            response=cached.to_response(request),
        )

    opaque = mode is FetchMode.NO_CORS
    try:
        response = await fetcher.fetch(request, mode)
        if not opaque and not response.is_success:
            log.info("asset_not_cached", status_code=response.status_code)
            return StrategyResult(outcome=StrategyOutcome.NETWORK_UNCACHED, response=response)
        caller_copy, snapshot = await duplicate_response(response, request, url=url, opaque=opaque)
    except (ZenCacheError, httpx.HTTPError) as exc:
        log.warning("asset_fetch_failed", error=str(exc))
        return _failure(
            ErrorCode.ASSET_FETCH_FAILED,
            f"Asset {url} is not cached and could not be fetched",
            "The asset has never been loaded online; reconnect and reload the page.",
            exc,
        )

    await bucket.put(request, snapshot)
    log.debug("asset_stored", status_code=snapshot.status_code, opaque=opaque)
    return StrategyResult(outcome=StrategyOutcome.NETWORK, response=caller_copy)


async def network_first(
    request: httpx.Request,
    bucket: CacheBucket,
    fetcher: FetcherProtocol,
) -> StrategyResult:
    """Always try the network; fall back to the last stored copy on failure.

    Only success responses are stored, so an error response never replaces
    a previously good entry. With no network and no stored copy the result
    is FAILED and the caller must handle the absence.
    """
    url = str(request.url)
    log = structlog.get_logger().bind(strategy="network_first", url=url)

    try:
        response = await fetcher.fetch(request, FetchMode.CORS)
        if not response.is_success:
            log.info("api_response_not_cached", status_code=response.status_code)
            return StrategyResult(outcome=StrategyOutcome.NETWORK_UNCACHED, response=response)
        caller_copy, snapshot = await duplicate_response(response, request, url=url)
    except (ZenCacheError, httpx.HTTPError) as exc:
        cached = await bucket.match(request)
        if cached is not None:
            log.warning("network_fallback", stored_at=cached.stored_at.isoformat())
            return StrategyResult(
                outcome=StrategyOutcome.FALLBACK,
                response=cached.to_response(request),
            )
        log.warning("api_unavailable", error=str(exc))
        return _failure(
            ErrorCode.API_UNAVAILABLE,
            f"Network error fetching {url} and no cached copy is available",
            "The data has never been loaded online; reconnect and try again.",
            exc,
        )

    await bucket.put(request, snapshot)
    log.debug("api_response_stored", status_code=snapshot.status_code)
    return StrategyResult(outcome=StrategyOutcome.NETWORK, response=caller_copy)
