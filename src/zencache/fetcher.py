"""Network fetch for strategies and the precache loader.

All network I/O the agent performs goes through a single Fetcher instance.
The Fetcher receives an httpx.AsyncClient via constructor injection; the
host adapter owns the client lifecycle. Responses are returned unread
(streamed) so that strategies decide when and how the body is buffered.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import httpx
import structlog

from zencache.errors import ErrorCode, ZenCacheError

if TYPE_CHECKING:
    from zencache.config import FetcherSettings

log = structlog.get_logger()

# Stripped from reduced-visibility requests: cross-origin fetches carry no
# credentials.
_CREDENTIAL_HEADERS = ("cookie", "authorization", "proxy-authorization")


class FetchMode(StrEnum):
    CORS = "cors"  # Normal fetch, response fully inspectable
    NO_CORS = "no-cors"  # Reduced visibility: no credentials, stored opaquely


def build_http_client(
    settings: FetcherSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        transport=transport,
        follow_redirects=True,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
        ),
    )


class Fetcher:
    """Sends requests to the network on behalf of the agent."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    def build_request(self, url: str) -> httpx.Request:
        """Build a plain GET request with the client's default headers."""
        return self._client.build_request("GET", url)

    async def fetch(
        self,
        request: httpx.Request,
        mode: FetchMode = FetchMode.CORS,
    ) -> httpx.Response:
        """Send ``request`` and return the unread response.

        Method, headers and body are preserved; ``NO_CORS`` additionally drops
        credential headers. Any status code is returned as a response.
        Raises ZenCacheError(NETWORK_ERROR) when no response was received.
        """
        headers = httpx.Headers(request.headers)
        if mode is FetchMode.NO_CORS:
            for name in _CREDENTIAL_HEADERS:
                headers.pop(name, None)

        try:
            body = await request.aread()
            outbound = httpx.Request(
                request.method,
                request.url,
                headers=headers,
                content=body or None,
            )
            response = await self._client.send(outbound, stream=True)
        except httpx.HTTPError as exc:
            log.info("fetch_failed", url=str(request.url), mode=mode, error=str(exc))
            raise ZenCacheError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Network error fetching {request.url}: {exc}",
                suggestion="Check connectivity; the request can be retried.",
                recoverable=True,
            ) from exc

        log.debug(
            "fetch_complete",
            url=str(request.url),
            mode=mode,
            status_code=response.status_code,
        )
        return response
