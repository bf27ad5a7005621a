"""Reverse-proxy entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create the Agent via the Starlette lifespan context manager
- Forward every request to the deployment root through the agent
- Start uvicorn
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from urllib.parse import quote, urljoin

import httpx
import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from zencache import __version__
from zencache.agent import open_agent
from zencache.config import Settings
from zencache.errors import ErrorCode, ZenCacheError
from zencache.transport import AgentTransport
from zencache.urls import origin_of

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Iterable

    from starlette.requests import Request

log = structlog.get_logger()

# Connection-level headers never forwarded in either direction
_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "host",
    }
)

_STATUS_BY_CODE = {
    ErrorCode.API_UNAVAILABLE: 504,
    ErrorCode.URL_NOT_ALLOWED: 400,
}

_PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Proxy endpoint
# ---------------------------------------------------------------------------


def _filter_headers(items: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    return [(name, value) for name, value in items if name.lower() not in _HOP_BY_HOP]


def _envelope(error: ZenCacheError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=_STATUS_BY_CODE.get(error.code, 502))


def _error_response(exc: httpx.HTTPError) -> JSONResponse:
    """Convert a failed request into the JSON error envelope."""
    cause = exc.__cause__
    if isinstance(cause, ZenCacheError):
        return _envelope(cause)

    error = ZenCacheError(
        code=ErrorCode.NETWORK_ERROR,
        message=f"Upstream request failed: {exc}",
        suggestion="The deployment root may be offline.",
        recoverable=True,
    )
    return _envelope(error)


def _proxy_target(upstream_url: str, request: Request) -> str:
    """Map an incoming request onto the deployment root.

    The path is taken undecoded so percent-escapes reach the upstream as
    sent. Raises ZenCacheError(URL_NOT_ALLOWED) when the result would leave
    the upstream origin.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.decode("latin-1")
    else:
        path = quote(request.url.path, safe="/:@!$&'()*+,;=~")

    target = urljoin(upstream_url, path.lstrip("/"))
    if origin_of(target) != origin_of(upstream_url):
        log.warning("proxy_target_blocked", path=path, target=target)
        raise ZenCacheError(
            code=ErrorCode.URL_NOT_ALLOWED,
            message=f"Request path resolves outside the deployment root: {path}",
            suggestion="Only paths under the configured upstream are proxied.",
            recoverable=False,
        )

    query = request.scope.get("query_string", b"")
    if query:
        target = f"{target}?{query.decode('latin-1')}"
    return target


async def proxy(request: Request) -> Response:
    """Forward one request to the deployment root through the agent."""
    client: httpx.AsyncClient = request.app.state.client
    upstream_url: str = request.app.state.upstream_url

    try:
        target = _proxy_target(upstream_url, request)
    except ZenCacheError as exc:
        return _envelope(exc)

    outbound = client.build_request(
        request.method,
        target,
        headers=_filter_headers(request.headers.items()),
        content=await request.body() or None,
    )
    try:
        upstream = await client.send(outbound, stream=True)
    except httpx.HTTPError as exc:
        log.warning("proxy_request_failed", url=target, error=str(exc))
        return _error_response(exc)

    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers=dict(_filter_headers(upstream.headers.multi_items())),
        background=BackgroundTask(upstream.aclose),
    )


def create_app(settings: Settings, *, client: httpx.AsyncClient | None = None) -> Starlette:
    """Build the proxy app.

    With ``client`` given (tests), the caller owns the agent and the client;
    otherwise the lifespan opens an agent and wraps it in an AgentTransport.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
        if client is not None:
            yield
            return
        async with (
            open_agent(settings) as agent,
            httpx.AsyncClient(transport=AgentTransport(agent)) as agent_client,
        ):
            app.state.client = agent_client
            log.info("server_started", version=__version__, cache_version=agent.store.version)
            yield
        log.info("server_stopping")

    app = Starlette(
        routes=[Route("/{path:path}", proxy, methods=_PROXY_METHODS)],
        lifespan=lifespan,
    )
    app.state.client = client
    app.state.upstream_url = settings.server.upstream_url
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    _setup_logging(settings)
    log.info(
        "server_starting",
        version=__version__,
        upstream=settings.server.upstream_url,
        cache_version=settings.cache.version,
    )

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()
