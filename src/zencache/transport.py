"""httpx transport that puts the agent between a client and the network."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog

from zencache.errors import ZenCacheError

if TYPE_CHECKING:
    from zencache.agent import Agent

log = structlog.get_logger()

OUTCOME_EXTENSION = "zencache_outcome"


class AgentTransport(httpx.AsyncBaseTransport):
    """Intercepts every request an ``httpx.AsyncClient`` sends.

    Requests the agent does not manage go to ``network`` untouched. Managed
    requests are answered by the router; the strategy outcome is exposed as
    ``response.extensions["zencache_outcome"]``. When the agent has nothing
    to serve, an ``httpx.ConnectError`` is raised whose ``__cause__`` is the
    ZenCacheError, so application code handles it like any network failure.

    Usage::

        client = httpx.AsyncClient(transport=AgentTransport(agent))
    """

    def __init__(self, agent: Agent, network: httpx.AsyncBaseTransport | None = None) -> None:
        self._agent = agent
        self._network = network or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        result = await self._agent.route(request)
        if result is None:
            return await self._network.handle_async_request(request)

        try:
            response = result.unwrap()
        except ZenCacheError as exc:
            raise httpx.ConnectError(exc.message, request=request) from exc

        response.extensions[OUTCOME_EXTENSION] = result.outcome
        return response

    async def aclose(self) -> None:
        await self._network.aclose()
