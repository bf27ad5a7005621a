"""Integration test fixtures.

Provides a fully installed and activated Agent backed by in-memory SQLite.
The deployment root is mocked with respx only while the agent installs, so
each test starts with the manifest precached and the network unmocked.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from zencache.agent import open_agent
from zencache.transport import AgentTransport

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from zencache.agent import Agent
    from zencache.config import Settings

ROOT = "https://app.example.com/"


@pytest.fixture()
async def agent(settings: Settings) -> AsyncGenerator[Agent, None]:
    """Agent with the default manifest precached from the mocked root."""
    async with AsyncExitStack() as stack:
        with respx.mock:
            respx.get(url__startswith=ROOT).mock(
                side_effect=lambda request: httpx.Response(
                    200, text=f"precached {request.url.path}"
                )
            )
            agent = await stack.enter_async_context(open_agent(settings))
        yield agent


@pytest.fixture()
async def agent_client(agent: Agent) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Client whose requests all go through the agent."""
    async with httpx.AsyncClient(transport=AgentTransport(agent)) as client:
        yield client
