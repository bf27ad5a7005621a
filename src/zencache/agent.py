"""The agent: wiring of store, classifier, router and lifecycle.

An Agent is created once per process by ``open_agent`` and is the host-side
implementation of the client-control hooks (skip waiting, claim clients)
the lifecycle controller calls. Requests only reach the router once the
agent controls its clients, i.e. after activation.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from zencache.classifier import UrlClassifier
from zencache.fetcher import Fetcher, build_http_client
from zencache.lifecycle import LifecycleController
from zencache.precache import PrecacheLoader
from zencache.router import RequestRouter
from zencache.storage import SqliteStorage
from zencache.store import CacheStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from zencache.config import Settings
    from zencache.models.results import PrecacheReport, StrategyResult
    from zencache.protocols import StorageProtocol

log = structlog.get_logger()


class Agent:
    """Holds all shared runtime components of one agent version."""

    def __init__(
        self,
        settings: Settings,
        storage: StorageProtocol,
        client: httpx.AsyncClient,
    ) -> None:
        self.settings = settings
        self.store = CacheStore(storage, settings.cache.version)
        self.classifier = UrlClassifier(settings.routing)
        self.fetcher = Fetcher(client)
        self.router = RequestRouter(self.classifier, self.store, self.fetcher)
        self.lifecycle = LifecycleController(
            self.store,
            PrecacheLoader(
                self.fetcher,
                settings.routing.manifest,
                settings.routing.deployment_root or "",
            ),
            self,
        )
        self.waiting = True
        self.controlling = False

    # ClientHost ---------------------------------------------------------

    async def skip_waiting(self) -> None:
        self.waiting = False

    async def claim_clients(self) -> None:
        self.controlling = True
        log.info("clients_claimed", version=self.store.version)

    # ---------------------------------------------------------------------

    async def start(self) -> PrecacheReport:
        """Install, then activate as soon as waiting was skipped."""
        report = await self.lifecycle.on_install()
        if self.waiting:
            log.info("agent_waiting", version=self.store.version)
            return report
        await self.lifecycle.on_activate()
        return report

    async def route(self, request: httpx.Request) -> StrategyResult | None:
        """Route a request; ``None`` while the agent does not control clients."""
        if not self.controlling:
            return None
        return await self.router.route(request)


@asynccontextmanager
async def open_agent(
    settings: Settings,
    *,
    network: httpx.AsyncBaseTransport | None = None,
    db_path: str | None = None,
) -> AsyncGenerator[Agent, None]:
    """Create, install and activate an agent; tear it down on exit.

    ``network`` is the transport the agent's own fetches use (the real
    network by default). Raises ZenCacheError if installation fails.
    """
    path = db_path or settings.cache.db_path
    if path != ":memory:":
        db_file = Path(path).expanduser()
        db_file.parent.mkdir(parents=True, exist_ok=True)
        path = str(db_file)

    async with aiosqlite.connect(path) as db:
        storage = SqliteStorage(db)
        await storage.init_db()
        async with build_http_client(settings.fetcher, network) as client:
            agent = Agent(settings, storage, client)
            await agent.start()
            try:
                yield agent
            finally:
                log.info("agent_stopping", version=agent.store.version)
