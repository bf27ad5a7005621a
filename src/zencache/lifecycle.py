"""Lifecycle controller: install and activate transitions of the agent."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from zencache.errors import ErrorCode, ZenCacheError

if TYPE_CHECKING:
    from zencache.models.results import PrecacheReport
    from zencache.precache import PrecacheLoader
    from zencache.protocols import ClientHost
    from zencache.store import CacheStore

log = structlog.get_logger()


class LifecycleState(StrEnum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"
    REDUNDANT = "redundant"  # Install failed; the host retries on next start


class LifecycleController:
    """Runs ``on_install`` then ``on_activate``; each runs to completion."""

    def __init__(
        self,
        store: CacheStore,
        loader: PrecacheLoader,
        host: ClientHost,
    ) -> None:
        self._store = store
        self._loader = loader
        self._host = host
        self.state = LifecycleState.PARSED

    async def on_install(self) -> PrecacheReport:
        """Open the current bucket, precache the manifest, skip waiting.

        Raises ZenCacheError(BUCKET_OPEN_FAILED) if the bucket cannot be
        opened; individual precache failures are only reported. Any failure
        leaves the controller REDUNDANT so the install can be retried.
        """
        self._require(LifecycleState.PARSED, LifecycleState.REDUNDANT, action="install")
        self.state = LifecycleState.INSTALLING
        log.info("agent_installing", version=self._store.version)

        try:
            bucket = await self._store.open()
            report = await self._loader.seed(bucket)
        except Exception:
            self.state = LifecycleState.REDUNDANT
            log.error("agent_install_failed", version=self._store.version, exc_info=True)
            raise

        self.state = LifecycleState.INSTALLED
        await self._host.skip_waiting()
        log.info(
            "agent_installed",
            version=self._store.version,
            precached=len(report.stored),
            precache_failed=report.failed,
        )
        return report

    async def on_activate(self) -> list[str]:
        """Delete stale buckets, then take control of open clients."""
        self._require(LifecycleState.INSTALLED, action="activate")
        self.state = LifecycleState.ACTIVATING

        deleted = await self._store.delete_stale()
        await self._host.claim_clients()

        self.state = LifecycleState.ACTIVE
        log.info("agent_activated", version=self._store.version, deleted_buckets=deleted)
        return deleted

    def _require(self, *allowed: LifecycleState, action: str) -> None:
        if self.state not in allowed:
            raise ZenCacheError(
                code=ErrorCode.INVALID_LIFECYCLE_TRANSITION,
                message=f"Cannot {action} while {self.state}",
                suggestion="Install must complete before activation; each runs once.",
                recoverable=False,
            )
