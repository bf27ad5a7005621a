"""Precache loader: seeds the current bucket with the asset manifest."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import structlog

from zencache.errors import ZenCacheError
from zencache.fetcher import FetchMode
from zencache.models.results import PrecacheReport
from zencache.snapshot import duplicate_response
from zencache.urls import origin_of, resolve

if TYPE_CHECKING:
    from zencache.fetcher import Fetcher
    from zencache.store import CacheBucket

log = structlog.get_logger()


class PrecacheLoader:
    """Fetches a fixed manifest of core assets once, at install time.

    Each entry is stored under the request built from its literal manifest
    string, resolved the same way the classifier resolves it, so later
    exact-match lookups for that literal hit. Failures are per entry: one
    broken asset is logged and skipped, the rest are still stored.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        manifest: tuple[str, ...],
        deployment_root: str,
    ) -> None:
        self._fetcher = fetcher
        self._manifest = manifest
        self._deployment_root = deployment_root
        self._root_origin = origin_of(deployment_root)

    async def seed(self, bucket: CacheBucket) -> PrecacheReport:
        outcomes = await asyncio.gather(*(self._seed_entry(bucket, e) for e in self._manifest))

        report = PrecacheReport()
        for entry, stored in zip(self._manifest, outcomes, strict=True):
            (report.stored if stored else report.failed).append(entry)

        log.info(
            "precache_complete",
            bucket=bucket.name,
            stored=len(report.stored),
            failed=len(report.failed),
        )
        return report

    async def _seed_entry(self, bucket: CacheBucket, entry: str) -> bool:
        url = resolve(entry, self._deployment_root)
        if url is None:
            log.warning("precache_entry_failed", entry=entry, reason="unresolvable")
            return False

        cross_origin = origin_of(url) != self._root_origin
        mode = FetchMode.NO_CORS if cross_origin else FetchMode.CORS
        request = self._fetcher.build_request(url)

        try:
            response = await self._fetcher.fetch(request, mode)
            if mode is FetchMode.CORS and not response.is_success:
                await response.aclose()
                log.warning(
                    "precache_entry_failed",
                    entry=entry,
                    reason="bad_status",
                    status_code=response.status_code,
                )
                return False
            _, snapshot = await duplicate_response(
                response, request, url=url, opaque=mode is FetchMode.NO_CORS
            )
        except (ZenCacheError, httpx.HTTPError) as exc:
            log.warning("precache_entry_failed", entry=entry, reason="network", error=str(exc))
            return False

        await bucket.put_url("GET", url, snapshot)
        log.debug("precache_entry_stored", entry=entry, url=url, mode=mode)
        return True
