"""Cache Store Manager: the current, versioned bucket and stale-bucket cleanup.

The store holds no ambient state. It is constructed with the version
identifier of the running deployment and the storage backend, so tests can
run it against an in-memory SQLite database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import structlog

from zencache.errors import ErrorCode, ZenCacheError
from zencache.models.cache import CacheKey
from zencache.urls import canonicalize

if TYPE_CHECKING:
    import httpx

    from zencache.models.cache import ResponseSnapshot
    from zencache.protocols import StorageProtocol

log = structlog.get_logger()


def cache_key(method: str, url: str) -> CacheKey | None:
    """Build the cache key for a request, or ``None`` if it is not cacheable."""
    if method.upper() != "GET":
        return None
    canonical = canonicalize(url)
    if canonical is None:
        return None
    return CacheKey(method="GET", url=canonical)


class CacheBucket:
    """One named bucket of request -> response snapshots."""

    def __init__(self, storage: StorageProtocol, name: str) -> None:
        self._storage = storage
        self.name = name

    async def match(self, request: httpx.Request) -> ResponseSnapshot | None:
        return await self.match_url(request.method, str(request.url))

    async def match_url(self, method: str, url: str) -> ResponseSnapshot | None:
        key = cache_key(method, url)
        if key is None:
            return None
        return await self._storage.match(self.name, key)

    async def put(self, request: httpx.Request, snapshot: ResponseSnapshot) -> bool:
        return await self.put_url(request.method, str(request.url), snapshot)

    async def put_url(self, method: str, url: str, snapshot: ResponseSnapshot) -> bool:
        """Store ``snapshot``. Returns False if the request is not cacheable."""
        key = cache_key(method, url)
        if key is None:
            log.debug("cache_put_skipped", method=method, url=url)
            return False
        await self._storage.put(self.name, key, snapshot)
        return True

    async def keys(self) -> list[CacheKey]:
        return await self._storage.keys(self.name)


class CacheStore:
    """Owns the current bucket, named after the deployment version."""

    def __init__(self, storage: StorageProtocol, version: str) -> None:
        if not version:
            raise ValueError("cache version must be a non-empty string")
        self._storage = storage
        self.version = version

    @property
    def current(self) -> CacheBucket:
        """Handle on the current bucket. Does not create it; see ``open``."""
        return CacheBucket(self._storage, self.version)

    async def open(self) -> CacheBucket:
        """Create the current bucket if absent and return it.

        Raises ZenCacheError if the storage backend cannot open the bucket.
        """
        try:
            await self._storage.open_bucket(self.version)
        except (aiosqlite.Error, OSError) as exc:
            raise ZenCacheError(
                code=ErrorCode.BUCKET_OPEN_FAILED,
                message=f"Could not open cache bucket {self.version!r}: {exc}",
                suggestion="Check the cache database path; installation is retried on next start.",
                recoverable=True,
            ) from exc
        log.debug("bucket_opened", bucket=self.version)
        return self.current

    async def bucket_names(self) -> list[str]:
        return await self._storage.bucket_names()

    async def delete_stale(self) -> list[str]:
        """Delete every bucket whose name is not the current version."""
        deleted: list[str] = []
        for name in await self._storage.bucket_names():
            if name == self.version:
                continue
            if await self._storage.delete_bucket(name):
                log.info("bucket_deleted", bucket=name, current=self.version)
                deleted.append(name)
        return deleted
