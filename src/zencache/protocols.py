"""Protocol interfaces for swappable components.

The store, strategies and lifecycle reference these protocols, not the
concrete implementations. This allows:
- Tests to use lightweight in-memory implementations
- Other storage backends or host runtimes without changing strategy code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import httpx

    from zencache.fetcher import FetchMode
    from zencache.models.cache import CacheKey, ResponseSnapshot


class StorageProtocol(Protocol):
    """Interface for the bucket storage backend.

    Each method is a single atomic operation; no cross-key transactions.
    """

    async def open_bucket(self, name: str) -> None: ...

    async def bucket_names(self) -> list[str]: ...

    async def delete_bucket(self, name: str) -> bool: ...

    async def match(self, bucket: str, key: CacheKey) -> ResponseSnapshot | None: ...

    async def put(self, bucket: str, key: CacheKey, snapshot: ResponseSnapshot) -> None: ...

    async def keys(self, bucket: str) -> list[CacheKey]: ...


class FetcherProtocol(Protocol):
    """Interface for the network fetch used by strategies and precache."""

    async def fetch(self, request: httpx.Request, mode: FetchMode) -> httpx.Response: ...


class ClientHost(Protocol):
    """Client-control hooks the host runtime exposes to the lifecycle."""

    async def skip_waiting(self) -> None: ...

    async def claim_clients(self) -> None: ...
