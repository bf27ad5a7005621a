"""Shared test fixtures for the zencache test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest

from zencache.config import Settings
from zencache.storage import SqliteStorage
from zencache.store import CacheStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from zencache.store import CacheBucket

ROOT = "https://app.example.com/"
API = "http://127.0.0.1:5000/api/v1"


@pytest.fixture()
def settings() -> Settings:
    """Settings pointing at a fake deployment root, with bucket version v2."""
    return Settings(
        cache={"version": "v2", "db_path": ":memory:"},
        routing={"deployment_root": ROOT},
        server={"upstream_url": ROOT},
    )


@pytest.fixture()
async def storage() -> AsyncGenerator[SqliteStorage, None]:
    """SqliteStorage backed by an in-memory database."""
    async with aiosqlite.connect(":memory:") as db:
        storage = SqliteStorage(db)
        await storage.init_db()
        yield storage


@pytest.fixture()
def store(storage: SqliteStorage) -> CacheStore:
    return CacheStore(storage, "v2")


@pytest.fixture()
async def bucket(store: CacheStore) -> CacheBucket:
    """The opened current bucket."""
    return await store.open()


@pytest.fixture()
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(follow_redirects=True) as client:
        yield client
