"""Unit tests for zencache.precache."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import respx

from zencache.classifier import UrlClassifier, Verdict
from zencache.config import RoutingSettings
from zencache.fetcher import Fetcher
from zencache.precache import PrecacheLoader

if TYPE_CHECKING:
    from zencache.store import CacheBucket

ROOT = "https://app.example.com/"
MANIFEST = (
    "./",
    "./index.html",
    "./index.tsx",
    "./manifest.json",
    "https://cdn.tailwindcss.com/",
)


def _mock_all(status_by_url: dict[str, int | Exception]) -> None:
    for url, outcome in status_by_url.items():
        if isinstance(outcome, Exception):
            respx.get(url).mock(side_effect=outcome)
        else:
            respx.get(url).mock(return_value=httpx.Response(outcome, content=url.encode()))


class TestSeed:
    async def test_all_entries_stored(
        self, bucket: CacheBucket, http_client: httpx.AsyncClient
    ) -> None:
        loader = PrecacheLoader(Fetcher(http_client), MANIFEST, ROOT)
        with respx.mock:
            _mock_all(
                {
                    "https://app.example.com/": 200,
                    "https://app.example.com/index.html": 200,
                    "https://app.example.com/index.tsx": 200,
                    "https://app.example.com/manifest.json": 200,
                    "https://cdn.tailwindcss.com/": 200,
                }
            )
            report = await loader.seed(bucket)

        assert report.complete
        assert report.stored == list(MANIFEST)
        assert len(await bucket.keys()) == 5

    async def test_one_failure_does_not_abort(
        self, bucket: CacheBucket, http_client: httpx.AsyncClient
    ) -> None:
        loader = PrecacheLoader(Fetcher(http_client), MANIFEST, ROOT)
        with respx.mock:
            _mock_all(
                {
                    "https://app.example.com/": 200,
                    "https://app.example.com/index.html": 200,
                    "https://app.example.com/index.tsx": httpx.ConnectError("refused"),
                    "https://app.example.com/manifest.json": 200,
                    "https://cdn.tailwindcss.com/": 200,
                }
            )
            report = await loader.seed(bucket)

        assert report.failed == ["./index.tsx"]
        assert len(report.stored) == 4
        stored_urls = {key.url for key in await bucket.keys()}
        assert stored_urls == {
            "https://app.example.com/",
            "https://app.example.com/index.html",
            "https://app.example.com/manifest.json",
            "https://cdn.tailwindcss.com/",
        }

    async def test_bad_status_same_origin_is_failure(
        self, bucket: CacheBucket, http_client: httpx.AsyncClient
    ) -> None:
        loader = PrecacheLoader(Fetcher(http_client), ("./index.html",), ROOT)
        with respx.mock:
            _mock_all({"https://app.example.com/index.html": 404})
            report = await loader.seed(bucket)

        assert report.failed == ["./index.html"]
        assert await bucket.keys() == []

    async def test_cross_origin_entry_is_opaque(
        self, bucket: CacheBucket, http_client: httpx.AsyncClient
    ) -> None:
        loader = PrecacheLoader(Fetcher(http_client), ("https://cdn.tailwindcss.com/",), ROOT)
        with respx.mock:
            _mock_all({"https://cdn.tailwindcss.com/": 200})
            await loader.seed(bucket)

        stored = await bucket.match_url("GET", "https://cdn.tailwindcss.com/")
        assert stored is not None
        assert stored.opaque is True

    async def test_unresolvable_entry_is_failure(
        self, bucket: CacheBucket, http_client: httpx.AsyncClient
    ) -> None:
        loader = PrecacheLoader(Fetcher(http_client), ("./index.html", "https://esm.sh/a"), "")
        with respx.mock:
            _mock_all({"https://esm.sh/a": 200})
            report = await loader.seed(bucket)

        assert report.failed == ["./index.html"]
        assert report.stored == ["https://esm.sh/a"]

    async def test_stored_keys_match_classifier(
        self, bucket: CacheBucket, http_client: httpx.AsyncClient
    ) -> None:
        """Literal manifest entries land on the keys later requests carry."""
        loader = PrecacheLoader(Fetcher(http_client), ("./", "./index.html"), ROOT)
        classifier = UrlClassifier(RoutingSettings(deployment_root=ROOT))
        with respx.mock:
            respx.get("https://app.example.com/").mock(
                return_value=httpx.Response(301, headers={"location": "/index.html"})
            )
            respx.get("https://app.example.com/index.html").mock(
                return_value=httpx.Response(200, text="<html>")
            )
            await loader.seed(bucket)

        for url in ("https://app.example.com", "https://app.example.com/index.html"):
            assert classifier.classify("GET", url) is Verdict.PRECACHED_ASSET
            stored = await bucket.match(httpx.Request("GET", url))
            assert stored is not None
            assert stored.content == b"<html>"
