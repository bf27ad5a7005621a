"""Request classification.

The classifier is a pure function of (method, URL): it holds only the
routing configuration, never mutable state, and never raises. Anything it
cannot make sense of is ``Verdict.UNMANAGED`` and passes through untouched.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from zencache.urls import canonicalize, origin_of, path_of, resolve

if TYPE_CHECKING:
    from zencache.config import RoutingSettings

log = structlog.get_logger()


class Verdict(StrEnum):
    PRECACHED_ASSET = "precached_asset"
    LIBRARY_ORIGIN = "library_origin"
    API_ENDPOINT = "api_endpoint"
    STREAMING_ENDPOINT = "streaming_endpoint"
    UNMANAGED = "unmanaged"


class UrlClassifier:
    """Decides which strategy, if any, handles a request."""

    def __init__(self, routing: RoutingSettings) -> None:
        self._api_prefix = routing.api_prefix
        self._streaming_segment = routing.streaming_segment
        self._static_extensions = tuple(ext.lower() for ext in routing.static_extensions)
        self._library_origins = frozenset(
            origin for origin in (origin_of(o) for o in routing.library_origins) if origin
        )
        self._manifest_urls = build_manifest_index(
            routing.manifest, routing.deployment_root or ""
        )

    @property
    def manifest_urls(self) -> frozenset[str]:
        return self._manifest_urls

    def classify(self, method: str, url: str) -> Verdict:
        """Classify a request. Rules are applied in priority order."""
        if method.upper() != "GET":
            return Verdict.UNMANAGED

        canonical = canonicalize(url)
        if canonical is None:
            return Verdict.UNMANAGED

        path = path_of(canonical)

        if self._streaming_segment and self._streaming_segment in path:
            return Verdict.STREAMING_ENDPOINT

        if origin_of(canonical) in self._library_origins:
            return Verdict.LIBRARY_ORIGIN

        if canonical in self._manifest_urls:
            return Verdict.PRECACHED_ASSET

        if self._api_prefix and self._api_prefix in path:
            return Verdict.API_ENDPOINT

        if path.lower().endswith(self._static_extensions):
            return Verdict.PRECACHED_ASSET

        return Verdict.UNMANAGED


def build_manifest_index(manifest: tuple[str, ...], deployment_root: str) -> frozenset[str]:
    """Resolve manifest entries to the canonical URLs a request would carry.

    Entries that cannot be resolved (e.g. relative entries while the
    deployment root is empty) are dropped from the index, which only
    disables the exact-match rule for them.
    """
    resolved: set[str] = set()
    for entry in manifest:
        url = resolve(entry, deployment_root)
        if url is None:
            log.debug("manifest_entry_unresolved", entry=entry, deployment_root=deployment_root)
            continue
        resolved.add(url)
    return frozenset(resolved)
