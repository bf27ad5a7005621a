from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from zencache.errors import ZenCacheError


class StrategyOutcome(StrEnum):
    CACHE_HIT = "cache_hit"  # Served from the bucket, no network call
    NETWORK = "network"  # Served from the network and stored
    NETWORK_UNCACHED = "network_uncached"  # Served from the network, not stored
    FALLBACK = "fallback"  # Network failed, served the last stored copy
    FAILED = "failed"  # Nothing to serve


@dataclass
class StrategyResult:
    """Outcome of one strategy run for one request."""

    outcome: StrategyOutcome
    response: httpx.Response | None = None
    error: ZenCacheError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not StrategyOutcome.FAILED

    def unwrap(self) -> httpx.Response:
        """Return the response, or raise the error of a FAILED result."""
        if self.error is not None:
            raise self.error
        if self.response is None:
            raise ValueError(f"{self.outcome} result carries no response")
        return self.response


@dataclass
class PrecacheReport:
    """What the precache loader managed to store at install time."""

    stored: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed
