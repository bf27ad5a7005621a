from __future__ import annotations

from zencache.models.cache import CacheKey, ResponseSnapshot
from zencache.models.results import (
    PrecacheReport,
    StrategyOutcome,
    StrategyResult,
)

__all__ = [
    # cache
    "CacheKey",
    "ResponseSnapshot",
    # results
    "PrecacheReport",
    "StrategyOutcome",
    "StrategyResult",
]
