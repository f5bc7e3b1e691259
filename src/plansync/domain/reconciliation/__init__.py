"""Cache reconciliation."""

from __future__ import annotations

from .freshness import ALWAYS_FRESH, NEVER_FRESH, FreshnessPolicy, MaxAge
from .store import (
    CacheReconciliationStore,
    EdgeRebuild,
    ItemFetcher,
    ResolvedItem,
    UpsertSummary,
)

__all__ = [
    "ALWAYS_FRESH",
    "NEVER_FRESH",
    "CacheReconciliationStore",
    "EdgeRebuild",
    "FreshnessPolicy",
    "ItemFetcher",
    "MaxAge",
    "ResolvedItem",
    "UpsertSummary",
]
