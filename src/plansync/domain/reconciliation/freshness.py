"""Freshness policies for read-through lookups."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime, timedelta

    from plansync.domain.model import CanonicalItem


@runtime_checkable
class FreshnessPolicy(Protocol):
    def is_fresh(self, item: CanonicalItem, *, now: datetime) -> bool: ...


@dataclass(frozen=True, slots=True)
class MaxAge:
    """Treat a record as fresh while it was synced less than ``max_age`` ago."""

    max_age: timedelta

    def is_fresh(self, item: CanonicalItem, *, now: datetime) -> bool:
        return now - item.last_synced_at < self.max_age


@dataclass(frozen=True, slots=True)
class _Constant:
    fresh: bool

    def is_fresh(self, item: CanonicalItem, *, now: datetime) -> bool:  # noqa: ARG002
        return self.fresh


ALWAYS_FRESH: Final[FreshnessPolicy] = _Constant(fresh=True)
NEVER_FRESH: Final[FreshnessPolicy] = _Constant(fresh=False)

__all__ = ["ALWAYS_FRESH", "NEVER_FRESH", "FreshnessPolicy", "MaxAge"]
