"""Ports for persisting cached records, edges and sync bookkeeping."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime

    from plansync.domain.model import (
        CanonicalItem,
        ItemKey,
        ItemType,
        Relation,
        SourceSystem,
        SyncRun,
        SyncWatermark,
        UpsertOutcome,
    )


@runtime_checkable
class ItemRepository(Protocol):
    """Persistence contract for canonical items."""

    def get(self, key: ItemKey) -> CanonicalItem | None: ...

    def upsert_if_newer(self, item: CanonicalItem) -> UpsertOutcome:
        """Insert or replace ``item`` when its version beats the stored one.

        Returns ``CREATED`` or ``UPDATED``; raises
        :class:`~plansync.domain.errors.ReconciliationConflict` otherwise.
        """
        ...

    def touch(self, key: ItemKey, synced_at: datetime) -> bool:
        """Record a refresh that found no newer version; the version is left alone."""
        ...

    def find(
        self,
        *,
        source_system: SourceSystem | None = None,
        item_type: ItemType | None = None,
    ) -> list[CanonicalItem]: ...


@runtime_checkable
class RelationRepository(Protocol):
    """Persistence contract for derived edges."""

    def list_owned(self, source_system: SourceSystem) -> frozenset[Relation]: ...

    def touching(self, key: ItemKey) -> list[Relation]: ...

    def add_many(self, relations: Iterable[Relation]) -> None: ...

    def remove_many(self, relations: Iterable[Relation]) -> None: ...


@runtime_checkable
class WatermarkRepository(Protocol):
    """Persistence contract for per-type sync watermarks."""

    def get(self, source_system: SourceSystem, entity_type: ItemType) -> SyncWatermark | None: ...

    def advance(self, watermark: SyncWatermark) -> None:
        """Store ``watermark``; raises ``WatermarkAdvanceBlocked`` when it moves backwards."""
        ...


@runtime_checkable
class SyncRunRepository(Protocol):
    """Persistence contract for sync run audit records."""

    def add(self, run: SyncRun) -> None: ...

    def save(self, run: SyncRun) -> None: ...

    def get(self, run_id: uuid.UUID) -> SyncRun | None: ...

    def recent(
        self,
        *,
        limit: int = 20,
        source_system: SourceSystem | None = None,
    ) -> list[SyncRun]: ...


__all__ = [
    "ItemRepository",
    "RelationRepository",
    "SyncRunRepository",
    "WatermarkRepository",
]
