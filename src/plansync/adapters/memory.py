"""In-memory persistence adapter.

Backs the ports with plain dictionaries. A unit of work snapshots the shared state
on entry and restores it on rollback, so failed writes leave no trace.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Literal

from plansync.domain.errors import ReconciliationConflict, WatermarkAdvanceBlocked
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
from plansync.domain.ports.unit_of_work import CacheRepositories

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable, Iterable
    from datetime import datetime
    from types import TracebackType


@dataclass(slots=True)
class InMemoryCacheState:
    items: dict[ItemKey, CanonicalItem] = field(default_factory=dict["ItemKey", "CanonicalItem"])
    relations: set[Relation] = field(default_factory=set["Relation"])
    watermarks: dict[tuple[SourceSystem, ItemType], SyncWatermark] = field(
        default_factory=dict["tuple[SourceSystem, ItemType]", "SyncWatermark"]
    )
    runs: dict[uuid.UUID, SyncRun] = field(default_factory=dict["uuid.UUID", "SyncRun"])
    # held for the lifetime of a unit of work; callers run on worker threads
    lock: threading.RLock = field(default_factory=threading.RLock, compare=False, repr=False)

    def snapshot(self) -> InMemoryCacheState:
        return InMemoryCacheState(
            items=dict(self.items),
            relations=set(self.relations),
            watermarks=dict(self.watermarks),
            runs={run_id: copy.deepcopy(run) for run_id, run in self.runs.items()},
        )

    def restore(self, snapshot: InMemoryCacheState) -> None:
        self.items = snapshot.items
        self.relations = snapshot.relations
        self.watermarks = snapshot.watermarks
        self.runs = snapshot.runs


class InMemoryItemRepository:
    def __init__(self, state: InMemoryCacheState) -> None:
        self._state = state

    def get(self, key: ItemKey) -> CanonicalItem | None:
        return self._state.items.get(key)

    def upsert_if_newer(self, item: CanonicalItem) -> UpsertOutcome:
        stored = self._state.items.get(item.key)
        if stored is None:
            self._state.items[item.key] = item
            return UpsertOutcome.CREATED
        if item.version <= stored.version:
            raise ReconciliationConflict(
                item.key, stored_version=stored.version, incoming_version=item.version
            )
        self._state.items[item.key] = item
        return UpsertOutcome.UPDATED

    def touch(self, key: ItemKey, synced_at: datetime) -> bool:
        stored = self._state.items.get(key)
        if stored is None:
            return False
        self._state.items[key] = replace(stored, last_synced_at=synced_at)
        return True

    def find(
        self,
        *,
        source_system: SourceSystem | None = None,
        item_type: ItemType | None = None,
    ) -> list[CanonicalItem]:
        return [
            item
            for key, item in sorted(self._state.items.items())
            if (source_system is None or key.source_system is source_system)
            and (item_type is None or key.item_type is item_type)
        ]


class InMemoryRelationRepository:
    def __init__(self, state: InMemoryCacheState) -> None:
        self._state = state

    def list_owned(self, source_system: SourceSystem) -> frozenset[Relation]:
        return frozenset(rel for rel in self._state.relations if rel.owner is source_system)

    def touching(self, key: ItemKey) -> list[Relation]:
        return sorted(rel for rel in self._state.relations if rel.touches(key))

    def add_many(self, relations: Iterable[Relation]) -> None:
        self._state.relations.update(relations)

    def remove_many(self, relations: Iterable[Relation]) -> None:
        self._state.relations.difference_update(relations)


class InMemoryWatermarkRepository:
    def __init__(self, state: InMemoryCacheState) -> None:
        self._state = state

    def get(self, source_system: SourceSystem, entity_type: ItemType) -> SyncWatermark | None:
        return self._state.watermarks.get((source_system, entity_type))

    def advance(self, watermark: SyncWatermark) -> None:
        key = (watermark.source_system, watermark.entity_type)
        current = self._state.watermarks.get(key)
        if current is not None and watermark.synced_through < current.synced_through:
            raise WatermarkAdvanceBlocked(
                watermark.source_system,
                watermark.entity_type,
                current=current.synced_through,
                proposed=watermark.synced_through,
            )
        self._state.watermarks[key] = watermark


class InMemorySyncRunRepository:
    def __init__(self, state: InMemoryCacheState) -> None:
        self._state = state

    def add(self, run: SyncRun) -> None:
        self._state.runs[run.run_id] = copy.deepcopy(run)

    def save(self, run: SyncRun) -> None:
        self._state.runs[run.run_id] = copy.deepcopy(run)

    def get(self, run_id: uuid.UUID) -> SyncRun | None:
        run = self._state.runs.get(run_id)
        return copy.deepcopy(run) if run is not None else None

    def recent(
        self,
        *,
        limit: int = 20,
        source_system: SourceSystem | None = None,
    ) -> list[SyncRun]:
        runs = [
            run
            for run in self._state.runs.values()
            if source_system is None or run.source_system is source_system
        ]
        runs.sort(key=lambda run: run.started_at, reverse=True)
        return [copy.deepcopy(run) for run in runs[:limit]]


class InMemoryCacheUnitOfWork:
    """Unit of work over a shared :class:`InMemoryCacheState`."""

    def __init__(self, state: InMemoryCacheState) -> None:
        self._state = state
        self._snapshot: InMemoryCacheState | None = None
        self._repositories = CacheRepositories(
            items=InMemoryItemRepository(state),
            relations=InMemoryRelationRepository(state),
            watermarks=InMemoryWatermarkRepository(state),
            runs=InMemorySyncRunRepository(state),
        )

    @property
    def repositories(self) -> CacheRepositories:
        return self._repositories

    def __enter__(self) -> InMemoryCacheUnitOfWork:
        self._state.lock.acquire()
        self._snapshot = self._state.snapshot()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            if exc_type is not None:
                self.rollback()
        finally:
            self._snapshot = None
            self._state.lock.release()
        return False

    def commit(self) -> None:
        self._snapshot = self._state.snapshot()

    def rollback(self) -> None:
        if self._snapshot is not None:
            self._state.restore(self._snapshot)


def build_unit_of_work_factory(
    state: InMemoryCacheState | None = None,
) -> Callable[[], InMemoryCacheUnitOfWork]:
    shared = state if state is not None else InMemoryCacheState()

    def factory() -> InMemoryCacheUnitOfWork:
        return InMemoryCacheUnitOfWork(shared)

    return factory


if TYPE_CHECKING:
    from plansync.domain.ports.unit_of_work import CacheUnitOfWork

    _uow_check: CacheUnitOfWork = InMemoryCacheUnitOfWork(InMemoryCacheState())
