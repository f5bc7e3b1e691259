"""Cache reconciliation store.

The store is the only writer of cached items and edges. Writes go through a unit
of work per call so every upsert and every edge diff is atomic. Item versions only
move forward: an incoming record that is not newer than the stored one is rejected
and reported as ``UNCHANGED``. A resolved cross-system reference is never replaced
by an unresolved one.
"""

from __future__ import annotations

import asyncio
import threading
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from plansync.domain.errors import FetchError, ReconciliationConflict
from plansync.domain.graph import EdgeBuild, EdgeDiff, diff_edges, rebuild_edges
from plansync.domain.model import CanonicalItem, ItemKey, SourceSystem, UpsertOutcome
from plansync.domain.time_windows import utcnow

from .freshness import ALWAYS_FRESH

if TYPE_CHECKING:
    from collections.abc import Iterable

    from plansync.domain.model import ItemType, Relation
    from plansync.domain.ports.persistence import ItemRepository
    from plansync.domain.ports.unit_of_work import UnitOfWorkFactory
    from plansync.domain.time_windows import Clock

    from .freshness import FreshnessPolicy

log = getLogger(__name__)

type ItemFetcher = Callable[[ItemKey], Awaitable[CanonicalItem]]


@dataclass(frozen=True, slots=True)
class UpsertSummary:
    created: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated + self.unchanged

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[UpsertOutcome]) -> UpsertSummary:
        counts = Counter(outcomes)
        return cls(
            created=counts[UpsertOutcome.CREATED],
            updated=counts[UpsertOutcome.UPDATED],
            unchanged=counts[UpsertOutcome.UNCHANGED],
        )


@dataclass(frozen=True, slots=True)
class EdgeRebuild:
    build: EdgeBuild
    diff: EdgeDiff


@dataclass(frozen=True, slots=True)
class ResolvedItem:
    item: CanonicalItem
    outgoing: tuple[Relation, ...]
    incoming: tuple[Relation, ...]


class CacheReconciliationStore:
    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory,
        *,
        clock: Clock = utcnow,
        freshness: FreshnessPolicy = ALWAYS_FRESH,
    ) -> None:
        self._unit_of_work_factory = unit_of_work_factory
        self._clock = clock
        self._freshness = freshness
        self._rebuild_locks = {source: threading.Lock() for source in SourceSystem}

    # writes ------------------------------------------------------------------

    def upsert(self, item: CanonicalItem) -> UpsertOutcome:
        with self._unit_of_work_factory() as uow:
            outcome = self._upsert(uow.repositories.items, item)
            uow.commit()
        return outcome

    def upsert_many(self, items: Iterable[CanonicalItem]) -> UpsertSummary:
        """Upsert a batch in one transaction."""

        with self._unit_of_work_factory() as uow:
            outcomes = [self._upsert(uow.repositories.items, item) for item in items]
            uow.commit()
        return UpsertSummary.from_outcomes(outcomes)

    def _upsert(self, repository: ItemRepository, item: CanonicalItem) -> UpsertOutcome:
        stored = repository.get(item.key)
        incoming = item
        if (
            stored is not None
            and incoming.cross_system_ref is None
            and stored.cross_system_ref is not None
        ):
            incoming = incoming.with_cross_system_ref(stored.cross_system_ref)
        try:
            return repository.upsert_if_newer(incoming)
        except ReconciliationConflict as conflict:
            log.debug(str(conflict))
            return UpsertOutcome.UNCHANGED

    def apply_edge_diff(self, diff: EdgeDiff) -> None:
        if diff.is_empty:
            return
        with self._unit_of_work_factory() as uow:
            uow.repositories.relations.remove_many(diff.remove)
            uow.repositories.relations.add_many(diff.add)
            uow.commit()
        log.info(f"Applied edge diff: +{len(diff.add)} / -{len(diff.remove)}")

    def rebuild_edges(self, source_system: SourceSystem) -> EdgeRebuild:
        """Rebuild the edges owned by ``source_system`` from the full item set.

        Rebuilds for one source system are serialized so each observes a consistent
        snapshot; both systems' items are read because cross-system links resolve
        against the other side.
        """

        with self._rebuild_locks[source_system], self._unit_of_work_factory() as uow:
            items = uow.repositories.items.find()
            build = rebuild_edges(items, scope=source_system)
            diff = diff_edges(build.edges, uow.repositories.relations.list_owned(source_system))
            if not diff.is_empty:
                uow.repositories.relations.remove_many(diff.remove)
                uow.repositories.relations.add_many(diff.add)
            uow.commit()

        log.info(
            f"Rebuilt {source_system} edges: {len(build.edges)} total, "
            f"+{len(diff.add)} / -{len(diff.remove)}, {len(build.gaps)} unresolved"
        )
        return EdgeRebuild(build=build, diff=diff)

    def refresh_edges(self, changed: SourceSystem) -> tuple[EdgeRebuild, ...]:
        """Rebuild every source system's edges after ``changed`` received new items.

        ``changed`` goes first. The other systems follow because their cross-system
        links may now resolve against, or lose, the changed items.
        """

        order = (changed, *(system for system in SourceSystem if system is not changed))
        return tuple(self.rebuild_edges(system) for system in order)

    # reads -------------------------------------------------------------------

    def get(self, key: ItemKey) -> CanonicalItem | None:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.items.get(key)

    def items(
        self,
        source_system: SourceSystem | None = None,
        item_type: ItemType | None = None,
    ) -> list[CanonicalItem]:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.items.find(source_system=source_system, item_type=item_type)

    def relations_of(self, key: ItemKey) -> tuple[Relation, ...]:
        with self._unit_of_work_factory() as uow:
            return tuple(sorted(uow.repositories.relations.touching(key)))

    def resolve(self, key: ItemKey) -> ResolvedItem | None:
        """Return an item together with its outgoing and incoming edges."""

        with self._unit_of_work_factory() as uow:
            item = uow.repositories.items.get(key)
            if item is None:
                return None
            relations = sorted(uow.repositories.relations.touching(key))
        return ResolvedItem(
            item=item,
            outgoing=tuple(rel for rel in relations if rel.source == key),
            incoming=tuple(rel for rel in relations if rel.target == key),
        )

    async def read_through(
        self,
        key: ItemKey,
        fetcher: ItemFetcher,
        *,
        freshness: FreshnessPolicy | None = None,
    ) -> CanonicalItem:
        """Serve ``key`` from cache, refreshing it through ``fetcher`` when stale.

        A failing fetch falls back to the stale copy. The error only propagates when
        nothing is cached. A refresh that finds no newer version still counts as a
        sync, so the copy is fresh again afterwards. Persistence runs on a worker
        thread.
        """

        policy = freshness or self._freshness
        cached = await asyncio.to_thread(self.get, key)
        if cached is not None and policy.is_fresh(cached, now=self._clock()):
            return cached

        try:
            fetched = await fetcher(key)
        except FetchError as exc:
            if cached is None:
                raise
            log.warning(f"Serving stale {key} after fetch failure: {exc}")
            return cached

        if fetched.key != key:
            raise ValueError(f"Fetcher returned {fetched.key} for {key}")
        return await asyncio.to_thread(self._refresh, fetched)

    def _refresh(self, fetched: CanonicalItem) -> CanonicalItem:
        with self._unit_of_work_factory() as uow:
            repository = uow.repositories.items
            if self._upsert(repository, fetched) is UpsertOutcome.UNCHANGED:
                repository.touch(fetched.key, self._clock())
            stored = repository.get(fetched.key)
            uow.commit()
        return stored or fetched
