"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from plansync.adapters.azure_devops import AzureDevOpsConnector
from plansync.adapters.productboard import ProductBoardConnector
from plansync.adapters.sqlalchemy.unit_of_work import (
    build_unit_of_work_factory,
    is_started,
    startup,
)
from plansync.config.sync import SyncConfig, get_sync_config
from plansync.domain.model import SourceSystem
from plansync.domain.reconciliation import CacheReconciliationStore
from plansync.domain.sync import IncrementalSyncCoordinator, RetryPolicy
from plansync.domain.time_windows import utcnow

if TYPE_CHECKING:
    from collections.abc import Iterable

    from plansync.domain.model import ItemKey, ItemType, SyncRun
    from plansync.domain.ports.connector import SourceConnector
    from plansync.domain.ports.unit_of_work import UnitOfWorkFactory
    from plansync.domain.reconciliation import ResolvedItem
    from plansync.domain.sync.retry import Sleep
    from plansync.domain.time_windows import Clock


log = getLogger(__name__)


@dataclass(slots=True)
class SyncService:
    """Coordinator and store sharing one unit-of-work factory."""

    coordinator: IncrementalSyncCoordinator
    store: CacheReconciliationStore
    unit_of_work_factory: UnitOfWorkFactory


def build_sync_service(
    *,
    connectors: Iterable[SourceConnector],
    unit_of_work_factory: UnitOfWorkFactory,
    config: SyncConfig | None = None,
    clock: Clock = utcnow,
    sleep: Sleep = asyncio.sleep,
) -> SyncService:
    """Wire the store and coordinator from explicit dependencies."""

    effective_config = config or SyncConfig()
    store = CacheReconciliationStore(unit_of_work_factory, clock=clock)
    coordinator = IncrementalSyncCoordinator(
        connectors=connectors,
        store=store,
        unit_of_work_factory=unit_of_work_factory,
        batch_size=effective_config.batch_size,
        max_concurrency=effective_config.max_concurrency,
        retry=RetryPolicy(
            max_attempts=effective_config.max_attempts,
            base_delay=effective_config.backoff_base_seconds,
            max_delay=effective_config.backoff_max_seconds,
        ),
        clock=clock,
        sleep=sleep,
    )
    return SyncService(
        coordinator=coordinator,
        store=store,
        unit_of_work_factory=unit_of_work_factory,
    )


def default_connector(source_system: SourceSystem) -> SourceConnector:
    """Build the HTTP connector for ``source_system`` from environment configuration."""

    if source_system is SourceSystem.PLANNING:
        return ProductBoardConnector()
    return AzureDevOpsConnector()


def _default_unit_of_work_factory() -> UnitOfWorkFactory:
    if not is_started():
        startup()
    return build_unit_of_work_factory()


def run_sync(
    source_system: SourceSystem,
    *,
    entity_types: Iterable[ItemType] | None = None,
    full_resync: bool = False,
    config: SyncConfig | None = None,
    service: SyncService | None = None,
) -> list[SyncRun]:
    """Synchronise one source system using the configured adapters.

    SIGINT received while the sync runs cancels it cooperatively: batches already
    in flight finish, the remaining ones are skipped and the runs end ``PARTIAL``.
    """

    effective_config = config or get_sync_config()
    if service is None:
        service = build_sync_service(
            connectors=[default_connector(source_system)],
            unit_of_work_factory=_default_unit_of_work_factory(),
            config=effective_config,
        )
    types = tuple(entity_types) if entity_types is not None else None
    log.info(
        f"Starting {source_system} sync: types={types or 'all'}, full_resync={full_resync}, "
        f"batch_size={effective_config.batch_size}"
    )
    runs = asyncio.run(_sync_with_cancellation(service, source_system, types, full_resync))
    log.info(
        f"Finished {source_system} sync: "
        + ", ".join(f"{run.entity_type}={run.status}" for run in runs)
    )
    return runs


async def _sync_with_cancellation(
    service: SyncService,
    source_system: SourceSystem,
    entity_types: tuple[ItemType, ...] | None,
    full_resync: bool,
) -> list[SyncRun]:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = False
    # add_signal_handler is unavailable on Windows event loops
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        installed = True
    try:
        return await service.coordinator.sync_all(
            source_system, entity_types, full_resync=full_resync, cancel=cancel
        )
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def show_item(
    key: ItemKey,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ResolvedItem | None:
    """Return a cached item together with its incoming and outgoing relations."""

    store = CacheReconciliationStore(unit_of_work_factory or _default_unit_of_work_factory())
    return store.resolve(key)


def recent_runs(
    *,
    limit: int = 20,
    source_system: SourceSystem | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[SyncRun]:
    """Return the latest sync runs, newest first."""

    factory = unit_of_work_factory or _default_unit_of_work_factory()
    with factory() as uow:
        return uow.repositories.runs.recent(limit=limit, source_system=source_system)
