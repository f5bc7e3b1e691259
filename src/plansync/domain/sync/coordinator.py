"""Incremental sync coordinator.

One coordinating task runs per ``(source system, entity type)``. A run lists the
delta since the stored watermark, partitions it into batches, and drives each batch
through fetch, normalize and reconcile with bounded concurrency. Afterwards it
advances the watermark only as far as the committed batches allow and rebuilds the
edges of every source system, the synced one first. Persistence calls are blocking
and run on worker threads so the event loop keeps serving other batches.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from plansync.domain.errors import FetchError, PersistenceError, WatermarkAdvanceBlocked
from plansync.domain.model import (
    ITEM_TYPES_BY_SOURCE,
    IssueKind,
    ItemType,
    RunStatus,
    SourceSystem,
    SyncIssue,
    SyncPhase,
    SyncRun,
    SyncWatermark,
)
from plansync.domain.normalization import normalize_batch
from plansync.domain.reconciliation import UpsertSummary
from plansync.domain.time_windows import utcnow

from .batching import Batch, BatchStatus, partition, safe_watermark
from .retry import RetryPolicy
from .state import BatchStateMachine

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from plansync.domain.ports.connector import SourceConnector
    from plansync.domain.ports.unit_of_work import UnitOfWorkFactory
    from plansync.domain.reconciliation import CacheReconciliationStore
    from plansync.domain.time_windows import Clock

    from .retry import Sleep

log = getLogger(__name__)

DEFAULT_BATCH_SIZE = 200
DEFAULT_MAX_CONCURRENCY = 4


@dataclass(slots=True)
class BatchResult:
    batch: Batch
    status: BatchStatus
    attempts: int = 0
    fetched: int = 0
    summary: UpsertSummary = field(default_factory=UpsertSummary)
    normalization_failures: int = 0
    phases: tuple[SyncPhase, ...] = ()
    issues: list[SyncIssue] = field(default_factory=list["SyncIssue"])


class IncrementalSyncCoordinator:
    def __init__(
        self,
        *,
        connectors: Iterable[SourceConnector],
        store: CacheReconciliationStore,
        unit_of_work_factory: UnitOfWorkFactory,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        retry: RetryPolicy | None = None,
        clock: Clock = utcnow,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if batch_size < 1 or max_concurrency < 1:
            raise ValueError("batch_size and max_concurrency must be positive")
        self._connectors = {connector.source_system: connector for connector in connectors}
        self._store = store
        self._unit_of_work_factory = unit_of_work_factory
        self._batch_size = batch_size
        self._max_concurrency = max_concurrency
        self._retry = retry or RetryPolicy()
        self._clock = clock
        self._sleep = sleep
        self._type_locks: dict[tuple[SourceSystem, ItemType], asyncio.Lock] = {}

    async def sync(
        self,
        source_system: SourceSystem,
        entity_type: ItemType,
        *,
        full_resync: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> SyncRun:
        """Run one incremental (or full) sync and return its finalized audit record.

        Problems with remote data never escape: they are recorded on the run, which
        ends as ``SUCCESS``, ``PARTIAL`` or ``FAILED``. Runs for the same type are
        serialized.
        """

        connector = self._connectors.get(source_system)
        if connector is None:
            raise ValueError(f"No connector registered for {source_system}")
        if entity_type not in ITEM_TYPES_BY_SOURCE[source_system]:
            raise ValueError(f"{entity_type} is not an entity type of {source_system}")

        lock = self._type_locks.setdefault((source_system, entity_type), asyncio.Lock())
        async with lock:
            run = SyncRun(
                source_system=source_system,
                entity_type=entity_type,
                started_at=self._clock(),
                full_resync=full_resync,
            )
            await asyncio.to_thread(self._record_start, run)
            status = RunStatus.FAILED
            try:
                status = await self._execute(run, connector, cancel)
            except Exception as exc:
                run.add_issue(SyncIssue(IssueKind.RECONCILIATION, f"Unexpected error: {exc!r}"))
                raise
            finally:
                run.finalize(status, self._clock())
                await asyncio.to_thread(self._record_finish, run)
                log.info(
                    f"Finished {source_system}/{entity_type} sync: status={run.status}, "
                    f"processed={run.processed}, created={run.created}, updated={run.updated}, "
                    f"unchanged={run.unchanged}, failed={run.failed}, issues={len(run.issues)}"
                )
        return run

    async def sync_all(
        self,
        source_system: SourceSystem,
        entity_types: Iterable[ItemType] | None = None,
        *,
        full_resync: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> list[SyncRun]:
        """Run one coordinating task per entity type concurrently."""

        types = tuple(entity_types) if entity_types is not None else _ordered_types(source_system)
        return list(
            await asyncio.gather(
                *(
                    self.sync(source_system, entity_type, full_resync=full_resync, cancel=cancel)
                    for entity_type in types
                )
            )
        )

    async def _execute(
        self,
        run: SyncRun,
        connector: SourceConnector,
        cancel: asyncio.Event | None,
    ) -> RunStatus:
        previous = await asyncio.to_thread(
            self._load_watermark, run.source_system, run.entity_type
        )
        previous_position = previous.synced_through if previous is not None else None
        since = None if run.full_resync else previous_position
        log.info(
            f"Starting {run.source_system}/{run.entity_type} sync "
            f"(since={since.isoformat() if since else 'beginning'}, full={run.full_resync})"
        )

        try:
            markers = await self._with_retry(
                lambda: connector.list_changes(run.entity_type, since=since),
                label=f"Listing {run.source_system}/{run.entity_type} changes",
            )
        except FetchError as exc:
            log.error(f"Listing {run.source_system}/{run.entity_type} changes failed: {exc}")
            run.add_issue(SyncIssue(IssueKind.FETCH, f"Listing changes failed: {exc}"))
            return RunStatus.FAILED

        batches = partition(markers, self._batch_size)
        results = await self._dispatch(run, connector, batches, since, cancel)
        statuses = {result.batch.index: result.status for result in results}
        for result in results:
            _accumulate(run, result)

        skipped = sum(1 for status in statuses.values() if status is BatchStatus.SKIPPED)
        committed = sum(1 for status in statuses.values() if status is BatchStatus.COMMITTED)
        if skipped:
            run.add_issue(
                SyncIssue(IssueKind.CANCELLED, f"Cancelled with {skipped} batch(es) not fetched")
            )

        await asyncio.to_thread(self._advance_watermark, run, batches, statuses, previous_position)
        if committed:
            await asyncio.to_thread(self._rebuild_edges, run)

        if committed == len(batches):
            return RunStatus.SUCCESS
        if skipped or committed:
            return RunStatus.PARTIAL
        return RunStatus.FAILED

    async def _dispatch(
        self,
        run: SyncRun,
        connector: SourceConnector,
        batches: Sequence[Batch],
        since: datetime | None,
        cancel: asyncio.Event | None,
    ) -> list[BatchResult]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run_batch(batch: Batch) -> BatchResult:
            async with semaphore:
                # checkpoint: nothing new starts once cancellation is requested
                if cancel is not None and cancel.is_set():
                    return BatchResult(batch=batch, status=BatchStatus.SKIPPED)
                return await self._process_batch(run, connector, batch, since)

        # an unexpected error cancels the sibling batches before the run is finalized
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(run_batch(batch)) for batch in batches]
        except BaseExceptionGroup as failures:
            raise failures.exceptions[0] from None
        return [task.result() for task in tasks]

    async def _process_batch(
        self,
        run: SyncRun,
        connector: SourceConnector,
        batch: Batch,
        since: datetime | None,
    ) -> BatchResult:
        machine = BatchStateMachine(batch_index=batch.index)
        result = BatchResult(batch=batch, status=BatchStatus.FAILED)
        attempt = 0
        machine.advance(SyncPhase.FETCHING)
        while True:
            result.attempts = attempt + 1
            try:
                payloads = await connector.fetch(run.entity_type, since=since, ids=batch.ids)
                machine.advance(SyncPhase.NORMALIZING)
                normalized = normalize_batch(
                    run.source_system, run.entity_type, payloads, synced_at=self._clock()
                )
                machine.advance(SyncPhase.RECONCILING)
                summary = await asyncio.to_thread(self._store.upsert_many, normalized.items)
            except (FetchError, PersistenceError) as exc:
                if self._retry.should_retry(exc, attempt):
                    delay = self._retry.delay_for(attempt)
                    log.warning(
                        f"Batch {batch.index} of {run.source_system}/{run.entity_type} failed "
                        f"during {machine.phase}: {exc}; retrying in {delay:.2f}s "
                        f"(attempt {attempt + 2}/{self._retry.max_attempts})"
                    )
                    await self._sleep(delay)
                    attempt += 1
                    machine.advance(SyncPhase.FETCHING)
                    continue
                kind = IssueKind.FETCH if isinstance(exc, FetchError) else IssueKind.RECONCILIATION
                log.error(
                    f"Batch {batch.index} of {run.source_system}/{run.entity_type} failed "
                    f"after {attempt + 1} attempt(s): {exc}"
                )
                machine.advance(SyncPhase.FAILED)
                result.issues.append(SyncIssue(kind, str(exc), batch_index=batch.index))
                result.phases = tuple(machine.history)
                return result

            machine.advance(SyncPhase.COMMITTED)
            result.status = BatchStatus.COMMITTED
            result.fetched = len(payloads)
            result.summary = summary
            result.normalization_failures = len(normalized.errors)
            result.phases = tuple(machine.history)
            result.issues.extend(
                SyncIssue(
                    IssueKind.NORMALIZATION,
                    str(error),
                    external_id=error.external_id,
                    batch_index=batch.index,
                )
                for error in normalized.errors
            )
            return result

    async def _with_retry[T](self, operation: Callable[[], Awaitable[T]], *, label: str) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except (FetchError, PersistenceError) as exc:
                if not self._retry.should_retry(exc, attempt):
                    raise
                delay = self._retry.delay_for(attempt)
                log.warning(f"{label} failed: {exc}; retrying in {delay:.2f}s")
                await self._sleep(delay)
                attempt += 1

    def _load_watermark(
        self, source_system: SourceSystem, entity_type: ItemType
    ) -> SyncWatermark | None:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.watermarks.get(source_system, entity_type)

    def _advance_watermark(
        self,
        run: SyncRun,
        batches: Sequence[Batch],
        statuses: dict[int, BatchStatus],
        previous: datetime | None,
    ) -> None:
        candidate = safe_watermark(
            batches, statuses, run_started_at=run.started_at, previous=previous
        )
        if candidate is None:
            log.info(f"Watermark for {run.source_system}/{run.entity_type} stays at {previous}")
            return
        watermark = SyncWatermark(
            source_system=run.source_system,
            entity_type=run.entity_type,
            synced_through=candidate,
            updated_at=self._clock(),
        )
        try:
            with self._unit_of_work_factory() as uow:
                uow.repositories.watermarks.advance(watermark)
                uow.commit()
        except WatermarkAdvanceBlocked as exc:
            log.error(str(exc))
            run.add_issue(SyncIssue(IssueKind.WATERMARK, str(exc)))
            return
        log.info(
            f"Watermark for {run.source_system}/{run.entity_type} advanced to "
            f"{candidate.isoformat()}"
        )

    def _rebuild_edges(self, run: SyncRun) -> None:
        own, *_ = self._store.refresh_edges(run.source_system)
        for gap in own.build.gaps:
            run.add_issue(
                SyncIssue(IssueKind.EDGE_GAP, gap.describe(), external_id=gap.source.external_id)
            )

    def _record_start(self, run: SyncRun) -> None:
        with self._unit_of_work_factory() as uow:
            uow.repositories.runs.add(run)
            uow.commit()

    def _record_finish(self, run: SyncRun) -> None:
        with self._unit_of_work_factory() as uow:
            uow.repositories.runs.save(run)
            uow.commit()


def _accumulate(run: SyncRun, result: BatchResult) -> None:
    run.processed += result.fetched
    run.created += result.summary.created
    run.updated += result.summary.updated
    run.unchanged += result.summary.unchanged
    run.failed += result.normalization_failures
    if result.status is BatchStatus.FAILED:
        run.failed += len(result.batch.ids)
    for issue in result.issues:
        run.add_issue(issue)


def _ordered_types(source_system: SourceSystem) -> tuple[ItemType, ...]:
    allowed = ITEM_TYPES_BY_SOURCE[source_system]
    return tuple(item_type for item_type in ItemType if item_type in allowed)
