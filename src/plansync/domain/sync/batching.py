"""Delta partitioning and watermark arithmetic."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from itertools import batched, takewhile
from typing import TYPE_CHECKING

from plansync.domain.time_windows import BatchWindow

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from plansync.domain.ports.connector import ChangeMarker

_EARLIEST = datetime.min.replace(tzinfo=UTC)


class BatchStatus(StrEnum):
    COMMITTED = "committed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class Batch:
    index: int
    ids: tuple[str, ...]
    window: BatchWindow | None


def order_markers(markers: Iterable[ChangeMarker]) -> list[ChangeMarker]:
    """Deduplicate by id (latest change wins) and sort by change time, unknown last."""

    latest: dict[str, ChangeMarker] = {}
    for marker in markers:
        current = latest.get(marker.external_id)
        if current is None or (
            marker.changed_at is not None
            and (current.changed_at is None or marker.changed_at > current.changed_at)
        ):
            latest[marker.external_id] = marker
    return sorted(
        latest.values(),
        key=lambda marker: (
            marker.changed_at is None,
            marker.changed_at or _EARLIEST,
            marker.external_id,
        ),
    )


def partition(markers: Iterable[ChangeMarker], batch_size: int) -> tuple[Batch, ...]:
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    batches: list[Batch] = []
    for index, chunk in enumerate(batched(order_markers(markers), batch_size)):
        stamps = [marker.changed_at for marker in chunk if marker.changed_at is not None]
        window = (
            BatchWindow(start=min(stamps), end=max(stamps)) if len(stamps) == len(chunk) else None
        )
        batches.append(
            Batch(index=index, ids=tuple(marker.external_id for marker in chunk), window=window)
        )
    return tuple(batches)


def safe_watermark(
    batches: Sequence[Batch],
    statuses: Mapping[int, BatchStatus],
    *,
    run_started_at: datetime,
    previous: datetime | None,
) -> datetime | None:
    """Return the position the watermark may advance to, or ``None`` to keep it.

    With every batch committed the run's start instant is safe. Otherwise only the
    contiguous committed prefix counts, and the result stays strictly before the
    first batch that failed or never ran so the next run fetches it again.
    """

    committed = list(
        takewhile(lambda batch: statuses.get(batch.index) is BatchStatus.COMMITTED, batches)
    )
    if len(committed) == len(batches):
        candidate = run_started_at
    else:
        if not committed:
            return None
        last, boundary = committed[-1], batches[len(committed)]
        if last.window is None or boundary.window is None:
            return None
        candidate = min(last.window.end, boundary.window.just_before())

    if previous is not None and candidate <= previous:
        return None
    return candidate
