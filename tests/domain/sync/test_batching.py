from __future__ import annotations

from datetime import timedelta

import pytest

from plansync.domain.ports.connector import ChangeMarker
from plansync.domain.sync import BatchStatus, order_markers, partition, safe_watermark
from plansync.domain.time_windows import WATERMARK_RESOLUTION
from tests.helpers.fakes import BASE_TIME


def _at(minutes: int) -> ChangeMarker:
    return ChangeMarker(f"id-{minutes}", BASE_TIME + timedelta(minutes=minutes))


def test_order_markers_sorts_by_time_and_keeps_latest_change() -> None:
    markers = [
        _at(5),
        ChangeMarker("undated"),
        _at(1),
        ChangeMarker("id-1", BASE_TIME + timedelta(minutes=9)),
    ]

    ordered = order_markers(markers)

    assert [marker.external_id for marker in ordered] == ["id-5", "id-1", "undated"]
    assert ordered[1].changed_at == BASE_TIME + timedelta(minutes=9)


def test_partition_sizes_and_windows() -> None:
    markers = [_at(minute) for minute in range(5)]

    batches = partition(markers, 2)

    assert [batch.ids for batch in batches] == [
        ("id-0", "id-1"),
        ("id-2", "id-3"),
        ("id-4",),
    ]
    assert [batch.index for batch in batches] == [0, 1, 2]
    first_window = batches[0].window
    assert first_window is not None
    assert (first_window.start, first_window.end) == (
        BASE_TIME,
        BASE_TIME + timedelta(minutes=1),
    )


def test_batch_with_undated_markers_has_no_window() -> None:
    batches = partition([_at(0), ChangeMarker("x")], 5)

    assert batches[0].window is None


def test_partition_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError, match="positive"):
        partition([_at(0)], 0)


def test_partition_of_nothing_is_empty() -> None:
    assert partition([], 200) == ()


def test_full_success_advances_to_run_start() -> None:
    batches = partition([_at(minute) for minute in range(4)], 2)
    started = BASE_TIME + timedelta(hours=1)

    watermark = safe_watermark(
        batches,
        {0: BatchStatus.COMMITTED, 1: BatchStatus.COMMITTED},
        run_started_at=started,
        previous=BASE_TIME,
    )

    assert watermark == started


def test_failed_middle_batch_caps_watermark_before_its_window() -> None:
    batches = partition([_at(minute) for minute in range(6)], 2)

    watermark = safe_watermark(
        batches,
        {0: BatchStatus.COMMITTED, 1: BatchStatus.FAILED, 2: BatchStatus.COMMITTED},
        run_started_at=BASE_TIME + timedelta(hours=1),
        previous=None,
    )

    assert watermark == BASE_TIME + timedelta(minutes=1)
    assert watermark < BASE_TIME + timedelta(minutes=2)


def test_overlapping_windows_stop_strictly_before_the_failed_batch() -> None:
    markers = [
        ChangeMarker("a", BASE_TIME),
        ChangeMarker("b", BASE_TIME + timedelta(minutes=1)),
        ChangeMarker("c", BASE_TIME + timedelta(minutes=1)),
    ]
    batches = partition(markers, 2)

    watermark = safe_watermark(
        batches,
        {0: BatchStatus.COMMITTED, 1: BatchStatus.SKIPPED},
        run_started_at=BASE_TIME + timedelta(hours=1),
        previous=None,
    )

    assert watermark == BASE_TIME + timedelta(minutes=1) - WATERMARK_RESOLUTION


def test_no_committed_prefix_keeps_watermark() -> None:
    batches = partition([_at(minute) for minute in range(4)], 2)

    watermark = safe_watermark(
        batches,
        {0: BatchStatus.FAILED, 1: BatchStatus.COMMITTED},
        run_started_at=BASE_TIME + timedelta(hours=1),
        previous=None,
    )

    assert watermark is None


def test_unknown_windows_keep_watermark() -> None:
    batches = partition([ChangeMarker("a"), ChangeMarker("b")], 1)

    watermark = safe_watermark(
        batches,
        {0: BatchStatus.COMMITTED, 1: BatchStatus.FAILED},
        run_started_at=BASE_TIME,
        previous=None,
    )

    assert watermark is None


def test_watermark_never_moves_backwards() -> None:
    batches = partition([_at(minute) for minute in range(4)], 2)

    watermark = safe_watermark(
        batches,
        {0: BatchStatus.COMMITTED, 1: BatchStatus.FAILED},
        run_started_at=BASE_TIME + timedelta(hours=1),
        previous=BASE_TIME + timedelta(minutes=30),
    )

    assert watermark is None
