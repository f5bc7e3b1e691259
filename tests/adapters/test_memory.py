from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from plansync.adapters.memory import InMemoryCacheState, build_unit_of_work_factory
from plansync.domain.errors import WatermarkAdvanceBlocked
from plansync.domain.model import ItemType, RunStatus, SourceSystem, SyncRun, SyncWatermark
from tests.helpers.fakes import BASE_TIME
from tests.helpers.items import make_item


def test_uncommitted_changes_are_rolled_back_on_error() -> None:
    state = InMemoryCacheState()
    factory = build_unit_of_work_factory(state)
    kept = make_item(ItemType.WORKITEM, "1")

    with factory() as uow:
        uow.repositories.items.upsert_if_newer(kept)
        uow.commit()

    with pytest.raises(RuntimeError), factory() as uow:
        uow.repositories.items.upsert_if_newer(make_item(ItemType.WORKITEM, "2"))
        raise RuntimeError("abort")

    assert list(state.items) == [kept.key]


def test_rollback_restores_the_last_commit() -> None:
    state = InMemoryCacheState()
    factory = build_unit_of_work_factory(state)

    with factory() as uow:
        uow.repositories.items.upsert_if_newer(make_item(ItemType.PRODUCT, "P"))
        uow.commit()
        uow.repositories.items.upsert_if_newer(make_item(ItemType.PRODUCT, "Q"))
        uow.rollback()

    assert [key.external_id for key in state.items] == ["P"]


def test_stored_runs_are_detached_copies() -> None:
    factory = build_unit_of_work_factory()
    run = SyncRun(SourceSystem.PLANNING, ItemType.FEATURE, started_at=BASE_TIME)

    with factory() as uow:
        uow.repositories.runs.add(run)
        uow.commit()
    run.finalize(RunStatus.SUCCESS, BASE_TIME)

    with factory() as uow:
        stored = uow.repositories.runs.get(run.run_id)

    assert stored is not None
    assert stored.status is RunStatus.RUNNING


def test_watermarks_refuse_to_move_backwards() -> None:
    factory = build_unit_of_work_factory()

    def watermark(offset: timedelta) -> SyncWatermark:
        return SyncWatermark(
            SourceSystem.PLANNING, ItemType.FEATURE, BASE_TIME + offset, BASE_TIME
        )

    with factory() as uow:
        uow.repositories.watermarks.advance(watermark(timedelta(hours=1)))
        with pytest.raises(WatermarkAdvanceBlocked):
            uow.repositories.watermarks.advance(watermark(timedelta(0)))


def test_touch_moves_only_the_sync_time() -> None:
    state = InMemoryCacheState()
    factory = build_unit_of_work_factory(state)
    item = make_item(ItemType.WORKITEM, "1", version=4)
    later = BASE_TIME + timedelta(hours=3)

    with factory() as uow:
        uow.repositories.items.upsert_if_newer(item)
        assert uow.repositories.items.touch(item.key, later)
        assert not uow.repositories.items.touch(
            make_item(ItemType.WORKITEM, "2").key, later
        )
        uow.commit()

    assert state.items == {item.key: replace(item, last_synced_at=later)}
