from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from plansync.domain.errors import ReconciliationConflict, WatermarkAdvanceBlocked
from plansync.domain.model import (
    IssueKind,
    ItemKey,
    ItemType,
    Relation,
    RelationKind,
    RunStatus,
    SourceSystem,
    SyncIssue,
    SyncRun,
    SyncWatermark,
    UpsertOutcome,
)
from tests.helpers.fakes import BASE_TIME
from tests.helpers.items import make_item

if TYPE_CHECKING:
    from collections.abc import Callable

    from plansync.adapters.sqlalchemy.unit_of_work import SqlAlchemyCacheUnitOfWork

type UnitOfWorkFactory = Callable[[], SqlAlchemyCacheUnitOfWork]


def _work_item_key(external_id: str) -> ItemKey:
    return ItemKey(SourceSystem.TRACKING, ItemType.WORKITEM, external_id)


def test_items_round_trip(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    item = make_item(
        ItemType.FEATURE,
        "ab12",
        version=1_714_557_600_000,
        status="In Progress",
        parent="C",
        product="P",
        component="C",
        initiatives=["I1", "I2"],
        cross_ref="101",
    )
    item = replace(item, raw_payload={"id": "ab12", "nested": [1, 2]})

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.items.upsert_if_newer(item) is UpsertOutcome.CREATED
        uow.commit()

    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.items.get(item.key)

    assert stored == item
    assert stored is not None
    assert stored.raw_payload == {"id": "ab12", "nested": [1, 2]}
    assert stored.last_synced_at == BASE_TIME
    assert stored.last_synced_at.tzinfo is not None


def test_touch_moves_only_the_sync_time(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    item = make_item(ItemType.WORKITEM, "1", version=4, title="Kept")
    later = BASE_TIME + timedelta(hours=3)

    with sqlite_unit_of_work() as uow:
        uow.repositories.items.upsert_if_newer(item)
        assert uow.repositories.items.touch(item.key, later)
        assert not uow.repositories.items.touch(_work_item_key("missing"), later)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.items.get(item.key)

    assert stored == replace(item, last_synced_at=later)


def test_upsert_requires_a_strictly_newer_version(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    with sqlite_unit_of_work() as uow:
        items = uow.repositories.items
        items.upsert_if_newer(make_item(ItemType.WORKITEM, "1", version=2, title="First"))
        assert (
            items.upsert_if_newer(make_item(ItemType.WORKITEM, "1", version=3, title="Second"))
            is UpsertOutcome.UPDATED
        )
        with pytest.raises(ReconciliationConflict) as caught:
            items.upsert_if_newer(make_item(ItemType.WORKITEM, "1", version=3, title="Third"))
        uow.commit()

    assert (caught.value.stored_version, caught.value.incoming_version) == (3, 3)
    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.items.get(_work_item_key("1"))
    assert stored is not None
    assert stored.title == "Second"


def test_find_filters_and_orders(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    with sqlite_unit_of_work() as uow:
        for item in (
            make_item(ItemType.WORKITEM, "2"),
            make_item(ItemType.PRODUCT, "P"),
            make_item(ItemType.FEATURE, "F"),
            make_item(ItemType.WORKITEM, "1"),
        ):
            uow.repositories.items.upsert_if_newer(item)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        everything = uow.repositories.items.find()
        tracking = uow.repositories.items.find(source_system=SourceSystem.TRACKING)
        products = uow.repositories.items.find(item_type=ItemType.PRODUCT)

    assert [item.external_id for item in everything] == ["F", "P", "1", "2"]
    assert [item.external_id for item in tracking] == ["1", "2"]
    assert [item.external_id for item in products] == ["P"]


def test_relations_add_remove_and_lookup(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    parent_of = Relation(_work_item_key("1"), _work_item_key("2"), RelationKind.PARENT_OF)
    link = Relation(
        ItemKey(SourceSystem.PLANNING, ItemType.FEATURE, "ab12"),
        _work_item_key("2"),
        RelationKind.CROSS_SYSTEM_LINK,
    )

    with sqlite_unit_of_work() as uow:
        uow.repositories.relations.add_many([parent_of, link])
        uow.commit()

    with sqlite_unit_of_work() as uow:
        relations = uow.repositories.relations
        assert relations.list_owned(SourceSystem.TRACKING) == frozenset({parent_of})
        assert relations.list_owned(SourceSystem.PLANNING) == frozenset({link})
        assert relations.touching(_work_item_key("2")) == sorted([parent_of, link])
        relations.remove_many([parent_of])
        relations.add_many([])
        uow.commit()

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.relations.touching(_work_item_key("1")) == []


def test_watermarks_only_move_forward(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    def watermark(offset: timedelta) -> SyncWatermark:
        return SyncWatermark(
            source_system=SourceSystem.TRACKING,
            entity_type=ItemType.WORKITEM,
            synced_through=BASE_TIME + offset,
            updated_at=BASE_TIME + offset,
        )

    with sqlite_unit_of_work() as uow:
        watermarks = uow.repositories.watermarks
        assert watermarks.get(SourceSystem.TRACKING, ItemType.WORKITEM) is None
        watermarks.advance(watermark(timedelta(0)))
        watermarks.advance(watermark(timedelta(hours=1)))
        with pytest.raises(WatermarkAdvanceBlocked):
            watermarks.advance(watermark(timedelta(minutes=30)))
        uow.commit()

    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.watermarks.get(SourceSystem.TRACKING, ItemType.WORKITEM)

    assert stored is not None
    assert stored.synced_through == BASE_TIME + timedelta(hours=1)


def test_sync_runs_round_trip(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    older = SyncRun(
        source_system=SourceSystem.PLANNING,
        entity_type=ItemType.FEATURE,
        started_at=BASE_TIME - timedelta(hours=1),
    )
    run = SyncRun(
        source_system=SourceSystem.TRACKING,
        entity_type=ItemType.WORKITEM,
        started_at=BASE_TIME,
        full_resync=True,
    )

    with sqlite_unit_of_work() as uow:
        uow.repositories.runs.add(older)
        uow.repositories.runs.add(run)
        uow.commit()

    run.processed, run.created, run.failed = 10, 8, 2
    run.add_issue(SyncIssue(IssueKind.FETCH, "batch failed", batch_index=1))
    run.add_issue(SyncIssue(IssueKind.NORMALIZATION, "no id", external_id="x"))
    run.finalize(RunStatus.PARTIAL, BASE_TIME + timedelta(minutes=1))
    with sqlite_unit_of_work() as uow:
        uow.repositories.runs.save(run)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.runs.get(run.run_id)
        recent = uow.repositories.runs.recent(limit=5)
        planning_only = uow.repositories.runs.recent(source_system=SourceSystem.PLANNING)

    assert stored is not None
    assert stored.status is RunStatus.PARTIAL
    assert stored.full_resync
    assert (stored.processed, stored.created, stored.failed) == (10, 8, 2)
    assert stored.issues == run.issues
    assert stored.finished_at == BASE_TIME + timedelta(minutes=1)
    assert [entry.run_id for entry in recent] == [run.run_id, older.run_id]
    assert [entry.run_id for entry in planning_only] == [older.run_id]
