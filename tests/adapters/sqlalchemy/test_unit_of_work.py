from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.pool import StaticPool

from plansync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyCacheUnitOfWork,
    StartupError,
    build_unit_of_work_factory,
    create_cache_engine,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from plansync.domain.errors import PersistenceError
from plansync.domain.model import ItemKey, ItemType, Relation, RelationKind, SourceSystem
from plansync.domain.reconciliation import CacheReconciliationStore
from tests.helpers.items import make_item

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_unit_of_work_requires_startup() -> None:
    assert not is_started()

    with pytest.raises(StartupError):
        SqlAlchemyCacheUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:")
    engine_b = create_engine("sqlite+pysqlite:///:memory:")

    startup(engine=engine_a)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b


def test_startup_migrates_the_schema() -> None:
    engine = create_engine("sqlite+pysqlite:///:memory:")

    startup(engine=engine)

    tables = set(inspect(engine).get_table_names())
    assert {"canonical_item", "relation", "sync_watermark", "sync_run"} <= tables


def test_exceptions_roll_the_unit_of_work_back(
    sqlite_unit_of_work: Callable[[], SqlAlchemyCacheUnitOfWork],
) -> None:
    item = make_item(ItemType.WORKITEM, "1")

    with pytest.raises(RuntimeError, match="boom"), sqlite_unit_of_work() as uow:
        uow.repositories.items.upsert_if_newer(item)
        raise RuntimeError("boom")

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.items.get(item.key) is None


def test_database_errors_surface_as_persistence_errors(
    sqlite_unit_of_work: Callable[[], SqlAlchemyCacheUnitOfWork],
) -> None:
    relation = Relation(
        ItemKey(SourceSystem.TRACKING, ItemType.WORKITEM, "1"),
        ItemKey(SourceSystem.TRACKING, ItemType.WORKITEM, "2"),
        RelationKind.PARENT_OF,
    )
    with sqlite_unit_of_work() as uow:
        uow.repositories.relations.add_many([relation])
        uow.commit()

    with pytest.raises(PersistenceError) as caught, sqlite_unit_of_work() as uow:
        uow.repositories.relations.add_many([relation])

    assert not caught.value.retryable


def test_repositories_are_scoped_to_the_block(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = build_unit_of_work_factory()()

    with pytest.raises(StartupError):
        _ = uow.repositories

    with uow:
        assert uow.repositories.items.find() == []

    with pytest.raises(StartupError):
        _ = uow.session


def test_store_runs_against_sqlite(
    sqlite_unit_of_work: Callable[[], SqlAlchemyCacheUnitOfWork],
) -> None:
    store = CacheReconciliationStore(sqlite_unit_of_work)
    store.upsert_many(
        [
            make_item(ItemType.PRODUCT, "P"),
            make_item(ItemType.COMPONENT, "C"),
            make_item(ItemType.FEATURE, "F", parent="C", component="C", product="P"),
        ]
    )

    first = store.rebuild_edges(SourceSystem.PLANNING)
    second = store.rebuild_edges(SourceSystem.PLANNING)

    assert len(first.diff.add) == 3
    assert second.diff.is_empty
    resolved = store.resolve(ItemKey(SourceSystem.PLANNING, ItemType.COMPONENT, "C"))
    assert resolved is not None
    assert {relation.kind for relation in resolved.incoming} == {
        RelationKind.PRODUCT_HAS_COMPONENT
    }
    assert {relation.kind for relation in resolved.outgoing} == {RelationKind.PARENT_OF}


def test_cache_engine_keeps_in_memory_databases_on_one_connection() -> None:
    memory = create_cache_engine("sqlite+pysqlite:///:memory:")
    on_disk = create_cache_engine("sqlite+pysqlite:///plansync-cache.db")

    assert isinstance(memory.pool, StaticPool)
    assert not isinstance(on_disk.pool, StaticPool)


async def test_worker_threads_share_the_in_memory_database(
    sqlite_unit_of_work: Callable[[], SqlAlchemyCacheUnitOfWork],
) -> None:
    store = CacheReconciliationStore(sqlite_unit_of_work)
    items = [make_item(ItemType.WORKITEM, str(number)) for number in range(1, 6)]

    await asyncio.gather(*(asyncio.to_thread(store.upsert, item) for item in items))
    stored = await asyncio.to_thread(store.items, SourceSystem.TRACKING)

    assert sorted(item.external_id for item in stored) == ["1", "2", "3", "4", "5"]
