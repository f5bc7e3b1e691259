from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.engine import Engine  # noqa: TC002

from plansync.adapters.memory import InMemoryCacheState, build_unit_of_work_factory
from plansync.adapters.sqlalchemy.migrations import upgrade_head
from plansync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyCacheUnitOfWork,
    create_cache_engine,
    shutdown,
    startup,
)
from plansync.domain.reconciliation import CacheReconciliationStore
from tests.helpers.fakes import FakeClock, RecordingSleep

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from plansync.adapters.memory import InMemoryCacheUnitOfWork


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_cache_engine("sqlite+pysqlite:///:memory:")
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyCacheUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyCacheUnitOfWork:
        return SqlAlchemyCacheUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def memory_state() -> InMemoryCacheState:
    return InMemoryCacheState()


@pytest.fixture
def memory_unit_of_work(
    memory_state: InMemoryCacheState,
) -> Callable[[], InMemoryCacheUnitOfWork]:
    return build_unit_of_work_factory(memory_state)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store(
    memory_unit_of_work: Callable[[], InMemoryCacheUnitOfWork], clock: FakeClock
) -> CacheReconciliationStore:
    return CacheReconciliationStore(memory_unit_of_work, clock=clock)
