from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from plansync import app as app_module
from plansync.adapters.azure_devops import AzureDevOpsConnector
from plansync.adapters.productboard import ProductBoardConnector
from plansync.adapters.sqlalchemy.unit_of_work import shutdown
from plansync.config import MissingConfigurationError, SyncConfig
from plansync.domain.model import ItemKey, ItemType, RelationKind, RunStatus, SourceSystem
from tests.helpers.fakes import FakeConnector
from tests.helpers.payloads import ado_work_item

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from plansync.adapters.memory import InMemoryCacheUnitOfWork
    from tests.helpers.fakes import FakeClock, RecordingSleep


@pytest.fixture
def tracking() -> FakeConnector:
    connector = FakeConnector(SourceSystem.TRACKING)
    connector.add(ItemType.WORKITEM, ado_work_item(1, title="Epic"))
    connector.add(ItemType.WORKITEM, ado_work_item(2, title="Story", parent_id=1))
    connector.add(ItemType.WORKITEM, ado_work_item(3, title="Task", parent_id=2))
    return connector


@pytest.fixture
def service(
    tracking: FakeConnector,
    memory_unit_of_work: Callable[[], InMemoryCacheUnitOfWork],
    clock: FakeClock,
    recording_sleep: RecordingSleep,
) -> app_module.SyncService:
    return app_module.build_sync_service(
        connectors=[tracking],
        unit_of_work_factory=memory_unit_of_work,
        config=SyncConfig(batch_size=2),
        clock=clock,
        sleep=recording_sleep,
    )


@pytest.fixture
def fresh_adapter_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_run_sync_uses_the_configured_batch_size(
    service: app_module.SyncService, tracking: FakeConnector
) -> None:
    runs = app_module.run_sync(
        SourceSystem.TRACKING, service=service, config=SyncConfig(batch_size=2)
    )

    assert [run.status for run in runs] == [RunStatus.SUCCESS]
    assert [len(ids) for ids in tracking.fetch_calls] == [2, 1]


def test_synced_items_can_be_inspected(
    service: app_module.SyncService,
    memory_unit_of_work: Callable[[], InMemoryCacheUnitOfWork],
) -> None:
    app_module.run_sync(SourceSystem.TRACKING, service=service, config=SyncConfig())

    resolved = app_module.show_item(
        ItemKey(SourceSystem.TRACKING, ItemType.WORKITEM, "2"),
        unit_of_work_factory=memory_unit_of_work,
    )
    runs = app_module.recent_runs(unit_of_work_factory=memory_unit_of_work)

    assert resolved is not None
    assert resolved.item.title == "Story"
    assert [(rel.kind, rel.source.external_id) for rel in resolved.incoming] == [
        (RelationKind.PARENT_OF, "1")
    ]
    assert [rel.target.external_id for rel in resolved.outgoing] == ["3"]
    assert [(run.entity_type, run.status) for run in runs] == [
        (ItemType.WORKITEM, RunStatus.SUCCESS)
    ]


def test_recent_runs_filters_by_source_system(
    service: app_module.SyncService,
    memory_unit_of_work: Callable[[], InMemoryCacheUnitOfWork],
) -> None:
    app_module.run_sync(SourceSystem.TRACKING, service=service, config=SyncConfig())

    assert (
        app_module.recent_runs(
            source_system=SourceSystem.PLANNING, unit_of_work_factory=memory_unit_of_work
        )
        == []
    )


def test_default_connectors_read_the_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PRODUCTBOARD_API_TOKEN", "token")
    monkeypatch.setenv("AZURE_DEVOPS_ORG", "acme")
    monkeypatch.setenv("AZURE_DEVOPS_PROJECT", "roadmap")
    monkeypatch.setenv("AZURE_DEVOPS_PAT", "pat")

    planning = app_module.default_connector(SourceSystem.PLANNING)
    tracking = app_module.default_connector(SourceSystem.TRACKING)

    assert isinstance(planning, ProductBoardConnector)
    assert isinstance(tracking, AzureDevOpsConnector)
    assert tracking.config.project_url == "https://dev.azure.com/acme/roadmap/"


def test_default_connector_requires_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PRODUCTBOARD_API_TOKEN", raising=False)

    with pytest.raises(MissingConfigurationError):
        app_module.default_connector(SourceSystem.PLANNING)


@pytest.mark.usefixtures("fresh_adapter_state")
def test_default_persistence_starts_the_database(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite+pysqlite:///:memory:")

    assert app_module.recent_runs() == []
    assert app_module.show_item(ItemKey(SourceSystem.PLANNING, ItemType.PRODUCT, "P")) is None
