"""HTTP connector for the Azure DevOps work item tracking API."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC
from itertools import batched
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from plansync.adapters.http_resilience import (
    ResilienceConfig,
    ResilientClient,
    default_client_factory,
    fetch_error_from_exception,
)
from plansync.config.azure_devops import (
    AZURE_DEVOPS_API_VERSION,
    AzureDevOpsConfig,
    get_azure_devops_config,
)
from plansync.domain.model import ItemType, SourceSystem
from plansync.domain.ports.connector import ChangeMarker
from plansync.domain.time_windows import ensure_aware

from .schema import CHANGED_DATE_FIELD, WiqlResponse, WorkItemList, WorkItemStampList

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from datetime import datetime

    from plansync.domain.ports.connector import SourceConnector

log = getLogger(__name__)

# upper bound the work item endpoints accept per request
MAX_IDS_PER_REQUEST = 200


def _wiql_timestamp(value: datetime) -> str:
    return ensure_aware(value).astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def build_wiql(since: datetime | None) -> str:
    """WIQL selecting work items of the current project changed after ``since``."""

    clauses = ["[System.TeamProject] = @project"]
    if since is not None:
        clauses.append(f"[System.ChangedDate] > '{_wiql_timestamp(since)}'")
    return (
        "SELECT [System.Id] FROM WorkItems WHERE "
        + " AND ".join(clauses)
        + " ORDER BY [System.ChangedDate] ASC"
    )


def _parse[M: BaseModel](model: type[M], payload: object) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise fetch_error_from_exception(exc, source="azure-devops") from exc


def _require_work_items(entity_type: ItemType) -> None:
    if entity_type is not ItemType.WORKITEM:
        raise ValueError(f"Azure DevOps does not serve {entity_type.label} records")


@dataclass(slots=True)
class AzureDevOpsConnector:
    """TRACKING connector built on WIQL and the batch work item endpoints."""

    config: AzureDevOpsConfig = field(default_factory=get_azure_devops_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=default_client_factory
    )

    @property
    def source_system(self) -> SourceSystem:
        return SourceSystem.TRACKING

    async def list_changes(
        self,
        entity_type: ItemType,
        *,
        since: datetime | None,
    ) -> Sequence[ChangeMarker]:
        _require_work_items(entity_type)
        async with self.client_factory(self.config.resilience) as client:
            payload = await client.request_json(
                "POST",
                "_apis/wit/wiql",
                params={"api-version": AZURE_DEVOPS_API_VERSION, "timePrecision": "true"},
                json={"query": build_wiql(since)},
            )
            ids = [reference.id for reference in _parse(WiqlResponse, payload).work_items]
            stamps = await asyncio.gather(
                *(self._change_stamps(client, chunk) for chunk in batched(ids, MAX_IDS_PER_REQUEST))
            )

        changed_at: dict[int, datetime | None] = {}
        for chunk in stamps:
            changed_at.update(chunk)
        log.info(f"Azure DevOps reported {len(ids)} changed work items")
        return [
            ChangeMarker(str(work_item_id), changed_at.get(work_item_id))
            for work_item_id in ids
        ]

    async def fetch(
        self,
        entity_type: ItemType,
        *,
        since: datetime | None,
        ids: Sequence[str],
    ) -> Sequence[Mapping[str, object]]:
        _ = since
        _require_work_items(entity_type)
        if not ids:
            return []
        async with self.client_factory(self.config.resilience) as client:
            pages = await asyncio.gather(
                *(self._work_items(client, chunk) for chunk in batched(ids, MAX_IDS_PER_REQUEST))
            )
        return [document for page in pages for document in page]

    async def _change_stamps(
        self, client: ResilientClient, ids: Sequence[int]
    ) -> dict[int, datetime | None]:
        payload = await client.request_json(
            "POST",
            "_apis/wit/workitemsbatch",
            params={"api-version": AZURE_DEVOPS_API_VERSION},
            json={"ids": list(ids), "fields": ["System.Id", CHANGED_DATE_FIELD]},
        )
        return {
            stamp.id: ensure_aware(stamp.fields.changed_date) if stamp.fields.changed_date else None
            for stamp in _parse(WorkItemStampList, payload).value
        }

    async def _work_items(
        self, client: ResilientClient, ids: Sequence[str]
    ) -> list[dict[str, object]]:
        payload = await client.request_json(
            "GET",
            "_apis/wit/workitems",
            params={
                "ids": ",".join(ids),
                "$expand": "all",
                "errorPolicy": "omit",
                "api-version": AZURE_DEVOPS_API_VERSION,
            },
        )
        return [document for document in _parse(WorkItemList, payload).value if document]


if TYPE_CHECKING:
    _connector_check: SourceConnector = AzureDevOpsConnector()
