"""Pydantic models describing the Azure DevOps work item API payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

CHANGED_DATE_FIELD = "System.ChangedDate"


class AzureDevOpsBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class WorkItemReference(AzureDevOpsBaseModel):
    id: int
    url: str | None = None


class WiqlResponse(AzureDevOpsBaseModel):
    work_items: list[WorkItemReference] = Field(default_factory=list, alias="workItems")


class ChangeStampFields(AzureDevOpsBaseModel):
    changed_date: datetime | None = Field(default=None, alias=CHANGED_DATE_FIELD)


class WorkItemStamp(AzureDevOpsBaseModel):
    id: int
    fields: ChangeStampFields = Field(default_factory=ChangeStampFields)


class WorkItemStampList(AzureDevOpsBaseModel):
    value: list[WorkItemStamp] = Field(default_factory=list)


class WorkItemList(AzureDevOpsBaseModel):
    """``GET workitems`` result; omitted ids come back as ``null`` entries."""

    count: int | None = None
    value: list[dict[str, object] | None] = Field(default_factory=list)
