"""Public interface for the Azure DevOps adapter."""

from __future__ import annotations

from .client import AzureDevOpsConnector, build_wiql
from .schema import WiqlResponse, WorkItemList, WorkItemStampList

__all__ = [
    "AzureDevOpsConnector",
    "WiqlResponse",
    "WorkItemList",
    "WorkItemStampList",
    "build_wiql",
]
