"""Domain model for the planning/tracking cache."""

from __future__ import annotations

from .enums import (
    ITEM_TYPES_BY_SOURCE,
    PLANNING_ITEM_TYPES,
    TRACKING_ITEM_TYPES,
    IssueKind,
    ItemType,
    RelationKind,
    RunStatus,
    SourceSystem,
    SyncPhase,
    UpsertOutcome,
)
from .item import CanonicalItem, ItemKey
from .relation import Relation
from .sync import SyncIssue, SyncRun, SyncWatermark

__all__ = [
    "ITEM_TYPES_BY_SOURCE",
    "PLANNING_ITEM_TYPES",
    "TRACKING_ITEM_TYPES",
    "CanonicalItem",
    "IssueKind",
    "ItemKey",
    "ItemType",
    "Relation",
    "RelationKind",
    "RunStatus",
    "SourceSystem",
    "SyncIssue",
    "SyncPhase",
    "SyncRun",
    "SyncWatermark",
    "UpsertOutcome",
]
