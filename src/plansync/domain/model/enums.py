"""Enumerations shared across the cache domain."""

from __future__ import annotations

from enum import StrEnum


class SourceSystem(StrEnum):
    PLANNING = "planning"
    TRACKING = "tracking"

    @property
    def other(self) -> SourceSystem:
        return SourceSystem.TRACKING if self is SourceSystem.PLANNING else SourceSystem.PLANNING


class ItemType(StrEnum):
    PRODUCT = "product"
    INITIATIVE = "initiative"
    COMPONENT = "component"
    FEATURE = "feature"
    SUBFEATURE = "subfeature"
    WORKITEM = "workitem"

    @property
    def label(self) -> str:
        return "Sub-feature" if self is ItemType.SUBFEATURE else self.value.capitalize()


PLANNING_ITEM_TYPES: frozenset[ItemType] = frozenset(
    {
        ItemType.PRODUCT,
        ItemType.INITIATIVE,
        ItemType.COMPONENT,
        ItemType.FEATURE,
        ItemType.SUBFEATURE,
    }
)
TRACKING_ITEM_TYPES: frozenset[ItemType] = frozenset({ItemType.WORKITEM})

ITEM_TYPES_BY_SOURCE: dict[SourceSystem, frozenset[ItemType]] = {
    SourceSystem.PLANNING: PLANNING_ITEM_TYPES,
    SourceSystem.TRACKING: TRACKING_ITEM_TYPES,
}


class RelationKind(StrEnum):
    PARENT_OF = "parent_of"
    PRODUCT_HAS_COMPONENT = "product_has_component"
    PRODUCT_HAS_FEATURE = "product_has_feature"
    INITIATIVE_HAS_FEATURE = "initiative_has_feature"
    FEATURE_HAS_SUBFEATURE = "feature_has_subfeature"
    CROSS_SYSTEM_LINK = "cross_system_link"


class RunStatus(StrEnum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncPhase(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    RECONCILING = "reconciling"
    COMMITTED = "committed"
    FAILED = "failed"


class UpsertOutcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class IssueKind(StrEnum):
    NORMALIZATION = "normalization"
    FETCH = "fetch"
    RECONCILIATION = "reconciliation"
    EDGE_GAP = "edge_gap"
    WATERMARK = "watermark"
    CANCELLED = "cancelled"
