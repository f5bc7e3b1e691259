"""Canonical cached records."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from .enums import ItemType, SourceSystem

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime


@dataclass(frozen=True, slots=True, order=True)
class ItemKey:
    """Unique identity of a cached record."""

    source_system: SourceSystem
    item_type: ItemType
    external_id: str

    def __str__(self) -> str:
        return f"{self.source_system}:{self.item_type}:{self.external_id}"


@dataclass(frozen=True, slots=True)
class CanonicalItem:
    """Source-agnostic record produced by normalization.

    ``version`` is the revision marker taken from the payload and must strictly
    increase between accepted writes of the same key. Container references point at
    external ids within the same source system; ``cross_system_ref`` points at an
    external id in the other one.
    """

    source_system: SourceSystem
    item_type: ItemType
    external_id: str
    title: str
    version: int
    last_synced_at: datetime
    description: str | None = None
    status: str | None = None
    parent_external_id: str | None = None
    product_ref: str | None = None
    component_ref: str | None = None
    initiative_refs: tuple[str, ...] = ()
    cross_system_ref: str | None = None
    raw_payload: Mapping[str, object] = field(default_factory=dict, compare=False)

    @property
    def key(self) -> ItemKey:
        return ItemKey(self.source_system, self.item_type, self.external_id)

    def with_cross_system_ref(self, ref: str | None) -> CanonicalItem:
        return replace(self, cross_system_ref=ref)
