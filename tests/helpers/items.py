"""Builders for canonical items."""

from __future__ import annotations

from typing import TYPE_CHECKING

from plansync.domain.model import CanonicalItem, ItemType, SourceSystem
from tests.helpers.fakes import BASE_TIME

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime


def make_item(
    item_type: ItemType,
    external_id: str,
    *,
    version: int = 1,
    title: str | None = None,
    status: str | None = None,
    parent: str | None = None,
    product: str | None = None,
    component: str | None = None,
    initiatives: Sequence[str] = (),
    cross_ref: str | None = None,
    synced_at: datetime = BASE_TIME,
) -> CanonicalItem:
    source_system = (
        SourceSystem.TRACKING if item_type is ItemType.WORKITEM else SourceSystem.PLANNING
    )
    return CanonicalItem(
        source_system=source_system,
        item_type=item_type,
        external_id=external_id,
        title=title or f"{item_type.label} {external_id}",
        version=version,
        last_synced_at=synced_at,
        status=status,
        parent_external_id=parent,
        product_ref=product,
        component_ref=component,
        initiative_refs=tuple(initiatives),
        cross_system_ref=cross_ref,
    )
