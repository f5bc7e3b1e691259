"""SQLAlchemy persistence adapter for the local mirror."""

from __future__ import annotations

from .mappings import (
    canonical_item_table,
    metadata,
    relation_table,
    sync_run_table,
    sync_watermark_table,
)
from .repositories import (
    SqlAlchemyItemRepository,
    SqlAlchemyRelationRepository,
    SqlAlchemySyncRunRepository,
    SqlAlchemyWatermarkRepository,
)

__all__ = [
    "SqlAlchemyItemRepository",
    "SqlAlchemyRelationRepository",
    "SqlAlchemySyncRunRepository",
    "SqlAlchemyWatermarkRepository",
    "canonical_item_table",
    "metadata",
    "relation_table",
    "sync_run_table",
    "sync_watermark_table",
]
