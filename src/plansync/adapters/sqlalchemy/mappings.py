"""SQLAlchemy table metadata for the local mirror."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
    Uuid,
)

from plansync.domain.model import ItemType, RelationKind, RunStatus, SourceSystem

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


def _enum_column_type(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


SourceSystemType: Final = _enum_column_type(SourceSystem)
ItemTypeType: Final = _enum_column_type(ItemType)

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

canonical_item_table = Table(
    "canonical_item",
    metadata,
    Column("source_system", SourceSystemType, primary_key=True),
    Column("item_type", ItemTypeType, primary_key=True),
    Column("external_id", String(128), primary_key=True),
    Column("title", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("status", String(128), nullable=True),
    Column("parent_external_id", String(128), nullable=True),
    Column("product_ref", String(128), nullable=True),
    Column("component_ref", String(128), nullable=True),
    Column("initiative_refs", JSON, nullable=False, default=list),
    Column("cross_system_ref", String(128), nullable=True),
    Column("raw_payload", JSON, nullable=False, default=dict),
    Column("last_synced_at", UTCDateTime, nullable=False),
    Column("version", BigInteger, nullable=False),
)

relation_table = Table(
    "relation",
    metadata,
    Column("source_system", SourceSystemType, primary_key=True),
    Column("source_type", ItemTypeType, primary_key=True),
    Column("source_external_id", String(128), primary_key=True),
    Column("target_system", SourceSystemType, primary_key=True),
    Column("target_type", ItemTypeType, primary_key=True),
    Column("target_external_id", String(128), primary_key=True),
    Column("kind", _enum_column_type(RelationKind), primary_key=True),
    Index("ix_relation_target", "target_system", "target_type", "target_external_id"),
)

sync_watermark_table = Table(
    "sync_watermark",
    metadata,
    Column("source_system", SourceSystemType, primary_key=True),
    Column("entity_type", ItemTypeType, primary_key=True),
    Column("synced_through", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
)

sync_run_table = Table(
    "sync_run",
    metadata,
    Column("run_id", UUIDColumnType, primary_key=True),
    Column("source_system", SourceSystemType, nullable=False),
    Column("entity_type", ItemTypeType, nullable=False),
    Column("full_resync", Boolean, nullable=False, default=False),
    Column("started_at", UTCDateTime, nullable=False),
    Column("finished_at", UTCDateTime, nullable=True),
    Column("status", _enum_column_type(RunStatus), nullable=False),
    Column("processed", Integer, nullable=False, default=0),
    Column("created", Integer, nullable=False, default=0),
    Column("updated", Integer, nullable=False, default=0),
    Column("unchanged", Integer, nullable=False, default=0),
    Column("failed", Integer, nullable=False, default=0),
    Column("issues", JSON, nullable=False, default=list),
    Index("ix_sync_run_started_at", "started_at"),
)
