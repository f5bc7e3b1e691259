"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import and_, delete, insert, or_, select, update

from plansync.domain.errors import ReconciliationConflict, WatermarkAdvanceBlocked
from plansync.domain.model import (
    CanonicalItem,
    IssueKind,
    ItemKey,
    ItemType,
    Relation,
    RelationKind,
    RunStatus,
    SourceSystem,
    SyncIssue,
    SyncRun,
    SyncWatermark,
    UpsertOutcome,
)

from .mappings import (
    canonical_item_table,
    relation_table,
    sync_run_table,
    sync_watermark_table,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable, Mapping
    from datetime import datetime

    from sqlalchemy import ColumnElement, Row
    from sqlalchemy.orm import Session


def _item_key_clause(key: ItemKey) -> ColumnElement[bool]:
    return and_(
        canonical_item_table.c.source_system == key.source_system,
        canonical_item_table.c.item_type == key.item_type,
        canonical_item_table.c.external_id == key.external_id,
    )


def _item_to_row(item: CanonicalItem) -> dict[str, object]:
    return {
        "source_system": item.source_system,
        "item_type": item.item_type,
        "external_id": item.external_id,
        "title": item.title,
        "description": item.description,
        "status": item.status,
        "parent_external_id": item.parent_external_id,
        "product_ref": item.product_ref,
        "component_ref": item.component_ref,
        "initiative_refs": list(item.initiative_refs),
        "cross_system_ref": item.cross_system_ref,
        "raw_payload": dict(item.raw_payload),
        "last_synced_at": item.last_synced_at,
        "version": item.version,
    }


def _row_to_item(row: Row[Any]) -> CanonicalItem:
    mapping = row._mapping  # noqa: SLF001
    return CanonicalItem(
        source_system=SourceSystem(mapping["source_system"]),
        item_type=ItemType(mapping["item_type"]),
        external_id=mapping["external_id"],
        title=mapping["title"],
        version=mapping["version"],
        last_synced_at=mapping["last_synced_at"],
        description=mapping["description"],
        status=mapping["status"],
        parent_external_id=mapping["parent_external_id"],
        product_ref=mapping["product_ref"],
        component_ref=mapping["component_ref"],
        initiative_refs=tuple(cast("list[str]", mapping["initiative_refs"] or [])),
        cross_system_ref=mapping["cross_system_ref"],
        raw_payload=cast("Mapping[str, object]", mapping["raw_payload"] or {}),
    )


class SqlAlchemyItemRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: ItemKey) -> CanonicalItem | None:
        row = self.session.execute(
            select(canonical_item_table).where(_item_key_clause(key))
        ).one_or_none()
        return _row_to_item(row) if row is not None else None

    def upsert_if_newer(self, item: CanonicalItem) -> UpsertOutcome:
        clause = _item_key_clause(item.key)
        stored_version = self.session.execute(
            select(canonical_item_table.c.version).where(clause)
        ).scalar_one_or_none()
        if stored_version is None:
            self.session.execute(insert(canonical_item_table).values(**_item_to_row(item)))
            return UpsertOutcome.CREATED
        if item.version <= stored_version:
            raise ReconciliationConflict(
                item.key, stored_version=stored_version, incoming_version=item.version
            )
        # the version guard keeps the write conditional even under concurrent writers
        result = self.session.execute(
            update(canonical_item_table)
            .where(clause, canonical_item_table.c.version < item.version)
            .values(**_item_to_row(item))
        )
        if result.rowcount == 0:
            raise ReconciliationConflict(
                item.key, stored_version=stored_version, incoming_version=item.version
            )
        return UpsertOutcome.UPDATED

    def touch(self, key: ItemKey, synced_at: datetime) -> bool:
        result = self.session.execute(
            update(canonical_item_table)
            .where(_item_key_clause(key))
            .values(last_synced_at=synced_at)
        )
        return result.rowcount > 0

    def find(
        self,
        *,
        source_system: SourceSystem | None = None,
        item_type: ItemType | None = None,
    ) -> list[CanonicalItem]:
        stmt = select(canonical_item_table).order_by(
            canonical_item_table.c.source_system,
            canonical_item_table.c.item_type,
            canonical_item_table.c.external_id,
        )
        if source_system is not None:
            stmt = stmt.where(canonical_item_table.c.source_system == source_system)
        if item_type is not None:
            stmt = stmt.where(canonical_item_table.c.item_type == item_type)
        return [_row_to_item(row) for row in self.session.execute(stmt)]


def _relation_to_row(relation: Relation) -> dict[str, object]:
    return {
        "source_system": relation.source.source_system,
        "source_type": relation.source.item_type,
        "source_external_id": relation.source.external_id,
        "target_system": relation.target.source_system,
        "target_type": relation.target.item_type,
        "target_external_id": relation.target.external_id,
        "kind": relation.kind,
    }


def _row_to_relation(row: Row[Any]) -> Relation:
    mapping = row._mapping  # noqa: SLF001
    return Relation(
        source=ItemKey(
            SourceSystem(mapping["source_system"]),
            ItemType(mapping["source_type"]),
            mapping["source_external_id"],
        ),
        target=ItemKey(
            SourceSystem(mapping["target_system"]),
            ItemType(mapping["target_type"]),
            mapping["target_external_id"],
        ),
        kind=RelationKind(mapping["kind"]),
    )


class SqlAlchemyRelationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_owned(self, source_system: SourceSystem) -> frozenset[Relation]:
        rows = self.session.execute(
            select(relation_table).where(relation_table.c.source_system == source_system)
        )
        return frozenset(_row_to_relation(row) for row in rows)

    def touching(self, key: ItemKey) -> list[Relation]:
        c = relation_table.c
        stmt = select(relation_table).where(
            or_(
                and_(
                    c.source_system == key.source_system,
                    c.source_type == key.item_type,
                    c.source_external_id == key.external_id,
                ),
                and_(
                    c.target_system == key.source_system,
                    c.target_type == key.item_type,
                    c.target_external_id == key.external_id,
                ),
            )
        )
        return sorted(_row_to_relation(row) for row in self.session.execute(stmt))

    def add_many(self, relations: Iterable[Relation]) -> None:
        rows = [_relation_to_row(relation) for relation in relations]
        if rows:
            self.session.execute(insert(relation_table), rows)

    def remove_many(self, relations: Iterable[Relation]) -> None:
        columns = relation_table.c
        for relation in relations:
            row = _relation_to_row(relation)
            self.session.execute(
                delete(relation_table).where(
                    *(columns[name] == value for name, value in row.items())
                )
            )


class SqlAlchemyWatermarkRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, source_system: SourceSystem, entity_type: ItemType) -> SyncWatermark | None:
        row = self.session.execute(
            select(sync_watermark_table).where(
                sync_watermark_table.c.source_system == source_system,
                sync_watermark_table.c.entity_type == entity_type,
            )
        ).one_or_none()
        if row is None:
            return None
        return SyncWatermark(
            source_system=SourceSystem(row.source_system),
            entity_type=ItemType(row.entity_type),
            synced_through=row.synced_through,
            updated_at=row.updated_at,
        )

    def advance(self, watermark: SyncWatermark) -> None:
        current = self.get(watermark.source_system, watermark.entity_type)
        values = {
            "synced_through": watermark.synced_through,
            "updated_at": watermark.updated_at,
        }
        if current is None:
            self.session.execute(
                insert(sync_watermark_table).values(
                    source_system=watermark.source_system,
                    entity_type=watermark.entity_type,
                    **values,
                )
            )
            return
        if watermark.synced_through < current.synced_through:
            raise WatermarkAdvanceBlocked(
                watermark.source_system,
                watermark.entity_type,
                current=current.synced_through,
                proposed=watermark.synced_through,
            )
        self.session.execute(
            update(sync_watermark_table)
            .where(
                sync_watermark_table.c.source_system == watermark.source_system,
                sync_watermark_table.c.entity_type == watermark.entity_type,
            )
            .values(**values)
        )


def _run_to_row(run: SyncRun) -> dict[str, object]:
    return {
        "run_id": run.run_id,
        "source_system": run.source_system,
        "entity_type": run.entity_type,
        "full_resync": run.full_resync,
        "started_at": run.started_at,
        "finished_at": run.finished_at,
        "status": run.status,
        "processed": run.processed,
        "created": run.created,
        "updated": run.updated,
        "unchanged": run.unchanged,
        "failed": run.failed,
        "issues": [
            {
                "kind": issue.kind.value,
                "message": issue.message,
                "external_id": issue.external_id,
                "batch_index": issue.batch_index,
            }
            for issue in run.issues
        ],
    }


def _row_to_run(row: Row[Any]) -> SyncRun:
    mapping = row._mapping  # noqa: SLF001
    issues = cast("list[dict[str, Any]]", mapping["issues"] or [])
    return SyncRun(
        run_id=mapping["run_id"],
        source_system=SourceSystem(mapping["source_system"]),
        entity_type=ItemType(mapping["entity_type"]),
        full_resync=bool(mapping["full_resync"]),
        started_at=mapping["started_at"],
        finished_at=mapping["finished_at"],
        status=RunStatus(mapping["status"]),
        processed=mapping["processed"],
        created=mapping["created"],
        updated=mapping["updated"],
        unchanged=mapping["unchanged"],
        failed=mapping["failed"],
        issues=[
            SyncIssue(
                kind=IssueKind(issue["kind"]),
                message=issue["message"],
                external_id=issue.get("external_id"),
                batch_index=issue.get("batch_index"),
            )
            for issue in issues
        ],
    )


class SqlAlchemySyncRunRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, run: SyncRun) -> None:
        self.session.execute(insert(sync_run_table).values(**_run_to_row(run)))

    def save(self, run: SyncRun) -> None:
        row = _run_to_row(run)
        run_id = row.pop("run_id")
        self.session.execute(
            update(sync_run_table).where(sync_run_table.c.run_id == run_id).values(**row)
        )

    def get(self, run_id: uuid.UUID) -> SyncRun | None:
        row = self.session.execute(
            select(sync_run_table).where(sync_run_table.c.run_id == run_id)
        ).one_or_none()
        return _row_to_run(row) if row is not None else None

    def recent(
        self,
        *,
        limit: int = 20,
        source_system: SourceSystem | None = None,
    ) -> list[SyncRun]:
        stmt = select(sync_run_table).order_by(sync_run_table.c.started_at.desc()).limit(limit)
        if source_system is not None:
            stmt = stmt.where(sync_run_table.c.source_system == source_system)
        return [_row_to_run(row) for row in self.session.execute(stmt)]
