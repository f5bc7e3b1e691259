"""Canonical record normalizer.

Each ``(source system, item type)`` pair owns an extraction table. ``normalize``
resolves the item type, runs the table, and applies the shared defaults and the
version rules. Failures are scoped to the single payload.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Final, cast

from plansync.domain.errors import NormalizationError
from plansync.domain.model import CanonicalItem, ItemType, SourceSystem
from plansync.domain.time_windows import to_epoch_millis

from .cross_refs import planning_item_ref, tracking_item_ref
from .extractors import (
    ExtractionTable,
    FieldSpec,
    at,
    first_of,
    id_list,
    identifier,
    integer,
    lookup,
    named,
    text,
    timestamp,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from .extractors import Payload

log = getLogger(__name__)

TRACKING_DEFAULT_STATUS: Final[str] = "Unknown"
HIERARCHY_PARENT_REL: Final[str] = "System.LinkTypes.Hierarchy-Reverse"

PLANNING_TYPE_DISCRIMINATORS: Final[dict[str, ItemType]] = {
    "product": ItemType.PRODUCT,
    "initiative": ItemType.INITIATIVE,
    "objective": ItemType.INITIATIVE,
    "component": ItemType.COMPONENT,
    "feature": ItemType.FEATURE,
    "subfeature": ItemType.SUBFEATURE,
    "sub-feature": ItemType.SUBFEATURE,
}


def _hierarchy_parent(payload: Payload) -> str | None:
    relations = payload.get("relations")
    if not isinstance(relations, list):
        return None
    for relation in cast(list[object], relations):
        if not isinstance(relation, Mapping):
            continue
        entry = cast(Mapping[str, object], relation)
        url = entry.get("url")
        if entry.get("rel") == HIERARCHY_PARENT_REL and isinstance(url, str):
            tail = url.rstrip("/").rsplit("/", 1)[-1]
            if tail.isdigit():
                return tail
    return None


_PLANNING_COMMON: Final[tuple[FieldSpec, ...]] = (
    FieldSpec("external_id", identifier(at("id"))),
    FieldSpec("title", text(first_of(at("name"), at("title")))),
    FieldSpec("description", text(at("description"))),
    FieldSpec("status", named(at("status"))),
    FieldSpec("updated_at", timestamp(first_of(at("updatedAt"), at("updated_at")))),
    FieldSpec("cross_system_ref", planning_item_ref),
)

_PRODUCT_REF = identifier(
    first_of(at("product", "id"), at("product_id"), at("parent", "product", "id"))
)
_COMPONENT_REF = identifier(
    first_of(at("component_id"), at("parent", "component", "id"), at("component", "id"))
)

_TABLES: Final[tuple[ExtractionTable, ...]] = (
    ExtractionTable(SourceSystem.PLANNING, ItemType.PRODUCT, _PLANNING_COMMON),
    ExtractionTable(SourceSystem.PLANNING, ItemType.INITIATIVE, _PLANNING_COMMON),
    ExtractionTable(
        SourceSystem.PLANNING,
        ItemType.COMPONENT,
        (
            *_PLANNING_COMMON,
            FieldSpec("product_ref", _PRODUCT_REF),
            FieldSpec("parent_external_id", identifier(at("parent", "component", "id"))),
        ),
    ),
    ExtractionTable(
        SourceSystem.PLANNING,
        ItemType.FEATURE,
        (
            *_PLANNING_COMMON,
            FieldSpec("product_ref", _PRODUCT_REF),
            FieldSpec("component_ref", _COMPONENT_REF),
            FieldSpec("parent_external_id", _COMPONENT_REF),
            FieldSpec(
                "initiative_refs", id_list(first_of(at("initiative_ids"), at("initiatives")))
            ),
        ),
    ),
    ExtractionTable(
        SourceSystem.PLANNING,
        ItemType.SUBFEATURE,
        (
            *_PLANNING_COMMON,
            FieldSpec("product_ref", _PRODUCT_REF),
            FieldSpec(
                "parent_external_id",
                identifier(first_of(at("parent", "feature", "id"), at("parent_id"))),
            ),
            FieldSpec(
                "initiative_refs", id_list(first_of(at("initiative_ids"), at("initiatives")))
            ),
        ),
    ),
    ExtractionTable(
        SourceSystem.TRACKING,
        ItemType.WORKITEM,
        (
            FieldSpec("external_id", identifier(at("id"))),
            FieldSpec("title", text(at("fields", "System.Title"))),
            FieldSpec("description", text(at("fields", "System.Description"))),
            FieldSpec("status", named(at("fields", "System.State"))),
            FieldSpec("revision", integer(at("rev"))),
            FieldSpec(
                "parent_external_id",
                first_of(identifier(at("fields", "System.Parent")), _hierarchy_parent),
            ),
            FieldSpec("cross_system_ref", tracking_item_ref),
        ),
    ),
)

EXTRACTION_TABLES: Final[dict[tuple[SourceSystem, ItemType], ExtractionTable]] = {
    (table.source_system, table.item_type): table for table in _TABLES
}


def _resolve_item_type(
    source_system: SourceSystem, item_type: ItemType | None, payload: Payload
) -> ItemType:
    if source_system is SourceSystem.TRACKING:
        return ItemType.WORKITEM
    discriminator = lookup(payload, ("type",))
    if isinstance(discriminator, str):
        resolved = PLANNING_TYPE_DISCRIMINATORS.get(discriminator.strip().lower())
        if resolved is not None:
            return resolved
    if item_type is None:
        raise NormalizationError(
            "Cannot determine item type for payload",
            external_id=identifier(at("id"))(payload),
        )
    return item_type


def _version(values: Mapping[str, object], synced_at: datetime) -> int:
    revision = values.get("revision")
    if isinstance(revision, int):
        return revision
    updated_at = values.get("updated_at")
    if updated_at is not None:
        return to_epoch_millis(cast("datetime", updated_at))
    return to_epoch_millis(synced_at)


def normalize(
    source_system: SourceSystem,
    item_type: ItemType | None,
    raw_payload: object,
    *,
    synced_at: datetime,
    status_default: str | None = None,
) -> CanonicalItem:
    """Map one raw payload onto a :class:`CanonicalItem`.

    ``item_type`` is the caller's expectation; a type discriminator inside the
    payload wins over it. ``status_default`` fills a missing status; without it
    tracking items fall back to ``TRACKING_DEFAULT_STATUS`` and planning items keep
    no status. Raises :class:`NormalizationError` when the payload has no
    usable identity.
    """

    if not isinstance(raw_payload, Mapping):
        raise NormalizationError(f"Expected a mapping payload, got {type(raw_payload).__name__}")
    payload = cast("Payload", raw_payload)

    resolved_type = _resolve_item_type(source_system, item_type, payload)
    table = EXTRACTION_TABLES.get((source_system, resolved_type))
    if table is None:
        raise NormalizationError(f"No extraction table for {source_system}/{resolved_type}")

    values = table.extract(payload)
    external_id = cast("str | None", values["external_id"])
    if external_id is None:
        raise NormalizationError(f"{source_system}/{resolved_type} payload has no id")

    title = cast("str | None", values.get("title"))
    status = cast("str | None", values.get("status"))
    if source_system is SourceSystem.TRACKING:
        title = title or f"Untitled Item {external_id}"
        status = status or status_default or TRACKING_DEFAULT_STATUS
    else:
        title = title or f"Unnamed {resolved_type.label}"
        status = status or status_default

    parent = cast("str | None", values.get("parent_external_id"))
    if parent == external_id:
        log.debug(f"Ignoring self-parent reference on {source_system}/{external_id}")
        parent = None

    return CanonicalItem(
        source_system=source_system,
        item_type=resolved_type,
        external_id=external_id,
        title=title,
        version=_version(values, synced_at),
        last_synced_at=synced_at,
        description=cast("str | None", values.get("description")),
        status=status,
        parent_external_id=parent,
        product_ref=cast("str | None", values.get("product_ref")),
        component_ref=cast("str | None", values.get("component_ref")),
        initiative_refs=cast("tuple[str, ...]", values.get("initiative_refs", ())),
        cross_system_ref=cast("str | None", values.get("cross_system_ref")),
        raw_payload=dict(payload),
    )


@dataclass(frozen=True, slots=True)
class NormalizedBatch:
    items: tuple[CanonicalItem, ...]
    errors: tuple[NormalizationError, ...]


def normalize_batch(
    source_system: SourceSystem,
    item_type: ItemType | None,
    payloads: Iterable[object],
    *,
    synced_at: datetime,
    status_default: str | None = None,
) -> NormalizedBatch:
    """Normalize payloads independently; a failing record never aborts its siblings."""

    items: list[CanonicalItem] = []
    errors: list[NormalizationError] = []
    for payload in payloads:
        try:
            items.append(
                normalize(
                    source_system,
                    item_type,
                    payload,
                    synced_at=synced_at,
                    status_default=status_default,
                )
            )
        except NormalizationError as exc:
            log.warning(f"Skipping {source_system} record: {exc}")
            errors.append(exc)
    return NormalizedBatch(items=tuple(items), errors=tuple(errors))
