"""Relationship graph builder.

Edges are always derived from the complete item set; there is no incremental
patching. Direct edges come from the back-references carried by each record.
``PRODUCT_HAS_COMPONENT`` is additionally derived in two hops: a product has a
component whenever one of the product's features belongs to that component.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from plansync.domain.model import (
    CanonicalItem,
    ItemKey,
    ItemType,
    Relation,
    RelationKind,
    SourceSystem,
)

if TYPE_CHECKING:
    from collections.abc import Iterable


class GapReason(StrEnum):
    MISSING = "missing"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True, slots=True, order=True)
class EdgeGap:
    """A back-reference that could not be turned into an edge."""

    source: ItemKey
    kind: RelationKind
    missing_external_id: str
    reason: GapReason

    def describe(self) -> str:
        return (
            f"{self.kind} from {self.source} to {self.missing_external_id!r}: "
            f"target {self.reason}"
        )


@dataclass(frozen=True, slots=True)
class EdgeBuild:
    edges: frozenset[Relation]
    gaps: tuple[EdgeGap, ...]


PARENT_TYPES: Final[dict[ItemType, frozenset[ItemType]]] = {
    ItemType.COMPONENT: frozenset({ItemType.COMPONENT}),
    ItemType.FEATURE: frozenset({ItemType.COMPONENT}),
    ItemType.SUBFEATURE: frozenset({ItemType.FEATURE}),
    ItemType.WORKITEM: frozenset({ItemType.WORKITEM}),
}
CROSS_REF_TARGET_TYPES: Final[dict[SourceSystem, frozenset[ItemType]]] = {
    # keyed by the system of the record carrying the reference
    SourceSystem.TRACKING: frozenset({ItemType.FEATURE, ItemType.SUBFEATURE}),
    SourceSystem.PLANNING: frozenset({ItemType.WORKITEM}),
}
_FEATURE_TYPES: Final[frozenset[ItemType]] = frozenset({ItemType.FEATURE, ItemType.SUBFEATURE})


class _ItemIndex:
    def __init__(self, items: Iterable[CanonicalItem]) -> None:
        self._by_id: dict[tuple[SourceSystem, str], set[ItemKey]] = defaultdict(set)
        for item in items:
            self._by_id[(item.source_system, item.external_id)].add(item.key)

    def resolve(
        self,
        source_system: SourceSystem,
        external_id: str,
        allowed: frozenset[ItemType],
    ) -> ItemKey | GapReason:
        candidates = [
            key
            for key in self._by_id.get((source_system, external_id), ())
            if key.item_type in allowed
        ]
        if not candidates:
            return GapReason.MISSING
        if len(candidates) > 1:
            return GapReason.AMBIGUOUS
        return candidates[0]


class _EdgeCollector:
    def __init__(self, index: _ItemIndex) -> None:
        self.index = index
        self.edges: set[Relation] = set()
        self.gaps: set[EdgeGap] = set()

    def link(
        self,
        item: CanonicalItem,
        ref: str,
        kind: RelationKind,
        allowed: frozenset[ItemType],
        *,
        target_system: SourceSystem | None = None,
        reverse: bool = False,
    ) -> ItemKey | None:
        """Add an edge between ``item`` and the record ``ref`` points at.

        With ``reverse`` the referenced record becomes the edge source, which is
        how container references (parent, product, initiative) read.
        """

        resolved = self.index.resolve(target_system or item.source_system, ref, allowed)
        if isinstance(resolved, GapReason):
            self.gaps.add(EdgeGap(item.key, kind, ref, resolved))
            return None
        if reverse:
            self.edges.add(Relation(source=resolved, target=item.key, kind=kind))
        else:
            self.edges.add(Relation(source=item.key, target=resolved, kind=kind))
        return resolved


def rebuild_edges(
    items: Iterable[CanonicalItem],
    *,
    scope: SourceSystem | None = None,
) -> EdgeBuild:
    """Derive the complete edge set for ``items``.

    The result depends only on the set of records, never on their order, so an
    unchanged input always yields an identical edge set. Dangling references are
    reported as gaps. With ``scope`` only edges owned by that source system (and
    gaps raised by its records) are returned.
    """

    materialized = tuple(items)
    collector = _EdgeCollector(_ItemIndex(materialized))
    product_features: set[tuple[ItemKey, ItemKey]] = set()
    feature_components: dict[ItemKey, ItemKey] = {}

    for item in materialized:
        if item.parent_external_id is not None and item.item_type in PARENT_TYPES:
            parent = collector.link(
                item,
                item.parent_external_id,
                RelationKind.PARENT_OF,
                PARENT_TYPES[item.item_type],
                reverse=True,
            )
            if (
                parent is not None
                and item.item_type is ItemType.SUBFEATURE
                and parent.item_type is ItemType.FEATURE
            ):
                collector.edges.add(
                    Relation(
                        source=parent, target=item.key, kind=RelationKind.FEATURE_HAS_SUBFEATURE
                    )
                )

        if item.product_ref is not None and item.item_type in _FEATURE_TYPES:
            product = collector.link(
                item,
                item.product_ref,
                RelationKind.PRODUCT_HAS_FEATURE,
                frozenset({ItemType.PRODUCT}),
                reverse=True,
            )
            if product is not None:
                product_features.add((product, item.key))
        elif item.product_ref is not None and item.item_type is ItemType.COMPONENT:
            collector.link(
                item,
                item.product_ref,
                RelationKind.PRODUCT_HAS_COMPONENT,
                frozenset({ItemType.PRODUCT}),
                reverse=True,
            )

        if item.component_ref is not None and item.item_type in _FEATURE_TYPES:
            resolved = collector.index.resolve(
                item.source_system, item.component_ref, frozenset({ItemType.COMPONENT})
            )
            if isinstance(resolved, ItemKey):
                feature_components[item.key] = resolved
            elif item.parent_external_id != item.component_ref:
                # when both refs agree the parent link has already reported it
                collector.gaps.add(
                    EdgeGap(
                        item.key, RelationKind.PRODUCT_HAS_COMPONENT, item.component_ref, resolved
                    )
                )

        if item.item_type in _FEATURE_TYPES:
            for initiative_ref in item.initiative_refs:
                collector.link(
                    item,
                    initiative_ref,
                    RelationKind.INITIATIVE_HAS_FEATURE,
                    frozenset({ItemType.INITIATIVE}),
                    reverse=True,
                )

        if item.cross_system_ref is not None:
            collector.link(
                item,
                item.cross_system_ref,
                RelationKind.CROSS_SYSTEM_LINK,
                CROSS_REF_TARGET_TYPES[item.source_system],
                target_system=item.source_system.other,
            )

    for product, feature in product_features:
        component = feature_components.get(feature)
        if component is not None:
            collector.edges.add(
                Relation(source=product, target=component, kind=RelationKind.PRODUCT_HAS_COMPONENT)
            )

    edges = collector.edges
    gaps = collector.gaps
    if scope is not None:
        edges = {edge for edge in edges if edge.owner is scope}
        gaps = {gap for gap in gaps if gap.source.source_system is scope}
    return EdgeBuild(edges=frozenset(edges), gaps=tuple(sorted(gaps)))
