"""Typed edges between cached records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .enums import RelationKind

if TYPE_CHECKING:
    from .enums import SourceSystem
    from .item import ItemKey


@dataclass(frozen=True, slots=True, order=True)
class Relation:
    """Directed, derived edge. Owned by the source system of its ``source`` end."""

    source: ItemKey
    target: ItemKey
    kind: RelationKind

    @property
    def owner(self) -> SourceSystem:
        return self.source.source_system

    def touches(self, key: ItemKey) -> bool:
        return key in (self.source, self.target)
