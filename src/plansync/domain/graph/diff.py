"""Set difference between a rebuilt edge set and the stored one."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from plansync.domain.model import Relation


@dataclass(frozen=True, slots=True)
class EdgeDiff:
    add: frozenset[Relation] = field(default_factory=frozenset["Relation"])
    remove: frozenset[Relation] = field(default_factory=frozenset["Relation"])

    @property
    def is_empty(self) -> bool:
        return not self.add and not self.remove


def diff_edges(desired: Iterable[Relation], stored: Iterable[Relation]) -> EdgeDiff:
    desired_set = frozenset(desired)
    stored_set = frozenset(stored)
    return EdgeDiff(add=desired_set - stored_set, remove=stored_set - desired_set)
