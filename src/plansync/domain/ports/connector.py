"""Inbound port for remote source systems."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import datetime

    from plansync.domain.model import ItemType, SourceSystem


@dataclass(frozen=True, slots=True)
class ChangeMarker:
    """One changed record reported by a delta listing."""

    external_id: str
    changed_at: datetime | None = None


@runtime_checkable
class SourceConnector(Protocol):
    """Connector for one source system.

    Both calls raise :class:`plansync.domain.errors.FetchError` subclasses. ``fetch``
    returns raw documents; records that no longer exist are simply absent.
    """

    @property
    def source_system(self) -> SourceSystem: ...

    async def list_changes(
        self,
        entity_type: ItemType,
        *,
        since: datetime | None,
    ) -> Sequence[ChangeMarker]: ...

    async def fetch(
        self,
        entity_type: ItemType,
        *,
        since: datetime | None,
        ids: Sequence[str],
    ) -> Sequence[Mapping[str, object]]: ...


__all__ = ["ChangeMarker", "SourceConnector"]
