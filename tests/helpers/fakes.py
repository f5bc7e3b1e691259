"""Fakes for connectors, clocks and sleeping."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from plansync.domain.ports.connector import ChangeMarker

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from plansync.domain.model import ItemType, SourceSystem

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@dataclass(slots=True)
class FakeClock:
    """Clock that only moves when told to."""

    now: datetime = BASE_TIME

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@dataclass(slots=True)
class RecordingSleep:
    delays: list[float] = field(default_factory=list[float])

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@dataclass(slots=True)
class FakeConnector:
    """Scripted connector.

    ``documents`` maps external ids to raw payloads; ``markers`` is what
    ``list_changes`` reports per entity type. ``fetch_failures`` queues errors that
    are raised, one per call, when a batch starting with that id is fetched.
    """

    source_system: SourceSystem
    markers: dict[ItemType, list[ChangeMarker]] = field(
        default_factory=dict["ItemType", "list[ChangeMarker]"]
    )
    documents: dict[str, Mapping[str, object]] = field(
        default_factory=dict[str, "Mapping[str, object]"]
    )
    fetch_failures: defaultdict[str, deque[Exception]] = field(
        default_factory=lambda: defaultdict(deque)
    )
    list_failures: deque[Exception] = field(default_factory=deque[Exception])
    on_fetch: Callable[[Sequence[str]], None] | None = None
    list_calls: list[datetime | None] = field(default_factory=list["datetime | None"])
    fetch_calls: list[tuple[str, ...]] = field(default_factory=list["tuple[str, ...]"])

    def add(
        self,
        entity_type: ItemType,
        payload: Mapping[str, object],
        *,
        changed_at: datetime | None = None,
    ) -> None:
        external_id = str(payload["id"])
        self.documents[external_id] = payload
        self.markers.setdefault(entity_type, []).append(ChangeMarker(external_id, changed_at))

    def fail_batch(self, first_id: str, *errors: Exception) -> None:
        self.fetch_failures[first_id].extend(errors)

    async def list_changes(
        self, entity_type: ItemType, *, since: datetime | None
    ) -> Sequence[ChangeMarker]:
        self.list_calls.append(since)
        if self.list_failures:
            raise self.list_failures.popleft()
        return [
            marker
            for marker in self.markers.get(entity_type, [])
            if since is None or marker.changed_at is None or marker.changed_at > since
        ]

    async def fetch(
        self, entity_type: ItemType, *, since: datetime | None, ids: Sequence[str]
    ) -> Sequence[Mapping[str, object]]:
        _ = entity_type, since
        self.fetch_calls.append(tuple(ids))
        if self.on_fetch is not None:
            self.on_fetch(ids)
        failures = self.fetch_failures.get(ids[0]) if ids else None
        if failures:
            raise failures.popleft()
        return [self.documents[external_id] for external_id in ids if external_id in self.documents]
