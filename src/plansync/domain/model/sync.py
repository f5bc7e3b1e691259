"""Watermarks and audit records for sync runs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from plansync.domain.errors import SyncRunAlreadyFinalized

from .enums import IssueKind, ItemType, RunStatus, SourceSystem

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class SyncWatermark:
    source_system: SourceSystem
    entity_type: ItemType
    synced_through: datetime
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class SyncIssue:
    kind: IssueKind
    message: str
    external_id: str | None = None
    batch_index: int | None = None


@dataclass(slots=True)
class SyncRun:
    """Audit record for one run over one entity type.

    Counts are accumulated while batches complete. ``finalize`` closes the record
    and may only be called once.
    """

    source_system: SourceSystem
    entity_type: ItemType
    started_at: datetime
    full_resync: bool = False
    run_id: uuid.UUID = field(default_factory=uuid.uuid4)
    finished_at: datetime | None = None
    status: RunStatus = RunStatus.RUNNING
    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    issues: list[SyncIssue] = field(default_factory=list["SyncIssue"])

    @property
    def is_finalized(self) -> bool:
        return self.finished_at is not None

    def add_issue(self, issue: SyncIssue) -> None:
        self.issues.append(issue)

    def finalize(self, status: RunStatus, finished_at: datetime) -> None:
        if self.is_finalized:
            raise SyncRunAlreadyFinalized(f"Sync run {self.run_id} was already finalized")
        if status is RunStatus.RUNNING:
            raise ValueError("A finalized run needs a terminal status")
        self.status = status
        self.finished_at = finished_at
