"""Per-batch phase tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

from plansync.domain.errors import InvalidPhaseTransition
from plansync.domain.model import SyncPhase

ALLOWED_TRANSITIONS: Final[dict[SyncPhase, frozenset[SyncPhase]]] = {
    SyncPhase.IDLE: frozenset({SyncPhase.FETCHING}),
    SyncPhase.FETCHING: frozenset({SyncPhase.NORMALIZING, SyncPhase.FETCHING, SyncPhase.FAILED}),
    SyncPhase.NORMALIZING: frozenset({SyncPhase.RECONCILING, SyncPhase.FAILED}),
    SyncPhase.RECONCILING: frozenset(
        {SyncPhase.COMMITTED, SyncPhase.FETCHING, SyncPhase.FAILED}
    ),
    SyncPhase.COMMITTED: frozenset(),
    SyncPhase.FAILED: frozenset(),
}
TERMINAL_PHASES: Final[frozenset[SyncPhase]] = frozenset({SyncPhase.COMMITTED, SyncPhase.FAILED})


@dataclass(slots=True)
class BatchStateMachine:
    """Tracks one batch through ``IDLE -> FETCHING -> ... -> COMMITTED``.

    ``FETCHING`` re-enters itself (and ``RECONCILING`` falls back to it) when a
    retryable error triggers another attempt.
    """

    batch_index: int
    phase: SyncPhase = SyncPhase.IDLE
    history: list[SyncPhase] = field(default_factory=lambda: [SyncPhase.IDLE])

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def advance(self, target: SyncPhase) -> None:
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            raise InvalidPhaseTransition(
                f"Batch {self.batch_index} cannot move from {self.phase} to {target}"
            )
        self.phase = target
        self.history.append(target)
