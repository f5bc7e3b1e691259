from __future__ import annotations

import pytest

from plansync.domain.errors import InvalidPhaseTransition
from plansync.domain.model import SyncPhase
from plansync.domain.sync import BatchStateMachine


def test_happy_path_reaches_committed() -> None:
    machine = BatchStateMachine(batch_index=0)

    for phase in (
        SyncPhase.FETCHING,
        SyncPhase.NORMALIZING,
        SyncPhase.RECONCILING,
        SyncPhase.COMMITTED,
    ):
        machine.advance(phase)

    assert machine.is_terminal
    assert machine.history[0] is SyncPhase.IDLE
    assert machine.history[-1] is SyncPhase.COMMITTED


def test_retry_loops_back_into_fetching() -> None:
    machine = BatchStateMachine(batch_index=1)
    machine.advance(SyncPhase.FETCHING)
    machine.advance(SyncPhase.FETCHING)
    machine.advance(SyncPhase.NORMALIZING)
    machine.advance(SyncPhase.RECONCILING)
    machine.advance(SyncPhase.FETCHING)
    machine.advance(SyncPhase.FAILED)

    assert machine.phase is SyncPhase.FAILED
    assert machine.is_terminal


@pytest.mark.parametrize(
    ("path", "illegal"),
    [
        ((), SyncPhase.NORMALIZING),
        ((SyncPhase.FETCHING,), SyncPhase.COMMITTED),
        ((SyncPhase.FETCHING, SyncPhase.FAILED), SyncPhase.FETCHING),
        (
            (
                SyncPhase.FETCHING,
                SyncPhase.NORMALIZING,
                SyncPhase.RECONCILING,
                SyncPhase.COMMITTED,
            ),
            SyncPhase.FETCHING,
        ),
    ],
)
def test_illegal_transitions_raise(path: tuple[SyncPhase, ...], illegal: SyncPhase) -> None:
    machine = BatchStateMachine(batch_index=2)
    for phase in path:
        machine.advance(phase)

    with pytest.raises(InvalidPhaseTransition):
        machine.advance(illegal)
