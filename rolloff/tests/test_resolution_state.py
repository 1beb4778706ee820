"""
Resolution State Machine Tests
"""
import pytest

from rolloff.state_machines.resolution_state import (
    InvalidTransitionError, ResolutionState, ResolutionStateMachine
)


def test_happy_path():
    machine = ResolutionStateMachine("r1")

    machine.transition(ResolutionState.RESOLVING)
    machine.transition(ResolutionState.RESOLVED)

    assert machine.is_terminal
    assert machine.history == [
        ResolutionState.PENDING, ResolutionState.RESOLVING, ResolutionState.RESOLVED
    ]


def test_cannot_skip_resolving():
    machine = ResolutionStateMachine("r1")

    assert not machine.can_transition(ResolutionState.RESOLVED)
    with pytest.raises(InvalidTransitionError):
        machine.transition(ResolutionState.RESOLVED)
    assert machine.state == ResolutionState.PENDING


def test_resolved_is_final():
    machine = ResolutionStateMachine("r1", ResolutionState.RESOLVED)

    with pytest.raises(InvalidTransitionError):
        machine.transition(ResolutionState.RESOLVING)
