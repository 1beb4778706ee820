"""
Resolution State Machine
Lifecycle of one tie group's resolution.

pending -> resolving -> resolved

There is no failed state: a resolution that hits an internal error is
abandoned and dropped from the registry, leaving the tie in place.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from rolloff.models import Bracket, Encounter, Entrant, TieGroup

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class ResolutionMode(str, Enum):
    PAIR = "pair"
    BRACKET = "bracket"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


class ResolutionStateMachine:
    """
    Server-side state machine for a single resolution.

    Enforces valid state transitions and logs them.
    """

    # Valid state transitions: {current_state: [allowed_next_states]}
    ALLOWED_TRANSITIONS: Dict[ResolutionState, List[ResolutionState]] = {
        ResolutionState.PENDING: [ResolutionState.RESOLVING],
        ResolutionState.RESOLVING: [ResolutionState.RESOLVED],
        ResolutionState.RESOLVED: [],
    }

    def __init__(self, resolution_id: str, state: ResolutionState = ResolutionState.PENDING):
        self.resolution_id = resolution_id
        self.state = state
        self.history: List[ResolutionState] = [state]

    def can_transition(self, to_state: ResolutionState) -> bool:
        return to_state in self.ALLOWED_TRANSITIONS.get(self.state, [])

    def transition(self, to_state: ResolutionState) -> ResolutionState:
        """
        Move to a new state.

        Raises:
            InvalidTransitionError: If the move is not allowed
        """
        if not self.can_transition(to_state):
            raise InvalidTransitionError(
                f"Cannot transition {self.resolution_id} from {self.state.value} to {to_state.value}"
            )
        logger.debug(f"Resolution {self.resolution_id}: {self.state.value} -> {to_state.value}")
        self.state = to_state
        self.history.append(to_state)
        return to_state

    @property
    def is_terminal(self) -> bool:
        return not self.ALLOWED_TRANSITIONS.get(self.state)


@dataclass
class ResolutionSession:
    """Registry entry for one in-flight tie group resolution."""
    rolloff_id: str
    key: str
    encounter: Encounter
    group: TieGroup
    mode: ResolutionMode
    machine: ResolutionStateMachine
    bracket: Optional[Bracket] = None
    winner: Optional[Entrant] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ResolutionState:
        return self.machine.state
