"""
Participant Connection Manager

Tracks connected participants (remote owners and observers) and answers
the two questions the engine asks of the transport: who owns this
entrant, and who should hear about this event.
"""
import abc
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from rolloff.models import Entrant

logger = logging.getLogger(__name__)


class Participant(abc.ABC):
    """
    A connected user.

    The authority is the party running the engine (it never owns entrants
    and never receives intermediate updates); everyone else may own
    entrants and observes the contest.
    """

    def __init__(self, user_id: str, name: str, is_authority: bool = False):
        self.user_id = user_id
        self.name = name
        self.is_authority = is_authority
        self.active = True
        self.connected_at = datetime.utcnow()

    @abc.abstractmethod
    async def query(self, action: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """
        Ask this participant to handle `action` and return its reply.

        Args:
            action: Query name (e.g. "rolloff.requestDraw")
            payload: JSON-serializable request body
            timeout: Seconds the participant has to answer
        Returns:
            Reply payload
        """
        raise NotImplementedError

    async def close(self) -> None:
        self.active = False

    def __repr__(self) -> str:
        role = "authority" if self.is_authority else "participant"
        return f"<{type(self).__name__} {self.user_id} ({role})>"


def owns_entrant(participant: Participant, entrant: Entrant) -> bool:
    """Default ownership test: the entrant names the participant as owner."""
    return entrant.owner_id is not None and participant.user_id == entrant.owner_id


class ConnectionManager:
    """
    Registry of connected participants.

    Design principles:
    - One entry per user id; reconnecting replaces the old entry
    - Owners are active, non-authority participants passing the ownership test
    - Lookups never raise; absence of an owner means the engine rolls locally
    """

    def __init__(
        self,
        ownership_test: Callable[[Participant, Entrant], bool] = owns_entrant
    ):
        self.ownership_test = ownership_test
        self.participants: Dict[str, Participant] = {}

    async def connect(self, participant: Participant) -> None:
        """
        Register a participant.

        Args:
            participant: Connected participant
        """
        previous = self.participants.get(participant.user_id)
        if previous is not None and previous is not participant:
            await previous.close()
        self.participants[participant.user_id] = participant
        logger.info(f"Participant connected: {participant.user_id}")

    async def disconnect(self, user_id: str) -> None:
        """
        Remove a participant and close it.

        Args:
            user_id: Participant to remove
        """
        participant = self.participants.pop(user_id, None)
        if participant is not None:
            await participant.close()
            logger.info(f"Participant disconnected: {user_id}")

    def get(self, user_id: str) -> Optional[Participant]:
        return self.participants.get(user_id)

    def find_owner(self, entrant: Entrant) -> Optional[Participant]:
        """
        Find the remote owner allowed to draw for an entrant.

        Returns:
            Participant or None if nobody connected owns it
        """
        for participant in self.participants.values():
            if not participant.active or participant.is_authority:
                continue
            try:
                if self.ownership_test(participant, entrant):
                    return participant
            except Exception as e:
                logger.warning(f"Ownership test failed for {participant.user_id}: {e}")
        return None

    def observers(
        self,
        include_authority: bool = False,
        exclude: Iterable[str] = ()
    ) -> List[Participant]:
        """
        List active participants that should receive a broadcast.

        Args:
            include_authority: Also include authority participants
            exclude: User ids to skip
        """
        excluded = set(exclude)
        return [
            p for p in self.participants.values()
            if p.active
            and p.user_id not in excluded
            and (include_authority or not p.is_authority)
        ]

    def authorities(self) -> List[Participant]:
        return [p for p in self.participants.values() if p.active and p.is_authority]

    def get_connection_count(self) -> int:
        return sum(1 for p in self.participants.values() if p.active)
