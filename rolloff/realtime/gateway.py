"""
Contest Request Gateway

The engine's only door to the outside:
- solicit a draw from an entrant's owner, bounded by a timeout
- broadcast intermediate and final results to observers, best-effort

Solicitation failures of every kind surface as DrawSolicitationError so
the caller can fall back; broadcast failures never surface at all.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, ValidationError

from rolloff.exceptions import DrawSolicitationError, DrawTimeoutError
from rolloff.models import Entrant
from rolloff.realtime.broadcast_adapter import BroadcastAdapter
from rolloff.realtime.connection_manager import ConnectionManager, Participant
from rolloff.schemas.rolloff import DrawRequest, DrawResponse, RolloffEvent

logger = logging.getLogger(__name__)


class ContestRequestGateway:
    """
    Request/response and broadcast primitive used by the orchestrator.

    Broadcasts go to the in-process adapter first (local subscribers), then
    to every selected participant concurrently, each bounded by its own
    timeout.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        adapter: BroadcastAdapter,
        broadcast_timeout: float = 1.0
    ):
        self.connections = connections
        self.adapter = adapter
        self.broadcast_timeout = broadcast_timeout
        self._pending: Set[asyncio.Task] = set()

    def find_owner(self, entrant: Entrant) -> Optional[Participant]:
        return self.connections.find_owner(entrant)

    async def solicit_draw(
        self,
        owner: Participant,
        request: DrawRequest,
        timeout: float
    ) -> DrawResponse:
        """
        Ask an owner for a draw.

        Args:
            owner: Participant owning request.entrant_id
            request: Solicitation body
            timeout: Seconds before giving up
        Returns:
            Validated DrawResponse
        Raises:
            DrawTimeoutError: Owner did not answer in time
            DrawSolicitationError: Owner failed, refused or sent garbage
        """
        logger.info(f"Requesting draw from {owner.user_id} for {request.entrant_id} ({request.contest_id})")
        try:
            reply = await asyncio.wait_for(
                owner.query(RolloffEvent.REQUEST_DRAW, request.model_dump(mode="json"), timeout),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            raise DrawTimeoutError(timeout)
        except DrawSolicitationError:
            raise
        except Exception as e:
            raise DrawSolicitationError(f"Owner {owner.user_id} failed: {e}") from e

        try:
            response = DrawResponse.model_validate(reply)
        except ValidationError as e:
            raise DrawSolicitationError(f"Malformed draw from {owner.user_id}") from e

        if response.entrant_id != request.entrant_id:
            raise DrawSolicitationError(
                f"Owner {owner.user_id} answered for {response.entrant_id}, expected {request.entrant_id}"
            )
        if response.total > request.die_faces:
            raise DrawSolicitationError(
                f"Owner {owner.user_id} reported {response.total} on a d{request.die_faces}"
            )

        logger.info(f"Got draw from {owner.user_id}: {response.total}")
        return response

    async def publish(self, event: str, payload: BaseModel) -> None:
        """Publish to in-process subscribers only."""
        body = payload.model_dump(mode="json")
        try:
            await self.adapter.publish(event, self.adapter.build_message(event, body))
        except Exception as e:
            logger.warning(f"Local publish of {event} failed: {e}")

    async def broadcast(
        self,
        event: str,
        payload: BaseModel,
        include_authority: bool = False,
        exclude: Iterable[str] = (),
        timeout: Optional[float] = None,
        notify_participants: bool = True,
        recipients: Optional[List[Participant]] = None
    ) -> int:
        """
        Fan an event out to local subscribers and connected participants.

        Args:
            event: Event name
            payload: Event body
            include_authority: Also deliver to authority participants
            exclude: User ids to skip
            timeout: Per-recipient timeout (defaults to broadcast_timeout)
            notify_participants: False publishes to local subscribers only
            recipients: Explicit participant list overriding the selection
        Returns:
            Number of participants that acknowledged delivery
        """
        await self.publish(event, payload)
        if not notify_participants:
            return 0

        body = payload.model_dump(mode="json")
        per_recipient = timeout if timeout is not None else self.broadcast_timeout
        if recipients is None:
            recipients = self.connections.observers(include_authority=include_authority, exclude=exclude)
        if not recipients:
            return 0

        delivered = await asyncio.gather(
            *(self._deliver(p, event, body, per_recipient) for p in recipients)
        )
        return sum(1 for ok in delivered if ok)

    def broadcast_nowait(self, event: str, payload: BaseModel, **kwargs: Any) -> asyncio.Task:
        """Schedule broadcast() without waiting on slow observers."""
        task = asyncio.create_task(self.broadcast(event, payload, **kwargs))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled broadcast to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cancel_pending(self) -> None:
        """Cancel scheduled broadcasts that have not finished."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _deliver(
        self,
        participant: Participant,
        event: str,
        body: Dict[str, Any],
        timeout: float
    ) -> bool:
        try:
            await asyncio.wait_for(participant.query(event, body, timeout), timeout=timeout)
            logger.debug(f"Broadcast {event} sent to {participant.user_id}")
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Broadcast {event} to {participant.user_id} timed out")
        except Exception as e:
            logger.warning(f"Broadcast {event} failed to {participant.user_id}: {e}")
        return False
