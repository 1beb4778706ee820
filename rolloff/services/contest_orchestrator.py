"""
Contest Orchestrator

Runs one contest between tied entrants and returns a single winner.

Flow per contest:
1. Every entrant draws concurrently: owners are asked through the gateway,
   entrants without an owner (or whose owner fails) are rolled locally
2. Each accepted draw is audited and broadcast as an intermediate update
3. Once all draws are in, the strict maximum wins
4. Equal maxima start a sub-contest among exactly the tied entrants

There is no cap on rerolls; a long run of equal totals keeps rerolling.
"""
import asyncio
import logging
from typing import List, Optional, Sequence

from rolloff.exceptions import DrawSolicitationError
from rolloff.models import Bracket, ContestOutcome, ContestResult, Draw, DrawSource, Entrant
from rolloff.realtime.gateway import ContestRequestGateway
from rolloff.schemas.rolloff import (
    BracketSnapshot, DrawRequest, EntrantInfo, RollUpdate, RolloffEvent
)
from rolloff.services.audit_logger import RollAuditLog
from rolloff.services.random_draw import DiceRoller

logger = logging.getLogger(__name__)

REROLL_SUFFIX = "-reroll"


class ContestOrchestrator:
    """
    Innermost resolution primitive, shared by pair rolloffs and every
    bracket match.
    """

    def __init__(
        self,
        gateway: ContestRequestGateway,
        roller: Optional[DiceRoller] = None,
        audit: Optional[RollAuditLog] = None
    ):
        self.gateway = gateway
        self.roller = roller or DiceRoller()
        self.audit = audit or RollAuditLog()

    async def run_contest(
        self,
        entrants: Sequence[Entrant],
        contest_id: str,
        die_faces: int,
        timeout: float,
        mode: str = "pair",
        bracket: Optional[Bracket] = None,
        root_contest_id: Optional[str] = None,
        attempt: int = 1
    ) -> ContestOutcome:
        """
        Collect a draw from every entrant and pick the unique highest.

        Args:
            entrants: Two or more entrants
            contest_id: Id correlating requests and broadcasts
            die_faces: Faces of the die to roll
            timeout: Seconds each owner gets to answer
            mode: "pair" or "bracket", forwarded to owners
            bracket: Live bracket, forwarded to owners in bracket mode
            root_contest_id: Id of the contest that started a reroll chain
            attempt: Invocation number within the reroll chain
        Returns:
            ContestOutcome with exactly one winner
        """
        if len(entrants) < 2:
            raise ValueError(f"A contest needs at least 2 entrants, got {len(entrants)}")

        root = root_contest_id or contest_id
        results: List[ContestResult] = await asyncio.gather(*(
            self._draw_for(entrant, entrants, contest_id, root, die_faces, timeout, mode, bracket)
            for entrant in entrants
        ))

        top = max(r.total for r in results)
        leaders = [r for r in results if r.total == top]

        if len(leaders) > 1:
            tied = [r.entrant for r in leaders]
            logger.info(
                f"Another tie in {contest_id} at {top} between "
                f"{', '.join(e.name for e in tied)}, rerolling"
            )
            inner = await self.run_contest(
                tied,
                f"{contest_id}{REROLL_SUFFIX}",
                die_faces,
                timeout,
                mode=mode,
                bracket=bracket,
                root_contest_id=root,
                attempt=attempt + 1,
            )
            losers = [e for e in entrants if e.id != inner.winner.id]
            return ContestOutcome(
                winner=inner.winner,
                losers=losers,
                results=inner.results,
                attempts=inner.attempts,
            )

        winner = leaders[0].entrant
        losers = [r.entrant for r in results if r.entrant.id != winner.id]
        logger.info(f"{winner.name} wins {contest_id} with {top}")
        return ContestOutcome(winner=winner, losers=losers, results=results, attempts=attempt)

    async def _draw_for(
        self,
        entrant: Entrant,
        contestants: Sequence[Entrant],
        contest_id: str,
        root_contest_id: str,
        die_faces: int,
        timeout: float,
        mode: str,
        bracket: Optional[Bracket]
    ) -> ContestResult:
        owner = self.gateway.find_owner(entrant)

        if owner is None:
            draw = self.roller.roll(die_faces, DrawSource.LOCAL)
        else:
            request = DrawRequest(
                entrant_id=entrant.id,
                die_faces=die_faces,
                contest_id=contest_id,
                mode=mode,
                opponents=[EntrantInfo.from_entrant(e) for e in contestants if e.id != entrant.id],
                bracket=BracketSnapshot.from_bracket(bracket) if bracket is not None else None,
            )
            try:
                response = await self.gateway.solicit_draw(owner, request, timeout)
                draw = Draw(faces=die_faces, total=response.total, source=DrawSource.REMOTE)
            except DrawSolicitationError as e:
                logger.warning(
                    f"Owner {owner.user_id} failed to respond ({e.message}), auto-rolling for {entrant.name}"
                )
                draw = self.roller.roll(die_faces, DrawSource.FALLBACK)

        self.audit.record_roll(entrant, draw, contest_id)

        logger.debug(f"Broadcasting {draw.source.value} roll for {entrant.name} in {contest_id}: {draw.total}")
        self.gateway.broadcast_nowait(
            RolloffEvent.ROLL_UPDATE,
            RollUpdate(
                contest_id=contest_id,
                root_contest_id=root_contest_id,
                entrant_id=entrant.id,
                name=entrant.name,
                img=entrant.img,
                total=draw.total,
                source=draw.source.value,
            ),
            exclude=[owner.user_id] if owner is not None else [],
        )
        return ContestResult(entrant=entrant, draw=draw)
