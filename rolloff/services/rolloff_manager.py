"""
Rolloff Manager

Top-level coordinator for rank ties.

Responsibilities:
- Re-run tie detection (after a settle delay) while an encounter has not
  started, at most once per encounter lifetime
- Start one resolution per tie group: a pair contest for two entrants, a
  seeded bracket for three or more
- Apply the winner's new rank exactly once and announce it. The new rank
  sits above the group and below every other entrant ranked higher
- Stop an encounter's in-flight rolloffs when it is reset
- Keep the in-flight and processed registries consistent under
  concurrent triggers

Independent tie groups resolve in parallel. Within a bracket, rounds are
sequential and matches of the same round run concurrently.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from rolloff.config.settings import RolloffSettings
from rolloff.exceptions import BracketError, NotFoundError
from rolloff.models import Bracket, Encounter, Entrant, Match, TieGroup
from rolloff.realtime.gateway import ContestRequestGateway
from rolloff.schemas.rolloff import (
    EntrantInfo, MatchComplete, RolloffEvent, TieGroupSummary, TiesDetected, WinnerAnnounced
)
from rolloff.services.audit_logger import RollAuditLog
from rolloff.services.bracket_builder import SeedKey, build_bracket, default_seed_key
from rolloff.services.contest_orchestrator import ContestOrchestrator
from rolloff.services.random_draw import DiceRoller
from rolloff.services.tie_detector import find_encounter_ties
from rolloff.state_machines.resolution_state import (
    ResolutionMode, ResolutionSession, ResolutionState, ResolutionStateMachine
)

logger = logging.getLogger(__name__)

# Added to the tied rank to put the winner just ahead of the group
RANK_EPSILON = 0.01

RankWriter = Callable[[Entrant, float], Awaitable[None]]


async def assign_rank(entrant: Entrant, new_rank: float) -> None:
    """Default rank writer: mutate the entrant record in place."""
    entrant.rank = new_rank


class RolloffManager:
    """
    Owns tie group lifecycles.

    Registries:
    - active_rolloffs: in-flight resolutions keyed by tie group key
    - processed_encounters: encounters that already triggered resolution
    - pending_ties: groups waiting for a manual start
    """

    def __init__(
        self,
        gateway: ContestRequestGateway,
        settings: RolloffSettings,
        orchestrator: Optional[ContestOrchestrator] = None,
        roller: Optional[DiceRoller] = None,
        audit: Optional[RollAuditLog] = None,
        rank_writer: RankWriter = assign_rank,
        seed_key: SeedKey = default_seed_key
    ):
        self.gateway = gateway
        self.settings = settings
        self.audit = audit or RollAuditLog()
        self.orchestrator = orchestrator or ContestOrchestrator(gateway, roller=roller, audit=self.audit)
        self.rank_writer = rank_writer
        self.seed_key = seed_key

        self.active_rolloffs: Dict[str, ResolutionSession] = {}
        self.processed_encounters: Set[str] = set()
        self.pending_ties: Dict[str, Tuple[Encounter, List[TieGroup]]] = {}

        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def on_entrant_updated(
        self,
        encounter: Encounter,
        entrant: Entrant,
        changes: Dict[str, object]
    ) -> Optional[asyncio.Task]:
        """
        React to an entrant update.

        Only rank changes on an encounter that has not started schedule a
        detection pass.
        """
        if changes.get("rank") is None:
            return None
        if encounter is None or encounter.started:
            return None
        return self._schedule_check(encounter, self.settings.update_settle_delay)

    def on_entrant_created(self, encounter: Encounter, entrant: Entrant) -> Optional[asyncio.Task]:
        if encounter is None or encounter.started:
            return None
        return self._schedule_check(encounter, self.settings.create_settle_delay)

    def on_encounter_deleted(self, encounter: Encounter) -> None:
        self.reset(encounter.id)

    def _schedule_check(self, encounter: Encounter, delay: float) -> asyncio.Task:
        async def settle_then_check():
            await asyncio.sleep(delay)
            await self.check_for_ties(encounter)

        return self._spawn(settle_then_check())

    async def check_for_ties(self, encounter: Encounter) -> List[TieGroup]:
        """
        Detect ties in an encounter and hand them off.

        Returns:
            The tie groups that were handled (empty when the encounter is
            started, already processed, not fully ranked, or untied)
        """
        if encounter is None or encounter.started:
            return []

        async with self._lock:
            if encounter.id in self.processed_encounters:
                return []
            groups = find_encounter_ties(encounter, self.settings.include_npcs)
            if not groups:
                return []
            self.processed_encounters.add(encounter.id)

        logger.info(
            f"Found {len(groups)} tie group(s) in encounter {encounter.id}: "
            f"{[g.ids for g in groups]}"
        )
        await self.handle_ties(encounter, groups)
        return groups

    async def handle_ties(self, encounter: Encounter, groups: List[TieGroup]) -> None:
        """Auto-start rolloffs, or park the groups and notify the authority."""
        notice = TiesDetected(
            encounter_id=encounter.id,
            groups=[TieGroupSummary.from_group(g) for g in groups],
        )

        if self.settings.auto_rolloff:
            await self.gateway.publish(RolloffEvent.TIES_DETECTED, notice)
            await self.resolve(encounter, groups)
            return

        self.pending_ties[encounter.id] = (encounter, groups)
        await self.gateway.broadcast(
            RolloffEvent.TIES_DETECTED,
            notice,
            recipients=self.gateway.connections.authorities(),
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def resolve(self, encounter: Encounter, groups: List[TieGroup]) -> List[Optional[Entrant]]:
        """
        Resolve every tie group concurrently.

        Returns:
            Winner per group, or None where the resolution was skipped as a
            duplicate, abandoned on error or cancelled by a reset
        """
        results = await asyncio.gather(
            *(self.start_rolloff_for_group(encounter, group) for group in groups),
            return_exceptions=True
        )
        return [None if isinstance(r, BaseException) else r for r in results]

    async def manually_start(
        self,
        encounter: Encounter,
        groups: Optional[List[TieGroup]] = None
    ) -> List[Optional[Entrant]]:
        """
        Start rolloffs the authority confirmed.

        Args:
            encounter: Encounter owning the ties
            groups: Groups to resolve; defaults to the encounter's pending groups
        Raises:
            NotFoundError: If no groups are given and none are pending
        """
        pending = self.pending_ties.pop(encounter.id, None)
        if groups is None:
            if pending is None:
                raise NotFoundError(f"No pending ties for encounter {encounter.id}")
            groups = pending[1]
        return await self.resolve(encounter, groups)

    def start_pending(self, encounter_id: str) -> List[str]:
        """
        Start pending groups in the background.

        Returns:
            Keys of the groups being resolved
        Raises:
            NotFoundError: If nothing is pending for the encounter
        """
        entry = self.pending_ties.pop(encounter_id, None)
        if entry is None:
            raise NotFoundError(f"No pending ties for encounter {encounter_id}")
        encounter, groups = entry
        self._spawn(self.resolve(encounter, groups))
        return [g.key(encounter.id) for g in groups]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def start_rolloff_for_group(self, encounter: Encounter, group: TieGroup) -> Optional[Entrant]:
        key = group.key(encounter.id)
        rolloff_id = f"{encounter.id}-{group.rank:g}-{int(time.time() * 1000)}"
        mode = ResolutionMode.PAIR if len(group) == 2 else ResolutionMode.BRACKET

        async with self._lock:
            if key in self.active_rolloffs:
                logger.info(f"Rolloff for {key} already running, skipping")
                return None
            session = ResolutionSession(
                rolloff_id=rolloff_id,
                key=key,
                encounter=encounter,
                group=group,
                mode=mode,
                machine=ResolutionStateMachine(rolloff_id),
                task=asyncio.current_task(),
            )
            self.active_rolloffs[key] = session

        try:
            session.machine.transition(ResolutionState.RESOLVING)
            logger.info(f"Starting {mode.value} rolloff {rolloff_id} for {group.ids}")

            if mode == ResolutionMode.PAIR:
                winner = await self._conduct_pair_rolloff(session)
            else:
                winner = await self._conduct_bracket_rolloff(session)

            await self._apply_winner(session, winner)
            session.machine.transition(ResolutionState.RESOLVED)
            return winner
        except asyncio.CancelledError:
            logger.info(f"Rolloff {rolloff_id} cancelled")
            raise
        except Exception:
            logger.exception(f"Error in rolloff {rolloff_id}, leaving tie unresolved")
            return None
        finally:
            async with self._lock:
                if self.active_rolloffs.get(key) is session:
                    del self.active_rolloffs[key]

    async def _conduct_pair_rolloff(self, session: ResolutionSession) -> Entrant:
        outcome = await self.orchestrator.run_contest(
            list(session.group),
            session.rolloff_id,
            self.settings.die_faces,
            self.settings.rolloff_timeout,
            mode=ResolutionMode.PAIR.value,
        )
        return outcome.winner

    async def _conduct_bracket_rolloff(self, session: ResolutionSession) -> Entrant:
        bracket = build_bracket(list(session.group), session.rolloff_id, self.seed_key)
        session.bracket = bracket

        for round_ in bracket.rounds:
            tasks = [
                asyncio.create_task(self._conduct_bracket_match(bracket, match))
                for match in round_.matches
            ]
            try:
                await asyncio.gather(*tasks)
            except BaseException:
                # One failed match (or a cancel) ends the whole round
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

        champion = bracket.champion
        if champion is None:
            raise BracketError(f"Bracket {bracket.bracket_id} finished without a winner")
        return champion

    async def _conduct_bracket_match(self, bracket: Bracket, match: Match) -> None:
        if not match.is_ready:
            raise BracketError(f"Match {match.match_id} started with an open slot")

        outcome = await self.orchestrator.run_contest(
            [match.slot1, match.slot2],
            match.match_id,
            self.settings.die_faces,
            self.settings.rolloff_timeout,
            mode=ResolutionMode.BRACKET.value,
            bracket=bracket,
        )
        bracket.record_result(match, outcome.winner)

        self.gateway.broadcast_nowait(
            RolloffEvent.MATCH_COMPLETE,
            MatchComplete(
                bracket_id=bracket.bracket_id,
                match_id=match.match_id,
                winner=EntrantInfo.from_entrant(match.winner),
                loser=EntrantInfo.from_entrant(match.loser),
            ),
        )

    def _next_rank(self, session: ResolutionSession) -> float:
        """
        Rank just above the tied group.

        Normally the group rank plus RANK_EPSILON. When another entrant of the
        encounter already sits at or below that value, the winner lands halfway
        between the group and that entrant so no new tie is created.
        """
        base = max(e.rank for e in session.group)
        members = {id(e) for e in session.group}
        above = [
            e.rank for e in session.encounter.entrants
            if id(e) not in members and e.rank is not None and e.rank > base
        ]
        nearest = min(above, default=None)
        if nearest is not None and nearest <= base + RANK_EPSILON:
            return base + (nearest - base) / 2
        return base + RANK_EPSILON

    async def _apply_winner(self, session: ResolutionSession, winner: Entrant) -> float:
        new_rank = self._next_rank(session)
        await self.rank_writer(winner, new_rank)
        session.winner = winner

        self.audit.record_winner(winner, session.rolloff_id, new_rank)
        logger.info(f"{winner.name} wins rolloff {session.rolloff_id}, new rank {new_rank}")

        self.gateway.broadcast_nowait(
            RolloffEvent.WINNER_ANNOUNCED,
            WinnerAnnounced(
                resolution_id=session.rolloff_id,
                winner_id=winner.id,
                name=winner.name,
                img=winner.img,
                new_rank=new_rank,
            ),
            include_authority=True,
            timeout=self.settings.announcement_timeout,
            notify_participants=self.settings.show_winner_announcement,
        )
        return new_rank

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self, encounter_id: str) -> None:
        """Forget everything tracked for one encounter and stop its in-flight rolloffs."""
        self.processed_encounters.discard(encounter_id)
        self.pending_ties.pop(encounter_id, None)
        for key in [k for k, s in self.active_rolloffs.items() if s.encounter.id == encounter_id]:
            session = self.active_rolloffs.pop(key)
            if session.task is not None and not session.task.done():
                session.task.cancel()

    async def wait_idle(self) -> None:
        """Wait for scheduled checks, resolutions and broadcasts to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.gateway.drain()
        await self.audit.flush()

    async def dispose(self) -> None:
        """Cancel background work, pending broadcasts and audit writes, then clear every registry."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.gateway.cancel_pending()
        await self.audit.cancel_pending()

        self.active_rolloffs.clear()
        self.processed_encounters.clear()
        self.pending_ties.clear()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
