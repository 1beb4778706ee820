"""
rolloff/services/audit_logger.py
Centralized roll/winner audit trail

Every accepted draw and every applied winner produces one record. Records
are append-only: no edits, no deletions, no retries. Writing is
fire-and-forget; a failing sink is logged and otherwise ignored.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

from rolloff.models import Draw, Entrant
from rolloff.schemas.rolloff import RollRecord

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("rolloff.audit")

AuditSink = Callable[[RollRecord], Awaitable[None]]


class RollAuditLog:
    """
    Keeps the records of the current process and forwards them to an
    optional async sink (chat log, database, ...).
    """

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink
        self.records: List[RollRecord] = []
        self._pending: Set[asyncio.Task] = set()

    def record_roll(self, entrant: Entrant, draw: Draw, contest_id: str) -> RollRecord:
        """
        Record an accepted draw.

        Call this AFTER the draw was accepted for the contest.
        """
        record = RollRecord(
            kind="roll",
            contest_id=contest_id,
            entrant_id=entrant.id,
            name=entrant.name,
            total=draw.total,
            faces=draw.faces,
            source=draw.source.value,
        )
        suffix = "" if draw.interactive else " (auto-roll)"
        audit_logger.info(f"{entrant.name} rolled {draw.total} on d{draw.faces} for {contest_id}{suffix}")
        return self._emit(record)

    def record_winner(self, entrant: Entrant, contest_id: str, new_rank: float) -> RollRecord:
        record = RollRecord(
            kind="winner",
            contest_id=contest_id,
            entrant_id=entrant.id,
            name=entrant.name,
            new_rank=new_rank,
        )
        audit_logger.info(f"{entrant.name} wins rolloff {contest_id} (new rank {new_rank})")
        return self._emit(record)

    def _emit(self, record: RollRecord) -> RollRecord:
        self.records.append(record)
        if self.sink is not None:
            task = asyncio.create_task(self._write(record))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return record

    async def _write(self, record: RollRecord) -> None:
        try:
            await self.sink(record)
        except Exception as e:
            logger.warning(f"Audit sink failed for {record.kind} {record.contest_id}: {e}")

    async def flush(self) -> None:
        """Wait for pending sink writes."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cancel_pending(self) -> None:
        """Drop sink writes still in flight; the in-memory records are kept."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
