"""
Rolloff routes

HTTP surface for the authority:
- inspect in-flight resolutions and ties waiting for confirmation
- confirm pending ties (manual start)
- drop an encounter's registry entries
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status

from rolloff.schemas.rolloff import (
    BracketSnapshot, EntrantInfo, ResolutionSummary, StartRolloffsResponse, TiesDetected, TieGroupSummary
)
from rolloff.realtime.ws_server import websocket_endpoint
from rolloff.services.rolloff_manager import RolloffManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rolloffs", tags=["rolloffs"])


def get_manager(request: Request) -> RolloffManager:
    return request.app.state.manager


@router.get("/active", response_model=List[ResolutionSummary])
async def list_active_rolloffs(manager: RolloffManager = Depends(get_manager)):
    """List resolutions currently in flight."""
    return [
        ResolutionSummary(
            rolloff_id=session.rolloff_id,
            encounter_id=session.encounter.id,
            mode=session.mode.value,
            state=session.state.value,
            rank=session.group.rank,
            entrants=[EntrantInfo.from_entrant(e) for e in session.group],
            started_at=session.started_at,
            bracket=BracketSnapshot.from_bracket(session.bracket) if session.bracket else None,
        )
        for session in list(manager.active_rolloffs.values())
    ]


@router.get("/pending", response_model=List[TiesDetected])
async def list_pending_ties(manager: RolloffManager = Depends(get_manager)):
    """List ties waiting for the authority to start them."""
    return [
        TiesDetected(
            encounter_id=encounter_id,
            groups=[TieGroupSummary.from_group(g) for g in groups],
        )
        for encounter_id, (_, groups) in manager.pending_ties.items()
    ]


@router.post(
    "/{encounter_id}/start",
    response_model=StartRolloffsResponse,
    status_code=status.HTTP_202_ACCEPTED
)
async def start_rolloffs(encounter_id: str, manager: RolloffManager = Depends(get_manager)):
    """
    Start the pending rolloffs of an encounter.

    Resolution continues in the background; progress is broadcast.
    """
    started = manager.start_pending(encounter_id)
    logger.info(f"Manual start for encounter {encounter_id}: {started}")
    return StartRolloffsResponse(encounter_id=encounter_id, started=started)


@router.delete("/{encounter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_encounter(encounter_id: str, manager: RolloffManager = Depends(get_manager)):
    """Forget processed/pending/active state of an encounter."""
    manager.reset(encounter_id)


router.add_api_websocket_route("/ws/{user_id}", websocket_endpoint)
