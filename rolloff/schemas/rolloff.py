"""
rolloff/schemas/rolloff.py
Pydantic Schemas for the rolloff request/broadcast channel

Request/response models exchanged with participants, event payloads
published to observers, and summaries returned by the HTTP routes.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from rolloff.models import Bracket, Entrant, Match, TieGroup


class RolloffEvent:
    """Event and query names used on the channel"""

    REQUEST_DRAW = "rolloff.requestDraw"

    TIES_DETECTED = "rolloff.tiesDetected"
    ROLL_UPDATE = "rolloff.rollUpdate"
    MATCH_COMPLETE = "rolloff.matchComplete"
    WINNER_ANNOUNCED = "rolloff.winnerAnnounced"


class EntrantInfo(BaseModel):
    """Public view of an entrant."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    img: Optional[str] = None

    @classmethod
    def from_entrant(cls, entrant: Entrant) -> "EntrantInfo":
        return cls(id=entrant.id, name=entrant.name, img=entrant.img)


class MatchSnapshot(BaseModel):
    match_id: str
    round_index: int
    match_index: int
    slot1: Optional[EntrantInfo] = None
    slot2: Optional[EntrantInfo] = None
    winner: Optional[EntrantInfo] = None
    loser: Optional[EntrantInfo] = None

    @classmethod
    def from_match(cls, match: Match) -> "MatchSnapshot":
        def info(entrant):
            return EntrantInfo.from_entrant(entrant) if entrant is not None else None

        return cls(
            match_id=match.match_id,
            round_index=match.round_index,
            match_index=match.match_index,
            slot1=info(match.slot1),
            slot2=info(match.slot2),
            winner=info(match.winner),
            loser=info(match.loser),
        )


class RoundSnapshot(BaseModel):
    index: int
    matches: List[MatchSnapshot]


class BracketSnapshot(BaseModel):
    """Serializable view of a live bracket."""
    bracket_id: str
    entrants: List[EntrantInfo]
    rounds: List[RoundSnapshot]

    @classmethod
    def from_bracket(cls, bracket: Bracket) -> "BracketSnapshot":
        return cls(
            bracket_id=bracket.bracket_id,
            entrants=[EntrantInfo.from_entrant(e) for e in bracket.entrants],
            rounds=[
                RoundSnapshot(
                    index=r.index,
                    matches=[MatchSnapshot.from_match(m) for m in r.matches],
                )
                for r in bracket.rounds
            ],
        )


class DrawRequest(BaseModel):
    """Solicitation sent to an entrant's owner."""
    entrant_id: str
    die_faces: int = Field(..., ge=2)
    contest_id: str
    mode: Literal["pair", "bracket"] = "pair"
    opponents: List[EntrantInfo] = Field(default_factory=list)
    bracket: Optional[BracketSnapshot] = None


class DrawResponse(BaseModel):
    """Owner's answer to a DrawRequest."""
    entrant_id: str
    contest_id: str
    total: int = Field(..., ge=1)


class RollUpdate(BaseModel):
    """Intermediate result of one entrant in one contest."""
    contest_id: str
    root_contest_id: str
    entrant_id: str
    name: str
    img: Optional[str] = None
    total: int
    source: str


class MatchComplete(BaseModel):
    bracket_id: str
    match_id: str
    winner: EntrantInfo
    loser: EntrantInfo


class WinnerAnnounced(BaseModel):
    resolution_id: str
    winner_id: str
    name: str
    img: Optional[str] = None
    new_rank: float


class TieGroupSummary(BaseModel):
    rank: float
    entrants: List[EntrantInfo]

    @classmethod
    def from_group(cls, group: TieGroup) -> "TieGroupSummary":
        return cls(
            rank=group.rank,
            entrants=[EntrantInfo.from_entrant(e) for e in group],
        )


class TiesDetected(BaseModel):
    encounter_id: str
    groups: List[TieGroupSummary]


class ResolutionSummary(BaseModel):
    """In-flight resolution as returned by GET /rolloffs/active."""
    rolloff_id: str
    encounter_id: str
    mode: Literal["pair", "bracket"]
    state: str
    rank: float
    entrants: List[EntrantInfo]
    started_at: datetime
    bracket: Optional[BracketSnapshot] = None


class StartRolloffsResponse(BaseModel):
    encounter_id: str
    started: List[str]


class RollRecord(BaseModel):
    """Append-only audit entry for one accepted draw or winner."""
    kind: Literal["roll", "winner"]
    contest_id: str
    entrant_id: str
    name: str
    total: Optional[int] = None
    faces: Optional[int] = None
    source: Optional[str] = None
    new_rank: Optional[float] = None
    recorded_at: datetime = Field(default_factory=datetime.utcnow)
