"""
rolloff/models/__init__.py
Export the engine's data model for easy imports
"""

from rolloff.models.entities import (
    DrawSource,
    Entrant,
    Encounter,
    TieGroup,
    Draw,
    ContestResult,
    ContestOutcome,
)
from rolloff.models.bracket import Match, BracketRound, Bracket

__all__ = [
    "DrawSource",
    "Entrant",
    "Encounter",
    "TieGroup",
    "Draw",
    "ContestResult",
    "ContestOutcome",
    "Match",
    "BracketRound",
    "Bracket",
]
