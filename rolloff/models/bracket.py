"""
rolloff/models/bracket.py
Seeded single-elimination bracket

A bracket is built once per tie group of three or more entrants and
mutated in place as matches resolve.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from rolloff.exceptions import BracketError
from rolloff.models.entities import Entrant


@dataclass
class Match:
    """
    One pairing inside a bracket round.

    `feeds` names, per slot, the index of the previous-round match whose
    winner fills that slot (None when the slot was seeded directly).
    """
    match_id: str
    round_index: int
    match_index: int
    slot1: Optional[Entrant] = None
    slot2: Optional[Entrant] = None
    feeds: Tuple[Optional[int], Optional[int]] = (None, None)
    winner: Optional[Entrant] = None
    loser: Optional[Entrant] = None

    @property
    def is_ready(self) -> bool:
        return self.slot1 is not None and self.slot2 is not None

    @property
    def is_complete(self) -> bool:
        return self.winner is not None

    @property
    def entrants(self) -> List[Entrant]:
        return [e for e in (self.slot1, self.slot2) if e is not None]

    def resolve(self, winner: Entrant) -> None:
        """
        Record the winner of this match.

        Raises:
            BracketError: If a slot is still open, the match already has a
                winner, or the winner is not one of the two slots
        """
        if not self.is_ready:
            raise BracketError(f"Match {self.match_id} still has an open slot")
        if self.is_complete:
            raise BracketError(f"Match {self.match_id} is already resolved")

        if winner.id == self.slot1.id:
            self.winner, self.loser = self.slot1, self.slot2
        elif winner.id == self.slot2.id:
            self.winner, self.loser = self.slot2, self.slot1
        else:
            raise BracketError(f"{winner.id} is not playing in match {self.match_id}")

    def fill_from(self, source_index: int, entrant: Entrant) -> None:
        """Place the winner of previous-round match `source_index`."""
        if self.feeds[0] == source_index:
            self.slot1 = entrant
        elif self.feeds[1] == source_index:
            self.slot2 = entrant
        else:
            raise BracketError(
                f"Match {self.match_id} is not fed by match {source_index}"
            )


@dataclass
class BracketRound:
    index: int
    matches: List[Match] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return all(m.is_complete for m in self.matches)


@dataclass
class Bracket:
    """
    Ordered rounds of matches.

    `entrants` keeps the seeded order (ascending by seeding attribute).
    """
    bracket_id: str
    entrants: List[Entrant]
    rounds: List[BracketRound] = field(default_factory=list)

    def get_match(self, match_id: str) -> Match:
        for round_ in self.rounds:
            for match in round_.matches:
                if match.match_id == match_id:
                    return match
        raise BracketError(f"Unknown match {match_id}")

    def record_result(self, match: Match, winner: Entrant) -> None:
        """Resolve `match` and push its winner into the next round."""
        match.resolve(winner)

        next_index = match.round_index + 1
        if next_index >= len(self.rounds):
            return

        for candidate in self.rounds[next_index].matches:
            if match.match_index in candidate.feeds:
                candidate.fill_from(match.match_index, match.winner)
                return
        raise BracketError(f"No match in round {next_index} takes the winner of {match.match_id}")

    @property
    def champion(self) -> Optional[Entrant]:
        if not self.rounds:
            return None
        final = self.rounds[-1].matches
        if len(final) != 1:
            return None
        return final[0].winner

    @property
    def is_complete(self) -> bool:
        return self.champion is not None
