"""
rolloff/models/entities.py
Entrants, encounters, tie groups and draws

The engine reads rank/owner from entrants and, once a tie is resolved,
writes a single new rank to the winner. Everything else on an entrant is
opaque display data.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from rolloff.exceptions import InvalidTieGroupError


class DrawSource(str, Enum):
    """
    Where a draw came from.

    - LOCAL: Entrant has no remote owner, engine rolled for it
    - REMOTE: Owner supplied the draw
    - FALLBACK: Owner failed or timed out, engine rolled instead
    """
    LOCAL = "local"
    REMOTE = "remote"
    FALLBACK = "fallback"


@dataclass(eq=False)
class Entrant:
    """
    A participant that can be tied with others.

    Fields:
    - id: Stable identifier
    - name / img: Display data, never interpreted
    - rank: Comparable value whose equality defines a tie (None until set)
    - owner_id: Remote owner allowed to draw for this entrant (None = local)
    - seed: Secondary attribute used to seed brackets (e.g. a dexterity score)
    - player_controlled: Whether the entrant counts when NPCs are excluded
    """
    id: str
    name: str
    rank: Optional[float] = None
    owner_id: Optional[str] = None
    img: Optional[str] = None
    seed: float = 0
    player_controlled: bool = True


@dataclass(eq=False)
class Encounter:
    """
    The collection that owns a set of entrants.

    Detection only runs while `started` is False.
    """
    id: str
    entrants: List[Entrant] = field(default_factory=list)
    started: bool = False


@dataclass(frozen=True)
class TieGroup:
    """
    Two or more entrants sharing one non-null rank at detection time.

    Immutable once constructed. Rerolls run on plain entrant lists and never
    build new groups.
    """
    entrants: Tuple[Entrant, ...]

    def __post_init__(self):
        entrants = tuple(self.entrants)
        object.__setattr__(self, "entrants", entrants)

        if len(entrants) < 2:
            raise InvalidTieGroupError(
                f"A tie group needs at least 2 entrants, got {len(entrants)}"
            )
        if any(e.rank is None for e in entrants):
            raise InvalidTieGroupError("Every tied entrant must have a rank")
        ranks = {e.rank for e in entrants}
        if len(ranks) != 1:
            raise InvalidTieGroupError(f"Tied entrants disagree on rank: {sorted(ranks)}")

    @property
    def rank(self) -> float:
        return self.entrants[0].rank

    @property
    def ids(self) -> List[str]:
        return [e.id for e in self.entrants]

    def key(self, encounter_id: str) -> str:
        """Stable key identifying this tie within an encounter."""
        members = ",".join(sorted(self.ids))
        return f"{encounter_id}:{self.rank}:{members}"

    def __len__(self) -> int:
        return len(self.entrants)

    def __iter__(self) -> Iterator[Entrant]:
        return iter(self.entrants)


@dataclass(frozen=True)
class Draw:
    """One random outcome: a total in [1, faces]."""
    faces: int
    total: int
    source: DrawSource = DrawSource.LOCAL

    def __post_init__(self):
        if self.faces < 1:
            raise ValueError(f"Die must have at least one face, got {self.faces}")
        if not 1 <= self.total <= self.faces:
            raise ValueError(f"Total {self.total} outside [1, {self.faces}]")

    @property
    def interactive(self) -> bool:
        return self.source == DrawSource.REMOTE


@dataclass(frozen=True)
class ContestResult:
    """An entrant paired with the draw it contributed to one contest."""
    entrant: Entrant
    draw: Draw

    @property
    def total(self) -> int:
        return self.draw.total


@dataclass
class ContestOutcome:
    """
    Final result of a contest after any rerolls.

    `results` holds the decisive attempt; `attempts` counts every
    invocation including rerolls.
    """
    winner: Entrant
    losers: List[Entrant]
    results: List[ContestResult]
    attempts: int = 1

    @property
    def loser(self) -> Optional[Entrant]:
        if len(self.losers) == 1:
            return self.losers[0]
        return None
