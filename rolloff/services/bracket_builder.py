"""
Bracket Builder

Seeded single-elimination brackets for tie groups of 3+ entrants.

Algorithm:
1. Sort entrants ascending by seeding attribute (stable, so equal seeds
   keep input order); the last entrant is the strongest seed
2. Grow the field to the next power of two; the strongest seeds take the
   byes and enter in round 1
3. Everyone else plays round 0, paired highest against lowest
4. Each later round pairs the strongest remaining competitor against the
   weakest, where a pending match counts as its strongest participant
5. A seeded entrant always takes slot 1 when the other slot waits on a
   previous match

With three entrants A < B < C this gives round 0 {A vs B} and round 1
{C vs winner(round 0)}.
"""
from typing import Callable, List, Optional, Sequence, Tuple

from rolloff.exceptions import BracketError
from rolloff.models import Bracket, BracketRound, Entrant, Match

SeedKey = Callable[[Entrant], float]

# (strength, seeded entrant or None, feeding match index or None)
_Competitor = Tuple[int, Optional[Entrant], Optional[int]]


def default_seed_key(entrant: Entrant) -> float:
    return entrant.seed or 0


def match_id_for(base_id: str, round_index: int, match_index: int) -> str:
    """Deterministic id correlating a match across requests and broadcasts."""
    return f"{base_id}-r{round_index}-m{match_index}"


def seed_entrants(entrants: Sequence[Entrant], seed_key: SeedKey = default_seed_key) -> List[Entrant]:
    return sorted(entrants, key=seed_key)


def build_bracket(
    entrants: Sequence[Entrant],
    base_id: str,
    seed_key: SeedKey = default_seed_key
) -> Bracket:
    """
    Build the bracket for a tie group.

    Args:
        entrants: Tied entrants (2 or more)
        base_id: Prefix for match ids
        seed_key: Secondary ranking attribute, ascending
    Returns:
        Bracket with every round laid out; later-round slots fed by
        earlier matches are left empty
    Raises:
        BracketError: If fewer than 2 entrants are given
    """
    if len(entrants) < 2:
        raise BracketError(f"Need at least 2 entrants for a bracket, got {len(entrants)}")

    seeded = seed_entrants(entrants, seed_key)
    n = len(seeded)

    size = 1
    while size < n:
        size *= 2
    byes = size - n

    playing = seeded[:n - byes]
    opening = BracketRound(index=0)
    competitors: List[_Competitor] = [
        (n - byes + i, entrant, None) for i, entrant in enumerate(seeded[n - byes:])
    ]

    for i in range(len(playing) // 2):
        low_index, high_index = i, len(playing) - 1 - i
        opening.matches.append(Match(
            match_id=match_id_for(base_id, 0, i),
            round_index=0,
            match_index=i,
            slot1=playing[low_index],
            slot2=playing[high_index],
        ))
        competitors.append((high_index, None, i))

    rounds = [opening]
    round_index = 1
    while len(competitors) > 1:
        ordered = sorted(competitors, key=lambda c: c[0], reverse=True)
        current = BracketRound(index=round_index)
        advancing: List[_Competitor] = []

        for m in range(len(ordered) // 2):
            high, low = ordered[m], ordered[len(ordered) - 1 - m]
            first, second = high, low
            if high[1] is None and low[1] is not None:
                first, second = low, high

            current.matches.append(Match(
                match_id=match_id_for(base_id, round_index, m),
                round_index=round_index,
                match_index=m,
                slot1=first[1],
                slot2=second[1],
                feeds=(first[2], second[2]),
            ))
            advancing.append((max(high[0], low[0]), None, m))

        rounds.append(current)
        competitors = advancing
        round_index += 1

    return Bracket(bracket_id=base_id, entrants=seeded, rounds=rounds)
