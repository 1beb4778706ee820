"""
rolloff/services/tie_detector.py
Tie detection

Pure, re-entrant: no mutation and no I/O.
"""
from typing import Callable, Dict, Iterable, List, Optional

from rolloff.models import Encounter, Entrant, TieGroup

RelevancePredicate = Callable[[Entrant], bool]


def include_all(entrant: Entrant) -> bool:
    return True


def player_controlled_only(entrant: Entrant) -> bool:
    return entrant.player_controlled


def relevance_predicate(include_npcs: bool) -> RelevancePredicate:
    """Pick the relevance predicate matching the include_npcs setting."""
    return include_all if include_npcs else player_controlled_only


def find_tie_groups(
    entrants: Iterable[Entrant],
    is_relevant: Optional[RelevancePredicate] = None
) -> List[TieGroup]:
    """
    Partition relevant entrants into tie groups.

    Detection only happens once every relevant entrant has a rank; until
    then the collection is still being rolled and nothing is reported.

    Args:
        entrants: Entrants to scan
        is_relevant: Filter applied first (defaults to include everyone)
    Returns:
        One TieGroup per rank value shared by 2+ entrants, in order of
        first appearance; members keep their input order
    """
    predicate = is_relevant or include_all
    relevant = [e for e in entrants if predicate(e)]

    if not relevant:
        return []
    if any(e.rank is None for e in relevant):
        return []

    by_rank: Dict[float, List[Entrant]] = {}
    for entrant in relevant:
        by_rank.setdefault(entrant.rank, []).append(entrant)

    return [TieGroup(tuple(group)) for group in by_rank.values() if len(group) >= 2]


def find_encounter_ties(encounter: Encounter, include_npcs: bool = False) -> List[TieGroup]:
    return find_tie_groups(encounter.entrants, relevance_predicate(include_npcs))
