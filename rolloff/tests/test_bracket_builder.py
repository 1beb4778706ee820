"""
Bracket Builder Test Suite

Seeding, byes and winner propagation for 3+ entrant tie groups.
"""
import pytest

from rolloff.exceptions import BracketError
from rolloff.models import Entrant
from rolloff.services.bracket_builder import build_bracket, match_id_for, seed_entrants


def make_field(*names):
    """Entrants with ascending seeds in the order given."""
    return [Entrant(id=n, name=n.title(), rank=14, seed=i + 10) for i, n in enumerate(names)]


# =============================================================================
# Test: Seeding
# =============================================================================

def test_seeding_is_ascending_and_stable():
    a = Entrant(id="a", name="A", seed=3)
    b = Entrant(id="b", name="B", seed=1)
    c = Entrant(id="c", name="C", seed=3)

    assert [e.id for e in seed_entrants([a, b, c])] == ["b", "a", "c"]


def test_match_ids_are_deterministic():
    assert match_id_for("enc-14", 1, 0) == "enc-14-r1-m0"


# =============================================================================
# Test: Layout
# =============================================================================

def test_three_entrants():
    """A < B < C: A plays B first, C waits for the winner."""
    a, b, c = make_field("a", "b", "c")

    bracket = build_bracket([c, a, b], "br")

    assert len(bracket.rounds) == 2
    opening = bracket.rounds[0].matches
    assert len(opening) == 1
    assert (opening[0].slot1, opening[0].slot2) == (a, b)

    final = bracket.rounds[1].matches[0]
    assert final.slot1 is c
    assert final.slot2 is None
    assert final.feeds == (None, 0)
    assert not final.is_ready


def test_four_entrants_pair_high_against_low():
    a, b, c, d = make_field("a", "b", "c", "d")

    bracket = build_bracket([a, b, c, d], "br")

    opening = bracket.rounds[0].matches
    assert [(m.slot1.id, m.slot2.id) for m in opening] == [("a", "d"), ("b", "c")]
    final = bracket.rounds[1].matches[0]
    assert final.feeds == (0, 1)
    assert final.entrants == []


def test_five_entrants_give_byes_to_top_seeds():
    a, b, c, d, e = make_field("a", "b", "c", "d", "e")

    bracket = build_bracket([a, b, c, d, e], "br")

    assert len(bracket.rounds) == 3
    assert [(m.slot1.id, m.slot2.id) for m in bracket.rounds[0].matches] == [("a", "b")]

    second = bracket.rounds[1].matches
    assert second[0].slot1 is e and second[0].feeds == (None, 0)
    assert (second[1].slot1, second[1].slot2) == (d, c)
    assert second[1].is_ready

    assert bracket.rounds[2].matches[0].feeds == (0, 1)


def test_every_entrant_appears_once_at_entry():
    entrants = make_field(*"abcdefg")

    bracket = build_bracket(entrants, "br")

    seeded = [e.id for r in bracket.rounds for m in r.matches for e in m.entrants]
    assert sorted(seeded) == sorted(e.id for e in entrants)


def test_too_few_entrants():
    with pytest.raises(BracketError):
        build_bracket(make_field("a"), "br")


# =============================================================================
# Test: Propagation
# =============================================================================

def test_winners_propagate_to_champion():
    a, b, c = make_field("a", "b", "c")
    bracket = build_bracket([a, b, c], "br")

    opening = bracket.rounds[0].matches[0]
    bracket.record_result(opening, b)

    final = bracket.get_match("br-r1-m0")
    assert final.is_ready
    assert final.slot2 is b
    assert opening.loser is a
    assert not bracket.is_complete

    bracket.record_result(final, c)

    assert bracket.champion is c
    assert bracket.is_complete
    assert all(r.is_complete for r in bracket.rounds)


def test_resolving_twice_is_rejected():
    a, b, c = make_field("a", "b", "c")
    bracket = build_bracket([a, b, c], "br")
    opening = bracket.rounds[0].matches[0]
    bracket.record_result(opening, a)

    with pytest.raises(BracketError):
        opening.resolve(b)


def test_winner_must_be_playing():
    a, b, c = make_field("a", "b", "c")
    bracket = build_bracket([a, b, c], "br")

    with pytest.raises(BracketError):
        bracket.record_result(bracket.rounds[0].matches[0], c)


def test_open_slot_cannot_resolve():
    a, b, c = make_field("a", "b", "c")
    bracket = build_bracket([a, b, c], "br")

    with pytest.raises(BracketError):
        bracket.rounds[1].matches[0].resolve(c)


def test_unknown_match_id():
    bracket = build_bracket(make_field("a", "b", "c"), "br")

    with pytest.raises(BracketError):
        bracket.get_match("br-r9-m9")
