"""
Random Draw Test Suite

Die parsing and bounded local rolls.
"""
import random

import pytest

from rolloff.models import Draw, DrawSource
from rolloff.services.random_draw import DiceRoller, parse_die


# =============================================================================
# Test: Die Parsing
# =============================================================================

@pytest.mark.parametrize("die, faces", [("d20", 20), ("D6", 6), (" d100 ", 100), (12, 12)])
def test_parse_die(die, faces):
    assert parse_die(die) == faces


@pytest.mark.parametrize("die", ["20", "dx", "d1", "", 1, "2d6"])
def test_parse_die_rejects_malformed(die):
    with pytest.raises(ValueError):
        parse_die(die)


# =============================================================================
# Test: Rolling
# =============================================================================

def test_roll_stays_in_range():
    """Every total lands in [1, faces]."""
    roller = DiceRoller(random.Random(1234))

    totals = {roller.roll(6).total for _ in range(500)}

    assert totals == {1, 2, 3, 4, 5, 6}


def test_seeded_rolls_are_reproducible():
    first = DiceRoller(random.Random(42))
    second = DiceRoller(random.Random(42))

    assert [first.roll_total(20) for _ in range(10)] == [second.roll_total(20) for _ in range(10)]


def test_engine_draws_are_not_interactive():
    roller = DiceRoller(random.Random(7))

    local = roller.roll(20)
    fallback = roller.roll(20, DrawSource.FALLBACK)

    assert local.source == DrawSource.LOCAL
    assert fallback.source == DrawSource.FALLBACK
    assert not local.interactive
    assert not fallback.interactive


def test_draw_rejects_out_of_range_total():
    with pytest.raises(ValueError):
        Draw(faces=20, total=21)
    with pytest.raises(ValueError):
        Draw(faces=20, total=0)

    assert Draw(faces=20, total=20, source=DrawSource.REMOTE).interactive
