"""
rolloff/services/random_draw.py
Local die rolls

Every draw the engine makes on an entrant's behalf (no owner, or owner
fallback) goes through DiceRoller. These draws are never interactive.
"""
import random
from typing import Optional, Union

from rolloff.models import Draw, DrawSource


def parse_die(die: Union[str, int]) -> int:
    """
    Turn a die denomination into a face count.

    "d20" -> 20, "D6" -> 6, 12 -> 12

    Raises:
        ValueError: If the denomination is malformed or has fewer than 2 faces
    """
    if isinstance(die, int):
        faces = die
    else:
        text = die.strip().lower()
        if not text.startswith("d") or not text[1:].isdigit():
            raise ValueError(f"Unrecognized die {die!r}")
        faces = int(text[1:])

    if faces < 2:
        raise ValueError(f"A die needs at least 2 faces, got {faces}")
    return faces


class DiceRoller:
    """
    Produces bounded random integers.

    Stateless apart from the injected random source, which tests replace
    with a seeded random.Random.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.SystemRandom()

    def roll_total(self, faces: int) -> int:
        return self.rng.randint(1, faces)

    def roll(self, faces: int, source: DrawSource = DrawSource.LOCAL) -> Draw:
        return Draw(faces=faces, total=self.roll_total(faces), source=source)
