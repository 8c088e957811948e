import os
import random
import tempfile

# Keep the module-level app (sarabanda.main) away from the repository data folder.
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="sarabanda-tests-"))

import pytest

from sarabanda.models.character import Character
from sarabanda.models.game import GameConfig, GameStatus


def make_character(given: str, family: str = "", **tags) -> Character:
    props = {"given_names": given}
    if family:
        props["family_names"] = family
    return Character(props=props, tags=tags, image_ref=f"https://img.example/{given.lower()}.png")


@pytest.fixture
def pool() -> list[Character]:
    """Five characters, category A and/or B (three of them hold A)."""
    return [
        make_character("Ada", "Lovelace", category=["A"], difficulty=["1"]),
        make_character("Alan", "Turing", category=["A", "B"], difficulty=["2"]),
        make_character("Grace", "Hopper", category=["A"], difficulty=["3"]),
        make_character("Linus", "Torvalds", category=["B"], difficulty=["1"]),
        make_character("Margaret", "Hamilton", category=["B"], difficulty=["2"]),
    ]


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def prepping(pool) -> GameStatus:
    config = GameConfig(
        number_of_rounds=3,
        team_names=["Red", "Blue", "Green"],
        turn_durations=[60, 45, 30],
        turn_scores=[3, 2, 1],
        free_turn_duration=20,
        free_turn_score=0.5,
        tag_filters={"category": ["A", "B"]},
    )
    return GameStatus(config=config, characters=pool)
