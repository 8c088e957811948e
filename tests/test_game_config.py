import pytest
from pydantic import ValidationError

from sarabanda.config.settings import settings
from sarabanda.models.game import GameConfig
from sarabanda.services.game_config import resize_teams, set_tag_filter, set_team_names, set_turn


def _four_teams() -> GameConfig:
    return GameConfig(
        team_names=["A", "B", "C", "D"],
        turn_durations=[60, 50, 40, 30],
        turn_scores=[4, 3, 2, 1],
    )


def test_shrink_keeps_leading_entries():
    resized = resize_teams(_four_teams(), 2)
    assert resized.team_names == ["A", "B"]
    assert resized.turn_durations == [60, 50]
    assert resized.turn_scores == [4, 3]


def test_grow_pads_with_last_value():
    config = GameConfig(team_names=["A", "B"], turn_durations=[60, 45], turn_scores=[2, 1])
    resized = resize_teams(config, 4)
    assert resized.team_names == ["A", "B", "Team 3", "Team 4"]
    assert resized.turn_durations == [60, 45, 45, 45]
    assert resized.turn_scores == [2, 1, 1, 1]


def test_resize_leaves_input_untouched():
    config = _four_teams()
    resize_teams(config, 2)
    assert config.team_names == ["A", "B", "C", "D"]


def test_fewer_than_two_teams_is_rejected():
    with pytest.raises(ValueError):
        resize_teams(_four_teams(), 1)
    with pytest.raises(ValidationError):
        GameConfig(team_names=["Solo"])


def test_model_fits_inconsistent_arrays():
    config = GameConfig(team_names=["A", "B", "C"], turn_durations=[10], turn_scores=[1, 2, 3, 4])
    assert config.turn_durations == [10, 10, 10]
    assert config.turn_scores == [1, 2, 3]


def test_model_uses_defaults_for_empty_arrays():
    config = GameConfig(team_names=["A", "B"])
    assert config.turn_durations == [settings.DEFAULT_TURN_DURATION] * 2
    assert config.turn_scores == [settings.DEFAULT_TURN_SCORE] * 2


def test_negative_turn_values_are_rejected():
    with pytest.raises(ValidationError):
        GameConfig(team_names=["A", "B"], turn_scores=[1, -1])


def test_config_accepts_camel_case_payload():
    config = GameConfig.model_validate(
        {"teamNames": ["X", "Y"], "numberOfRounds": 5, "tagFilters": {"category": ["Film"]}}
    )
    assert config.number_of_rounds == 5
    assert config.tag_filters == {"category": ["Film"]}


def test_set_team_names_follows_length():
    renamed = set_team_names(_four_teams(), ["North", "South", "East"])
    assert renamed.team_names == ["North", "South", "East"]
    assert renamed.turn_scores == [4, 3, 2]


@pytest.mark.parametrize("names", [["A", "A"], ["A", " "]])
def test_set_team_names_rejects_bad_names(names):
    with pytest.raises(ValueError):
        set_team_names(_four_teams(), names)


def test_set_turn_and_tag_filter():
    config = set_turn(_four_teams(), 1, duration=90, score=5)
    assert config.turn_durations[1] == 90
    assert config.turn_scores[1] == 5
    with pytest.raises(ValueError):
        set_turn(config, 9, score=1)

    filtered = set_tag_filter(config, "category", ["b", "a", "a"])
    assert filtered.tag_filters == {"category": ["a", "b"]}
