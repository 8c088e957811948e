"""
Service: game_config.py
Role:
- Edit a `GameConfig` while keeping its per-team arrays in lockstep.

Behaviour:
- Growing the team list appends `Team <n>` entries and pads the turn durations
  and turn scores with the last known value (settings defaults when empty).
- Shrinking keeps the first entries unchanged.
- Every helper returns a new config and leaves its input untouched.
"""
from typing import List, Optional

from sarabanda.config.settings import settings
from sarabanda.models.character import TagFilterSelection
from sarabanda.models.game import GameConfig, fit_length

MIN_TEAMS = 2


def resize_teams(config: GameConfig, count: int) -> GameConfig:
    """Resize the team list to `count` (>= 2) and the turn arrays with it."""
    if count < MIN_TEAMS:
        raise ValueError(f"A game needs at least {MIN_TEAMS} teams (got {count}).")
    names = list(config.team_names[:count])
    while len(names) < count:
        names.append(f"Team {len(names) + 1}")
    return config.model_copy(
        update={
            "team_names": names,
            "turn_durations": fit_length(config.turn_durations, count, settings.DEFAULT_TURN_DURATION),
            "turn_scores": fit_length(config.turn_scores, count, settings.DEFAULT_TURN_SCORE),
        }
    )


def set_team_names(config: GameConfig, names: List[str]) -> GameConfig:
    """Replace the team names; turn arrays follow the new length."""
    cleaned = [str(n).strip() for n in names]
    if any(not n for n in cleaned):
        raise ValueError("Team names cannot be empty.")
    if len(set(cleaned)) != len(cleaned):
        raise ValueError("Team names must be unique.")
    resized = resize_teams(config, len(cleaned))
    return resized.model_copy(update={"team_names": cleaned})


def set_turn(
    config: GameConfig,
    index: int,
    *,
    duration: Optional[float] = None,
    score: Optional[float] = None,
) -> GameConfig:
    """Change the duration and/or point value of the `index`-th team turn."""
    if not 0 <= index < len(config.team_names):
        raise ValueError(f"Turn index {index} is out of range (teams={len(config.team_names)}).")
    durations = list(config.turn_durations)
    scores = list(config.turn_scores)
    if duration is not None:
        if duration < 0:
            raise ValueError("Turn duration must be >= 0.")
        durations[index] = duration
    if score is not None:
        if score < 0:
            raise ValueError("Turn score must be >= 0.")
        scores[index] = score
    return config.model_copy(update={"turn_durations": durations, "turn_scores": scores})


def set_tag_filter(config: GameConfig, key: str, values: List[str]) -> GameConfig:
    """Select the accepted values of one tag key (empty list = no constraint)."""
    filters: TagFilterSelection = {k: list(v) for k, v in config.tag_filters.items()}
    filters[key] = sorted({str(v) for v in values})
    return config.model_copy(update={"tag_filters": filters})
