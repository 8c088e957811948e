"""
Models / game.py
Role:
- Define the game configuration, the round history entries and the aggregate
  `GameStatus` shared between the operator and the display screens.

Notes:
- Persisted/broadcast JSON uses camelCase aliases (`usedCharacterIds`,
  `timerEndsAtEpochMs`, ...). Python code uses the snake_case names.
- Unknown keys are ignored and missing keys take their defaults, so a status
  written by an older version still loads.
- `GameConfig` keeps `turn_durations`, `turn_scores` and `team_names` the same
  length: an inconsistent payload is fitted to the team count on validation.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from sarabanda.config.settings import settings
from sarabanda.models.character import Character, TagFilterSelection

Phase = Literal["prepping", "choosing", "guessing", "stopping"]
TurnType = Literal["team", "free-for-all"]

PHASE_PREPPING: Phase = "prepping"
PHASE_CHOOSING: Phase = "choosing"
PHASE_GUESSING: Phase = "guessing"
PHASE_STOPPING: Phase = "stopping"

TURN_TEAM: TurnType = "team"
TURN_FREE_FOR_ALL: TurnType = "free-for-all"


def fit_length(values: List[float], count: int, default: float) -> List[float]:
    """
    Trim or pad `values` to `count` entries.
    Padding repeats the last known value, or `default` when the list is empty.
    """
    fitted = list(values[:count])
    filler = values[-1] if values else default
    while len(fitted) < count:
        fitted.append(filler)
    return fitted


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class GameConfig(_CamelModel):
    """Operator-editable settings for one game."""
    sheet_url: str = ""
    number_of_rounds: int = Field(default_factory=lambda: settings.DEFAULT_NUMBER_OF_ROUNDS, ge=1)
    turn_durations: List[float] = Field(default_factory=list)
    turn_scores: List[float] = Field(default_factory=list)
    free_turn_duration: float = Field(default_factory=lambda: settings.DEFAULT_FREE_TURN_DURATION, ge=0)
    free_turn_score: float = Field(default_factory=lambda: settings.DEFAULT_FREE_TURN_SCORE, ge=0)
    team_names: List[str] = Field(default_factory=lambda: list(settings.DEFAULT_TEAM_NAMES), min_length=2)
    tag_filters: TagFilterSelection = Field(default_factory=dict)
    # with an empty selection, "start" treats every tag value as selected
    select_all_by_default: bool = True

    @model_validator(mode="after")
    def _fit_turn_arrays(self) -> "GameConfig":
        count = len(self.team_names)
        if len(self.turn_durations) != count:
            self.turn_durations = fit_length(self.turn_durations, count, settings.DEFAULT_TURN_DURATION)
        if len(self.turn_scores) != count:
            self.turn_scores = fit_length(self.turn_scores, count, settings.DEFAULT_TURN_SCORE)
        if any(v < 0 for v in self.turn_durations) or any(v < 0 for v in self.turn_scores):
            raise ValueError("turn durations and scores must be >= 0")
        return self


class RoundResult(_CamelModel):
    """One completed round. Immutable except for manual score correction."""
    round: int
    category: Optional[str] = None
    character: Character
    scores: Dict[str, float] = Field(default_factory=dict)
    turn_type: TurnType = TURN_TEAM
    team_index: Optional[int] = None


class GameStatus(_CamelModel):
    """Aggregate root of a game. Written only by the operator process."""
    phase: Phase = PHASE_PREPPING
    config: GameConfig = Field(default_factory=GameConfig)
    characters: List[Character] = Field(default_factory=list)
    used_character_ids: List[str] = Field(default_factory=list)
    current_round: int = 0
    current_character: Optional[Character] = None
    current_category: Optional[str] = None
    current_turn_index: int = 0
    current_team_index: Optional[int] = None
    turn_type: TurnType = TURN_TEAM
    is_timer_running: bool = False
    timer_ends_at_ms: Optional[int] = Field(default=None, alias="timerEndsAtEpochMs")
    scores: Dict[str, float] = Field(default_factory=dict)
    round_history: List[RoundResult] = Field(default_factory=list)
    is_game_active: bool = False

    def to_payload(self) -> dict:
        """JSON-ready dict with the persisted (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)
