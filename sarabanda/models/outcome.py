"""
Models / outcome.py
Role:
- Result envelope returned by every game reducer.

A reducer never raises into the UI boundary: it returns `ok=True` with the new
state, or `ok=False` with the unchanged state, a machine-readable `code` and a
message the operator screen can show as-is.
"""
from typing import Optional

from pydantic import BaseModel

from sarabanda.models.game import GameStatus

# Guard failure codes
WRONG_PHASE = "wrong_phase"
NO_CHARACTERS = "no_characters"
NO_FILTERS = "no_filters"
NO_MATCH = "no_match"
NO_CURRENT_CHARACTER = "no_current_character"
STALE_CHARACTER = "stale_character"
TURN_MISMATCH = "turn_mismatch"
INVALID_TEAM = "invalid_team"
INVALID_SCORE = "invalid_score"
UNKNOWN_ROUND = "unknown_round"
ALREADY_FREE = "already_free"
TIMER_IDLE = "timer_idle"


class Outcome(BaseModel):
    ok: bool
    state: GameStatus
    error: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def success(cls, state: GameStatus) -> "Outcome":
        return cls(ok=True, state=state)

    @classmethod
    def failure(cls, state: GameStatus, code: str, error: str) -> "Outcome":
        return cls(ok=False, state=state, code=code, error=error)
