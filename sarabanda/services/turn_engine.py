"""
Service: turn_engine.py
Role:
- Turn rotation inside a round (team 0 .. N-1, then free-for-all).
- Wall-clock timers anchored on an end timestamp.
- Point awards, manual corrections of the history and score recomputation.

Turn model:
- `current_turn_index` i < N: team `i` plays with `turn_durations[i]` /
  `turn_scores[i]`.
- After the last team, the round switches to `free-for-all`: any team may be
  awarded `free_turn_score`, the timer uses `free_turn_duration`.

Timer:
- Starting stores `timer_ends_at_ms = now + duration * 1000`.
- The remaining time is always recomputed from that timestamp
  (`max(0, ends_at - now)`), never decremented, so it survives suspended or
  reloaded screens.
- Expiry only stops the timer; awarding points stays an operator decision.

All reducers return an `Outcome` like the phase machine and only accept
calls during `guessing` (timer helpers and corrections excepted).
"""
from __future__ import annotations

import logging
import math
import random
import time
from typing import Dict, List, Optional, Tuple, Union

from sarabanda.models import outcome as codes
from sarabanda.models.game import (
    PHASE_GUESSING,
    TURN_FREE_FOR_ALL,
    TURN_TEAM,
    GameStatus,
    TurnType,
)
from sarabanda.models.outcome import Outcome
from sarabanda.services.phase_machine import complete_round

logger = logging.getLogger(__name__)


class InvalidScoreError(ValueError):
    """Operator typed something that is not a usable point value."""


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_points(value: Union[str, int, float, None]) -> float:
    """
    Parse an operator-entered point value.
    Accepts numbers and numeric strings ("2", "0.5"); rejects negatives,
    NaN/inf and anything non-numeric.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidScoreError(f"'{value}' is not a number.")
    if isinstance(value, str):
        text = value.strip()
        try:
            number = float(text)
        except ValueError as exc:
            raise InvalidScoreError(f"'{value}' is not a number.") from exc
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        raise InvalidScoreError(f"'{value}' is not a number.")
    if not math.isfinite(number):
        raise InvalidScoreError(f"'{value}' is not a finite number.")
    if number < 0:
        raise InvalidScoreError(f"Points cannot be negative (got {value}).")
    return number


def _not_guessing(state: GameStatus, action: str) -> Outcome:
    return Outcome.failure(
        state,
        codes.WRONG_PHASE,
        f"Cannot {action} while the game is in the '{state.phase}' phase.",
    )


# -----------------------------
# Turn cursor
# -----------------------------
def current_turn_duration(state: GameStatus) -> float:
    cfg = state.config
    if state.turn_type == TURN_FREE_FOR_ALL:
        return cfg.free_turn_duration
    index = min(state.current_turn_index, len(cfg.turn_durations) - 1)
    return cfg.turn_durations[index]


def current_turn_score(state: GameStatus) -> float:
    cfg = state.config
    if state.turn_type == TURN_FREE_FOR_ALL:
        return cfg.free_turn_score
    index = min(state.current_turn_index, len(cfg.turn_scores) - 1)
    return cfg.turn_scores[index]


def pass_turn(state: GameStatus) -> Outcome:
    """The playing team missed: hand over to the next team, or to free-for-all."""
    if state.phase != PHASE_GUESSING:
        return _not_guessing(state, "pass the turn")
    if state.turn_type == TURN_FREE_FOR_ALL:
        return Outcome.failure(
            state,
            codes.ALREADY_FREE,
            "Every team already had its turn; the round is open to all. Award the points or give them to no one.",
        )
    next_index = state.current_turn_index + 1
    if next_index >= len(state.config.team_names):
        update = {"current_turn_index": next_index, "current_team_index": None, "turn_type": TURN_FREE_FOR_ALL}
    else:
        update = {"current_turn_index": next_index, "current_team_index": next_index, "turn_type": TURN_TEAM}
    return Outcome.success(state.model_copy(update={**update, "is_timer_running": False, "timer_ends_at_ms": None}))


# -----------------------------
# Timer
# -----------------------------
def start_timer(state: GameStatus, now: Optional[int] = None, duration_s: Optional[float] = None) -> Outcome:
    if state.phase != PHASE_GUESSING:
        return _not_guessing(state, "start the timer")
    seconds = current_turn_duration(state) if duration_s is None else duration_s
    if seconds < 0:
        return Outcome.failure(state, codes.INVALID_SCORE, "Timer duration cannot be negative.")
    start = now_ms() if now is None else now
    return Outcome.success(
        state.model_copy(
            update={"is_timer_running": True, "timer_ends_at_ms": start + int(round(seconds * 1000))}
        )
    )


def stop_timer(state: GameStatus) -> Outcome:
    """Clear the timer; round and scores are left alone."""
    if not state.is_timer_running and state.timer_ends_at_ms is None:
        return Outcome.failure(state, codes.TIMER_IDLE, "The timer is not running.")
    return Outcome.success(state.model_copy(update={"is_timer_running": False, "timer_ends_at_ms": None}))


def time_remaining_ms(state: GameStatus, now: Optional[int] = None) -> int:
    if not state.is_timer_running or state.timer_ends_at_ms is None:
        return 0
    current = now_ms() if now is None else now
    return max(0, state.timer_ends_at_ms - current)


def expire_timer(state: GameStatus, now: Optional[int] = None) -> GameStatus:
    """Stop a timer whose remaining time reached 0 (no scoring)."""
    if state.is_timer_running and time_remaining_ms(state, now) == 0:
        return state.model_copy(update={"is_timer_running": False, "timer_ends_at_ms": None})
    return state


# -----------------------------
# Scoring
# -----------------------------
def award(
    state: GameStatus,
    team_index: Optional[int],
    points: Union[str, int, float, None] = None,
    *,
    turn_type: Optional[TurnType] = None,
    rng: Optional[random.Random] = None,
) -> Outcome:
    """
    Give `points` (default: the current turn's value) to `team_index`, or to no one
    when `team_index` is None, then close the round.

    `turn_type` is the kind of turn the award was made for; it must match the
    round's current turn type. During a team turn only the playing team (or no
    one) can be awarded.
    """
    if state.phase != PHASE_GUESSING:
        return _not_guessing(state, "award points")
    requested = turn_type or state.turn_type
    if requested != state.turn_type:
        return Outcome.failure(
            state,
            codes.TURN_MISMATCH,
            f"Award for a '{requested}' turn refused: the round is currently in a '{state.turn_type}' turn.",
        )

    teams = state.config.team_names
    if team_index is not None:
        if not 0 <= team_index < len(teams):
            return Outcome.failure(state, codes.INVALID_TEAM, f"Unknown team index {team_index} (teams: {len(teams)}).")
        if state.turn_type == TURN_TEAM and team_index != state.current_team_index:
            playing = teams[state.current_team_index] if state.current_team_index is not None else "nobody"
            return Outcome.failure(
                state,
                codes.TURN_MISMATCH,
                f"It is {playing}'s turn; {teams[team_index]} cannot be awarded this turn. Pass the turn first.",
            )

    if points is None:
        value = current_turn_score(state)
    else:
        try:
            value = parse_points(points)
        except InvalidScoreError as exc:
            return Outcome.failure(state, codes.INVALID_SCORE, str(exc))

    round_scores: Dict[str, float] = {}
    if team_index is not None:
        round_scores[teams[team_index]] = value
    logger.info(
        "Points awarded",
        extra={"round": state.current_round, "team": teams[team_index] if team_index is not None else None, "points": value},
    )
    return complete_round(
        state,
        round_scores,
        turn_type=state.turn_type,
        team_index=team_index,
        rng=rng,
    )


def recompute_scores(state: GameStatus) -> GameStatus:
    """Totals = sum of every team's contributions over the round history."""
    totals: Dict[str, float] = {team: 0.0 for team in state.config.team_names}
    for result in state.round_history:
        for team, points in result.scores.items():
            totals[team] = totals.get(team, 0.0) + points
    return state.model_copy(update={"scores": totals})


def edit_round_score(
    state: GameStatus,
    round_number: int,
    team: str,
    value: Union[str, int, float, None],
) -> Outcome:
    """Correct one team's points for a past round and recompute all totals."""
    try:
        points = parse_points(value)
    except InvalidScoreError as exc:
        return Outcome.failure(state, codes.INVALID_SCORE, str(exc))

    for position, result in enumerate(state.round_history):
        if result.round != round_number:
            continue
        if team not in result.scores and team not in state.config.team_names:
            return Outcome.failure(state, codes.INVALID_TEAM, f"Unknown team '{team}'.")
        edited = result.model_copy(update={"scores": {**result.scores, team: points}})
        history = list(state.round_history)
        history[position] = edited
        return Outcome.success(recompute_scores(state.model_copy(update={"round_history": history})))

    return Outcome.failure(state, codes.UNKNOWN_ROUND, f"Round {round_number} has not been played.")


def standings(state: GameStatus) -> List[Tuple[str, float]]:
    """Teams ranked by score (descending), configured order breaking ties."""
    order = {team: i for i, team in enumerate(state.config.team_names)}
    return sorted(
        ((team, state.scores.get(team, 0.0)) for team in state.config.team_names),
        key=lambda item: (-item[1], order[item[0]]),
    )
