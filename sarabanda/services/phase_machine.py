"""
Service: phase_machine.py
Role:
- Phase-guarded reducers over `GameStatus`:
  prepping -> choosing -> guessing -> choosing ... -> stopping -> prepping.

Contract:
- Every reducer is `(state, ...) -> Outcome` and never mutates its input:
  new states are built with `model_copy(update=...)`.
- A trigger that is illegal in the current phase (or whose guard fails)
  returns `Outcome(ok=False)` with the unchanged state and a specific message.
  Nothing here raises into the caller.
- The caller (session engine) decides whether to commit the returned state.

Transitions:
- start           prepping -> choosing   (pool/filter guards, scores zeroed, round 1, roll)
- reroll          choosing -> choosing
- confirm         choosing -> guessing   (rolled character must still match the filters)
- complete_round  guessing -> choosing | stopping
- end             choosing|guessing -> prepping (used characters are kept)
- reset           stopping -> prepping   (used characters, history and scores cleared)
"""
from __future__ import annotations

import logging
import random
from typing import Dict, Optional

from sarabanda.models import outcome as codes
from sarabanda.models.character import CATEGORY_TAG, Character
from sarabanda.models.game import (
    PHASE_CHOOSING,
    PHASE_GUESSING,
    PHASE_PREPPING,
    PHASE_STOPPING,
    TURN_TEAM,
    GameConfig,
    GameStatus,
    RoundResult,
    TurnType,
)
from sarabanda.models.outcome import Outcome
from sarabanda.services.character_pool import (
    available,
    describe_no_match,
    effective_filters,
    fingerprint,
    has_selection,
    matches,
)

logger = logging.getLogger(__name__)

_TIMER_OFF = {"is_timer_running": False, "timer_ends_at_ms": None}
_TURN_RESET = {"current_turn_index": 0, "current_team_index": None, "turn_type": TURN_TEAM}


def _wrong_phase(state: GameStatus, action: str) -> Outcome:
    return Outcome.failure(
        state,
        codes.WRONG_PHASE,
        f"Cannot {action} while the game is in the '{state.phase}' phase.",
    )


def _category_for(character: Character, config: GameConfig) -> Optional[str]:
    """First category of the character accepted by the selection (or its first one)."""
    values = character.categories
    if not values:
        return None
    accepted = config.tag_filters.get(CATEGORY_TAG) or []
    for value in values:
        if value in accepted:
            return value
    return values[0]


# -----------------------------
# Helpers
# -----------------------------
def mark_used(state: GameStatus, fp: str) -> GameStatus:
    """Append `fp` to the used ids; already present -> same state."""
    if fp in state.used_character_ids:
        return state
    return state.model_copy(update={"used_character_ids": [*state.used_character_ids, fp]})


def roll(state: GameStatus, rng: Optional[random.Random] = None) -> Outcome:
    """
    Pick a random unused character accepted by the current filters.
    The character on screen is only picked again when it is the last candidate.
    """
    filters = effective_filters(state.config)
    candidates = available(state.characters, state.used_character_ids, filters)
    if not candidates:
        return Outcome.failure(
            state,
            codes.NO_MATCH,
            describe_no_match(state.characters, filters, state.used_character_ids),
        )
    if state.current_character is not None and len(candidates) > 1:
        shown = fingerprint(state.current_character)
        candidates = [c for c in candidates if fingerprint(c) != shown] or candidates
    picked = (rng or random).choice(candidates)
    logger.debug(
        "Character rolled",
        extra={"round": state.current_round, "candidates": len(candidates), "character": picked.display_name},
    )
    return Outcome.success(
        state.model_copy(
            update={
                "current_character": picked,
                "current_category": _category_for(picked, state.config),
                **_TURN_RESET,
            }
        )
    )


# -----------------------------
# Transitions
# -----------------------------
def start_game(state: GameStatus, rng: Optional[random.Random] = None) -> Outcome:
    if state.phase != PHASE_PREPPING:
        return _wrong_phase(state, "start a game")
    if not state.characters:
        return Outcome.failure(
            state,
            codes.NO_CHARACTERS,
            "No characters loaded. Load the character sheet before starting a game.",
        )
    if not has_selection(state.config):
        return Outcome.failure(
            state,
            codes.NO_FILTERS,
            "No tag values selected. Select at least one value (for example a category) in the configuration.",
        )
    filters = effective_filters(state.config)
    if not available(state.characters, state.used_character_ids, filters):
        return Outcome.failure(
            state,
            codes.NO_MATCH,
            describe_no_match(state.characters, filters, state.used_character_ids),
        )

    started = state.model_copy(
        update={
            "phase": PHASE_CHOOSING,
            "scores": {team: 0.0 for team in state.config.team_names},
            "round_history": [],
            "current_round": 1,
            "is_game_active": True,
            **_TIMER_OFF,
        }
    )
    rolled = roll(started, rng)
    if rolled.ok:
        logger.info("Game started", extra={"teams": len(state.config.team_names), "rounds": state.config.number_of_rounds})
    return rolled if rolled.ok else Outcome.failure(state, rolled.code, rolled.error)


def reroll(state: GameStatus, rng: Optional[random.Random] = None) -> Outcome:
    if state.phase != PHASE_CHOOSING:
        return _wrong_phase(state, "re-roll the character")
    return roll(state, rng)


def confirm_character(state: GameStatus) -> Outcome:
    if state.phase != PHASE_CHOOSING:
        return _wrong_phase(state, "confirm the character")
    character = state.current_character
    if character is None:
        return Outcome.failure(state, codes.NO_CURRENT_CHARACTER, "No character rolled yet. Roll a character first.")
    if not matches(character, effective_filters(state.config)):
        return Outcome.failure(
            state,
            codes.STALE_CHARACTER,
            f"'{character.display_name}' no longer matches the selected filters. Re-roll to pick another character.",
        )
    if fingerprint(character) in state.used_character_ids:
        return Outcome.failure(
            state,
            codes.STALE_CHARACTER,
            f"'{character.display_name}' was already played. Re-roll to pick another character.",
        )
    return Outcome.success(
        state.model_copy(
            update={
                "phase": PHASE_GUESSING,
                "current_turn_index": 0,
                "current_team_index": 0,
                "turn_type": TURN_TEAM,
                **_TIMER_OFF,
            }
        )
    )


def complete_round(
    state: GameStatus,
    round_scores: Dict[str, float],
    *,
    turn_type: TurnType = TURN_TEAM,
    team_index: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> Outcome:
    """
    Close the current round: record it, add its points, mark the character used
    and roll the next one (or stop after the last round / when the pool runs dry).
    """
    if state.phase != PHASE_GUESSING:
        return _wrong_phase(state, "complete the round")
    character = state.current_character
    if character is None:
        return Outcome.failure(state, codes.NO_CURRENT_CHARACTER, "No character is being guessed.")

    teams = state.config.team_names
    contributions = {team: float(round_scores.get(team, 0.0)) for team in teams}
    totals = dict(state.scores)
    for team, points in contributions.items():
        totals[team] = totals.get(team, 0.0) + points

    result = RoundResult(
        round=state.current_round,
        category=state.current_category,
        character=character,
        scores=contributions,
        turn_type=turn_type,
        team_index=team_index,
    )
    closed = mark_used(state, fingerprint(character)).model_copy(
        update={
            "round_history": [*state.round_history, result],
            "scores": totals,
            **_TIMER_OFF,
            **_TURN_RESET,
        }
    )

    next_round = state.current_round + 1
    if next_round > state.config.number_of_rounds:
        logger.info("Last round played", extra={"round": state.current_round})
        return Outcome.success(_stopped(closed))

    rolled = roll(closed.model_copy(update={"phase": PHASE_CHOOSING, "current_round": next_round}), rng)
    if not rolled.ok:
        logger.info("Character pool exhausted, stopping", extra={"round": state.current_round})
        return Outcome.success(_stopped(closed))
    return rolled


def _stopped(state: GameStatus) -> GameStatus:
    return state.model_copy(
        update={
            "phase": PHASE_STOPPING,
            "current_character": None,
            "current_category": None,
            "is_game_active": False,
        }
    )


def end_game(state: GameStatus) -> Outcome:
    """Operator abort back to prepping. Used characters stay excluded."""
    if state.phase not in (PHASE_CHOOSING, PHASE_GUESSING):
        return _wrong_phase(state, "end the game")
    return Outcome.success(
        state.model_copy(
            update={
                "phase": PHASE_PREPPING,
                "current_character": None,
                "current_category": None,
                "is_game_active": False,
                **_TIMER_OFF,
                **_TURN_RESET,
            }
        )
    )


def reset_game(state: GameStatus) -> Outcome:
    """Full reset after a finished game; config and character pool are kept."""
    if state.phase != PHASE_STOPPING:
        return _wrong_phase(state, "reset the game")
    return Outcome.success(GameStatus(config=state.config, characters=state.characters))


def update_config(state: GameStatus, config: GameConfig) -> Outcome:
    """
    Replace the configuration. The team list is frozen once a game is under way:
    scores and round history are keyed by team name.
    """
    if state.config == config:
        return Outcome.success(state)
    if config.team_names != state.config.team_names and state.phase != PHASE_PREPPING:
        return _wrong_phase(state, "change the teams")
    return Outcome.success(state.model_copy(update={"config": config}))


def update_characters(state: GameStatus, characters: list[Character]) -> Outcome:
    if state.characters == characters:
        return Outcome.success(state)
    return Outcome.success(state.model_copy(update={"characters": list(characters)}))
