"""
Operator routes (game master screen).

Goals:
- Expose every game operation (phase transitions, turns, timer, scoring,
  history corrections) as a small POST endpoint.
- Edit the configuration and hand over the character pool.

Errors:
- A refused operation (wrong phase, empty pool, no match...) -> 409 with
  `{"detail": {"code": ..., "error": ...}}`, the message is meant for the operator.
- Invalid operator input (negative / non-numeric points, bad team list) -> 422.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from sarabanda.models import outcome as codes
from sarabanda.models.character import Character
from sarabanda.models.game import GameConfig
from sarabanda.models.outcome import Outcome
from sarabanda.services.character_pool import category_counts, effective_filters, tag_values
from sarabanda.services.session_engine import SessionEngine

router = APIRouter(prefix="/operator", tags=["operator"])

_INPUT_ERRORS = {codes.INVALID_SCORE, codes.INVALID_TEAM}


def get_engine(request: Request) -> SessionEngine:
    return request.app.state.engine


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------
class TeamsPayload(BaseModel):
    count: Optional[int] = Field(None, ge=2, description="New number of teams")
    names: Optional[List[str]] = Field(None, min_length=2, description="Full list of team names")


class TimerPayload(BaseModel):
    duration_s: Optional[float] = Field(None, ge=0, description="Override of the current turn duration")


class AwardPayload(BaseModel):
    team_index: Optional[int] = Field(None, ge=0, description="Team to award (null = no one)")
    points: Optional[Union[float, str]] = Field(None, description="Points (default: current turn value)")
    turn_type: Optional[Literal["team", "free-for-all"]] = Field(
        None, description="Kind of turn the award is made for"
    )


class ScoreEditPayload(BaseModel):
    team: str = Field(..., min_length=1)
    value: Union[float, str]


class StatusResponse(BaseModel):
    ok: bool
    status: Dict[str, Any]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _respond(outcome: Outcome) -> StatusResponse:
    if not outcome.ok:
        status_code = 422 if outcome.code in _INPUT_ERRORS else 409
        raise HTTPException(status_code=status_code, detail={"code": outcome.code, "error": outcome.error})
    return StatusResponse(ok=True, status=outcome.state.to_payload())


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------
@router.get("/status", response_model=StatusResponse)
async def operator_status(engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    """Full status (including the rolled character, hidden from the display)."""
    return StatusResponse(ok=True, status=engine.status.to_payload())


@router.get("/categories")
async def operator_categories(engine: SessionEngine = Depends(get_engine)):
    """Remaining vs total characters per category under the current filters."""
    status = engine.status
    counts = category_counts(status.characters, status.used_character_ids, effective_filters(status.config))
    return {"categories": [c.model_dump() for c in counts]}


@router.get("/tags")
async def operator_tags(engine: SessionEngine = Depends(get_engine)):
    """Distinct values per tag key in the loaded pool (feeds the filter selectors)."""
    return {"tags": tag_values(engine.status.characters)}


# ---------------------------------------------------------------------------
# Configuration / pool
# ---------------------------------------------------------------------------
@router.put("/config", response_model=StatusResponse)
async def operator_config(config: GameConfig, engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    return _respond(engine.update_config(config))


@router.put("/config/teams", response_model=StatusResponse)
async def operator_teams(payload: TeamsPayload, engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    """Resize the team list (`count`) or rename it (`names`); turn arrays follow."""
    try:
        if payload.names is not None:
            outcome = engine.set_team_names(payload.names)
        elif payload.count is not None:
            outcome = engine.resize_teams(payload.count)
        else:
            raise HTTPException(status_code=422, detail="Provide either 'count' or 'names'.")
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _respond(outcome)


@router.put("/people", response_model=StatusResponse)
async def operator_people(
    characters: List[Character] = Body(...),
    engine: SessionEngine = Depends(get_engine),
) -> StatusResponse:
    """Receive the parsed character sheet from the ingestion layer."""
    return _respond(engine.load_characters(characters))


# ---------------------------------------------------------------------------
# Game flow
# ---------------------------------------------------------------------------
@router.post("/start", response_model=StatusResponse)
async def operator_start(engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    return _respond(engine.start_game())


@router.post("/reroll", response_model=StatusResponse)
async def operator_reroll(engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    return _respond(engine.reroll())


@router.post("/confirm", response_model=StatusResponse)
async def operator_confirm(engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    return _respond(engine.confirm())


@router.post("/pass", response_model=StatusResponse)
async def operator_pass(engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    """Current team missed: next team, or free-for-all after the last one."""
    return _respond(engine.pass_turn())


@router.post("/timer/start", response_model=StatusResponse)
async def operator_timer_start(
    payload: TimerPayload = Body(default_factory=TimerPayload),
    engine: SessionEngine = Depends(get_engine),
) -> StatusResponse:
    return _respond(engine.start_timer(payload.duration_s))


@router.post("/timer/stop", response_model=StatusResponse)
async def operator_timer_stop(engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    return _respond(engine.stop_timer())


@router.post("/award", response_model=StatusResponse)
async def operator_award(payload: AwardPayload, engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    return _respond(engine.award(payload.team_index, payload.points, payload.turn_type))


@router.post("/end", response_model=StatusResponse)
async def operator_end(engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    """Abort the current game (played characters stay excluded)."""
    return _respond(engine.end_game())


@router.post("/reset", response_model=StatusResponse)
async def operator_reset(engine: SessionEngine = Depends(get_engine)) -> StatusResponse:
    """Full reset after the last round."""
    return _respond(engine.reset_game())


@router.patch("/history/{round_number}", response_model=StatusResponse)
async def operator_edit_round(
    round_number: int,
    payload: ScoreEditPayload,
    engine: SessionEngine = Depends(get_engine),
) -> StatusResponse:
    """Correct one team's points for a played round; totals are recomputed."""
    return _respond(engine.edit_round_score(round_number, payload.team, payload.value))
