"""
Service: display_view.py
Role:
- Read-only projection of the game for the display (player) screens.
- Attaches a read-only handle on the status slot: it can observe, never write.

Snapshot rules:
- The character is only revealed while the round is being guessed; during
  `choosing` the operator may still re-roll it.
- `timeRemainingMs` is recomputed from the stored end timestamp at each call.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from sarabanda.models.game import PHASE_GUESSING, GameStatus
from sarabanda.services import storage_keys
from sarabanda.services.character_pool import category_counts, effective_filters
from sarabanda.services.migrations import upgrade_status
from sarabanda.services.state_channel import ChannelStore, StateChannel
from sarabanda.services.turn_engine import standings, time_remaining_ms


def build_snapshot(status: GameStatus, now: Optional[int] = None) -> Dict[str, Any]:
    cfg = status.config
    revealed = status.current_character if status.phase == PHASE_GUESSING else None
    team = (
        cfg.team_names[status.current_team_index]
        if status.current_team_index is not None and status.current_team_index < len(cfg.team_names)
        else None
    )
    categories = category_counts(status.characters, status.used_character_ids, effective_filters(cfg))
    return {
        "phase": status.phase,
        "isGameActive": status.is_game_active,
        "currentRound": status.current_round,
        "numberOfRounds": cfg.number_of_rounds,
        "currentCategory": status.current_category if revealed is not None else None,
        "currentCharacter": revealed.model_dump(mode="json", by_alias=True) if revealed is not None else None,
        "turnType": status.turn_type,
        "currentTeam": team,
        "isTimerRunning": status.is_timer_running,
        "timeRemainingMs": time_remaining_ms(status, now),
        "teamNames": list(cfg.team_names),
        "scores": {t: status.scores.get(t, 0.0) for t in cfg.team_names},
        "standings": [{"team": t, "score": s} for t, s in standings(status)],
        "categories": [c.model_dump() for c in categories],
        "roundsPlayed": len(status.round_history),
    }


class DisplayView:
    """What a display screen holds: a read-only status handle plus helpers."""

    def __init__(self, store: ChannelStore) -> None:
        self.channel: StateChannel = store.open(
            storage_keys.STATUS,
            GameStatus,
            GameStatus(),
            read_only=True,
            upgrade=upgrade_status,
        )

    @property
    def status(self) -> GameStatus:
        return self.channel.read()

    def snapshot(self, now: Optional[int] = None) -> Dict[str, Any]:
        return build_snapshot(self.status, now)

    def subscribe(self, callback: Callable[[GameStatus], None]) -> Callable[[], None]:
        return self.channel.subscribe(callback)

    def start(self, interval: Optional[float] = None) -> None:
        self.channel.start(interval)

    async def aclose(self) -> None:
        await self.channel.aclose()
