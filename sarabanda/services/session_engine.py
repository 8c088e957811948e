"""
Service: session_engine.py
Role:
- Operator-side orchestration of one game: owns the writable handles on the
  persisted slots and commits the states returned by the reducers.
- Startup migration (legacy slots / older shapes) and two-way sync between the
  config slot and `status.config`, and from the people slot into
  `status.characters`.
- Timer watcher: a cancellable task that stops an expired timer (no scoring).

Slots:
- sarabanda_config  (GameConfig, read/write)
- sarabanda_status  (GameStatus, read/write, single writer)
- sarabanda_people  (list[Character], read/write, filled by the ingestion layer)
- sarabanda_used_characters (legacy list[str], read-only, merged at load)

Internal API used by the routes:
- ENGINE.status
- ENGINE.start_game(), reroll(), confirm(), pass_turn(), start_timer(), stop_timer()
- ENGINE.award(team_index, points, turn_type), edit_round_score(round, team, value)
- ENGINE.end_game(), reset_game()
- ENGINE.update_config(config), resize_teams(count), set_team_names(names), load_characters(chars)
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from sarabanda.config.settings import settings
from sarabanda.models.character import Character
from sarabanda.models.game import GameConfig, GameStatus, TurnType
from sarabanda.models.outcome import Outcome
from sarabanda.services import game_config, phase_machine, storage_keys, turn_engine
from sarabanda.services.migrations import (
    merge_legacy_used,
    upgrade_config,
    upgrade_people,
    upgrade_status,
)
from sarabanda.services.state_channel import ChannelStore, StateChannel

logger = logging.getLogger(__name__)


@dataclass
class SessionEngine:
    store: ChannelStore
    rng: Optional[random.Random] = None
    config_channel: StateChannel = field(init=False, repr=False)
    status_channel: StateChannel = field(init=False, repr=False)
    people_channel: StateChannel = field(init=False, repr=False)
    used_channel: StateChannel = field(init=False, repr=False)
    _timer_task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.config_channel = self.store.open(
            storage_keys.CONFIG, GameConfig, GameConfig(), upgrade=upgrade_config
        )
        self.status_channel = self.store.open(
            storage_keys.STATUS, GameStatus, GameStatus(), upgrade=upgrade_status
        )
        self.people_channel = self.store.open(
            storage_keys.PEOPLE, List[Character], [], upgrade=upgrade_people
        )
        self.used_channel = self.store.open(
            storage_keys.USED_CHARACTERS, List[str], [], read_only=True
        )
        self.config_channel.subscribe(self._on_config)
        self.people_channel.subscribe(self._on_people)

    # -----------------------------
    # Load / sync
    # -----------------------------
    def load(self) -> GameStatus:
        """
        Bring the persisted slots to the current shape and in agreement:
        - config slot wins over status.config when it holds a valid config
          (a malformed config slot is repaired from status.config),
        - people slot fills status.characters when it holds characters,
        - legacy used fingerprints are merged into status.used_character_ids.
        """
        status = self.status_channel.read()
        config = self.config_channel.read_valid()
        if config is None:
            if self.config_channel.is_malformed():
                logger.warning("Config slot is malformed, keeping the status copy", extra={"channel": storage_keys.CONFIG})
            config = status.config
        elif not phase_machine.update_config(status, config).ok:
            logger.warning("Config slot renames the teams of a running game, keeping the status copy")
            config = status.config
        people = self.people_channel.read()
        legacy_used = self.used_channel.read()

        update: dict[str, Any] = {
            "config": config,
            "used_character_ids": merge_legacy_used(status.used_character_ids, legacy_used),
        }
        if people:
            update["characters"] = people
        status = status.model_copy(update=update)

        self.status_channel.write(status)
        self.config_channel.write(config)
        logger.info(
            "Session loaded",
            extra={"phase": status.phase, "characters": len(status.characters), "used": len(status.used_character_ids)},
        )
        return status

    def _on_config(self, config: GameConfig) -> None:
        if self.config_channel.is_malformed():
            # the default handed over for a corrupt slot must not replace the status copy
            logger.warning("Ignoring malformed config slot", extra={"channel": storage_keys.CONFIG})
            return
        outcome = self._apply(phase_machine.update_config, config)
        if not outcome.ok:
            # refused edit written by another process: put the slot back in line with the status
            self.config_channel.write(self.status.config)

    def _on_people(self, characters: List[Character]) -> None:
        if self.people_channel.is_malformed():
            logger.warning("Ignoring malformed people slot", extra={"channel": storage_keys.PEOPLE})
            return
        self._apply(phase_machine.update_characters, characters)

    # -----------------------------
    # Commit
    # -----------------------------
    @property
    def status(self) -> GameStatus:
        return self.status_channel.read()

    def _apply(self, reducer: Callable[..., Outcome], *args: Any, **kwargs: Any) -> Outcome:
        """Run a reducer on the persisted status and commit the result when ok."""
        outcome = reducer(self.status, *args, **kwargs)
        if outcome.ok:
            self.status_channel.write(outcome.state)
        else:
            logger.info(
                "Operation refused",
                extra={"operation": getattr(reducer, "__name__", "?"), "code": outcome.code, "error": outcome.error},
            )
        return outcome

    # -----------------------------
    # Phase transitions
    # -----------------------------
    def start_game(self) -> Outcome:
        return self._apply(phase_machine.start_game, self.rng)

    def reroll(self) -> Outcome:
        return self._apply(phase_machine.reroll, self.rng)

    def confirm(self) -> Outcome:
        return self._apply(phase_machine.confirm_character)

    def end_game(self) -> Outcome:
        return self._apply(phase_machine.end_game)

    def reset_game(self) -> Outcome:
        return self._apply(phase_machine.reset_game)

    # -----------------------------
    # Turns / scoring
    # -----------------------------
    def pass_turn(self) -> Outcome:
        return self._apply(turn_engine.pass_turn)

    def start_timer(self, duration_s: Optional[float] = None, now: Optional[int] = None) -> Outcome:
        outcome = self._apply(turn_engine.start_timer, now, duration_s)
        if outcome.ok:
            self._ensure_timer_watch()
        return outcome

    def stop_timer(self) -> Outcome:
        return self._apply(turn_engine.stop_timer)

    def award(
        self,
        team_index: Optional[int],
        points: Any = None,
        turn_type: Optional[TurnType] = None,
    ) -> Outcome:
        return self._apply(turn_engine.award, team_index, points, turn_type=turn_type, rng=self.rng)

    def edit_round_score(self, round_number: int, team: str, value: Any) -> Outcome:
        return self._apply(turn_engine.edit_round_score, round_number, team, value)

    # -----------------------------
    # Configuration / pool
    # -----------------------------
    def update_config(self, config: GameConfig) -> Outcome:
        """Apply `config` to the status, then persist it in the config slot."""
        outcome = self._apply(phase_machine.update_config, config)
        if outcome.ok:
            self.config_channel.write(config)
        return outcome

    def resize_teams(self, count: int) -> Outcome:
        return self.update_config(game_config.resize_teams(self.status.config, count))

    def set_team_names(self, names: List[str]) -> Outcome:
        return self.update_config(game_config.set_team_names(self.status.config, names))

    def load_characters(self, characters: List[Character]) -> Outcome:
        """Store a new pool handed over by the ingestion layer."""
        self.people_channel.write(list(characters))
        return self._apply(phase_machine.update_characters, list(characters))

    # -----------------------------
    # Timer watcher
    # -----------------------------
    def check_timer(self, now: Optional[int] = None) -> bool:
        """Stop the timer when it expired. Returns True when the status changed."""
        current = self.status
        expired = turn_engine.expire_timer(current, now)
        if expired is current:
            return False
        logger.info("Timer expired", extra={"round": current.current_round, "turn_type": current.turn_type})
        return self.status_channel.write(expired)

    def _ensure_timer_watch(self) -> None:
        if self._timer_task and not self._timer_task.done():
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # sync caller without loop (tests, scripts): expiry is checked on demand
            return

        async def _runner():
            try:
                while self.status.is_timer_running:
                    await asyncio.sleep(settings.TIMER_TICK_SECONDS)
                    self.check_timer()
            except asyncio.CancelledError:
                return

        self._timer_task = asyncio.create_task(_runner())

    async def abort_timer_watch(self) -> None:
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
        self._timer_task = None

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def start(self) -> None:
        """Start the reconciliation polls (needs a running loop)."""
        self.config_channel.start()
        self.people_channel.start()
        self.status_channel.start()
        if self.status.is_timer_running:
            self._ensure_timer_watch()

    async def stop(self) -> None:
        await self.abort_timer_watch()
        for channel in (self.config_channel, self.people_channel, self.status_channel, self.used_channel):
            await channel.aclose()
