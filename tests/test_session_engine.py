import asyncio
import random

import orjson

from sarabanda.models.game import GameConfig
from sarabanda.services import storage_keys
from sarabanda.services.character_pool import fingerprint
from sarabanda.services.display_view import DisplayView, build_snapshot
from sarabanda.services.session_engine import SessionEngine
from sarabanda.services.state_channel import ChannelStore


def _engine(tmp_path, pool, rounds=3):
    engine = SessionEngine(ChannelStore(tmp_path), rng=random.Random(3))
    engine.load()
    engine.load_characters(pool)
    engine.update_config(GameConfig(team_names=["Red", "Blue"], number_of_rounds=rounds, turn_scores=[2, 1]))
    return engine


def test_load_merges_legacy_used_ids(tmp_path, pool):
    store = ChannelStore(tmp_path)
    legacy = [fingerprint(pool[0])]
    store.set_raw(storage_keys.USED_CHARACTERS, orjson.dumps(legacy).decode())
    store.set_raw(storage_keys.STATUS, orjson.dumps({"usedCharacters": ["old_one"], "phase": "ready"}).decode())

    status = SessionEngine(store).load()
    assert status.phase == "prepping"
    assert status.used_character_ids == ["old_one", legacy[0]]
    # the legacy slot is only read
    assert orjson.loads(store.get_raw(storage_keys.USED_CHARACTERS)) == legacy


def test_config_slot_wins_at_load(tmp_path):
    store = ChannelStore(tmp_path)
    store.set_raw(storage_keys.CONFIG, orjson.dumps({"teamNames": ["X", "Y", "Z"]}).decode())
    status = SessionEngine(store).load()
    assert status.config.team_names == ["X", "Y", "Z"]


def test_people_slot_feeds_status(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    assert engine.status.characters == pool
    assert [c.props for c in engine.people_channel.read()] == [c.props for c in pool]


def test_config_written_elsewhere_reaches_status(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    # another process edits the config slot
    other = ChannelStore(tmp_path).open(storage_keys.CONFIG, GameConfig, GameConfig())
    other.write(GameConfig(team_names=["Owls", "Foxes", "Bats"]))

    assert engine.config_channel.poll_once() is True
    assert engine.status.config.team_names == ["Owls", "Foxes", "Bats"]


def test_full_game_to_stopping_and_reset(tmp_path, pool):
    engine = _engine(tmp_path, pool, rounds=2)
    assert engine.start_game().ok
    for _ in range(2):
        assert engine.confirm().ok
        assert engine.award(0).ok

    status = engine.status
    assert status.phase == "stopping"
    assert status.scores == {"Red": 4.0, "Blue": 0.0}
    assert len(status.used_character_ids) == 2

    assert engine.reset_game().ok
    status = engine.status
    assert status.phase == "prepping"
    assert status.used_character_ids == []
    assert status.config.team_names == ["Red", "Blue"]


def test_refused_operation_does_not_write(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    before = engine.store.get_raw(storage_keys.STATUS)
    version = engine.status_channel.version

    out = engine.confirm()
    assert not out.ok
    assert out.code == "wrong_phase"
    assert engine.store.get_raw(storage_keys.STATUS) == before
    assert engine.status_channel.version == version


def test_resize_teams_updates_both_slots(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    assert engine.resize_teams(4).ok
    assert engine.config_channel.read().team_names == ["Red", "Blue", "Team 3", "Team 4"]
    assert engine.status.config.turn_scores == [2, 1, 1, 1]


def test_timer_expiry_is_checked_on_demand(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    engine.start_game()
    engine.confirm()
    assert engine.start_timer(duration_s=10, now=0).ok
    assert engine.status.timer_ends_at_ms == 10_000

    assert engine.check_timer(now=5_000) is False
    assert engine.check_timer(now=10_000) is True
    status = engine.status
    assert status.is_timer_running is False
    assert status.phase == "guessing"


def test_timer_watcher_stops_expired_timer(tmp_path, pool, monkeypatch):
    from sarabanda.config.settings import settings

    monkeypatch.setattr(settings, "TIMER_TICK_SECONDS", 0.01)

    async def scenario():
        engine = _engine(tmp_path, pool)
        engine.start_game()
        engine.confirm()
        engine.start_timer(duration_s=0.02)
        for _ in range(200):
            if not engine.status.is_timer_running:
                break
            await asyncio.sleep(0.01)
        running = engine.status.is_timer_running
        await engine.stop()
        return running

    assert asyncio.run(scenario()) is False


def test_display_hides_character_until_confirmed(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    view = DisplayView(engine.store)
    seen = []
    view.subscribe(seen.append)

    engine.start_game()
    snap = view.snapshot()
    assert snap["phase"] == "choosing"
    assert snap["currentCharacter"] is None
    assert snap["currentCategory"] is None

    engine.confirm()
    snap = view.snapshot()
    assert snap["currentCharacter"]["imageRef"] == engine.status.current_character.image_ref
    assert snap["currentTeam"] == "Red"
    assert seen[-1].phase == "guessing"


def test_display_view_never_writes(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    view = DisplayView(engine.store)
    before = engine.store.get_raw(storage_keys.STATUS)
    assert view.channel.write(engine.status.model_copy(update={"phase": "stopping"})) is False
    assert engine.store.get_raw(storage_keys.STATUS) == before


def test_snapshot_reports_remaining_time_and_categories(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    engine.start_game()
    engine.confirm()
    engine.start_timer(duration_s=30, now=1_000)
    snap = build_snapshot(engine.status, now=11_000)
    assert snap["isTimerRunning"] is True
    assert snap["timeRemainingMs"] == 20_000
    assert {c["name"] for c in snap["categories"]} == {"A", "B"}
    assert snap["standings"][0] == {"team": "Red", "score": 0.0}


def test_malformed_config_slot_keeps_status_copy_at_load(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    engine.update_config(GameConfig(team_names=["Owls", "Foxes", "Bats"], number_of_rounds=4))
    engine.store.set_raw(storage_keys.CONFIG, "{broken")

    status = SessionEngine(ChannelStore(tmp_path)).load()
    assert status.config.team_names == ["Owls", "Foxes", "Bats"]
    assert status.config.number_of_rounds == 4
    # the slot is rewritten from the status copy
    assert orjson.loads(engine.store.get_raw(storage_keys.CONFIG))["teamNames"] == ["Owls", "Foxes", "Bats"]


def test_malformed_slots_seen_by_poll_do_not_reach_status(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    engine.store.set_raw(storage_keys.CONFIG, b"\xff\xfe not json")
    engine.store.set_raw(storage_keys.PEOPLE, "[{]")

    assert engine.config_channel.poll_once() is True
    assert engine.people_channel.poll_once() is True
    status = engine.status
    assert status.config.team_names == ["Red", "Blue"]
    assert status.characters == pool


def test_teams_cannot_change_during_a_game(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    engine.start_game()
    engine.confirm()
    assert engine.award(0).ok
    assert engine.status.scores == {"Red": 2.0, "Blue": 0.0}

    renamed = engine.set_team_names(["Rouge", "Blue"])
    assert not renamed.ok
    assert renamed.code == "wrong_phase"
    assert engine.resize_teams(3).code == "wrong_phase"

    status = engine.status
    assert status.config.team_names == ["Red", "Blue"]
    assert status.scores == {"Red": 2.0, "Blue": 0.0}
    assert engine.config_channel.read().team_names == ["Red", "Blue"]

    # other settings stay editable
    assert engine.update_config(status.config.model_copy(update={"number_of_rounds": 5})).ok
    assert engine.status.config.number_of_rounds == 5


def test_team_rename_from_another_process_is_rolled_back_mid_game(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    engine.start_game()
    other = ChannelStore(tmp_path).open(storage_keys.CONFIG, GameConfig, GameConfig())
    other.write(GameConfig(team_names=["Rouge", "Bleu"]))

    engine.config_channel.poll_once()
    assert engine.status.config.team_names == ["Red", "Blue"]
    assert other.read().team_names == ["Red", "Blue"]


def test_teams_can_be_renamed_again_after_ending(tmp_path, pool):
    engine = _engine(tmp_path, pool)
    engine.start_game()
    engine.end_game()
    assert engine.set_team_names(["Rouge", "Bleu"]).ok
    assert engine.status.config.team_names == ["Rouge", "Bleu"]
