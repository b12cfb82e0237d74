"""Tests for the versioned save blob."""

import json

import pytest

from lingcao import storage
from lingcao.catalog import build_characters
from lingcao.state import GameState, initial_stats, make_message, make_record


@pytest.fixture
def state() -> GameState:
    characters = build_characters("female")
    return GameState(
        game_started=True,
        player_gender="female",
        player_name="青芝",
        characters=characters,
        character_stats=initial_stats(characters),
    )


def _raw() -> dict:
    return json.loads(storage.read_blob(storage.SAVE_KEY))


def test_no_save():
    assert storage.load_game() is None
    assert storage.has_save() is False


def test_round_trip(state):
    state.current_day = 7
    state.character_stats["chili"]["affection"] = 42
    state.triggered_events.append("meet-yeqingshuang")
    state.messages.append(make_message("assistant", "【赤璃】\"来了？\"", character="chili"))

    assert storage.save_game(state)
    loaded = storage.load_game()

    assert loaded.player_name == "青芝"
    assert loaded.current_day == 7
    assert loaded.character_stats["chili"]["affection"] == 42
    assert loaded.triggered_events == ["meet-yeqingshuang"]
    assert loaded.messages[0].character == "chili"
    assert loaded.characters["yeqingshuang"].gender == "male"


def test_blob_shape(state):
    state.is_typing = True
    state.streaming_content = "半句"
    storage.save_game(state)
    data = _raw()
    assert data["version"] == 1
    assert "is_typing" not in data
    assert "streaming_content" not in data


def test_transient_fields_reset_on_load(state):
    state.is_typing = True
    storage.save_game(state)
    assert storage.load_game().is_typing is False


def test_truncates_log_and_records(state):
    for i in range(40):
        state.messages.append(make_message("user", f"第{i}句"))
    for i in range(60):
        state.story_records.append(make_record(1, "清晨", f"记录{i}", ""))
    storage.save_game(state)

    loaded = storage.load_game()
    assert len(loaded.messages) == 30
    assert loaded.messages[0].content == "第10句"
    assert len(loaded.story_records) == 50
    assert loaded.story_records[-1].title == "记录59"


def test_summarized_count_clamped(state):
    state.messages.append(make_message("user", "一句"))
    state.summarized_count = 12
    storage.save_game(state)
    assert storage.load_game().summarized_count == 1


def test_wrong_version(state):
    storage.save_game(state)
    data = _raw()
    data["version"] = 2
    storage.write_blob(storage.SAVE_KEY, json.dumps(data))
    assert storage.load_game() is None
    assert storage.has_save() is False


def test_corrupt_blob():
    storage.write_blob(storage.SAVE_KEY, "{not json")
    assert storage.load_game() is None
    assert storage.has_save() is False


def test_has_save_checks_version(state):
    storage.save_game(state)
    assert storage.has_save() is True
    storage.write_blob(storage.SAVE_KEY, json.dumps({"player_name": "旧档"}))
    assert storage.has_save() is False
    storage.write_blob(storage.SAVE_KEY, "[1]")
    assert storage.has_save() is False


def test_invalid_fields(state):
    storage.save_game(state)
    data = _raw()
    data["current_day"] = "soon"
    storage.write_blob(storage.SAVE_KEY, json.dumps(data))
    assert storage.load_game() is None


def test_partial_blob_takes_defaults():
    storage.write_blob(storage.SAVE_KEY, json.dumps({
        "version": 1,
        "game_started": True,
        "player_gender": "male",
        "character_stats": {"chili": {"affection": 33}},
    }))
    loaded = storage.load_game()
    assert set(loaded.characters) == {"danchenzi", "yeqingshuang", "chili"}
    assert loaded.characters["yeqingshuang"].gender == "female"
    assert loaded.character_stats["chili"] == {"affection": 33, "assimilation": 0}
    assert loaded.character_stats["danchenzi"] == {"coveting": 50}
    assert loaded.unlocked_scenes == ["cave", "outskirts"]
    assert loaded.inventory == {"concealment-talisman": 3}


def test_bad_gender_rebuilt_as_male():
    storage.write_blob(storage.SAVE_KEY, json.dumps({"version": 1, "player_gender": "other"}))
    loaded = storage.load_game()
    assert loaded.player_gender == "male"
    assert loaded.characters["yeqingshuang"].gender == "female"


def test_clear_save(state):
    storage.save_game(state)
    assert storage.has_save()
    storage.clear_save()
    assert not storage.has_save()
    storage.clear_save()


def test_save_failure_reported(state, monkeypatch):
    def boom(key, text):
        raise OSError("disk full")

    monkeypatch.setattr("lingcao.storage.saves.write_blob", boom)
    assert storage.save_game(state) is False
