"""Tests for lingcao.rules: unlocks, forced events, endings, daily drift."""

import pytest

from lingcao.catalog import ENDINGS_BY_ID, NEW_MOON_SHELTER_EVENT, SCENES, build_characters
from lingcao.engine import GameEngine
from lingcao.models import Character, StatMeta
from lingcao.rules import (
    apply_daily_drift,
    due_events,
    ending_met,
    is_final_boundary,
    is_scene_unlockable,
    pending_unlocks,
    resolve_ending,
)
from lingcao.state import GameState, initial_stats


@pytest.fixture
def state() -> GameState:
    chars = build_characters("male")
    return GameState(game_started=True, characters=chars, character_stats=initial_stats(chars))


# ── scene unlocks ────────────────────────────────────────────


def test_starting_scene_has_no_condition(state):
    assert not is_scene_unlockable(SCENES["cave"], state)


def test_unlock_by_event(state):
    assert not is_scene_unlockable(SCENES["tianjicheng"], state)
    state.triggered_events.append("meet-yeqingshuang")
    assert is_scene_unlockable(SCENES["tianjicheng"], state)


def test_unlock_needs_event_and_stat(state):
    scene = SCENES["yaowanggu"]
    state.character_stats["danchenzi"]["coveting"] = 80
    assert not is_scene_unlockable(scene, state)

    state.triggered_events.append("danchenzi-invitation")
    state.character_stats["danchenzi"]["coveting"] = 79
    assert not is_scene_unlockable(scene, state)

    state.character_stats["danchenzi"]["coveting"] = 80
    assert is_scene_unlockable(scene, state)


def test_drift_alone_does_not_unlock_before_invitation(state, llm):
    engine = GameEngine(llm, autosave=False, state=state)
    for _ in range(6 * 6):
        engine.advance_time()
    assert state.current_day == 7
    assert state.character_stats["danchenzi"]["coveting"] == 80
    assert "yaowanggu" not in state.unlocked_scenes


def test_unlock_is_monotonic(state, llm):
    engine = GameEngine(llm, autosave=False, state=state)
    state.triggered_events.append("danchenzi-invitation")
    state.character_stats["danchenzi"]["coveting"] = 85
    engine.advance_time()
    assert "yaowanggu" in state.unlocked_scenes

    engine.use_item("concealment-talisman")
    assert state.character_stats["danchenzi"]["coveting"] == 75
    engine.advance_time()
    assert "yaowanggu" in state.unlocked_scenes


def test_pending_unlocks_skips_unlocked(state):
    state.triggered_events.append("chili-proposal")
    assert [s.id for s in pending_unlocks(state)] == ["forest"]
    state.unlocked_scenes.append("forest")
    assert pending_unlocks(state) == []


# ── forced events ────────────────────────────────────────────


def test_due_events_match_period(state):
    state.current_day = 3
    state.current_period_index = 0
    assert due_events(state) == []
    state.current_period_index = 1
    assert [e.id for e in due_events(state)] == ["meet-yeqingshuang"]


def test_due_events_without_period_fire_any_time(state):
    state.current_day = 8
    state.current_period_index = 4
    assert [e.id for e in due_events(state)] == ["danchenzi-invitation"]


def test_due_events_fire_once(state):
    state.current_day = 8
    state.triggered_events.append("danchenzi-invitation")
    assert due_events(state) == []


# ── endings ──────────────────────────────────────────────────


def test_alchemy_is_immediate(state):
    state.character_stats["danchenzi"]["coveting"] = 99
    assert resolve_ending(state, final=False) is None
    state.character_stats["danchenzi"]["coveting"] = 100
    assert resolve_ending(state, final=False).id == "be-alchemy"


def test_non_immediate_endings_wait_for_final(state):
    state.character_stats["chili"].update(affection=90, assimilation=70)
    assert resolve_ending(state, final=False) is None
    assert resolve_ending(state, final=True).id == "he-demon-flower"


def test_neutral_ending_is_the_default(state):
    assert resolve_ending(state, final=True).id == "ne-half"


def test_prey_requires_unprotected_new_moon(state):
    prey = ENDINGS_BY_ID["be-prey"]
    assert not ending_met(prey, state)
    state.is_new_moon_night = True
    assert ending_met(prey, state)
    state.triggered_events.append(NEW_MOON_SHELTER_EVENT)
    assert not ending_met(prey, state)


@pytest.mark.parametrize("char_id,key", [("yeqingshuang", "affection"), ("yeqingshuang", "trust"), ("chili", "affection")])
def test_prey_avoided_by_any_ally(state, char_id, key):
    state.is_new_moon_night = True
    state.character_stats[char_id][key] = 30
    assert not ending_met(ENDINGS_BY_ID["be-prey"], state)


def test_true_person_needs_everything(state):
    te = ENDINGS_BY_ID["te-true-person"]
    state.character_stats["yeqingshuang"].update(affection=80, trust=60)
    state.pool_fragments = 3
    assert not ending_met(te, state)
    state.triggered_events.append("yeqingshuang-truth")
    assert ending_met(te, state)
    state.pool_fragments = 2
    assert not ending_met(te, state)


def test_priority_true_before_demon_flower(state):
    state.character_stats["yeqingshuang"].update(affection=80, trust=60)
    state.character_stats["chili"].update(affection=80, assimilation=60)
    state.pool_fragments = 3
    state.triggered_events.append("yeqingshuang-truth")
    assert resolve_ending(state, final=True).id == "te-true-person"


def test_alchemy_beats_everything_at_final(state):
    state.character_stats["danchenzi"]["coveting"] = 100
    state.character_stats["chili"].update(affection=80, assimilation=60)
    assert resolve_ending(state, final=True).id == "be-alchemy"


def test_final_boundary(state):
    state.current_day = 30
    state.current_period_index = 4
    assert not is_final_boundary(state)
    state.current_period_index = 5
    assert is_final_boundary(state)


# ── daily drift ──────────────────────────────────────────────


def test_auto_increment(state):
    changes = apply_daily_drift(state)
    assert state.character_stats["danchenzi"]["coveting"] == 55
    assert [(c.char_id, c.stat_key, c.delta) for c in changes] == [("danchenzi", "coveting", 5)]


def test_auto_increment_clamped(state):
    state.character_stats["danchenzi"]["coveting"] = 98
    changes = apply_daily_drift(state)
    assert state.character_stats["danchenzi"]["coveting"] == 100
    assert changes[0].delta == 2


def test_decay_rate(state):
    fading = Character(
        id="ghost", name="幽魂", avatar="幽", full_image="", gender="female", age=1,
        title="", description="", personality="", speaking_style="", secret="",
        theme_color="#fff",
        stat_metas=[StatMeta(key="memory", label="记忆", color="#fff", icon="·", decay_rate=3)],
        initial_stats={"memory": 2},
    )
    state.characters["ghost"] = fading
    state.character_stats["ghost"] = {"memory": 2}
    apply_daily_drift(state)
    assert state.character_stats["ghost"]["memory"] == 0
