"""Pure rule checks over a GameState: scene unlocks, forced events, endings.

Nothing here mutates state except apply_daily_drift; GameEngine decides what
to do with the results and in what order.
"""

from .catalog import (
    ENDINGS,
    FORCED_EVENTS,
    LAST_PERIOD,
    MAX_DAYS,
    SCENES,
)
from .models import Ending, ForcedEvent, Scene, StatDelta, StatRequirement
from .state import GameState, apply_stat_delta


def _stat(state: GameState, req: StatRequirement) -> int:
    return state.character_stats.get(req.char_id, {}).get(req.key, 0)


def is_scene_unlockable(scene: Scene, state: GameState) -> bool:
    """Every populated clause of the unlock condition must hold.

    A scene without a condition is never unlocked by rules.
    """
    cond = scene.unlock_condition
    if cond is None:
        return False
    if cond.event and cond.event not in state.triggered_events:
        return False
    if cond.stat and _stat(state, cond.stat) < cond.stat.min:
        return False
    return True


def pending_unlocks(state: GameState) -> list[Scene]:
    return [
        scene for sid, scene in SCENES.items()
        if sid not in state.unlocked_scenes and is_scene_unlockable(scene, state)
    ]


def due_events(state: GameState) -> list[ForcedEvent]:
    """Untriggered events scheduled for the current day (and period, if set)."""
    return [
        e for e in FORCED_EVENTS
        if e.trigger_day == state.current_day
        and e.id not in state.triggered_events
        and (e.trigger_period is None or e.trigger_period == state.current_period_index)
    ]


def ending_met(ending: Ending, state: GameState) -> bool:
    cond = ending.requires
    if cond.special_night is not None and state.is_new_moon_night != cond.special_night:
        return False
    if any(_stat(state, r) < r.min for r in cond.stats_at_least):
        return False
    if any(_stat(state, r) >= r.min for r in cond.stats_below):
        return False
    if state.pool_fragments < cond.min_fragments:
        return False
    if any(e not in state.triggered_events for e in cond.events_required):
        return False
    if any(e in state.triggered_events for e in cond.events_absent):
        return False
    return True


def is_final_boundary(state: GameState) -> bool:
    return state.current_day >= MAX_DAYS and state.current_period_index == LAST_PERIOD


def resolve_ending(state: GameState, final: bool) -> Ending | None:
    """First matching ending in priority order.

    Before the final boundary only immediate endings are considered. At the
    boundary the table always yields one, since the neutral ending has no
    conditions.
    """
    for ending in ENDINGS:
        if not final and not ending.requires.immediate:
            continue
        if ending_met(ending, state):
            return ending
    return None


def apply_daily_drift(state: GameState) -> list[StatDelta]:
    """Apply each StatMeta's auto_increment and decay_rate for one day."""
    applied: list[StatDelta] = []
    for cid, char in state.characters.items():
        for meta in char.stat_metas:
            delta = (meta.auto_increment or 0) - (meta.decay_rate or 0)
            if not delta:
                continue
            change = apply_stat_delta(state, cid, meta.key, delta)
            if change is not None and change.delta:
                applied.append(change)
    return applied
