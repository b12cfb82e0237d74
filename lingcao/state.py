"""The GameState aggregate and the few helpers that mutate it in place.

Only GameEngine calls the mutators; the parser and prompt builder read.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

from .catalog import (
    DEFAULT_PLAYER_NAME,
    DEFAULT_SCENE,
    MAX_ACTION_POINTS,
    NEW_MOON_COUNTDOWN,
    STARTER_INVENTORY,
    STARTING_SCENES,
    STAT_MAX,
    STAT_MIN,
)
from .models import Character, Gender, Message, StatDelta, StoryRecord

Status = Literal["not-started", "in-progress", "ended"]


class GameState(BaseModel):
    """Everything needed to resume a session."""

    game_started: bool = False
    player_gender: Gender = "male"
    player_name: str = DEFAULT_PLAYER_NAME
    characters: dict[str, Character] = Field(default_factory=dict)

    current_day: int = 1
    current_period_index: int = 0
    action_points: int = MAX_ACTION_POINTS

    current_scene: str = DEFAULT_SCENE
    current_character: str | None = None
    character_stats: dict[str, dict[str, int]] = Field(default_factory=dict)
    current_chapter: int = 1
    triggered_events: list[str] = Field(default_factory=list)
    unlocked_scenes: list[str] = Field(default_factory=lambda: list(STARTING_SCENES))
    pool_fragments: int = 0
    new_moon_countdown: int = NEW_MOON_COUNTDOWN
    is_new_moon_night: bool = False
    inventory: dict[str, int] = Field(default_factory=lambda: dict(STARTER_INVENTORY))

    messages: list[Message] = Field(default_factory=list)
    history_summary: str = ""
    summarized_count: int = 0  # narrative entries covered by history_summary
    is_typing: bool = False
    streaming_content: str = ""

    ending_id: str | None = None
    choices: list[str] = Field(default_factory=list)
    story_records: list[StoryRecord] = Field(default_factory=list)

    @property
    def status(self) -> Status:
        if not self.game_started:
            return "not-started"
        if self.ending_id:
            return "ended"
        return "in-progress"

    def narrative_messages(self) -> list[Message]:
        """Log entries without a rich type tag; these feed the prompt history."""
        return [m for m in self.messages if m.type is None]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def make_message(role: str, content: str, **fields: Any) -> Message:
    return Message(id=new_id("msg"), role=role, content=content, ts=now_iso(), **fields)


def make_record(day: int, period: str, title: str, content: str) -> StoryRecord:
    return StoryRecord(id=new_id("sr"), day=day, period=period, title=title, content=content)


def initial_stats(characters: dict[str, Character]) -> dict[str, dict[str, int]]:
    return {cid: dict(c.initial_stats) for cid, c in characters.items()}


def clamp(value: int) -> int:
    return max(STAT_MIN, min(STAT_MAX, value))


def apply_stat_delta(state: GameState, char_id: str, stat_key: str, delta: int) -> StatDelta | None:
    """Add delta to one stat, clamped to [0, 100].

    Keys the character does not declare in its stat_metas are ignored.
    Returns the change actually applied, or None when nothing was touched.
    """
    char = state.characters.get(char_id)
    stats = state.character_stats.get(char_id)
    if char is None or stats is None or char.stat_meta(stat_key) is None:
        return None
    before = stats.get(stat_key, 0)
    after = clamp(before + delta)
    stats[stat_key] = after
    return StatDelta(char_id=char_id, stat_key=stat_key, delta=after - before)


def add_unique(items: list[str], value: str) -> bool:
    """Append to an ordered set. Returns False if already present."""
    if value in items:
        return False
    items.append(value)
    return True
