"""Core domain models.

Catalog types (characters, scenes, items, chapters, events, endings) are
immutable reference data; Message and StoryRecord are the append-only log
entries held by the game state. Pydantic is used for validation and
serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Gender = Literal["male", "female"]
Role = Literal["user", "assistant", "system"]
ItemType = Literal["consumable", "collectible", "quest"]
EndingType = Literal["TE", "HE", "BE", "NE"]

MessageType = Literal[
    "scene-transition",
    "period-change",
    "chapter-change",
    "scene-unlock",
    "forced-event",
    "item",
    "ending",
]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class StatMeta(_Frozen):
    """One numeric relationship axis a character exposes."""

    key: str
    label: str
    color: str
    icon: str
    auto_increment: int | None = None  # added once per new day
    decay_rate: int | None = None  # subtracted once per new day


class Character(_Frozen):
    """An NPC. stat_metas is the only source of a character's stat keys."""

    id: str
    name: str
    avatar: str
    full_image: str
    gender: Gender
    age: int
    title: str
    description: str
    personality: str
    speaking_style: str
    secret: str
    trigger_points: list[str] = Field(default_factory=list)
    behavior_patterns: str = ""
    theme_color: str
    join_day: int = 1
    stat_metas: list[StatMeta]
    initial_stats: dict[str, int]

    def stat_meta(self, key: str) -> StatMeta | None:
        for meta in self.stat_metas:
            if meta.key == key:
                return meta
        return None

    def meta_for_label(self, label: str) -> StatMeta | None:
        """Resolve a display label, accepting the 度/值 suffix variants."""
        for meta in self.stat_metas:
            if label in (meta.label, f"{meta.label}度", f"{meta.label}值"):
                return meta
        return None


class StatRequirement(_Frozen):
    char_id: str
    key: str
    min: int


class UnlockCondition(_Frozen):
    event: str | None = None
    stat: StatRequirement | None = None


class Scene(_Frozen):
    id: str
    name: str
    icon: str
    description: str
    background: str
    atmosphere: str
    tags: list[str] = Field(default_factory=list)
    unlock_condition: UnlockCondition | None = None


class Item(_Frozen):
    id: str
    name: str
    icon: str
    type: ItemType
    description: str
    max_count: int


class Chapter(_Frozen):
    id: int
    name: str
    day_range: tuple[int, int]  # inclusive
    description: str
    objectives: list[str] = Field(default_factory=list)
    atmosphere: str = ""

    def contains(self, day: int) -> bool:
        return self.day_range[0] <= day <= self.day_range[1]


class ForcedEvent(_Frozen):
    id: str
    name: str
    trigger_day: int
    trigger_period: int | None = None
    description: str


class EndingCondition(_Frozen):
    """Declarative unlock rule for an ending.

    Every populated clause must hold. stats_below is satisfied only when
    every listed stat is strictly below its floor.
    """

    stats_at_least: list[StatRequirement] = Field(default_factory=list)
    stats_below: list[StatRequirement] = Field(default_factory=list)
    min_fragments: int = 0
    events_required: list[str] = Field(default_factory=list)
    events_absent: list[str] = Field(default_factory=list)
    special_night: bool | None = None
    immediate: bool = False  # checked on every evaluation, not just the last day


class Ending(_Frozen):
    id: str
    name: str
    type: EndingType
    description: str
    condition: str
    requires: EndingCondition = Field(default_factory=EndingCondition)


class TimePeriod(_Frozen):
    index: int
    name: str
    icon: str
    hours: str


class StatDelta(BaseModel):
    """A parsed or applied change to one character stat."""

    char_id: str
    stat_key: str
    delta: int


class ItemGain(BaseModel):
    item_id: str
    count: int = 1


class Message(BaseModel):
    """A single entry in the game's append-only message log."""

    id: str
    role: Role
    content: str
    ts: str
    character: str | None = None
    type: MessageType | None = None  # None for plain narrative turns
    scene_id: str | None = None
    period_info: dict[str, str | int] | None = None
    stat_changes: list[StatDelta] = Field(default_factory=list)
    # Escaped HTML for assistant entries; empty for everything else.
    markup: str = ""
    stat_markup: str = ""


class StoryRecord(BaseModel):
    """A journal line in the rolling story-so-far log."""

    id: str
    day: int
    period: str
    title: str
    content: str
