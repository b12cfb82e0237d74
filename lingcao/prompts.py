"""Handlebars prompt rendering and the narrator message list.

build_messages(state, focused) is pure: it reads a GameState snapshot and
returns the exact list sent to the text-completion service:

  1. one system message rendered from NARRATOR_TEMPLATE,
  2. history, either
       a. the last RECENT_WINDOW narrative entries, or
       b. once the log passes HISTORY_COMPRESS_THRESHOLD and a summary exists,
          a "[历史摘要]" system message plus the last COMPRESSED_WINDOW entries.

Template variables are pre-formatted strings; triple-stash ({{{x}}}) is used
throughout because pybars HTML-escapes double-stash output.
"""

from collections.abc import Callable
from typing import Any

import pybars

from .catalog import (
    FORCED_EVENTS,
    FRAGMENTS_NEEDED,
    GAME_SCRIPT,
    ITEMS,
    MAX_ACTION_POINTS,
    MAX_DAYS,
    NEW_MOON_SHELTER_EVENT,
    SCENES,
    STORY_INFO,
    chapter_for_day,
    period,
    stat_level,
    visible_characters,
)
from .llm import ChatMessage
from .models import Character, Message
from .state import GameState

RECENT_WINDOW = 10
COMPRESSED_WINDOW = 6
HISTORY_COMPRESS_THRESHOLD = 15
SUMMARY_SNIPPET = 200

_EVENT_NAMES = {e.id: e.name for e in FORCED_EVENTS}
_EVENT_NAMES[NEW_MOON_SHELTER_EVENT] = "隐匿符遮掩本体"

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


NARRATOR_TEMPLATE = """\
你是《{{{title}}}》的AI叙述者。

## 游戏剧本
{{{script}}}

## 当前状态
玩家「{{{player.name}}}」是一株千年九叶灵芝，化形为{{{player.form}}}。（NPC称呼: {{{player.address}}}）
第{{{clock.day}}}/{{{clock.max_days}}}天 · {{{clock.period}}}
第{{{chapter.id}}}章「{{{chapter.name}}}」(Day {{{chapter.start}}}-{{{chapter.end}}})
当前场景：{{{scene.icon}}} {{{scene.name}}} — {{{scene.description}}}
行动力：{{{clock.action_points}}}/{{{clock.max_action_points}}}
朔月倒计时：{{{clock.new_moon_countdown}}}天
已解锁场景：{{{unlocked_scenes}}}
化形池线索碎片：{{{fragments}}}
{{#if special_night}}⚠️ 当前是朔月之夜！玩家已恢复九叶灵芝本体！
{{/if}}
{{#if focus}}
## 当前互动角色
{{{focus.name}}}（{{{focus.title}}}，{{{focus.age}}}岁）
简介：{{{focus.description}}}
性格：{{{focus.personality}}}
说话风格：{{{focus.speaking_style}}}
秘密：{{{focus.secret}}}
触发点：{{{focus.trigger_points}}}
行为模式：{{{focus.behavior_patterns}}}
当前关系：{{{focus.level}}}（{{{focus.stats}}}）
{{/if}}

## 所有角色当前数值
{{#each roster}}{{{this}}}
{{/each}}
## 背包
{{{inventory}}}

## 已触发事件
{{{events}}}
"""

SUMMARY_TEMPLATE = """\
请用200字以内概括以下仙侠游戏的对话历史，保留关键剧情、角色互动和数值变化：
{{#if previous}}
此前的摘要：{{{previous}}}
{{/if}}

{{{history}}}"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def _stat_summary(char: Character, stats: dict[str, int]) -> str:
    return " ".join(f"{m.label}{stats.get(m.key, 0)}" for m in char.stat_metas)


def build_context(state: GameState, focused: Character | None) -> dict[str, Any]:
    """Assemble template variables from a state snapshot."""
    chapter = chapter_for_day(state.current_day)
    scene = SCENES.get(state.current_scene)
    male = state.player_gender == "male"

    roster = []
    for cid, char in visible_characters(state.current_day, state.characters).items():
        gender = "女" if char.gender == "female" else "男"
        roster.append(f"{char.name}({gender}): {_stat_summary(char, state.character_stats.get(cid, {}))}")

    inventory = []
    for item_id, count in state.inventory.items():
        item = ITEMS.get(item_id)
        if item is not None and count > 0:
            inventory.append(f"{item.icon} {item.name} x{count}")

    ctx: dict[str, Any] = {
        "title": STORY_INFO["title"],
        "script": GAME_SCRIPT,
        "player": {
            "name": state.player_name,
            "form": "少年" if male else "少女",
            "address": "公子/小兄弟/道友/小友" if male else "姑娘/妹妹/仙子/小姑娘",
        },
        "clock": {
            "day": str(state.current_day),
            "max_days": str(MAX_DAYS),
            "period": period(state.current_period_index).name,
            "action_points": str(state.action_points),
            "max_action_points": str(MAX_ACTION_POINTS),
            "new_moon_countdown": str(state.new_moon_countdown),
        },
        "chapter": {
            "id": str(chapter.id),
            "name": chapter.name,
            "start": str(chapter.day_range[0]),
            "end": str(chapter.day_range[1]),
        },
        "scene": {
            "icon": scene.icon if scene else "",
            "name": scene.name if scene else state.current_scene,
            "description": scene.description if scene else "",
        },
        "unlocked_scenes": "、".join(state.unlocked_scenes),
        "fragments": f"{state.pool_fragments}/{FRAGMENTS_NEEDED}",
        "special_night": state.is_new_moon_night,
        "roster": roster,
        "inventory": "、".join(inventory) or "空",
        "events": "、".join(_EVENT_NAMES.get(e, e) for e in state.triggered_events) or "无",
    }

    if focused is not None:
        stats = state.character_stats.get(focused.id, {})
        primary = focused.stat_metas[0].key if focused.stat_metas else ""
        ctx["focus"] = {
            "name": focused.name,
            "title": focused.title,
            "age": str(focused.age),
            "description": focused.description,
            "personality": focused.personality,
            "speaking_style": focused.speaking_style,
            "secret": focused.secret,
            "trigger_points": "；".join(focused.trigger_points) or "无",
            "behavior_patterns": focused.behavior_patterns or "无",
            "level": stat_level(stats.get(primary, 0))[1],
            "stats": _stat_summary(focused, stats),
        }

    return ctx


def select_history(state: GameState) -> tuple[str | None, list[Message]]:
    """Pick (summary or None, recent entries) by log size."""
    narrative = state.narrative_messages()
    if state.history_summary and len(narrative) > HISTORY_COMPRESS_THRESHOLD:
        return state.history_summary, narrative[-COMPRESSED_WINDOW:]
    return None, narrative[-RECENT_WINDOW:]


def build_messages(state: GameState, focused: Character | None) -> list[ChatMessage]:
    """Build the ordered narrator request for the current state."""
    messages: list[ChatMessage] = [
        {"role": "system", "content": render_prompt(NARRATOR_TEMPLATE, build_context(state, focused))},
    ]
    summary, recent = select_history(state)
    if summary:
        messages.append({"role": "system", "content": f"[历史摘要] {summary}"})
    messages.extend({"role": m.role, "content": m.content} for m in recent)
    return messages


def needs_compression(state: GameState) -> bool:
    """True once enough unsummarised entries have piled up."""
    count = len(state.narrative_messages())
    return count > HISTORY_COMPRESS_THRESHOLD and count - state.summarized_count > HISTORY_COMPRESS_THRESHOLD


def build_summary_messages(state: GameState) -> tuple[list[ChatMessage], int]:
    """Build the compression request.

    Returns (messages, covered) where covered is how many narrative entries the
    resulting summary stands for. Only entries not already folded into
    history_summary are sent, and the newest RECENT_WINDOW stay raw.
    """
    narrative = state.narrative_messages()
    covered = max(0, len(narrative) - RECENT_WINDOW)
    older = narrative[state.summarized_count:covered]
    history = "\n".join(f"[{m.role}]: {m.content[:SUMMARY_SNIPPET]}" for m in older)
    content = render_prompt(SUMMARY_TEMPLATE, {"previous": state.history_summary, "history": history})
    return [{"role": "user", "content": content}], covered
