"""GameEngine: the state machine that owns a GameState.

One player turn (submit_action):
  1. Append the player's entry, set is_typing.
  2. Build the narrator request from the current state (lingcao.prompts).
  3. Stream the reply. Chunks only touch streaming_content and are forwarded
     to observers as "chunk" events.
  4. Retry on LLMError or empty output, then fall back to a canned line.
  5. Parse the final text once: choices, stat deltas, item gains, speaker.
  6. Apply, log, evaluate rules, save.
  7. Kick off history compression in the background if the log is long.

Every other transition (advance_time, use_item, select_scene, ...) is
synchronous and ends with the same evaluate → save → notify tail. Rejected
transitions return False/None and change nothing.

Observers registered with subscribe() receive (event, payload):
  "state"   payload is the GameState
  "chunk"   payload is one streamed text fragment
  "ending"  payload is the Ending that was just reached
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from typing import Any

from . import prompts, rules, storage
from .catalog import (
    CHARACTER_CHOICES,
    CHARACTER_FALLBACKS,
    DEFAULT_PLAYER_NAME,
    ENDINGS_BY_ID,
    ERROR_FALLBACK_CHARACTER,
    ERROR_FALLBACK_SCENE,
    FRAGMENT_ITEM,
    FRAGMENTS_NEEDED,
    INITIAL_CHOICES,
    ITEM_EFFECTS,
    ITEMS,
    LAST_PERIOD,
    MAX_ACTION_POINTS,
    NEW_MOON_ANNOUNCEMENT,
    NEW_MOON_EVENT,
    SCENE_CHOICES,
    SCENE_FALLBACKS,
    SCENES,
    WELCOME_TEMPLATE,
    build_characters,
    chapter_for_day,
    period,
)
from .llm import LLM, ChatMessage, LLMError
from .models import Character, Ending, Message, StatDelta
from .parser import extract_choices, parse
from .state import (
    GameState,
    add_unique,
    apply_stat_delta,
    initial_stats,
    make_message,
    make_record,
)

logger = logging.getLogger(__name__)

Observer = Callable[[str, Any], None]

MAX_CHOICES = 4
RECORD_TITLE_CHARS = 20
RECORD_CONTENT_CHARS = 100
COUNTDOWN_WARNING_DAYS = 3


def _clip(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class GameEngine:
    def __init__(
        self,
        llm: LLM,
        *,
        max_attempts: int = 2,
        autosave: bool = True,
        rng: random.Random | None = None,
        state: GameState | None = None,
    ) -> None:
        self.llm = llm
        self.max_attempts = max(1, max_attempts)
        self.autosave = autosave
        self.rng = rng or random.Random()
        self.state = state if state is not None else GameState()
        self._observers: list[Observer] = []
        self._compression: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register callback; returns a function that unregisters it."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _emit(self, event: str, payload: Any = None) -> None:
        for callback in list(self._observers):
            try:
                callback(event, payload)
            except Exception:
                logger.exception("Observer failed on %r event", event)

    def _changed(self) -> None:
        self._emit("state", self.state)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _accepting(self, op: str) -> bool:
        status = self.state.status
        if status != "in-progress":
            logger.debug("Rejected %s: game is %s", op, status)
            return False
        return True

    def _log(self, content: str, *, role: str = "system", state: GameState | None = None, **fields: Any) -> Message:
        msg = make_message(role, content, **fields)
        (state or self.state).messages.append(msg)
        return msg

    def _record(self, title: str, content: str) -> None:
        s = self.state
        s.story_records.append(make_record(s.current_day, period(s.current_period_index).name, title, content))

    def _save(self) -> None:
        if self.autosave:
            storage.save_game(self.state)

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready view of the state plus derived status and ending."""
        data = self.state.model_dump(mode="json")
        data["status"] = self.state.status
        ending = ENDINGS_BY_ID.get(self.state.ending_id) if self.state.ending_id else None
        data["ending"] = ending.model_dump(mode="json") if ending else None
        return data

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_game(self, gender: str = "male", name: str = "") -> GameState:
        """Begin a fresh session, discarding whatever was in progress."""
        if gender not in ("male", "female"):
            gender = "male"
        name = (name or "").strip() or DEFAULT_PLAYER_NAME
        characters = build_characters(gender)

        self.state = GameState(
            game_started=True,
            player_gender=gender,
            player_name=name,
            characters=characters,
            character_stats=initial_stats(characters),
        )
        self._log(WELCOME_TEMPLATE.format(name=name))
        self._record("九叶灵芝化形", f"{name}在隐秘山洞中化形成人，修仙之旅开始。")
        self.state.choices = list(INITIAL_CHOICES)
        logger.info("Game started: %s (%s)", name, gender)

        self._save()
        self._changed()
        return self.state

    def reset_game(self) -> None:
        self.state = GameState()
        storage.clear_save()
        self._changed()

    def save_game(self) -> bool:
        return storage.save_game(self.state)

    def load_game(self) -> bool:
        loaded = storage.load_game()
        if loaded is None:
            return False
        self.state = loaded
        self._changed()
        return True

    def has_save(self) -> bool:
        return storage.has_save()

    def add_system_message(self, content: str) -> Message:
        msg = self._log(content)
        self._changed()
        return msg

    # ------------------------------------------------------------------
    # Focus
    # ------------------------------------------------------------------

    def select_character(self, char_id: str | None) -> bool:
        """Focus a visible character, or clear focus with None."""
        if not self._accepting("select_character"):
            return False
        if char_id is not None:
            char = self.state.characters.get(char_id)
            if char is None or char.join_day > self.state.current_day:
                logger.debug("Rejected select_character: %r not available", char_id)
                return False
        self.state.current_character = char_id
        self._changed()
        return True

    def select_scene(self, scene_id: str) -> bool:
        """Move to an unlocked scene. Moving to the current scene is a no-op."""
        if not self._accepting("select_scene"):
            return False
        s = self.state
        if scene_id not in s.unlocked_scenes or scene_id == s.current_scene:
            logger.debug("Rejected select_scene: %r", scene_id)
            return False
        scene = SCENES[scene_id]
        s.current_scene = scene_id
        self._log(f"你来到了{scene.name}。{scene.atmosphere}", type="scene-transition", scene_id=scene_id)
        self._save()
        self._changed()
        return True

    # ------------------------------------------------------------------
    # Narrative turn
    # ------------------------------------------------------------------

    async def submit_action(self, text: str) -> Message | None:
        """Run one narrative turn. Returns the assistant entry, or None if rejected."""
        state = self.state
        if state.is_typing:
            logger.debug("Rejected submit_action: a reply is already streaming")
            return None
        if not self._accepting("submit_action"):
            return None
        text = (text or "").strip()
        if not text:
            logger.debug("Rejected submit_action: empty text")
            return None

        focused = state.characters.get(state.current_character) if state.current_character else None
        self._log(text, role="user", state=state)
        state.is_typing = True
        state.streaming_content = ""
        self._changed()

        try:
            request = prompts.build_messages(state, focused)
            logger.debug("Narrator request: %d messages", len(request))
            content, failed = await self._generate(state, request)
            if not content:
                content = self._fallback(focused, failed)
            reply = self._apply_reply(state, text, content)
        finally:
            state.is_typing = False
            state.streaming_content = ""

        if state is self.state:
            self._evaluate()
            self._save()
        self._changed()
        self._schedule_compression(state)
        return reply

    async def _generate(self, state: GameState, request: list[ChatMessage]) -> tuple[str, bool]:
        """Stream one reply with retries.

        Returns (text, failed): text is "" when every attempt came back empty
        or raised; failed is True when the last attempt raised. Any exception
        out of the backend counts as a failed attempt.
        """
        failed = False
        for attempt in range(1, self.max_attempts + 1):
            buffer = ""
            state.streaming_content = ""
            try:
                async for chunk in self.llm.stream(request):
                    if not chunk:
                        continue
                    buffer += chunk
                    state.streaming_content = buffer
                    self._emit("chunk", chunk)
            except LLMError as e:
                failed = True
                logger.warning("Narrator attempt %d/%d failed: %s", attempt, self.max_attempts, e)
                continue
            except Exception:
                failed = True
                logger.exception("Narrator attempt %d/%d crashed", attempt, self.max_attempts)
                continue
            if buffer.strip():
                return buffer, False
            failed = False
            logger.warning("Narrator attempt %d/%d returned no text", attempt, self.max_attempts)
        return "", failed

    def _fallback(self, focused: Character | None, failed: bool) -> str:
        if failed:
            return ERROR_FALLBACK_CHARACTER.format(name=focused.name) if focused else ERROR_FALLBACK_SCENE
        if focused is not None:
            return self.rng.choice(CHARACTER_FALLBACKS).format(name=focused.name)
        return self.rng.choice(SCENE_FALLBACKS)

    def _fallback_choices(self, state: GameState) -> list[str]:
        focused = state.characters.get(state.current_character) if state.current_character else None
        if focused is not None:
            return [c.format(name=focused.name) for c in CHARACTER_CHOICES]
        scene = SCENES.get(state.current_scene)
        return [c.format(scene=scene.name if scene else "周围") for c in SCENE_CHOICES]

    def _apply_reply(self, state: GameState, action: str, content: str) -> Message:
        extraction = extract_choices(content)
        parsed = parse(extraction.clean_text, state.characters, focus=state.current_character)

        applied: list[StatDelta] = []
        for d in parsed.stat_deltas:
            change = apply_stat_delta(state, d.char_id, d.stat_key, d.delta)
            if change is not None:
                applied.append(change)

        reply = self._log(
            extraction.clean_text,
            role="assistant",
            state=state,
            character=parsed.speaker_id or state.current_character,
            stat_changes=applied,
            markup=parsed.markup,
            stat_markup=parsed.stat_markup,
        )
        for gain in parsed.item_gains:
            self._gain_item(state, gain.item_id, gain.count)

        state.choices = (extraction.choices or self._fallback_choices(state))[:MAX_CHOICES]
        state.story_records.append(make_record(
            state.current_day,
            period(state.current_period_index).name,
            _clip(action, RECORD_TITLE_CHARS),
            _clip(extraction.clean_text, RECORD_CONTENT_CHARS),
        ))
        return reply

    def _gain_item(self, state: GameState, item_id: str, count: int) -> int:
        """Add up to count of an item, capped at max_count. Returns how many were added."""
        item = ITEMS[item_id]
        have = state.inventory.get(item_id, 0)
        added = min(item.max_count, have + count) - have
        if added <= 0:
            return 0
        state.inventory[item_id] = have + added
        if item_id == FRAGMENT_ITEM:
            state.pool_fragments = min(FRAGMENTS_NEEDED, state.pool_fragments + added)
        self._log(f"获得 {item.icon} {item.name} x{added}", state=state, type="item")
        return added

    # ------------------------------------------------------------------
    # History compression
    # ------------------------------------------------------------------

    def _schedule_compression(self, state: GameState) -> None:
        if self._compression is not None and not self._compression.done():
            return
        if not prompts.needs_compression(state):
            return
        self._compression = asyncio.create_task(self._compress(state))

    async def _compress(self, state: GameState) -> None:
        request, covered = prompts.build_summary_messages(state)
        try:
            summary = await self.llm.complete(request)
        except LLMError as e:
            logger.warning("History compression failed, will retry next turn: %s", e)
            return
        except Exception:
            logger.exception("History compression crashed, will retry next turn")
            return
        summary = summary.strip()
        if not summary:
            logger.warning("History compression returned no text")
            return
        state.history_summary = summary
        state.summarized_count = covered
        logger.debug("History compressed: %d entries summarised", covered)
        if state is self.state:
            self._save()

    async def drain(self) -> None:
        """Wait for any background compression to finish."""
        task = self._compression
        if task is not None:
            await task

    # ------------------------------------------------------------------
    # Time and items
    # ------------------------------------------------------------------

    def advance_time(self) -> bool:
        """Move to the next period, rolling over to a new day after the last one."""
        if not self._accepting("advance_time"):
            return False
        s = self.state
        s.current_period_index += 1
        drift: list[StatDelta] = []
        new_day = s.current_period_index > LAST_PERIOD

        if new_day:
            s.current_period_index = 0
            s.current_day += 1
            s.action_points = MAX_ACTION_POINTS
            s.new_moon_countdown = max(0, s.new_moon_countdown - 1)
            s.is_new_moon_night = s.new_moon_countdown == 0
            drift = rules.apply_daily_drift(s)

        p = period(s.current_period_index)
        chapter = chapter_for_day(s.current_day)
        self._log(
            f"第{s.current_day}天 · {p.name}",
            type="period-change",
            period_info={"day": s.current_day, "period": p.name, "chapter": chapter.name},
            stat_changes=drift,
        )
        if new_day:
            suffix = f" · 朔月倒计时{s.new_moon_countdown}天" if s.new_moon_countdown <= COUNTDOWN_WARNING_DAYS else ""
            self._record(f"进入第{s.current_day}天", f"{chapter.name} · {p.name}{suffix}")

        if chapter.id != s.current_chapter:
            s.current_chapter = chapter.id
            self._log(f"第{chapter.id}章「{chapter.name}」\n{chapter.description}", type="chapter-change")
            logger.info("Entered chapter %d: %s", chapter.id, chapter.name)

        if s.is_new_moon_night and s.current_period_index == LAST_PERIOD and NEW_MOON_EVENT not in s.triggered_events:
            self._log(NEW_MOON_ANNOUNCEMENT)

        self._evaluate()
        self._save()
        self._changed()
        return True

    def use_item(self, item_id: str) -> bool:
        """Use one item. Returns False if unknown, not held, or the game is not running."""
        item = ITEMS.get(item_id)
        if item is None:
            logger.debug("Rejected use_item: unknown item %r", item_id)
            return False
        if not self._accepting("use_item"):
            return False
        s = self.state
        count = s.inventory.get(item_id, 0)
        if count <= 0:
            self._log(f"你没有 {item.name} 了。", type="item")
            self._changed()
            return False

        if item.type == "consumable":
            s.inventory[item_id] = count - 1

        effect = ITEM_EFFECTS.get(item_id)
        applied: list[StatDelta] = []
        if effect is None:
            content = f"你使用了{item.icon} {item.name}。"
        else:
            content = effect.message
            for char_id, key, delta in effect.stat_deltas:
                change = apply_stat_delta(s, char_id, key, delta)
                if change is not None:
                    applied.append(change)
            if effect.special_night_event and s.is_new_moon_night and NEW_MOON_EVENT not in s.triggered_events:
                add_unique(s.triggered_events, effect.special_night_event)
        self._log(content, type="item", stat_changes=applied)

        self._evaluate()
        self._save()
        self._changed()
        return True

    # ------------------------------------------------------------------
    # Rules and endings
    # ------------------------------------------------------------------

    def _unlock_scenes(self) -> None:
        s = self.state
        for scene in rules.pending_unlocks(s):
            if add_unique(s.unlocked_scenes, scene.id):
                self._log(f"新场景解锁：{scene.icon} {scene.name}", type="scene-unlock", scene_id=scene.id)
                logger.info("Scene unlocked: %s", scene.id)

    def _fire_events(self) -> bool:
        s = self.state
        fired = False
        for event in rules.due_events(s):
            add_unique(s.triggered_events, event.id)
            self._log(f"【{event.name}】{event.description}", type="forced-event")
            self._record(event.name, event.description)
            logger.info("Forced event: %s", event.id)
            fired = True
        return fired

    def _evaluate(self) -> Ending | None:
        """Post-transition rules: unlocks, forced events, then endings."""
        if self.state.status != "in-progress":
            return None
        self._unlock_scenes()
        if self._fire_events():
            self._unlock_scenes()
        ending = rules.resolve_ending(self.state, final=rules.is_final_boundary(self.state))
        if ending is not None:
            self._finish(ending)
        return ending

    def _finish(self, ending: Ending) -> None:
        self.state.ending_id = ending.id
        self._log(f"【{ending.type}】{ending.name}\n{ending.description}", type="ending")
        self._record(f"结局：{ending.name}", ending.description)
        logger.info("Ending reached: %s", ending.id)
        self._emit("ending", ending)

    def set_ending(self, ending_id: str) -> bool:
        """Force an ending. Unknown ids and a second ending are rejected."""
        ending = ENDINGS_BY_ID.get(ending_id)
        if ending is None:
            logger.debug("Rejected set_ending: unknown ending %r", ending_id)
            return False
        if not self._accepting("set_ending"):
            return False
        self._finish(ending)
        self._save()
        self._changed()
        return True
