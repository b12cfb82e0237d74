"""Versioned save blob over a tiny file-backed key-value store.

One key holds the whole session: {"version": 1, ...GameState fields}. The
message log and story records are truncated to their newest entries, and the
transient typing/streaming fields are never written.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from lingcao.catalog import build_characters
from lingcao.state import GameState

from .core import saves_dir

logger = logging.getLogger(__name__)

SAVE_KEY = "lingcao-save"
SAVE_VERSION = 1
SAVED_MESSAGES = 30
SAVED_RECORDS = 50

_TRANSIENT = {"is_typing", "streaming_content"}


def _blob_path(key: str) -> Path:
    return saves_dir() / f"{key}.json"


def read_blob(key: str) -> str | None:
    """Return the stored text for key, or None if nothing is stored."""
    path = _blob_path(key)
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def write_blob(key: str, text: str) -> None:
    _blob_path(key).write_text(text, encoding="utf-8")


def delete_blob(key: str) -> None:
    _blob_path(key).unlink(missing_ok=True)


def dump_state(state: GameState) -> dict[str, Any]:
    """Serialise state into the versioned save shape."""
    data = state.model_dump(mode="json", exclude=_TRANSIENT)
    data["messages"] = data["messages"][-SAVED_MESSAGES:]
    data["story_records"] = data["story_records"][-SAVED_RECORDS:]
    data["version"] = SAVE_VERSION
    return data


def save_game(state: GameState) -> bool:
    """Write the save blob. Failures are logged and reported as False."""
    try:
        write_blob(SAVE_KEY, json.dumps(dump_state(state), ensure_ascii=False))
    except (OSError, TypeError, ValueError) as e:
        logger.warning("Saving game failed: %s", e)
        return False
    return True


def _fill_defaults(data: dict[str, Any]) -> None:
    """Rebuild what an older or partial blob is missing."""
    if data.get("player_gender") not in ("male", "female"):
        data["player_gender"] = "male"
    if not data.get("characters"):
        roster = build_characters(data["player_gender"])
        data["characters"] = {cid: c.model_dump(mode="json") for cid, c in roster.items()}
    stats = data.get("character_stats") or {}
    for cid, char in data["characters"].items():
        merged = dict(char.get("initial_stats", {}))
        merged.update(stats.get(cid, {}))
        stats[cid] = merged
    data["character_stats"] = stats


def load_game() -> GameState | None:
    """Read the save blob.

    Missing, corrupt or differently-versioned blobs all load as no save.
    """
    try:
        raw = read_blob(SAVE_KEY)
    except OSError as e:
        logger.warning("Reading save failed: %s", e)
        return None
    if raw is None:
        return None

    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.warning("Save blob is not valid JSON: %s", e)
        return None
    if not isinstance(data, dict) or data.get("version") != SAVE_VERSION:
        logger.warning("Ignoring save with unsupported version %r",
                       data.get("version") if isinstance(data, dict) else None)
        return None
    data.pop("version")

    try:
        _fill_defaults(data)
        state = GameState.model_validate(data)
    except (ValidationError, TypeError, AttributeError) as e:
        logger.warning("Save blob failed validation: %s", e)
        return None

    state.summarized_count = min(state.summarized_count, len(state.narrative_messages()))
    return state


def has_save() -> bool:
    """True if a save blob exists and carries the current version."""
    try:
        raw = read_blob(SAVE_KEY)
        data = json.loads(raw) if raw is not None else None
    except (OSError, ValueError):
        return False
    return isinstance(data, dict) and data.get("version") == SAVE_VERSION


def clear_save() -> None:
    try:
        delete_blob(SAVE_KEY)
    except OSError as e:
        logger.warning("Clearing save failed: %s", e)
