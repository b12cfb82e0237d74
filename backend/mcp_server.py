"""FastMCP server exposing the game engine as MCP tools.

Tools:
  - get_status()                  compact view of clock, scene, stats, ending
  - start_game(gender, name)      begin a new session
  - select_scene(scene_id)        move to an unlocked scene
  - select_character(char_id)     focus a character ("" clears focus)
  - submit_action(text)           run one narrative turn
  - advance_time()                move to the next period
  - use_item(item_id)             use one inventory item

Rejected transitions come back as {"ok": false, "error": ...} rather than
raising, so an agent can read the reason and try something else.

The engine is a module global replaced via set_engine() for tests, or built
from the data directory config when run as __main__.

Usage:
    uv run python -m backend.mcp_server
"""

from typing import Any

from mcp.server.fastmcp import FastMCP

from lingcao.catalog import ENDINGS_BY_ID, ITEMS, SCENES, period
from lingcao.engine import GameEngine
from lingcao.llm import EchoLLM

mcp = FastMCP("lingcao-engine")

_engine: GameEngine = GameEngine(EchoLLM(), autosave=False)


def set_engine(engine: GameEngine) -> None:
    """Replace the active engine (used in tests)."""
    global _engine
    _engine = engine


def get_engine() -> GameEngine:
    """Return the active engine (used in tests to inspect state)."""
    return _engine


def _rejected(reason: str) -> dict[str, Any]:
    return {"ok": False, "error": reason, "status": _status()}


def _status() -> dict[str, Any]:
    s = _engine.state
    ending = ENDINGS_BY_ID.get(s.ending_id) if s.ending_id else None
    return {
        "status": s.status,
        "day": s.current_day,
        "period": period(s.current_period_index).name,
        "scene": s.current_scene,
        "character": s.current_character,
        "unlocked_scenes": list(s.unlocked_scenes),
        "stats": s.character_stats,
        "inventory": s.inventory,
        "choices": list(s.choices),
        "ending": ending.name if ending else None,
    }


@mcp.tool()
def get_status() -> dict:
    """Return the current clock, location, stats, inventory and ending."""
    return _status()


@mcp.tool()
def start_game(gender: str = "male", name: str = "") -> dict:
    """Start a new game. gender is "male" or "female"."""
    _engine.start_game(gender, name)
    return {"ok": True, "status": _status()}


@mcp.tool()
def select_scene(scene_id: str) -> dict:
    """Move to an unlocked scene by id."""
    if scene_id not in SCENES:
        return _rejected(f"Unknown scene {scene_id!r}")
    if not _engine.select_scene(scene_id):
        return _rejected("Scene is locked or already current")
    return {"ok": True, "status": _status()}


@mcp.tool()
def select_character(char_id: str = "") -> dict:
    """Focus a character by id. An empty id clears the focus."""
    if not _engine.select_character(char_id or None):
        return _rejected(f"Character {char_id!r} cannot be selected now")
    return {"ok": True, "status": _status()}


@mcp.tool()
async def submit_action(text: str) -> dict:
    """Run one narrative turn and return the narrator's reply."""
    reply = await _engine.submit_action(text)
    if reply is None:
        return _rejected("Action rejected")
    return {"ok": True, "reply": reply.content, "speaker": reply.character, "status": _status()}


@mcp.tool()
def advance_time() -> dict:
    """Advance to the next time period."""
    if not _engine.advance_time():
        return _rejected("Time cannot advance now")
    return {"ok": True, "status": _status()}


@mcp.tool()
def use_item(item_id: str) -> dict:
    """Use one of an inventory item by id."""
    if item_id not in ITEMS:
        return _rejected(f"Unknown item {item_id!r}")
    if not _engine.use_item(item_id):
        return _rejected(f"{ITEMS[item_id].name} cannot be used now")
    return {"ok": True, "status": _status()}


if __name__ == "__main__":
    from pathlib import Path

    from lingcao import storage
    from backend.routes.deps import build_llm

    storage.init_storage(Path(__file__).parent.parent / "data")
    config = storage.get_config()
    set_engine(GameEngine(build_llm(config["llm_connection"]), max_attempts=int(config["engine"]["max_attempts"])))
    _engine.load_game()
    mcp.run()
