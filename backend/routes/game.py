"""Game state, transitions and the save slot.

POST /game/action runs a whole turn and returns the finished reply.
POST /game/action/stream runs the same turn as text/event-stream:

    event: chunk   data: {"text": "..."}            one per streamed fragment
    event: done    data: {"message": {...}, "state": {...}}
"""

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from lingcao import storage
from lingcao.catalog import ITEMS, SCENES
from lingcao.engine import GameEngine

from .deps import get_engine
from .models import ActionBody, CharacterBody, SaveInfo, SceneBody, StartBody, TurnResult

router = APIRouter()


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def _check_action(engine: GameEngine, body: ActionBody) -> None:
    if engine.state.status != "in-progress":
        raise HTTPException(409, f"Game is {engine.state.status}")
    if engine.state.is_typing:
        raise HTTPException(409, "A reply is already streaming")
    if not body.text.strip():
        raise HTTPException(409, "Action text is empty")


@router.get("/state")
async def get_state(engine: GameEngine = Depends(get_engine)):
    """Full game state plus derived status and ending."""
    return engine.snapshot()


@router.post("/game/start")
async def start_game(body: StartBody, engine: GameEngine = Depends(get_engine)):
    """Start a new game, replacing any session in progress."""
    engine.start_game(body.gender, body.name)
    return engine.snapshot()


@router.post("/game/character")
async def select_character(body: CharacterBody, engine: GameEngine = Depends(get_engine)):
    """Focus a character (or clear focus with null)."""
    if body.character_id is not None and body.character_id not in engine.state.characters:
        raise HTTPException(404, "Character not found")
    if not engine.select_character(body.character_id):
        raise HTTPException(409, "Character cannot be selected now")
    return engine.snapshot()


@router.post("/game/scene")
async def select_scene(body: SceneBody, engine: GameEngine = Depends(get_engine)):
    """Move to an unlocked scene."""
    if body.scene_id not in SCENES:
        raise HTTPException(404, "Scene not found")
    if not engine.select_scene(body.scene_id):
        raise HTTPException(409, "Scene is locked or already current")
    return engine.snapshot()


@router.post("/game/action", response_model=TurnResult)
async def submit_action(body: ActionBody, engine: GameEngine = Depends(get_engine)):
    """Run one narrative turn and return the narrator's reply."""
    _check_action(engine, body)
    reply = await engine.submit_action(body.text)
    if reply is None:
        raise HTTPException(409, "Action rejected")
    return TurnResult(message=reply.model_dump(mode="json"), state=engine.snapshot())


@router.post("/game/action/stream")
async def submit_action_stream(body: ActionBody, engine: GameEngine = Depends(get_engine)):
    """Run one narrative turn, streaming the reply as server-sent events."""
    _check_action(engine, body)
    queue: asyncio.Queue[str | None] = asyncio.Queue()

    def on_event(event: str, payload) -> None:
        if event == "chunk":
            queue.put_nowait(payload)

    unsubscribe = engine.subscribe(on_event)

    async def run_turn():
        try:
            return await engine.submit_action(body.text)
        finally:
            unsubscribe()
            queue.put_nowait(None)

    async def events():
        task = asyncio.create_task(run_turn())
        while True:
            chunk = await queue.get()
            if chunk is None:
                break
            yield _sse("chunk", {"text": chunk})
        reply = await task
        yield _sse("done", {
            "message": reply.model_dump(mode="json") if reply else None,
            "state": engine.snapshot(),
        })

    return StreamingResponse(events(), media_type="text/event-stream")


@router.post("/game/advance")
async def advance_time(engine: GameEngine = Depends(get_engine)):
    """Advance to the next time period."""
    if not engine.advance_time():
        raise HTTPException(409, "Time cannot advance now")
    return engine.snapshot()


@router.post("/game/items/{item_id}/use")
async def use_item(item_id: str, engine: GameEngine = Depends(get_engine)):
    """Use one of an inventory item."""
    if item_id not in ITEMS:
        raise HTTPException(404, "Item not found")
    if not engine.use_item(item_id):
        raise HTTPException(409, "Item cannot be used now")
    return engine.snapshot()


@router.post("/game/reset")
async def reset_game(engine: GameEngine = Depends(get_engine)):
    """Return to the not-started state and delete the save."""
    engine.reset_game()
    return engine.snapshot()


@router.get("/save", response_model=SaveInfo)
async def get_save(engine: GameEngine = Depends(get_engine)):
    """Describe the stored save, if any."""
    saved = storage.load_game() if engine.has_save() else None
    if saved is None:
        return SaveInfo(exists=False)
    return SaveInfo(exists=True, day=saved.current_day, saved_messages=len(saved.messages))


@router.post("/save/load")
async def load_save(engine: GameEngine = Depends(get_engine)):
    """Replace the current session with the stored save."""
    if not engine.load_game():
        raise HTTPException(404, "No save found")
    return engine.snapshot()
