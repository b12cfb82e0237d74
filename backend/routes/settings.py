"""Health check and settings endpoints."""

from fastapi import APIRouter, Depends

from lingcao import storage
from lingcao.engine import GameEngine

from .deps import build_llm, get_engine

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get global app settings (LLM connection, engine tuning)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(body: dict, engine: GameEngine = Depends(get_engine)):
    """Update global app settings (partial merge) and apply them to the engine."""
    config = storage.update_config(body)
    if "llm_connection" in body:
        engine.llm = build_llm(config["llm_connection"])
    engine.max_attempts = max(1, int(config["engine"]["max_attempts"]))
    engine.autosave = bool(config["engine"]["autosave"])
    return config
