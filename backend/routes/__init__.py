"""FastAPI API endpoints under /api.

Endpoint groups: health + settings, game state and transitions, save slot.
The GameEngine lives on app.state and is reached through the get_engine
dependency. Rejected transitions answer 409; unknown ids answer 404.
"""

from fastapi import APIRouter

from .game import router as game_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(game_router)
