import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from backend.routes.deps import build_llm
from lingcao import storage
from lingcao.engine import GameEngine
from lingcao.llm import LLM

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"

logger = logging.getLogger(__name__)


def create_app(data_dir: Path | None = None, llm: LLM | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)
    config = storage.get_config()

    engine = GameEngine(
        llm or build_llm(config["llm_connection"]),
        max_attempts=int(config["engine"]["max_attempts"]),
        autosave=bool(config["engine"]["autosave"]),
    )
    if engine.load_game():
        logger.info("Resumed saved game (day %d)", engine.state.current_day)

    app = FastAPI(title="Spirit Herb Chronicle")
    app.state.engine = engine
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
