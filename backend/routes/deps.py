"""Request dependencies and engine wiring shared by the route modules."""

import logging

from fastapi import Request

from lingcao.engine import GameEngine
from lingcao.llm import LLM, EchoLLM, HttpLLM

logger = logging.getLogger(__name__)


def build_llm(connection: dict) -> LLM:
    """HttpLLM when a provider URL is configured, EchoLLM otherwise."""
    if connection.get("provider_url"):
        return HttpLLM.from_config(connection)
    logger.warning("No LLM provider configured, narrator replies will echo the prompt")
    return EchoLLM()


def get_engine(request: Request) -> GameEngine:
    return request.app.state.engine
