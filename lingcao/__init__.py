"""Spirit Herb Chronicle narrative-state engine.

    prompt-build → model call → text-parse → state-mutate → persist

GameEngine (lingcao.engine) drives the loop; the parser, prompt builder and
rules are pure functions over GameState; storage persists one save blob.
"""

from .engine import GameEngine  # noqa: F401
from .llm import LLM, EchoLLM, HttpLLM, LLMError  # noqa: F401
from .state import GameState  # noqa: F401
