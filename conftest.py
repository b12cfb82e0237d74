import random

import pytest

from lingcao import storage
from lingcao.engine import GameEngine


class StubLLM:
    """Scripted LLM. Each stream() call consumes the next entry of replies.

    An entry that is an Exception is raised instead of streamed. When the
    script runs out, replies are empty strings. complete() serves the
    compression summary the same way from summaries.
    """

    def __init__(self, replies: list | None = None, summaries: list | None = None) -> None:
        self.replies = list(replies or [])
        self.summaries = list(summaries or [])
        self.requests: list[list[dict]] = []
        self.summary_requests: list[list[dict]] = []

    @staticmethod
    def _pop(script: list):
        reply = script.pop(0) if script else ""
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete(self, messages):
        self.summary_requests.append(messages)
        return self._pop(self.summaries)

    async def stream(self, messages):
        self.requests.append(messages)
        text = self._pop(self.replies)
        # Two chunks, so tests see more than one fragment.
        half = len(text) // 2
        for piece in (text[:half], text[half:]):
            if piece:
                yield piece


@pytest.fixture(autouse=True)
def clean_test_data(tmp_path):
    """Point storage at a fresh directory before every test."""
    storage.init_storage(tmp_path / "data")
    yield


@pytest.fixture
def llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def engine(llm) -> GameEngine:
    return GameEngine(llm, rng=random.Random(0))


@pytest.fixture
def started(engine) -> GameEngine:
    """An engine with a male-player game already started."""
    engine.start_game("male", "小芝")
    return engine
