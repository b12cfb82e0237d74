"""LLM client: HTTP connection to a text-completion backend.

The engine is handed an object matching the protocol:

    async def complete(self, messages: list[ChatMessage]) -> str: ...
    def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]: ...

`messages` is the ordered role-tagged list built by lingcao.prompts. `stream`
yields successive text fragments; the caller accumulates them. Either call may
legitimately produce an empty string.

Two implementations are provided:

    HttpLLM: real HTTP client, supports OpenAI-compatible chat backends and
        KoboldCpp. Selected by provider_format.
    EchoLLM: replies with the last message's content. Useful for
        smoke-testing the engine loop without a running model.

Production code constructs an HttpLLM from config (see from_config) and passes
it to GameEngine. Tests use the scripted StubLLM fixture instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Literal, Protocol

import httpx

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]  # {"role": "system"|"user"|"assistant", "content": ...}


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def complete(self, messages: list[ChatMessage]) -> str: ...

    def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["openai", "koboldcpp"]

_KOBOLD_ROLE_PREFIX = {"system": "", "user": "User: ", "assistant": "Assistant: "}


class HttpLLM:
    """Async HTTP client for chat/text-completion backends.

    Supported formats:
      "openai"    : POST /v1/chat/completions  {"model", "messages", "stream"}
                     Response: {"choices": [{"message": {"content": "..."}}]}
                     Stream:   SSE "data: {choices: [{delta: {content}}]}" … "data: [DONE]"
      "koboldcpp" : POST /api/v1/generate  {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}
                     Stream:   POST /api/extra/generate/stream, SSE "data: {"token": ...}"

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
        transport:       Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, connection: dict[str, Any]) -> HttpLLM:
        """Build from the "llm_connection" group of the app config."""
        return cls(
            provider_url=connection.get("provider_url", ""),
            api_key=connection.get("api_key", ""),
            provider_format=connection.get("provider_format", "openai"),
            model=connection.get("model", ""),
            timeout=float(connection.get("timeout", 120)),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, messages: list[ChatMessage], stream: bool) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {"messages": messages, "stream": stream}
            if self._model:
                body["model"] = self._model
            return url, body

        # koboldcpp (plain text completion)
        path = "/api/extra/generate/stream" if stream else "/api/v1/generate"
        return f"{self._base_url}{path}", {"prompt": _flatten(messages)}

    def _parse_response(self, data: Any) -> str:
        """Extract the completion text from the response body."""
        if self._format == "openai":
            choices = data.get("choices") if isinstance(data, dict) else None
            first = choices[0] if isinstance(choices, list) and choices else None
            if not isinstance(first, dict) or not isinstance(first.get("message"), dict):
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return _text(first["message"].get("content"))

        results = data.get("results") if isinstance(data, dict) else None
        first = results[0] if isinstance(results, list) and results else None
        if not isinstance(first, dict) or "text" not in first:
            raise LLMError("Unexpected response format from KoboldCpp backend")
        return _text(first["text"])

    def _parse_stream_line(self, line: str) -> str:
        """Return the text fragment carried by one SSE line ("" if none).

        Frames that are not JSON, or not shaped like the configured format,
        carry no text.
        """
        if not line.startswith("data:"):
            return ""
        payload = line[len("data:"):].strip()
        if not payload or payload == "[DONE]":
            return ""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed stream line: %r", payload[:80])
            return ""
        if not isinstance(data, dict):
            logger.debug("Skipping unexpected stream frame: %r", payload[:80])
            return ""
        if self._format == "openai":
            choices = data.get("choices")
            first = choices[0] if isinstance(choices, list) and choices else None
            delta = first.get("delta") if isinstance(first, dict) else None
            return _text(delta.get("content")) if isinstance(delta, dict) else ""
        return _text(data.get("token"))

    async def complete(self, messages: list[ChatMessage]) -> str:
        url, body = self._build_request(messages, stream=False)
        logger.debug("llm complete url=%s messages=%d", url, len(messages))

        try:
            async with self._client() as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned malformed JSON") from e
        text = self._parse_response(data)
        logger.debug("llm response len=%d", len(text))
        return text

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        url, body = self._build_request(messages, stream=True)
        logger.debug("llm stream url=%s messages=%d", url, len(messages))

        try:
            async with self._client() as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        chunk = self._parse_stream_line(line)
                        if chunk:
                            yield chunk
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise LLMError(f"LLM stream interrupted: {e}") from e


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _flatten(messages: list[ChatMessage]) -> str:
    """Render a chat message list as a single completion prompt."""
    parts = [f"{_KOBOLD_ROLE_PREFIX.get(m['role'], '')}{m['content']}" for m in messages]
    parts.append("Assistant:")
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# EchoLLM: echoes the last message; useful for engine smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Replies with the content of the last message. No network calls.

    Lets you verify the engine wiring (prompt building, parsing, rule
    evaluation, saving) end-to-end without a running model.
    """

    async def complete(self, messages: list[ChatMessage]) -> str:
        logger.debug("EchoLLM complete messages=%d", len(messages))
        return messages[-1]["content"] if messages else ""

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        text = await self.complete(messages)
        if text:
            yield text


# ---------------------------------------------------------------------------
# LLMError: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
