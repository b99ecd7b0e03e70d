"""Narration provider client: chat-completion calls with model fallback.

The orchestrator depends on a callable matching the protocol:

    async def __call__(self, model: str, messages: list[dict[str, str]]) -> Completion: ...

Two pieces live here:

    OpenAIChatLLM          real HTTP client for OpenAI-compatible
                           /v1/chat/completions backends.
    complete_with_fallback walks the primary model and its fallbacks,
                           and stitches truncated answers back together.

Tests use StubLLM (defined in conftest.py) instead of the HTTP client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

CONTINUE_INSTRUCTION = "Continúa exactamente desde donde lo dejaste, sin repetir texto previo."
EMPTY_REPLY = "(sin respuesta)"
MAX_CONTINUATIONS = 2


@dataclass
class Completion:
    text: str
    truncated: bool = False


# ---------------------------------------------------------------------------
# Protocol: every provider implementation must match this signature
# ---------------------------------------------------------------------------

class NarrationLLM(Protocol):
    async def __call__(self, model: str, messages: list[dict[str, str]]) -> Completion: ...


# ---------------------------------------------------------------------------
# LLMError: raised for all connection, HTTP and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the provider cannot be reached or returns an error."""

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code

    @property
    def model_not_found(self) -> bool:
        return self.status == 404 or self.code == "model_not_found"

    @property
    def quota_exhausted(self) -> bool:
        return self.status == 429 and (
            self.code == "insufficient_quota" or "quota" in str(self).lower()
        )


# ---------------------------------------------------------------------------
# OpenAIChatLLM: connects to a real backend
# ---------------------------------------------------------------------------

class OpenAIChatLLM:
    """Async HTTP client for OpenAI-compatible chat completions.

    POST {base_url}/v1/chat/completions
      {"model", "messages", "temperature", "max_tokens"}
    Response: {"choices": [{"message": {"content": ...}, "finish_reason": ...}]}

    Args:
        api_key:     Bearer token.
        base_url:    Base URL of the backend. Defaults to the public API.
        org:         Optional OpenAI-Organization header.
        project:     Optional OpenAI-Project header.
        max_tokens:  Completion budget per request.
        temperature: Sampling temperature.
        timeout:     HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com",
        org: str = "",
        project: str = "",
        max_tokens: int = 900,
        temperature: float = 0.8,
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._org = org
        self._project = project
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._org:
            headers["OpenAI-Organization"] = self._org
        if self._project:
            headers["OpenAI-Project"] = self._project
        return headers

    @staticmethod
    def _error_from_response(resp: httpx.Response) -> LLMError:
        try:
            error = resp.json().get("error") or {}
        except ValueError:
            error = {}
        if not isinstance(error, dict):
            error = {}
        message = error.get("message") or resp.text or f"HTTP {resp.status_code}"
        return LLMError(message, status=resp.status_code, code=error.get("code"))

    async def __call__(self, model: str, messages: list[dict[str, str]]) -> Completion:
        url = f"{self._base_url}/v1/chat/completions"
        body = {
            "model": model,
            "messages": messages,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        logger.debug("llm call model=%s messages=%d", model, len(messages))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to provider at {self._base_url}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"Provider timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"Provider request failed: {e}") from e

        if resp.status_code >= 400:
            raise self._error_from_response(resp)

        try:
            choice = resp.json()["choices"][0]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError("Unexpected response format from provider") from e

        content = ((choice.get("message") or {}).get("content") or "").strip()
        truncated = choice.get("finish_reason") == "length"
        logger.debug("llm response model=%s len=%d truncated=%s", model, len(content), truncated)
        return Completion(text=content or EMPTY_REPLY, truncated=truncated)


# ---------------------------------------------------------------------------
# Fallback + continuation
# ---------------------------------------------------------------------------

async def _complete_continued(
    llm: NarrationLLM, model: str, messages: list[dict[str, str]], continue_if_truncated: bool
) -> str:
    first = await llm(model, messages)
    if not (continue_if_truncated and first.truncated):
        return first.text

    parts = [first.text]
    convo = [*messages, {"role": "assistant", "content": first.text}]
    for _ in range(MAX_CONTINUATIONS):
        convo = [*convo, {"role": "user", "content": CONTINUE_INSTRUCTION}]
        more = await llm(model, convo)
        parts.append(more.text)
        if not more.truncated:
            break
        convo = [*convo, {"role": "assistant", "content": more.text}]
    return "\n".join(parts)


async def complete_with_fallback(
    llm: NarrationLLM,
    messages: list[dict[str, str]],
    models: list[str],
    *,
    continue_if_truncated: bool = True,
) -> str:
    """Ask each model in turn until one answers.

    Only model-not-found errors move on to the next candidate; quota and any
    other failure propagate immediately.
    """
    if not models:
        raise LLMError("No narration model configured")

    last_error: LLMError | None = None
    for model in models:
        try:
            return await _complete_continued(llm, model, messages, continue_if_truncated)
        except LLMError as e:
            if e.quota_exhausted or not e.model_not_found:
                raise
            logger.warning("Model unavailable: %s (%s), trying next", model, e.code or e.status)
            last_error = e
    assert last_error is not None
    raise last_error
