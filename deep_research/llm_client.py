"""OpenAI-compatible chat client used by every research agent."""
from __future__ import annotations

import time
from typing import Any, Protocol

from deep_research.exceptions import (
    ModelAuthenticationError,
    ModelError,
    ModelRateLimitError,
    ModelResponseError,
)
from deep_research.models.schemas import ResearchConfig
from deep_research.services import logger as log_service

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class ModelClient(Protocol):
    """Anything that turns a role instruction and a task prompt into text."""

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        caller: str = "agent",
    ) -> str: ...


def _classify_error(exc: Exception, caller: str) -> ModelError:
    """Map SDK/transport failures onto the pipeline's error taxonomy."""
    import openai

    if isinstance(exc, openai.AuthenticationError):
        return ModelAuthenticationError(caller)
    if isinstance(exc, openai.RateLimitError):
        return ModelRateLimitError(caller)

    message = str(exc)
    lowered = message.lower()
    if "401" in message or "authentication" in lowered:
        return ModelAuthenticationError(caller)
    if "429" in message:
        return ModelRateLimitError(caller)
    return ModelError(f"AI API error: {message}", caller)


class OpenAIChatClient:
    """Thin async wrapper over the OpenAI chat completions API."""

    def __init__(self, openai_client: Any, model: str):
        self._client = openai_client
        self.model = model

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        caller: str = "agent",
    ) -> str:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            elapsed_ms = int((time.monotonic() - t0) * 1000)
            log_service.log_llm_call(
                model=self.model,
                caller=caller,
                duration_ms=elapsed_ms,
                status="error",
                error=str(e),
            )
            raise _classify_error(e, caller) from e
        elapsed_ms = int((time.monotonic() - t0) * 1000)

        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model,
            caller=caller,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=elapsed_ms,
        )

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        if not isinstance(content, str):
            raise ModelResponseError("AI API returned an unexpected response shape", caller)
        return content

    async def verify_connection(self) -> None:
        """List models once to fail fast on a bad key or endpoint."""
        try:
            await self._client.models.list()
        except Exception as e:
            raise ModelError(f"API configuration error: {_classify_error(e, 'connection').message}") from e


def get_client(config: ResearchConfig) -> OpenAIChatClient:
    """Build a chat client for one research run from its configuration."""
    from openai import AsyncOpenAI

    base_url = config.api_endpoint.strip() or DEFAULT_BASE_URL
    openai_client = AsyncOpenAI(api_key=config.api_key, base_url=base_url)
    return OpenAIChatClient(openai_client, model=config.model)
