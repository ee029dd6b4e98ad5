from __future__ import annotations

import json
import re
from functools import lru_cache
from typing import Any, Callable, Optional, TypeVar

from loguru import logger
from pydantic import BaseModel, TypeAdapter, ValidationError

from deep_research.exceptions import ModelError, ModelResponseError
from deep_research.llm_client import ModelClient
from deep_research.services.prompt_store import render_prompt

T = TypeVar("T")

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?[ \t]*\n?|\n?[ \t]*```")


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers wrapped around a model answer."""
    return _FENCE_PATTERN.sub("", text).strip()


def unwrap_code_fence(text: str) -> str:
    """Remove one fence wrapping the whole answer, keeping inner code blocks."""
    stripped = text.strip()
    if stripped.startswith("```") and stripped.endswith("```") and "\n" in stripped:
        body = stripped.split("\n", 1)[1]
        return body[: -3].strip()
    return stripped


def parse_json_payload(raw_text: str) -> Any:
    """Parse a JSON value out of a model answer.

    Tries the fence-stripped text first, then the outermost object or array
    embedded in surrounding prose.
    """
    text = strip_code_fences(raw_text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start >= 0 and end > start:
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                continue
    raise json.JSONDecodeError("no JSON value found", text, 0)


def to_prompt_json(value: Any) -> str:
    """Render structured data for inclusion in a prompt."""

    def encode(item: Any) -> Any:
        if isinstance(item, BaseModel):
            return item.model_dump(mode="json", by_alias=True)
        if isinstance(item, (list, tuple)):
            return [encode(v) for v in item]
        if isinstance(item, dict):
            return {k: encode(v) for k, v in item.items()}
        return item

    return json.dumps(encode(value), ensure_ascii=False, indent=2)


@lru_cache(maxsize=None)
def _adapter(shape: Any) -> TypeAdapter:
    return TypeAdapter(shape)


class BaseAgent:
    """Base agent wrapping one model client.

    Subclasses set `name` and call `complete` for free-form text or
    `call_json` for structured answers validated against a result shape.
    """

    name: str = "base"

    def __init__(self, client: ModelClient, run_id: str | None = None):
        self.client = client
        self.run_id = run_id

    async def complete(
        self,
        prompt_key: str,
        *,
        temperature: float,
        max_tokens: int,
        **values: Any,
    ) -> str:
        """Render `<prompt_key>.system` / `<prompt_key>.user` and call the model."""
        operation = prompt_key.rsplit(".", 1)[-1]
        return await self.client.complete(
            system=render_prompt(f"{prompt_key}.system"),
            prompt=render_prompt(f"{prompt_key}.user", **values),
            temperature=temperature,
            max_tokens=max_tokens,
            caller=f"{self.name}.{operation}",
        )

    async def call_json(
        self,
        prompt_key: str,
        shape: Any,
        *,
        default: Optional[Callable[[], T]],
        temperature: float,
        max_tokens: int,
        raise_model_errors: bool = False,
        **values: Any,
    ) -> T:
        """Call the model and validate its JSON answer against `shape`.

        Any failure yields `default()`. With `raise_model_errors`, provider
        errors propagate; with `default=None`, malformed output raises
        `ModelResponseError`.
        """
        try:
            text = await self.complete(
                prompt_key, temperature=temperature, max_tokens=max_tokens, **values
            )
        except ModelError:
            if raise_model_errors or default is None:
                raise
            logger.warning(f"{self.name}: model call for {prompt_key} failed, using default")
            return default()
        except Exception as e:
            if default is None:
                raise
            logger.warning(f"{self.name}: {prompt_key} failed ({e}), using default")
            return default()

        try:
            return _adapter(shape).validate_python(parse_json_payload(text))
        except (json.JSONDecodeError, ValidationError) as e:
            if default is None:
                raise ModelResponseError(
                    f"Malformed output for {prompt_key}: {e}", caller=self.name
                ) from e
            logger.warning(f"{self.name}: malformed output for {prompt_key}, using default")
            return default()
