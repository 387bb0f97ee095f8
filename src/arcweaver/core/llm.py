# src/arcweaver/core/llm.py
"""Async LiteLLM client with streaming and structured output recovery."""

from __future__ import annotations

import json
import re
import time
from collections.abc import AsyncIterator
from typing import Any, TypeVar

import dirtyjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from arcweaver.config import LLMConfig, RetryConfig, config
from arcweaver.core.logging import get_logger
from arcweaver.core.logs import EventType, get_event_logger
from arcweaver.errors import CompletionError, StructuredOutputError

logger = get_logger(__name__)
event_logger = get_event_logger()

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```\s*$")
_JSON_BLOCK_RE = re.compile(r"(\{.*\}|\[.*\])", re.DOTALL)


class CompletionConfig(BaseModel):
    """Model identity, sampling parameters and credentials for one call."""

    model_config = ConfigDict(frozen=True)

    model: str
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    api_base: str | None = None
    api_key: str | None = None
    timeout: float | None = None

    @classmethod
    def from_settings(cls, llm: LLMConfig | None = None, **overrides: Any) -> CompletionConfig:
        """Build a config from the LLM settings section plus explicit overrides."""
        llm = llm or config.llm
        values: dict[str, Any] = {
            "model": llm.model,
            "temperature": 0.7 if llm.temperature is None else llm.temperature,
            "api_base": llm.api_base,
            "api_key": llm.api_key,
            "timeout": llm.request_timeout,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def to_litellm_kwargs(self) -> dict[str, Any]:
        """Return keyword arguments accepted by ``litellm.acompletion``."""
        return self.model_dump(exclude_none=True)


class LiteLLMClient:
    """Text-completion client backed by ``litellm.acompletion``.

    Transport failures (rate limits, dropped connections, timeouts) are
    retried with exponential backoff. Every other error propagates.
    """

    def __init__(self, retry: RetryConfig | None = None) -> None:
        self.retry = retry or config.retry

    def _retrying(self) -> AsyncRetrying:
        import litellm

        return AsyncRetrying(
            stop=stop_after_attempt(self.retry.retry_attempts),
            wait=wait_exponential(multiplier=self.retry.retry_backoff, max=30),
            retry=retry_if_exception_type(
                (litellm.RateLimitError, litellm.APIConnectionError, litellm.Timeout)
            ),
            reraise=True,
        )

    @staticmethod
    def _check_config(cfg: CompletionConfig) -> None:
        if not cfg.model:
            raise CompletionError("No model configured for completion")
        if not cfg.api_base or not cfg.api_key:
            raise CompletionError("OPENAI_API_BASE and OPENAI_API_KEY must be set")

    async def _acompletion(self, prompt: str, cfg: CompletionConfig, stream: bool) -> Any:
        import litellm

        async for attempt in self._retrying():
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    event_logger.warning(
                        f"Retrying completion for {cfg.model} "
                        f"(attempt {attempt.retry_state.attempt_number})",
                        event_type=EventType.RETRY_ATTEMPT,
                        component=__name__,
                    )
                return await litellm.acompletion(
                    messages=[{"role": "user", "content": prompt}],
                    stream=stream,
                    **cfg.to_litellm_kwargs(),
                )
        raise CompletionError("Unreachable")  # pragma: no cover - safety

    async def complete(self, prompt: str, cfg: CompletionConfig) -> str:
        """Return the full completion text for ``prompt``."""
        self._check_config(cfg)
        start = time.time()
        event_logger.debug(
            f"Starting LLM call to {cfg.model}",
            event_type=EventType.LLM_REQUEST,
            component=__name__,
            metadata={"prompt_length": len(prompt), "temperature": cfg.temperature},
        )
        response = await self._acompletion(prompt, cfg, stream=False)
        content = response["choices"][0]["message"]["content"] or ""
        event_logger.debug(
            f"Received response from {cfg.model}",
            event_type=EventType.LLM_REQUEST,
            component=__name__,
            metadata={
                "duration": time.time() - start,
                "response_length": len(content),
            },
        )
        return content

    async def complete_stream(self, prompt: str, cfg: CompletionConfig) -> AsyncIterator[str]:
        """Yield completion text chunks as the provider streams them."""
        self._check_config(cfg)
        event_logger.debug(
            f"Starting streamed LLM call to {cfg.model}",
            event_type=EventType.LLM_REQUEST,
            component=__name__,
            metadata={"prompt_length": len(prompt)},
        )
        response = await self._acompletion(prompt, cfg, stream=True)
        async for chunk in response:
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            token = getattr(delta, "content", None) if delta is not None else None
            if token:
                yield token


async def collect_stream(chunks: AsyncIterator[str]) -> str:
    """Concatenate a stream of text chunks."""
    parts: list[str] = []
    async for chunk in chunks:
        parts.append(chunk)
    return "".join(parts)


def strip_code_fences(content: str) -> str:
    """Remove a leading and trailing markdown code fence."""
    return _FENCE_RE.sub("", content.strip()).strip()


def extract_json_payload(content: str) -> Any:
    """Decode JSON from a model response, salvaging common formatting damage.

    Tries a strict decode of the fence-stripped text first, then the first
    ``{...}`` or ``[...]`` block, and finally ``dirtyjson`` on that block.

    Raises
    ------
    ValueError
        If no JSON value can be recovered.
    """
    text = strip_code_fences(content)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    match = _JSON_BLOCK_RE.search(text)
    if not match:
        raise ValueError("No JSON object found in model response")
    block = match.group(1)
    try:
        return json.loads(block)
    except json.JSONDecodeError:
        pass
    try:
        return dirtyjson.loads(block)
    except Exception as exc:
        raise ValueError(f"Unrecoverable JSON in model response: {exc}") from exc


async def complete_structured(
    client: Any,
    prompt: str,
    response_model: type[T],
    cfg: CompletionConfig,
    *,
    max_retries: int = 2,
) -> T:
    """Call ``client.complete`` and validate the reply against ``response_model``.

    On a decode or validation failure the prompt is re-sent with the error
    appended so the model can correct itself.

    Parameters
    ----------
    client:
        Any object implementing the completion port.
    prompt:
        Prompt text; it should already describe the JSON shape.
    response_model:
        Pydantic model the reply must validate against.
    cfg:
        Completion configuration.
    max_retries:
        Additional attempts after the first failure.

    Raises
    ------
    StructuredOutputError
        If the reply cannot be decoded or validated after all attempts.
    """
    model_name = response_model.__name__
    attempt_prompt = prompt
    last_error: Exception | None = None
    for attempt in range(max_retries + 1):
        content = await client.complete(attempt_prompt, cfg)
        try:
            data = extract_json_payload(content)
            return response_model.model_validate(data)
        except (ValueError, ValidationError) as exc:
            last_error = exc
            logger.warning(
                "Structured output for %s failed validation (attempt %d/%d): %s",
                model_name,
                attempt + 1,
                max_retries + 1,
                exc,
            )
            attempt_prompt = (
                f"{prompt}\n\n上一次的输出无法解析为有效的JSON（错误: {exc}）。"
                "请只输出符合要求的JSON对象。"
            )
    raise StructuredOutputError(f"{model_name} validation failed: {last_error}")


__all__ = [
    "CompletionConfig",
    "LiteLLMClient",
    "collect_stream",
    "strip_code_fences",
    "extract_json_payload",
    "complete_structured",
]
