# src/arcweaver/agents/base.py
"""Base class for Arcweaver agents."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from arcweaver.config import LLMConfig, config
from arcweaver.core.llm import CompletionConfig, collect_stream, complete_structured
from arcweaver.core.logs import EventType, get_event_logger, log_calls
from arcweaver.ports import CompletionClient, NovelRepository

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")


class Agent:
    """Base class for all Arcweaver agents, providing common utilities."""

    def __init__(
        self,
        repository: NovelRepository,
        client: CompletionClient,
        *,
        llm: LLMConfig | None = None,
    ) -> None:
        """Initialize the agent with its collaborators.

        Parameters
        ----------
        repository:
            Persistence port used to read and write novels.
        client:
            Text-completion port.
        llm:
            Model settings; the global ``llm`` section by default.
        """
        self.repository = repository
        self.client = client
        self.llm = llm or config.llm

    def completion_config(self, **overrides: Any) -> CompletionConfig:
        """Return a completion config for this agent's model."""
        return CompletionConfig.from_settings(self.llm, **overrides)

    @log_calls
    async def call_llm(self, prompt: str, cfg: CompletionConfig | None = None) -> str:
        """Call the configured LLM with error logging."""
        try:
            return await self.client.complete(prompt, cfg or self.completion_config())
        except Exception as exc:
            await self.log_message(f"LLM error: {exc}")
            raise

    @log_calls
    async def stream_llm(self, prompt: str, cfg: CompletionConfig | None = None) -> str:
        """Stream a completion and return the concatenated text."""
        try:
            return await collect_stream(
                self.client.complete_stream(prompt, cfg or self.completion_config())
            )
        except Exception as exc:
            await self.log_message(f"LLM stream error: {exc}")
            raise

    @log_calls
    async def call_llm_structured(
        self,
        prompt: str,
        response_model: type[T],
        *,
        cfg: CompletionConfig | None = None,
        max_retries: int = 2,
    ) -> T:
        """Call the LLM and validate its JSON reply against ``response_model``.

        Parameters
        ----------
        prompt:
            Prompt text to send to the LLM.
        response_model:
            Pydantic model describing expected structured output.
        cfg:
            Optional completion config; the agent default is used otherwise.
        max_retries:
            Maximum number of validation retry attempts.
        """
        try:
            return await complete_structured(
                self.client,
                prompt,
                response_model,
                cfg or self.completion_config(),
                max_retries=max_retries,
            )
        except Exception as exc:
            await self.log_message(f"Structured LLM error: {exc}")
            raise

    @log_calls
    async def with_retries(
        self,
        func: Callable[..., Awaitable[R]],
        *args: Any,
        retries: int = 3,
        wait_seconds: float = 0.1,
        **kwargs: Any,
    ) -> R:
        """Execute ``func`` with retry logic."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(retries),
            wait=wait_fixed(wait_seconds),
            retry=retry_if_exception_type(Exception),
            reraise=True,
        ):
            with attempt:
                return await func(*args, **kwargs)

        raise RuntimeError("Unreachable")  # pragma: no cover - safety

    async def log_message(
        self,
        message: str,
        *,
        novel_id: int | None = None,
        event_type: EventType = EventType.AGENT_OPERATION,
    ) -> None:
        """Log a message with the agent's name."""
        get_event_logger().info(
            f"{self.__class__.__name__}: {message}",
            event_type=event_type,
            novel_id=novel_id,
            component=self.__class__.__name__,
        )


__all__ = ["Agent"]
