# src/arcweaver/core/__init__.py
"""Core utilities for Arcweaver."""

from .env import get_config, load_env
from .llm import CompletionConfig, LiteLLMClient, collect_stream, complete_structured
from .logs import clear_logs, get_event_logger

__all__ = [
    "CompletionConfig",
    "LiteLLMClient",
    "collect_stream",
    "complete_structured",
    "get_config",
    "load_env",
    "get_event_logger",
    "clear_logs",
]
