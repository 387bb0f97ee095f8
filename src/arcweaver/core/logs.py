# src/arcweaver/core/logs.py
"""Structured event logging for engine milestones.

Events are kept in a bounded in-memory buffer so the web layer can show
per-novel progress, and every event is mirrored to the standard ``logging``
tree under the ``arcweaver.events`` logger.
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, cast
from uuid import uuid4


class LogLevel(Enum):
    """Log levels with numeric values for filtering."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


class EventType(Enum):
    """Event types emitted by the engine."""

    SYSTEM = "system"

    # Act planning
    PLANNING = "planning"
    PLANNING_SKIPPED = "planning_skipped"

    # Batch lifecycle
    BATCH_START = "batch_start"
    BATCH_COMPLETE = "batch_complete"
    BATCH_ABORTED = "batch_aborted"
    BATCH_FAILED = "batch_failed"
    BATCH_CANCELLED = "batch_cancelled"

    # Chapter work
    CHAPTER_GENERATION = "chapter_generation"
    CHAPTER_SAVED = "chapter_saved"
    LEAKAGE_CHECK = "leakage_check"
    OUTLINE_REVISION = "outline_revision"

    # Collaborators
    LLM_REQUEST = "llm_request"
    DATABASE_OPERATION = "database_operation"
    AGENT_OPERATION = "agent_operation"
    RETRY_ATTEMPT = "retry_attempt"

    ERROR = "error"
    WARNING = "warning"


class Priority(Enum):
    """Event priority levels."""

    CRITICAL = 1  # Errors, system failures
    HIGH = 2  # Batch lifecycle, user actions
    NORMAL = 3  # Chapter generation, content updates
    LOW = 4  # Debug tracing


@dataclass
class StructuredLogEvent:
    """Structured log event with engine metadata."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: float = field(default_factory=time.time)
    event_type: EventType = EventType.SYSTEM
    level: LogLevel = LogLevel.INFO
    priority: Priority = Priority.NORMAL
    message: str = ""
    novel_id: int | None = None
    component: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "event_type": self.event_type.value,
            "level": self.level.name,
            "priority": self.priority.name,
            "message": self.message,
            "novel_id": self.novel_id,
            "component": self.component,
            "metadata": self.metadata,
        }


class EventLogger:
    """Bounded buffer of structured events mirrored to ``logging``."""

    def __init__(self, max_events: int = 5000, min_level: LogLevel = LogLevel.DEBUG):
        self.max_events = max_events
        self.min_level = min_level
        self._events: deque[StructuredLogEvent] = deque(maxlen=max_events)
        self._traditional_logger = logging.getLogger("arcweaver.events")

    def _log_to_traditional(self, event: StructuredLogEvent) -> None:
        parts = [f"[{event.event_type.value}]"]
        if event.novel_id is not None:
            parts.append(f"novel={event.novel_id}")
        if event.component:
            parts.append(f"<{event.component}>")
        self._traditional_logger.log(
            event.level.value, "%s %s", " ".join(parts), event.message
        )

    def log(
        self,
        level: LogLevel,
        message: str,
        event_type: EventType = EventType.SYSTEM,
        priority: Priority = Priority.NORMAL,
        novel_id: int | None = None,
        component: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StructuredLogEvent:
        """Record an event and mirror it to the standard logger."""
        event = StructuredLogEvent(
            level=level,
            event_type=event_type,
            priority=priority,
            message=message,
            novel_id=novel_id,
            component=component,
            metadata=dict(metadata or {}),
        )
        if level.value >= self.min_level.value:
            self._events.append(event)
        self._log_to_traditional(event)
        return event

    def debug(self, message: str, **kwargs: Any) -> StructuredLogEvent:
        """Log debug message."""
        kwargs.setdefault("priority", Priority.LOW)
        return self.log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> StructuredLogEvent:
        """Log info message."""
        return self.log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> StructuredLogEvent:
        """Log warning message."""
        kwargs.setdefault("event_type", EventType.WARNING)
        kwargs.setdefault("priority", Priority.HIGH)
        return self.log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> StructuredLogEvent:
        """Log error message."""
        kwargs.setdefault("event_type", EventType.ERROR)
        kwargs.setdefault("priority", Priority.CRITICAL)
        return self.log(LogLevel.ERROR, message, **kwargs)

    def get_events(
        self,
        novel_id: int | None = None,
        event_type: EventType | None = None,
        limit: int = 100,
    ) -> list[StructuredLogEvent]:
        """Return the most recent events, optionally filtered."""
        selected = [
            e
            for e in self._events
            if (novel_id is None or e.novel_id == novel_id)
            and (event_type is None or e.event_type == event_type)
        ]
        return selected[-limit:] if limit > 0 else selected

    def clear_logs(self) -> None:
        self._events.clear()


# Global event logger instance
_event_logger: EventLogger | None = None


def get_event_logger() -> EventLogger:
    """Get global event logger instance."""
    global _event_logger
    if _event_logger is None:
        _event_logger = EventLogger()
    return _event_logger


def clear_logs() -> None:
    """Remove all stored log messages."""
    get_event_logger().clear_logs()


def log_calls(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorate func to log calls at the DEBUG level."""

    def _enter() -> float:
        get_event_logger().debug(
            f"Entering {func.__qualname__}",
            component=func.__module__,
            metadata={"function": func.__qualname__},
        )
        return time.time()

    def _exit(start: float) -> None:
        get_event_logger().debug(
            f"Exiting {func.__qualname__} successfully",
            component=func.__module__,
            metadata={
                "function": func.__qualname__,
                "duration_ms": (time.time() - start) * 1000,
            },
        )

    def _failed(start: float, exc: Exception) -> None:
        get_event_logger().error(
            f"Error in {func.__qualname__}: {exc}",
            component=func.__module__,
            metadata={
                "function": func.__qualname__,
                "error_type": type(exc).__name__,
                "duration_ms": (time.time() - start) * 1000,
            },
        )

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = _enter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _failed(start, e)
                raise
            _exit(start)
            return result

        return cast(Callable[..., Any], async_wrapper)

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        start = _enter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _failed(start, e)
            raise
        _exit(start)
        return result

    return cast(Callable[..., Any], sync_wrapper)


__all__ = [
    "EventLogger",
    "StructuredLogEvent",
    "LogLevel",
    "EventType",
    "Priority",
    "get_event_logger",
    "clear_logs",
    "log_calls",
]
