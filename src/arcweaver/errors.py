# src/arcweaver/errors.py
"""Exception hierarchy for the narrative engine."""

from __future__ import annotations


class ArcweaverError(Exception):
    """Base class for all engine errors."""


class NovelNotFoundError(ArcweaverError):
    """Raised when a novel id does not resolve to a stored novel."""

    def __init__(self, novel_id: int) -> None:
        super().__init__(f"Novel {novel_id} not found")
        self.novel_id = novel_id


class BatchAlreadyRunningError(ArcweaverError):
    """Raised when a second batch is requested for a novel that has one active."""

    def __init__(self, novel_id: int) -> None:
        super().__init__(f"A generation batch is already running for novel {novel_id}")
        self.novel_id = novel_id


class OutlinePlanningError(ArcweaverError):
    """Raised when the act planner cannot produce a usable outline extension."""


class CompletionError(ArcweaverError):
    """Raised when the text-completion service fails or is misconfigured."""


class StructuredOutputError(ArcweaverError, ValueError):
    """Raised when a model reply cannot be decoded into the expected JSON shape."""


__all__ = [
    "ArcweaverError",
    "NovelNotFoundError",
    "BatchAlreadyRunningError",
    "OutlinePlanningError",
    "CompletionError",
    "StructuredOutputError",
]
