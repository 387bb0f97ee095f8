# src/arcweaver/models/outcomes.py
"""Results of act planning and batch generation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import Field

from .base_model import ArcweaverBaseModel
from .novel import NovelSnapshot
from .outline import ChapterRange
from .reports import ComplianceReport


class SkipReason(str, Enum):
    """Why the act planner left the outline alone."""

    NOVEL_NOT_FOUND = "novel_not_found"
    NO_OUTLINE = "no_outline"
    NO_PLANNED_CHAPTERS = "no_planned_chapters"
    SUFFICIENT_RUNWAY = "sufficient_runway"
    TOO_FEW_STAGES = "too_few_stages"
    AMBIGUOUS_STAGE = "ambiguous_stage"
    FINAL_STAGE = "final_stage"
    ALREADY_PLANNED = "already_planned"


class PlanningSkipped(ArcweaverBaseModel):
    kind: Literal["skipped"] = "skipped"
    reason: SkipReason
    message: str = ""


class PlanningPlanned(ArcweaverBaseModel):
    kind: Literal["planned"] = "planned"
    new_outline_text: str
    stage_name: str
    chapter_range: ChapterRange


class PlanningFailed(ArcweaverBaseModel):
    kind: Literal["failed"] = "failed"
    error: str


PlanningOutcome = Annotated[
    Union[PlanningSkipped, PlanningPlanned, PlanningFailed],
    Field(discriminator="kind"),
]


class BatchStatus(str, Enum):
    """Controller state machine."""

    IDLE = "idle"
    PREPARING = "preparing"
    GENERATING = "generating"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset(
    {BatchStatus.COMPLETED, BatchStatus.ABORTED, BatchStatus.FAILED, BatchStatus.CANCELLED}
)


class BatchState(ArcweaverBaseModel):
    """Transient per-request state of one generation batch."""

    novel_id: int
    chapters_to_generate: int
    chapters_completed: int = 0
    status: BatchStatus = BatchStatus.IDLE
    iteration: int | None = None
    current_chapter: int | None = None
    current_step: str = ""
    user_prompt: str | None = None
    abort_reason: str | None = None
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    current_novel_snapshot: NovelSnapshot | None = Field(default=None, exclude=True)

    @property
    def progress(self) -> int:
        if self.chapters_to_generate <= 0:
            return 0
        return int(self.chapters_completed / self.chapters_to_generate * 100)


class BatchResult(ArcweaverBaseModel):
    """Outcome of ``generate_batch``."""

    novel_id: int
    status: BatchStatus
    chapters_requested: int
    chapters_completed: int = 0
    saved_chapters: list[int] = Field(default_factory=list)
    planning_outcomes: list[PlanningOutcome] = Field(default_factory=list)
    compliance: list[ComplianceReport] = Field(default_factory=list)
    outline_revisions: int = 0
    abort_reason: str | None = None
    error: str | None = None


__all__ = [
    "SkipReason",
    "PlanningSkipped",
    "PlanningPlanned",
    "PlanningFailed",
    "PlanningOutcome",
    "BatchStatus",
    "BatchState",
    "BatchResult",
]
