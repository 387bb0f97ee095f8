# src/arcweaver/models/outline.py
"""In-memory model of the two-section plot outline."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

CURRENT_SEPARATOR = "\n---\n**逐章细纲**\n---\n"
LEGACY_SEPARATOR = "\n---\n**宏观叙事规划**\n---\n"


class OutlineFormat(str, Enum):
    """Layout the outline text was stored in."""

    CURRENT = "current"  # macro, separator, detailed
    LEGACY = "legacy"  # detailed, separator, macro
    UNSECTIONED = "unsectioned"


class ChapterRange(BaseModel):
    """Inclusive range of chapter numbers."""

    model_config = ConfigDict(frozen=True)

    start: int
    end: int

    def contains(self, chapter: int) -> bool:
        return self.start <= chapter <= self.end

    @property
    def size(self) -> int:
        return max(self.end - self.start + 1, 0)

    def __str__(self) -> str:
        return f"第{self.start}-{self.end}章"


class ArcStage(BaseModel):
    """One coarse narrative phase of the macro plan."""

    model_config = ConfigDict(frozen=True)

    stage_name: str
    label: str = ""
    title: str = ""
    chapter_range: ChapterRange
    core_summary: str = ""
    key_elements: tuple[str, ...] = ()


class OutlineDocument(BaseModel):
    """Parsed outline: ordered arc stages plus the per-chapter plan.

    Instances are produced by :func:`arcweaver.outline.parser.parse_outline`
    and never mutated; edits build a new document.
    """

    model_config = ConfigDict(frozen=True)

    macro_text: str = ""
    stages: tuple[ArcStage, ...] = ()
    detailed_text: str = ""
    source_format: OutlineFormat = OutlineFormat.UNSECTIONED
    planned_chapters: tuple[int, ...] = Field(default=())

    @property
    def has_macro(self) -> bool:
        return bool(self.macro_text.strip())

    @property
    def last_planned_chapter(self) -> int | None:
        return max(self.planned_chapters) if self.planned_chapters else None

    @property
    def is_empty(self) -> bool:
        return not self.macro_text.strip() and not self.detailed_text.strip()

    def to_text(self) -> str:
        """Serialize using the current separator only."""
        if not self.has_macro:
            return self.detailed_text
        return f"{self.macro_text.strip()}\n{CURRENT_SEPARATOR}\n{self.detailed_text.strip()}"


__all__ = [
    "CURRENT_SEPARATOR",
    "LEGACY_SEPARATOR",
    "OutlineFormat",
    "ChapterRange",
    "ArcStage",
    "OutlineDocument",
]
