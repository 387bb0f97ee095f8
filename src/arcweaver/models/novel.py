# src/arcweaver/models/novel.py
"""Novel-level records handed between the repository and the engine."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .base_model import ArcweaverBaseModel
from .outline import OutlineDocument

PLACEHOLDER = "待补充"


class GenerationSettings(ArcweaverBaseModel):
    """Sampling and pacing parameters for chapter generation."""

    max_tokens: int = Field(default=4096, ge=1)
    segments_per_chapter: int = Field(default=3, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=1.0, ge=0.0, le=1.0)
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    character_creativity: float = Field(default=0.5, ge=0.0, le=1.0)
    context_chapters: int = Field(default=3, ge=0)


class Character(ArcweaverBaseModel):
    name: str
    description: str = ""
    personality: str = PLACEHOLDER
    background: str = PLACEHOLDER
    appearance: str = PLACEHOLDER
    is_protagonist: bool = False
    first_appeared_in_chapter: int | None = None


class PlotClue(ArcweaverBaseModel):
    title: str
    description: str = PLACEHOLDER
    first_mentioned_in_chapter: int | None = None
    status: str = "未解决"


class ChapterRecord(ArcweaverBaseModel):
    """A persisted chapter."""

    chapter_number: int
    title: str = ""
    content: str = ""
    word_count: int = 0
    created_at: datetime | None = None


class ChapterDraft(ArcweaverBaseModel):
    """Chapter prose produced by the writer, not yet persisted."""

    chapter_number: int
    title: str = ""
    content: str = ""
    word_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()


class NovelSnapshot(ArcweaverBaseModel):
    """Request-scoped view of a novel with its outline already parsed."""

    id: int
    name: str
    genre: str = ""
    style: str = ""
    outline: OutlineDocument = Field(default_factory=OutlineDocument)
    total_chapter_goal: int | None = None
    expansion_count: int = 0
    special_requirements: str | None = None
    style_guide: str | None = None
    chapter_count: int = 0
    characters: list[Character] = Field(default_factory=list)
    settings: GenerationSettings = Field(default_factory=GenerationSettings)

    @property
    def next_chapter_number(self) -> int:
        return self.chapter_count + 1


__all__ = [
    "PLACEHOLDER",
    "GenerationSettings",
    "Character",
    "PlotClue",
    "ChapterRecord",
    "ChapterDraft",
    "NovelSnapshot",
]
