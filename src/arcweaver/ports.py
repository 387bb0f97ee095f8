# src/arcweaver/ports.py
"""Ports for persistence and text completion."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from arcweaver.core.llm import CompletionConfig
    from arcweaver.models import (
        ChapterRecord,
        DriftCharacter,
        DriftPlotClue,
        NovelSnapshot,
        OutlineDocument,
    )


class NovelRepository(Protocol):
    """Loads and stores novels, chapters and their supporting records."""

    async def get_novel(self, novel_id: int) -> NovelSnapshot | None:
        ...

    async def get_chapter_count(self, novel_id: int) -> int:
        ...

    async def save_outline(self, novel_id: int, outline: OutlineDocument) -> None:
        ...

    async def save_chapter(
        self,
        novel_id: int,
        chapter_number: int,
        title: str,
        content: str,
        word_count: int,
    ) -> ChapterRecord:
        ...

    async def record_expansion(self, novel_id: int) -> None:
        ...

    async def get_latest_chapter(self, novel_id: int) -> ChapterRecord | None:
        ...

    async def list_chapters(self, novel_id: int) -> list[ChapterRecord]:
        ...

    async def add_characters(
        self, novel_id: int, characters: Sequence[DriftCharacter], first_chapter: int
    ) -> int:
        ...

    async def add_plot_clues(
        self, novel_id: int, clues: Sequence[DriftPlotClue], first_chapter: int
    ) -> int:
        ...


class CompletionClient(Protocol):
    """Turns a prompt into text, whole or streamed."""

    async def complete(self, prompt: str, config: CompletionConfig) -> str:
        ...

    def complete_stream(self, prompt: str, config: CompletionConfig) -> AsyncIterator[str]:
        ...


__all__ = ["NovelRepository", "CompletionClient"]
