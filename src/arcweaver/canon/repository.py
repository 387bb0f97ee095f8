# src/arcweaver/canon/repository.py
"""SQLAlchemy implementation of the novel repository port."""

from __future__ import annotations

import time
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arcweaver.core.logs import EventType, get_event_logger, log_calls
from arcweaver.errors import NovelNotFoundError
from arcweaver.models import (
    PLACEHOLDER,
    ChapterRecord,
    ChapterSQL,
    Character,
    CharacterSQL,
    DriftCharacter,
    DriftPlotClue,
    GenerationSettings,
    GenerationSettingsSQL,
    NovelSnapshot,
    NovelSQL,
    OutlineDocument,
    PlotClue,
    PlotClueSQL,
)
from arcweaver.outline import parse_outline

from .db import get_session, get_session_factory

event_logger = get_event_logger()

_SETTINGS_FIELDS = tuple(GenerationSettings.model_fields)


def _character(row: CharacterSQL) -> Character:
    return Character(
        name=row.name,
        description=row.description or "",
        personality=row.personality or PLACEHOLDER,
        background=row.background or PLACEHOLDER,
        appearance=row.appearance or PLACEHOLDER,
        is_protagonist=bool(row.is_protagonist),
        first_appeared_in_chapter=row.first_appeared_in_chapter,
    )


def _chapter(row: ChapterSQL) -> ChapterRecord:
    return ChapterRecord(
        chapter_number=row.chapter_number,
        title=row.title or "",
        content=row.content or "",
        word_count=row.word_count or 0,
        created_at=row.created_at,
    )


class SqlNovelRepository:
    """Reads and writes novels through an async SQLAlchemy session factory.

    The outline column is parsed into an :class:`OutlineDocument` on read
    and serialized with the current separator on write. Every method runs
    in its own short transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_factory = session_factory or get_session_factory()

    def _session(self) -> AbstractAsyncContextManager[AsyncSession]:
        return get_session(self.session_factory)

    def _log(self, message: str, novel_id: int | None, start: float, **metadata: object) -> None:
        event_logger.debug(
            message,
            event_type=EventType.DATABASE_OPERATION,
            novel_id=novel_id,
            component=__name__,
            metadata={"duration": time.time() - start, **metadata},
        )

    async def create_novel(
        self,
        name: str,
        *,
        genre: str = "",
        style: str = "",
        plot_outline: str | None = None,
        total_chapter_goal: int | None = None,
        special_requirements: str | None = None,
        style_guide: str | None = None,
    ) -> int:
        """Insert a novel and return its id."""
        async with self._session() as session:
            row = NovelSQL(
                name=name,
                genre=genre,
                style=style,
                plot_outline=plot_outline,
                total_chapter_goal=total_chapter_goal,
                expansion_count=0,
                special_requirements=special_requirements,
                style_guide=style_guide,
            )
            session.add(row)
            await session.flush()
            return int(row.id)

    async def _chapter_count(self, session: AsyncSession, novel_id: int) -> int:
        result = await session.execute(
            select(func.count(ChapterSQL.id)).where(ChapterSQL.novel_id == novel_id)
        )
        return int(result.scalar_one())

    async def _settings(self, session: AsyncSession) -> GenerationSettings:
        result = await session.execute(
            select(GenerationSettingsSQL)
            .order_by(GenerationSettingsSQL.updated_at.desc(), GenerationSettingsSQL.id.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return GenerationSettings()
        return GenerationSettings(
            **{name: getattr(row, name) for name in _SETTINGS_FIELDS if getattr(row, name) is not None}
        )

    @log_calls
    async def get_novel(self, novel_id: int) -> NovelSnapshot | None:
        start = time.time()
        async with self._session() as session:
            row = await session.get(NovelSQL, novel_id)
            if row is None:
                return None
            characters = await session.execute(
                select(CharacterSQL).where(CharacterSQL.novel_id == novel_id).order_by(CharacterSQL.id)
            )
            snapshot = NovelSnapshot(
                id=row.id,
                name=row.name,
                genre=row.genre or "",
                style=row.style or "",
                outline=parse_outline(row.plot_outline),
                total_chapter_goal=row.total_chapter_goal,
                expansion_count=row.expansion_count or 0,
                special_requirements=row.special_requirements,
                style_guide=row.style_guide,
                chapter_count=await self._chapter_count(session, novel_id),
                characters=[_character(c) for c in characters.scalars()],
                settings=await self._settings(session),
            )
        self._log("Loaded novel snapshot", novel_id, start, chapters=snapshot.chapter_count)
        return snapshot

    async def get_chapter_count(self, novel_id: int) -> int:
        async with self._session() as session:
            return await self._chapter_count(session, novel_id)

    async def get_generation_settings(self) -> GenerationSettings:
        async with self._session() as session:
            return await self._settings(session)

    @log_calls
    async def save_outline(self, novel_id: int, outline: OutlineDocument) -> None:
        start = time.time()
        text = outline.to_text()
        async with self._session() as session:
            result = await session.execute(
                update(NovelSQL)
                .where(NovelSQL.id == novel_id)
                .values(plot_outline=text, updated_at=func.now())
            )
            if result.rowcount == 0:
                raise NovelNotFoundError(novel_id)
        self._log("Saved outline", novel_id, start, length=len(text))

    @log_calls
    async def save_chapter(
        self,
        novel_id: int,
        chapter_number: int,
        title: str,
        content: str,
        word_count: int,
    ) -> ChapterRecord:
        """Insert chapter ``chapter_number``, replacing an existing one."""
        start = time.time()
        async with self._session() as session:
            if await session.get(NovelSQL, novel_id) is None:
                raise NovelNotFoundError(novel_id)
            result = await session.execute(
                select(ChapterSQL).where(
                    ChapterSQL.novel_id == novel_id, ChapterSQL.chapter_number == chapter_number
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = ChapterSQL(novel_id=novel_id, chapter_number=chapter_number)
                session.add(row)
            row.title = title
            row.content = content
            row.word_count = word_count
            await session.flush()
            await session.refresh(row)
            record = _chapter(row)
        self._log(f"Saved chapter {chapter_number}", novel_id, start, word_count=word_count)
        return record

    @log_calls
    async def record_expansion(self, novel_id: int) -> None:
        async with self._session() as session:
            result = await session.execute(
                update(NovelSQL)
                .where(NovelSQL.id == novel_id)
                .values(expansion_count=NovelSQL.expansion_count + 1, updated_at=func.now())
            )
            if result.rowcount == 0:
                raise NovelNotFoundError(novel_id)

    async def get_latest_chapter(self, novel_id: int) -> ChapterRecord | None:
        async with self._session() as session:
            result = await session.execute(
                select(ChapterSQL)
                .where(ChapterSQL.novel_id == novel_id)
                .order_by(ChapterSQL.chapter_number.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _chapter(row) if row is not None else None

    async def list_chapters(self, novel_id: int) -> list[ChapterRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(ChapterSQL)
                .where(ChapterSQL.novel_id == novel_id)
                .order_by(ChapterSQL.chapter_number)
            )
            return [_chapter(row) for row in result.scalars()]

    async def list_plot_clues(self, novel_id: int) -> list[PlotClue]:
        async with self._session() as session:
            result = await session.execute(
                select(PlotClueSQL).where(PlotClueSQL.novel_id == novel_id).order_by(PlotClueSQL.id)
            )
            return [
                PlotClue(
                    title=row.title,
                    description=row.description or PLACEHOLDER,
                    first_mentioned_in_chapter=row.first_mentioned_in_chapter,
                    status=row.status,
                )
                for row in result.scalars()
            ]

    @log_calls
    async def add_characters(
        self, novel_id: int, characters: Sequence[DriftCharacter], first_chapter: int
    ) -> int:
        """Store characters not already known by name; return how many were added."""
        async with self._session() as session:
            existing = await session.execute(
                select(CharacterSQL.name).where(CharacterSQL.novel_id == novel_id)
            )
            known = set(existing.scalars())
            added = 0
            for character in characters:
                name = character.name.strip()
                if not name or name in known:
                    continue
                session.add(
                    CharacterSQL(
                        novel_id=novel_id,
                        name=name,
                        description=character.description,
                        personality=character.personality or PLACEHOLDER,
                        background=character.background or PLACEHOLDER,
                        appearance=PLACEHOLDER,
                        is_protagonist=False,
                        first_appeared_in_chapter=first_chapter,
                    )
                )
                known.add(name)
                added += 1
            return added

    @log_calls
    async def add_plot_clues(
        self, novel_id: int, clues: Sequence[DriftPlotClue], first_chapter: int
    ) -> int:
        async with self._session() as session:
            added = 0
            for clue in clues:
                if not clue.content.strip():
                    continue
                session.add(
                    PlotClueSQL(
                        novel_id=novel_id,
                        title=clue.content.strip()[:255],
                        description=clue.details or PLACEHOLDER,
                        first_mentioned_in_chapter=first_chapter,
                        status="未解决",
                    )
                )
                added += 1
            return added


__all__ = ["SqlNovelRepository"]
