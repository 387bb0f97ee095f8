# src/arcweaver/models/sqlalchemy_models.py
"""SQLAlchemy ORM models for novels and their chapters."""

from __future__ import annotations

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .base import Base


class NovelSQL(Base):
    """A novel and its persisted plot outline.

    ``plot_outline`` holds the full outline text in the current separator
    format; it is parsed into an ``OutlineDocument`` when read and
    serialized back when written.
    """

    __tablename__ = "novels"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    genre = Column(String(100), nullable=False, default="")
    style = Column(String(100), nullable=False, default="")
    plot_outline = Column(Text)
    total_chapter_goal = Column(Integer)
    expansion_count = Column(Integer, nullable=False, default=0)
    special_requirements = Column(Text)
    style_guide = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now())


class ChapterSQL(Base):
    """A generated chapter; numbers are unique within a novel."""

    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("novel_id", "chapter_number"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    novel_id = Column(Integer, ForeignKey("novels.id", ondelete="CASCADE"), nullable=False)
    chapter_number = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    word_count = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now())


class CharacterSQL(Base):
    __tablename__ = "characters"
    id = Column(Integer, primary_key=True, autoincrement=True)
    novel_id = Column(Integer, ForeignKey("novels.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    personality = Column(Text)
    background = Column(Text)
    appearance = Column(Text)
    is_protagonist = Column(Boolean, nullable=False, default=False)
    first_appeared_in_chapter = Column(Integer)
    created_at = Column(TIMESTAMP, server_default=func.now())


class PlotClueSQL(Base):
    __tablename__ = "plot_clues"
    id = Column(Integer, primary_key=True, autoincrement=True)
    novel_id = Column(Integer, ForeignKey("novels.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    first_mentioned_in_chapter = Column(Integer)
    status = Column(String(50), nullable=False, default="未解决")
    created_at = Column(TIMESTAMP, server_default=func.now())


class GenerationSettingsSQL(Base):
    """Generation settings; the most recently updated row is active."""

    __tablename__ = "generation_settings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    max_tokens = Column(Integer, nullable=False, default=4096)
    segments_per_chapter = Column(Integer, nullable=False, default=3)
    temperature = Column(Float, nullable=False, default=0.7)
    top_p = Column(Float, nullable=False, default=1.0)
    frequency_penalty = Column(Float, nullable=False, default=0.0)
    presence_penalty = Column(Float, nullable=False, default=0.0)
    character_creativity = Column(Float, nullable=False, default=0.5)
    context_chapters = Column(Integer, nullable=False, default=3)
    updated_at = Column(TIMESTAMP, server_default=func.now())


__all__ = [
    "NovelSQL",
    "ChapterSQL",
    "CharacterSQL",
    "PlotClueSQL",
    "GenerationSettingsSQL",
]
