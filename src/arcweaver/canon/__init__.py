# src/arcweaver/canon/__init__.py
"""Database access for novels, chapters and their supporting records."""

from .db import get_engine, get_session, get_session_factory, init_models
from .repository import SqlNovelRepository

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_models",
    "SqlNovelRepository",
]
