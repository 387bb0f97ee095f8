# src/arcweaver/orchestration/__init__.py
"""Batch orchestration for chapter generation."""

from .controller import BatchGenerationController
from .state import BatchRegistry, NovelBatchContainer

__all__ = ["BatchGenerationController", "BatchRegistry", "NovelBatchContainer"]
