# src/arcweaver/outline/__init__.py
"""Outline parsing, chapter plan lookups and plot leakage checks."""

from .chapters import (
    clean_generated_outline,
    combine_with_revised_outline,
    extract_future_outline,
    get_chapter_outline,
    get_outline_for_range,
)
from .leakage import check_compliance, check_novel_compliance, extract_key_concepts
from .parser import (
    append_detailed,
    compose_outline_text,
    extract_arc_stages,
    extract_chapter_markers,
    get_current_stage,
    get_next_stage,
    normalize_chapter_markers,
    parse_outline,
    split_sections,
    with_detailed_text,
)

__all__ = [
    "clean_generated_outline",
    "combine_with_revised_outline",
    "extract_future_outline",
    "get_chapter_outline",
    "get_outline_for_range",
    "check_compliance",
    "check_novel_compliance",
    "extract_key_concepts",
    "append_detailed",
    "compose_outline_text",
    "extract_arc_stages",
    "extract_chapter_markers",
    "get_current_stage",
    "get_next_stage",
    "normalize_chapter_markers",
    "parse_outline",
    "split_sections",
    "with_detailed_text",
]
