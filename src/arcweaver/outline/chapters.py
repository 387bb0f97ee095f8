# src/arcweaver/outline/chapters.py
"""Per-chapter lookups over the detailed chapter plan."""

from __future__ import annotations

import re

from arcweaver.core.llm import strip_code_fences

from .parser import CHAPTER_MARKER_RE, normalize_chapter_markers

_LINE_MARKER_RE = re.compile(r"^\s*第\s*(\d+)\s*章")


def _marker_for(chapter: int) -> re.Pattern[str]:
    return re.compile(rf"第\s*{chapter}\s*\.?\s*章[:：]?")


def get_chapter_outline(detailed_text: str, chapter: int) -> str | None:
    """Return the plan text for ``chapter``, up to the next chapter marker."""
    match = _marker_for(chapter).search(detailed_text)
    if match is None:
        return None
    following = CHAPTER_MARKER_RE.search(detailed_text, match.end())
    end = following.start() if following else len(detailed_text)
    text = detailed_text[match.end() : end].strip()
    return text or None


def get_outline_for_range(detailed_text: str, start: int, end: int) -> str:
    """Return the lines that belong to chapters ``start`` through ``end``.

    A chapter's lines run from its marker line up to the next marker line.
    """
    selected: list[str] = []
    capturing = False
    for line in detailed_text.splitlines():
        match = _LINE_MARKER_RE.match(line)
        if match:
            capturing = start <= int(match.group(1)) <= end
        if capturing:
            selected.append(line)
    return "\n".join(selected).strip()


def extract_future_outline(detailed_text: str, start_chapter: int) -> str:
    """Return the plan from ``start_chapter`` onward, or ``""`` if absent."""
    match = _marker_for(start_chapter).search(detailed_text)
    if match is None:
        return ""
    return detailed_text[match.start() :].strip()


def combine_with_revised_outline(original: str, revised_future: str, start_chapter: int) -> str:
    """Replace the plan from ``start_chapter`` onward with ``revised_future``."""
    match = _marker_for(start_chapter).search(original)
    if match is None:
        return revised_future.strip()
    past = original[: match.start()].strip()
    return f"{past}\n\n{revised_future.strip()}".strip()


def clean_generated_outline(text: str) -> str:
    """Tidy a model-written chapter plan.

    Drops code fences and any preamble before the first chapter marker,
    collapses runs of blank lines, and normalizes the markers.
    """
    cleaned = strip_code_fences(text or "")
    first = CHAPTER_MARKER_RE.search(cleaned)
    if first is None:
        return cleaned.strip()
    cleaned = cleaned[first.start() :]
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return normalize_chapter_markers(cleaned).strip()


__all__ = [
    "get_chapter_outline",
    "get_outline_for_range",
    "extract_future_outline",
    "combine_with_revised_outline",
    "clean_generated_outline",
]
