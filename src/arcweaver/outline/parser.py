# src/arcweaver/outline/parser.py
"""Tolerant parsing of stored outline text into an ``OutlineDocument``.

Outlines are produced by language models and edited by hand, so every rule
here prefers a conservative fallback over an error: text that does not look
sectioned is treated as a plain chapter plan, and headers that do not match
are simply not stages.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from arcweaver.core.logging import get_logger
from arcweaver.models.outline import (
    ArcStage,
    ChapterRange,
    OutlineDocument,
    OutlineFormat,
)

logger = get_logger(__name__)

_HSPACE = r"[ \t　]*"

# "第 12 章", "第12.章：", "第12章:" ... all become "第12章: "
_MARKER_VARIANT_RE = re.compile(rf"第{_HSPACE}(\d+){_HSPACE}\.?{_HSPACE}章[:：]?{_HSPACE}")
CHAPTER_MARKER_RE = re.compile(r"第\s*(\d+)\s*\.?\s*章[:：]?")
_LOOSE_MARKER_RE = re.compile(r"第[^\d]*?(\d+)[^\d]*?章")

_CURRENT_SPLIT_RE = re.compile(r"\s*-{3,}\s*\*\*逐章细纲\*\*\s*-{3,}\s*")
_LEGACY_SPLIT_RE = re.compile(r"\s*-{3,}\s*\*\*宏观叙事规划\*\*\s*-{3,}\s*")

_STAGE_HEADER_RE = re.compile(
    r"\*\*\s*(?P<label>[^:：*\n]+?)\s*[:：]\s*(?P<title>[^(（*\n]+?)\s*"
    r"[(（]\s*第\s*(?P<start>\d+)\s*[-–—~～至到]\s*(?P<end>\d+)\s*章\s*[)）]\s*\*\*"
)
_LIST_MARKER_RE = re.compile(r"^[-*•·]+\s*")
_RULE_LINE_RE = re.compile(r"^-{3,}$")


def normalize_chapter_markers(text: str) -> str:
    """Rewrite every chapter marker variant to the canonical ``第N章: ``."""
    return _MARKER_VARIANT_RE.sub(lambda m: f"第{int(m.group(1))}章: ", text)


def split_sections(text: str) -> tuple[str, str, OutlineFormat]:
    """Split outline text into ``(macro, detailed, format)``.

    The current separator puts the macro plan first; the legacy one stored
    the chapter plan first. Anything else is returned as an unsectioned
    chapter plan with the text untouched.
    """
    parts = _CURRENT_SPLIT_RE.split(text)
    if len(parts) == 2:
        return parts[0].strip(), parts[1].strip(), OutlineFormat.CURRENT
    if len(parts) > 2:
        logger.warning("Outline has %d current-format separators; treating as unsectioned", len(parts) - 1)
        return "", text, OutlineFormat.UNSECTIONED

    parts = _LEGACY_SPLIT_RE.split(text)
    if len(parts) == 2:
        return parts[1].strip(), parts[0].strip(), OutlineFormat.LEGACY
    if len(parts) > 2:
        logger.warning("Outline has %d legacy separators; treating as unsectioned", len(parts) - 1)
    return "", text, OutlineFormat.UNSECTIONED


def _stage_body(body: str) -> tuple[str, tuple[str, ...]]:
    lines: list[str] = []
    elements: list[str] = []
    for raw in body.splitlines():
        line = raw.strip()
        if not line or _RULE_LINE_RE.match(line):
            continue
        stripped = _LIST_MARKER_RE.sub("", line).strip()
        if not stripped:
            continue
        if stripped != line:
            elements.append(stripped)
        lines.append(stripped)
    return "\n".join(lines), tuple(elements)


def extract_arc_stages(macro_text: str) -> tuple[ArcStage, ...]:
    """Return the arc stages declared by bold headers in ``macro_text``.

    Ranges are recorded as written, including ``start > end``.
    """
    headers = list(_STAGE_HEADER_RE.finditer(macro_text))
    stages: list[ArcStage] = []
    for index, match in enumerate(headers):
        body_end = headers[index + 1].start() if index + 1 < len(headers) else len(macro_text)
        summary, elements = _stage_body(macro_text[match.end() : body_end])
        label = match.group("label").strip()
        title = match.group("title").strip()
        stages.append(
            ArcStage(
                stage_name=f"{label}: {title}",
                label=label,
                title=title,
                chapter_range=ChapterRange(
                    start=int(match.group("start")), end=int(match.group("end"))
                ),
                core_summary=summary,
                key_elements=elements,
            )
        )
    return tuple(stages)


def extract_chapter_markers(text: str) -> list[int]:
    """Return the distinct chapter numbers mentioned in ``text``, sorted."""
    numbers = {int(m.group(1)) for m in CHAPTER_MARKER_RE.finditer(text)}
    if not numbers:
        numbers = {int(m.group(1)) for m in _LOOSE_MARKER_RE.finditer(text)}
    return sorted(numbers)


def _parse(text: str) -> OutlineDocument:
    normalized = normalize_chapter_markers(text)
    macro, detailed, fmt = split_sections(normalized)
    stages = extract_arc_stages(macro) if macro else ()
    if macro and not stages:
        logger.debug("Macro section present but no stage headers matched")
    return OutlineDocument(
        macro_text=macro,
        stages=stages,
        detailed_text=detailed,
        source_format=fmt,
        planned_chapters=tuple(extract_chapter_markers(detailed)),
    )


def parse_outline(raw_text: str | None) -> OutlineDocument:
    """Parse stored outline text. Never raises.

    Parameters
    ----------
    raw_text:
        The persisted outline, in current, legacy or unsectioned form.

    Returns
    -------
    OutlineDocument
        The parsed document. On any internal failure, a document whose
        detailed text is the raw input and whose macro section is empty.
    """
    text = raw_text or ""
    try:
        return _parse(text)
    except Exception:
        logger.warning("Outline parsing failed; using raw text as chapter plan", exc_info=True)
        return OutlineDocument(detailed_text=text)


def compose_outline_text(macro_text: str, detailed_text: str) -> str:
    """Join sections with the current separator, or return the plan alone."""
    return OutlineDocument(macro_text=macro_text, detailed_text=detailed_text).to_text()


def with_detailed_text(document: OutlineDocument, detailed_text: str) -> OutlineDocument:
    """Return a new document with the chapter plan replaced."""
    return parse_outline(compose_outline_text(document.macro_text, detailed_text))


def append_detailed(document: OutlineDocument, new_detail: str) -> OutlineDocument:
    """Return a new document with ``new_detail`` appended to the chapter plan."""
    combined = f"{document.detailed_text.strip()}\n\n{new_detail.strip()}".strip()
    return with_detailed_text(document, combined)


def get_current_stage(stages: Sequence[ArcStage], chapter: int) -> ArcStage | None:
    """Return the stage containing ``chapter``.

    Chapters past the last stage clamp to it and chapters before the first
    stage clamp to the first; a chapter in a gap between stages has none.
    """
    for stage in stages:
        if stage.chapter_range.contains(chapter):
            return stage
    if not stages:
        return None
    if chapter > stages[-1].chapter_range.end:
        return stages[-1]
    if chapter < stages[0].chapter_range.start:
        return stages[0]
    return None


def get_next_stage(stages: Sequence[ArcStage], stage: ArcStage) -> ArcStage | None:
    for index, candidate in enumerate(stages):
        if candidate == stage:
            return stages[index + 1] if index + 1 < len(stages) else None
    return None


__all__ = [
    "CHAPTER_MARKER_RE",
    "normalize_chapter_markers",
    "split_sections",
    "extract_arc_stages",
    "extract_chapter_markers",
    "parse_outline",
    "compose_outline_text",
    "with_detailed_text",
    "append_detailed",
    "get_current_stage",
    "get_next_stage",
]
