# src/arcweaver/outline/leakage.py
"""Advisory lint for prose that introduces the next arc stage too early.

The checker pulls a handful of key concepts out of the *next* stage's
summary and looks for them in a chapter. It is a heuristic: it reports
evidence and a confidence, and never decides on its own whether a chapter
is rejected.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from arcweaver.config import LeakageConfig, config
from arcweaver.core.logging import get_logger
from arcweaver.errors import NovelNotFoundError
from arcweaver.models.outline import ArcStage, OutlineDocument
from arcweaver.models.reports import ComplianceReport, ConceptMatch, NovelComplianceSummary

from .parser import get_current_stage, get_next_stage, parse_outline

if TYPE_CHECKING:
    from arcweaver.ports import NovelRepository

logger = get_logger(__name__)

_QUOTED_RES = (
    re.compile(r'"([^"\n]+)"'),
    re.compile(r"“([^”\n]+)”"),
    re.compile(r"「([^」\n]+)」"),
    re.compile(r"『([^』\n]+)』"),
    re.compile(r"《([^》\n]+)》"),
)
_CLAUSE_BOUNDARY = r"，。；！？,.;!?、\n"
_CLAUSE_SPLIT_RE = re.compile(rf"[{_CLAUSE_BOUNDARY}]")
_LIST_PREFIX_RE = re.compile(r"^[-*•·\s]+")
_MIN_CONCEPT_LENGTH = 2
_SHORT_CONCEPT_LENGTH = 3


def _colon_phrase_re(max_length: int) -> re.Pattern[str]:
    return re.compile(rf"[:：]\s*([^{_CLAUSE_BOUNDARY}:：]{{1,{max_length}}})")


def extract_key_concepts(summary: str, settings: LeakageConfig | None = None) -> list[str]:
    """Return candidate concepts from a stage summary, in discovery order.

    Three sources are used: quoted phrases, the text right after a colon
    up to the next clause boundary, and short clauses that contain one of
    the configured event marker words.
    """
    settings = settings or config.leakage
    found: list[str] = []

    def add(candidate: str) -> None:
        concept = _LIST_PREFIX_RE.sub("", candidate).strip(" \t\"'“”「」『』《》")
        if len(concept) >= _MIN_CONCEPT_LENGTH and concept not in found:
            found.append(concept)

    for pattern in _QUOTED_RES:
        for match in pattern.finditer(summary):
            add(match.group(1))

    for match in _colon_phrase_re(settings.max_colon_phrase_length).finditer(summary):
        add(match.group(1))

    for clause in _CLAUSE_SPLIT_RE.split(summary):
        # the colon heuristic already covers "label: phrase" clauses
        clause = re.split(r"[:：]", clause)[-1].strip()
        if len(clause) > settings.max_clause_length:
            continue
        if any(marker in clause for marker in settings.event_markers):
            add(clause)

    return found


def match_concept(concept: str, chapter_text: str, fuzzy_threshold: float) -> ConceptMatch | None:
    """Match one concept against chapter text.

    Short concepts need an exact substring; longer ones also match when
    enough of their characters appear anywhere in the chapter.
    """
    if concept in chapter_text:
        return ConceptMatch(concept=concept, ratio=1.0, exact=True)
    chars = [c for c in concept if not c.isspace()]
    if len(chars) <= _SHORT_CONCEPT_LENGTH:
        return None
    present = set(chapter_text)
    ratio = sum(1 for c in chars if c in present) / len(chars)
    if ratio >= fuzzy_threshold:
        return ConceptMatch(concept=concept, ratio=round(ratio, 3))
    return None


def _resolve(outline: str | OutlineDocument | None) -> OutlineDocument:
    if isinstance(outline, OutlineDocument):
        return outline
    return parse_outline(outline)


def check_compliance(
    chapter_text: str,
    chapter_number: int,
    outline: str | OutlineDocument | None,
    settings: LeakageConfig | None = None,
) -> ComplianceReport:
    """Check a chapter for concepts that belong to the following arc stage.

    Parameters
    ----------
    chapter_text:
        Generated chapter prose.
    chapter_number:
        Number of the chapter being checked.
    outline:
        Stored outline text or an already parsed document.
    settings:
        Thresholds; the global leakage configuration by default.

    Returns
    -------
    ComplianceReport
        Compliant when no stage or no following stage can be resolved, or
        when fewer than ``flag_threshold`` concepts match.
    """
    settings = settings or config.leakage
    document = _resolve(outline)
    current = get_current_stage(document.stages, chapter_number)
    if current is None:
        return ComplianceReport(chapter_number=chapter_number)
    future = get_next_stage(document.stages, current)
    if future is None:
        return ComplianceReport(chapter_number=chapter_number, current_stage=current.stage_name)

    concepts = extract_key_concepts(future.core_summary, settings)
    matches = [
        m
        for m in (match_concept(c, chapter_text, settings.fuzzy_threshold) for c in concepts)
        if m is not None
    ]
    report = ComplianceReport(
        chapter_number=chapter_number,
        current_stage=current.stage_name,
        future_stage=future.stage_name,
        candidate_concepts=concepts,
        matches=matches,
        confidence=_confidence(matches, settings.flag_threshold),
    )
    if len(matches) >= settings.flag_threshold:
        report.compliant = False
        report.reason = _reason(chapter_number, future, matches)
    return report


def _confidence(matches: list[ConceptMatch], flag_threshold: int) -> float:
    if not matches:
        return 0.0
    mean_ratio = sum(m.ratio for m in matches) / len(matches)
    return round(min(1.0, len(matches) / flag_threshold) * mean_ratio, 3)


def _reason(chapter_number: int, future: ArcStage, matches: list[ConceptMatch]) -> str:
    concepts = "、".join(m.concept for m in matches)
    return (
        f"Chapter {chapter_number} introduces {len(matches)} concepts reserved for "
        f"'{future.stage_name}' ({future.chapter_range}): {concepts}"
    )


async def check_novel_compliance(
    novel_id: int,
    repository: NovelRepository,
    settings: LeakageConfig | None = None,
) -> NovelComplianceSummary:
    """Run :func:`check_compliance` over every saved chapter of a novel."""
    novel = await repository.get_novel(novel_id)
    if novel is None:
        raise NovelNotFoundError(novel_id)
    chapters = await repository.list_chapters(novel_id)
    reports = [
        check_compliance(chapter.content, chapter.chapter_number, novel.outline, settings)
        for chapter in chapters
    ]
    summary = NovelComplianceSummary(novel_id=novel_id, reports=reports)
    if summary.non_compliant_chapters:
        logger.info(
            "Novel %s: %d of %d chapters flagged for plot leakage: %s",
            novel_id,
            len(summary.non_compliant_chapters),
            summary.checked,
            summary.non_compliant_chapters,
        )
    return summary


__all__ = [
    "extract_key_concepts",
    "match_concept",
    "check_compliance",
    "check_novel_compliance",
]
