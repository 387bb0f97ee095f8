# src/arcweaver/models/__init__.py
"""Pydantic and ORM models for Arcweaver."""

from .base import Base
from .base_model import ArcweaverBaseModel
from .novel import (
    PLACEHOLDER,
    ChapterDraft,
    ChapterRecord,
    Character,
    GenerationSettings,
    NovelSnapshot,
    PlotClue,
)
from .outcomes import (
    BatchResult,
    BatchState,
    BatchStatus,
    PlanningFailed,
    PlanningOutcome,
    PlanningPlanned,
    PlanningSkipped,
    SkipReason,
)
from .outline import (
    CURRENT_SEPARATOR,
    LEGACY_SEPARATOR,
    ArcStage,
    ChapterRange,
    OutlineDocument,
    OutlineFormat,
)
from .reports import (
    ChapterPlan,
    ComplianceReport,
    ConceptMatch,
    DriftCharacter,
    DriftPlotClue,
    DriftPlotTwist,
    DriftRelationshipChange,
    DriftReport,
    NovelComplianceSummary,
    ProgressStatus,
)
from .sqlalchemy_models import (
    ChapterSQL,
    CharacterSQL,
    GenerationSettingsSQL,
    NovelSQL,
    PlotClueSQL,
)

__all__ = [
    "Base",
    "ArcweaverBaseModel",
    "PLACEHOLDER",
    "ChapterDraft",
    "ChapterRecord",
    "Character",
    "GenerationSettings",
    "NovelSnapshot",
    "PlotClue",
    "BatchResult",
    "BatchState",
    "BatchStatus",
    "PlanningFailed",
    "PlanningOutcome",
    "PlanningPlanned",
    "PlanningSkipped",
    "SkipReason",
    "CURRENT_SEPARATOR",
    "LEGACY_SEPARATOR",
    "ArcStage",
    "ChapterRange",
    "OutlineDocument",
    "OutlineFormat",
    "ChapterPlan",
    "ComplianceReport",
    "ConceptMatch",
    "DriftCharacter",
    "DriftPlotClue",
    "DriftPlotTwist",
    "DriftRelationshipChange",
    "DriftReport",
    "NovelComplianceSummary",
    "ProgressStatus",
    "ChapterSQL",
    "CharacterSQL",
    "GenerationSettingsSQL",
    "NovelSQL",
    "PlotClueSQL",
]
