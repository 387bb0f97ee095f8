# src/arcweaver/models/reports.py
"""Structured reports produced by the lint and the analyst agent."""

from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator

from .base_model import ArcweaverBaseModel


class ConceptMatch(ArcweaverBaseModel):
    """A future-stage concept found in chapter prose."""

    concept: str
    ratio: float = Field(ge=0.0, le=1.0)
    exact: bool = False


class ComplianceReport(ArcweaverBaseModel):
    """Advisory plot-leakage evidence for one chapter.

    ``compliant`` is a convenience verdict; callers that want their own
    policy should look at ``matches`` and ``confidence`` instead.
    """

    chapter_number: int
    compliant: bool = True
    reason: str | None = None
    current_stage: str | None = None
    future_stage: str | None = None
    candidate_concepts: list[str] = Field(default_factory=list)
    matches: list[ConceptMatch] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def matched_concepts(self) -> list[str]:
        return [m.concept for m in self.matches]


class NovelComplianceSummary(ArcweaverBaseModel):
    novel_id: int
    reports: list[ComplianceReport] = Field(default_factory=list)

    @property
    def non_compliant_chapters(self) -> list[int]:
        return [r.chapter_number for r in self.reports if not r.compliant]

    @property
    def checked(self) -> int:
        return len(self.reports)


class DriftCharacter(ArcweaverBaseModel):
    name: str
    description: str = ""
    personality: str | None = None
    background: str | None = None


class DriftPlotClue(ArcweaverBaseModel):
    content: str
    details: str | None = None


class DriftPlotTwist(ArcweaverBaseModel):
    description: str
    impact_on_future: str = Field(default="", alias="impactOnFuture")


class DriftRelationshipChange(ArcweaverBaseModel):
    characters_involved: list[str] = Field(default_factory=list, alias="charactersInvolved")
    change_description: str = Field(default="", alias="changeDescription")


class DriftReport(ArcweaverBaseModel):
    """Unplanned developments the analyst found in recent chapters."""

    new_characters: list[DriftCharacter] = Field(default_factory=list, alias="newCharacters")
    new_plot_clues: list[DriftPlotClue] = Field(default_factory=list, alias="newPlotClues")
    plot_twists: list[DriftPlotTwist] = Field(default_factory=list, alias="plotTwists")
    relationship_changes: list[DriftRelationshipChange] = Field(
        default_factory=list, alias="relationshipChanges"
    )

    @field_validator(
        "new_characters", "new_plot_clues", "plot_twists", "relationship_changes", mode="before"
    )
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value

    @property
    def is_empty(self) -> bool:
        return not (
            self.new_characters
            or self.new_plot_clues
            or self.plot_twists
            or self.relationship_changes
        )


class ProgressStatus(str, Enum):
    """How far the story has drifted from the chapter plan."""

    ON_TRACK = "正常进度"
    SLIGHT_DRIFT = "轻度偏离"
    SEVERE_DRIFT = "严重偏离"
    UNKNOWN = "未知"


class ChapterPlan(ArcweaverBaseModel):
    """Decomposition of one chapter into a title and scene beats."""

    title: str = ""
    outline_events: list[str] = Field(default_factory=list, alias="bigOutlineEvents")
    progress_status: ProgressStatus = Field(default=ProgressStatus.UNKNOWN, alias="progressStatus")
    scenes: list[str] = Field(default_factory=list)

    @field_validator("scenes", mode="before")
    @classmethod
    def _scene_text(cls, value: object) -> object:
        if not isinstance(value, list):
            return value
        scenes: list[str] = []
        for item in value:
            if isinstance(item, str):
                text = item
            elif isinstance(item, dict):
                text = next(
                    (
                        str(item[k])
                        for k in ("scene", "description", "scene_description", "summary")
                        if item.get(k)
                    ),
                    "",
                )
            else:
                text = ""
            if text.strip():
                scenes.append(text.strip())
        return scenes

    @field_validator("progress_status", mode="before")
    @classmethod
    def _known_status(cls, value: object) -> object:
        if isinstance(value, ProgressStatus):
            return value
        if isinstance(value, str):
            for member in ProgressStatus:
                if member.value == value.strip():
                    return member
        return ProgressStatus.UNKNOWN

    @field_validator("outline_events", mode="before")
    @classmethod
    def _events_list(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


__all__ = [
    "ConceptMatch",
    "ComplianceReport",
    "NovelComplianceSummary",
    "DriftCharacter",
    "DriftPlotClue",
    "DriftPlotTwist",
    "DriftRelationshipChange",
    "DriftReport",
    "ProgressStatus",
    "ChapterPlan",
]
