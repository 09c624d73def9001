from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


SectionType = Literal["chapter", "policy", "appendix", "supporting-text"]
SECTION_TYPES: tuple[str, ...] = ("chapter", "policy", "appendix", "supporting-text")

Bounds = tuple[float, float, float, float]


class SuggestionCategory(str, Enum):
    TROUBLED_AREA = "troubled_area"
    OPPORTUNITY_ZONE = "opportunity_zone"
    PARK = "park"
    HOUSING = "housing"
    BRIDGE = "bridge"
    COMMUNITY = "community"
    MIXED_USE = "mixed_use"
    TRANSPORT = "transport"


Priority = Literal["high", "medium", "low"]
Status = Literal["existing", "proposed"]


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PlanChunk(_WireModel):
    chunk_id: str = Field(alias="chunkId")
    source: str
    council: str
    section: str
    section_type: SectionType = Field(alias="sectionType")
    page_start: int = Field(alias="pageStart")
    chunk_index: int = Field(alias="chunkIndex")
    text: str
    char_count: int = Field(alias="charCount")
    embedding: list[float] | None = None


class ScoredChunk(BaseModel):
    score: float
    chunk: PlanChunk


class ImplementationOption(_WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str
    title: str = ""
    description: str = ""
    center_point: tuple[float, float] = Field(alias="centerPoint")
    radius_m: float = Field(alias="radiusM")
    height_m: float | None = Field(default=None, alias="heightM")
    color: tuple[int, int, int, int]
    policy_basis: str = Field(default="", alias="policyBasis")
    order: int
    projected_effect: str = Field(default="", alias="projectedEffect")
    geometry: dict[str, Any]


class Suggestion(_WireModel):
    """
    A normalised, geometry-bearing finding produced by one stage.

    Instances are immutable; relation resolution produces updated copies.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    stage: int
    geometry: dict[str, Any]
    type: SuggestionCategory
    status: Status = "proposed"
    title: str
    rationale: str = ""
    reasoning: str = ""
    priority: Priority = "medium"
    evidence_sources: list[str] = Field(default_factory=list, alias="evidenceSources")
    policy_basis: str = Field(default="", alias="policyBasis")
    implementations: list[ImplementationOption] = Field(default_factory=list)
    problem: str = ""
    overall_outcome: str = Field(default="", alias="overallOutcome")
    related_to_title: str | None = Field(default=None, alias="relatedToTitle")
    parent_id: str | None = Field(default=None, alias="parentId")
    parent_title: str | None = Field(default=None, alias="parentTitle")
    related_ids: list[str] = Field(default_factory=list, alias="relatedIds")

    def summary_line(self) -> str:
        return f"- {self.title} ({self.type.value}, {self.priority} priority): {self.rationale}"


class StageResult(_WireModel):
    stage_num: int = Field(alias="stageNum")
    name: str = ""
    description: str = ""
    suggestions: list[Suggestion] = Field(default_factory=list)


class AnalysisCache(_WireModel):
    region_id: str = Field(alias="regionId")
    council: str
    bounds: Bounds
    stage_results: dict[int, StageResult] = Field(default_factory=dict, alias="stageResults")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
