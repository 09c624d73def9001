from __future__ import annotations

import logging
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, ValidationError, field_validator

from .geometry import safe_buffer
from .models import ImplementationOption, Suggestion, SuggestionCategory

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_RADIUS_M = 200.0
DEFAULT_IMPLEMENTATION_RADIUS_M = 100.0
DEFAULT_COLOR: tuple[int, int, int, int] = (150, 150, 150, 180)


def _lower_or_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip().lower()
        return value or None
    return value


class RawImplementation(BaseModel):
    """One implementation step exactly as the model emitted it."""

    model_config = ConfigDict(extra="ignore")

    type: SuggestionCategory
    title: str | None = None
    description: str | None = None
    centerPoint: tuple[FiniteFloat, FiniteFloat] | None = None
    radiusM: FiniteFloat | None = None
    heightM: FiniteFloat | None = None
    color: tuple[FiniteFloat, FiniteFloat, FiniteFloat, FiniteFloat] | None = None
    policyBasis: str | None = None
    order: int | None = None
    projectedEffect: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> Any:
        return _lower_or_none(value)


class RawSuggestion(BaseModel):
    """
    Validated intermediate form of one model-emitted suggestion.

    Anything that does not fit this shape is rejected as a whole.
    """

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    type: SuggestionCategory
    status: str | None = None
    rationale: str | None = None
    reasoning: str | None = None
    priority: Literal["high", "medium", "low"] | None = None
    centerPoint: tuple[FiniteFloat, FiniteFloat]
    radiusM: FiniteFloat | None = None
    evidenceSources: list[str] | None = None
    policyBasis: str | None = None
    problem: str | None = None
    overallOutcome: str | None = None
    relatedToTitle: str | None = None
    implementations: list[RawImplementation] | None = Field(default=None)

    @field_validator("type", "priority", mode="before")
    @classmethod
    def _normalise_enums(cls, value: Any) -> Any:
        return _lower_or_none(value)


def parse_raw_suggestions(items: list[Any]) -> list[RawSuggestion]:
    """Validates raw items, dropping (and logging) any that fail structural validation."""
    out: list[RawSuggestion] = []
    for i, item in enumerate(items):
        try:
            out.append(RawSuggestion.model_validate(item))
        except ValidationError as exc:
            logger.warning("Dropping malformed suggestion #%s: %s", i, exc.errors()[:3])
    return out


def _color(raw: tuple[float, float, float, float] | None) -> tuple[int, int, int, int]:
    if raw is None:
        return DEFAULT_COLOR
    r, g, b, a = (max(0, min(255, int(round(v)))) for v in raw)
    return (r, g, b, a)


def _positive_or(value: float | None, default: float) -> float:
    if value is None or value <= 0:
        return default
    return float(value)


def normalise_implementation(
    raw: RawImplementation,
    index: int,
    parent_center: tuple[float, float],
) -> ImplementationOption:
    center = raw.centerPoint or parent_center
    radius = _positive_or(raw.radiusM, DEFAULT_IMPLEMENTATION_RADIUS_M)
    return ImplementationOption(
        type=raw.type.value,
        title=raw.title or "",
        description=raw.description or "",
        center_point=center,
        radius_m=radius,
        height_m=raw.heightM,
        color=_color(raw.color),
        policy_basis=raw.policyBasis or "",
        order=raw.order if raw.order is not None else index + 1,
        projected_effect=raw.projectedEffect or "",
        geometry=safe_buffer(center, radius),
    )


def normalise_suggestion(raw: RawSuggestion, stage: int, index: int) -> Suggestion:
    center = raw.centerPoint
    radius = _positive_or(raw.radiusM, DEFAULT_SUGGESTION_RADIUS_M)
    related = (raw.relatedToTitle or "").strip() or None
    return Suggestion(
        id=f"stage{stage}-{index}-{uuid4().hex[:8]}",
        stage=stage,
        geometry=safe_buffer(center, radius),
        type=raw.type,
        status="existing" if (raw.status or "").strip().lower() == "existing" else "proposed",
        title=(raw.title or "").strip() or "Untitled",
        rationale=raw.rationale or "",
        reasoning=raw.reasoning or "",
        priority=raw.priority or "medium",
        evidence_sources=list(raw.evidenceSources or []),
        policy_basis=raw.policyBasis or "",
        implementations=[
            normalise_implementation(impl, i, center) for i, impl in enumerate(raw.implementations or [])
        ],
        problem=raw.problem or "",
        overall_outcome=raw.overallOutcome or "",
        related_to_title=related,
    )


def normalise_items(items: list[Any], stage: int) -> list[Suggestion]:
    return [normalise_suggestion(raw, stage, i) for i, raw in enumerate(parse_raw_suggestions(items))]


def _title_key(title: str) -> str:
    return title.strip().lower()


def resolve_relations(suggestions: list[Suggestion]) -> list[Suggestion]:
    """
    Turns `related_to_title` references into parent/child links.

    Returns new Suggestion objects in the same order; inputs are not modified. References to unknown
    titles, to the suggestion itself, or to a suggestion from a later stage are dropped.
    """
    by_id = {s.id: s for s in suggestions}
    title_index: dict[str, str] = {}
    # First occurrence of a title wins; a parent never comes from a later stage.
    for s in suggestions:
        title_index.setdefault(_title_key(s.title), s.id)

    parent_of: dict[str, str] = {}
    children: dict[str, list[str]] = {}
    for s in suggestions:
        if not s.related_to_title:
            continue
        parent_id = title_index.get(_title_key(s.related_to_title))
        if parent_id is None or parent_id == s.id:
            continue
        if by_id[parent_id].stage > s.stage:
            continue
        parent_of[s.id] = parent_id
        children.setdefault(parent_id, []).append(s.id)

    resolved: list[Suggestion] = []
    for s in suggestions:
        parent_id = parent_of.get(s.id)
        resolved.append(
            s.model_copy(
                update={
                    "parent_id": parent_id,
                    "parent_title": by_id[parent_id].title if parent_id else None,
                    "related_ids": list(children.get(s.id, [])),
                }
            )
        )
    return resolved
