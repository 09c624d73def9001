from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Bounds, ScoredChunk, StageResult, Suggestion
from .prompting import build_stage_prompt, summarise_suggestions
from .providers.llm import LLMProvider
from .retrieval import RetrievalService
from .settings import _cached_stage_delay_seconds, _retrieval_limit, _retrieval_timeout_seconds
from .stage_cache import StageCache
from .stages import ANALYSIS_STAGES, StageDefinition
from .suggestions import normalise_items, resolve_relations

logger = logging.getLogger(__name__)


class AnalysisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    region: str = Field(min_length=1)
    bounds: Bounds
    council: str = Field(min_length=1)
    plan_corpus: str | None = Field(default=None, alias="planCorpus")
    force: bool = False

    @field_validator("bounds")
    @classmethod
    def _check_bounds(cls, value: Bounds) -> Bounds:
        west, south, east, north = value
        if not (west < east and south < north):
            raise ValueError("bounds must be [west, south, east, north] with west < east and south < north")
        return value


@dataclass(frozen=True)
class AnalysisEvent:
    event: str
    data: dict[str, Any] = field(default_factory=dict)


def format_sse(event: AnalysisEvent) -> str:
    return f"event: {event.event}\ndata: {json.dumps(event.data, ensure_ascii=False)}\n\n"


class StageOrchestrator:
    """
    Drives the fixed stage sequence for one region and streams lifecycle events.

    Each stage is either replayed from the region's cache or run live (retrieval, prompt, model call,
    normalisation, incremental cache write). Stages run strictly in order; suggestions are emitted in
    the order their stage produced them.
    """

    def __init__(
        self,
        *,
        cache: StageCache,
        llm: LLMProvider,
        retrieval: RetrievalService | None = None,
        stages: tuple[StageDefinition, ...] = ANALYSIS_STAGES,
        retrieval_timeout_seconds: float | None = None,
        retrieval_limit: int | None = None,
        cached_stage_delay_seconds: float | None = None,
    ) -> None:
        self.cache = cache
        self.llm = llm
        self.retrieval = retrieval
        self.stages = tuple(sorted(stages, key=lambda s: s.stage_num))
        self.retrieval_timeout_seconds = (
            retrieval_timeout_seconds if retrieval_timeout_seconds is not None else _retrieval_timeout_seconds()
        )
        self.retrieval_limit = retrieval_limit if retrieval_limit is not None else _retrieval_limit()
        self.cached_stage_delay_seconds = (
            cached_stage_delay_seconds if cached_stage_delay_seconds is not None else _cached_stage_delay_seconds()
        )

    async def run(self, request: AnalysisRequest) -> AsyncIterator[AnalysisEvent]:
        """
        Yields `stage_start`, `suggestion`*, `stage_complete` per stage, then `complete`.

        Any exception escaping the stage loop ends the stream with a single `error` event.
        """
        try:
            async for event in self._run(request):
                yield event
        except Exception as exc:  # noqa: BLE001
            logger.exception("Analysis for region %r failed.", request.region)
            yield AnalysisEvent("error", {"message": str(exc) or "Analysis failed"})

    async def _run(self, request: AnalysisRequest) -> AsyncIterator[AnalysisEvent]:
        stage_cache = await self._load_cached_stages(request)
        if any(stage.stage_num not in stage_cache for stage in self.stages):
            self.llm.ensure_configured()

        all_suggestions: list[Suggestion] = []
        previous_summary = ""

        for stage in self.stages:
            cached_stage = stage_cache.get(stage.stage_num)
            from_cache = cached_stage is not None

            yield AnalysisEvent(
                "stage_start",
                {
                    "stageNum": stage.stage_num,
                    "name": stage.name,
                    "description": stage.description,
                    "fromCache": from_cache,
                },
            )

            if cached_stage is not None:
                suggestions = list(cached_stage.suggestions)
            else:
                suggestions = await self._run_live_stage(request, stage, previous_summary)

            for suggestion in suggestions:
                yield AnalysisEvent("suggestion", suggestion.to_wire())
            all_suggestions.extend(suggestions)

            yield AnalysisEvent(
                "stage_complete",
                {"stageNum": stage.stage_num, "suggestionCount": len(suggestions)},
            )

            if from_cache:
                await asyncio.sleep(self.cached_stage_delay_seconds)
            elif suggestions:
                previous_summary += summarise_suggestions(suggestions)

        resolved = resolve_relations(all_suggestions)
        relations = [
            {"id": s.id, "parentId": s.parent_id, "parentTitle": s.parent_title}
            for s in resolved
            if s.parent_id
        ]
        yield AnalysisEvent("complete", {"totalSuggestions": len(resolved), "relations": relations})

    async def _load_cached_stages(self, request: AnalysisRequest) -> dict[int, StageResult]:
        if request.force:
            return {}
        try:
            cached = await asyncio.to_thread(self.cache.load, request.region)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Stage cache read failed for %r, proceeding with live analysis: %s", request.region, exc)
            return {}
        return dict(cached.stage_results) if cached else {}

    async def _run_live_stage(
        self,
        request: AnalysisRequest,
        stage: StageDefinition,
        previous_summary: str,
    ) -> list[Suggestion]:
        plan_chunks = await self._retrieve_plan_context(request, stage)
        prompt = build_stage_prompt(
            stage=stage,
            bounds=request.bounds,
            council=request.council,
            plan_chunks=plan_chunks,
            previous_summary=previous_summary,
        )

        items = await asyncio.to_thread(self.llm.generate_suggestions, prompt)
        if not isinstance(items, list):
            items = []
        suggestions = normalise_items(items, stage.stage_num)
        logger.info(
            "Stage %s produced %s suggestions (%s raw, %s plan chunks).",
            stage.stage_num,
            len(suggestions),
            len(items),
            len(plan_chunks),
        )

        result = StageResult(
            stage_num=stage.stage_num,
            name=stage.name,
            description=stage.description,
            suggestions=suggestions,
        )
        try:
            await asyncio.to_thread(self.cache.upsert_stage, request.region, request.council, request.bounds, result)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to write stage %s to cache for %r: %s", stage.stage_num, request.region, exc)
        return suggestions

    async def _retrieve_plan_context(self, request: AnalysisRequest, stage: StageDefinition) -> list[ScoredChunk]:
        if not request.plan_corpus or self.retrieval is None:
            return []
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self.retrieval.retrieve_context,
                    request.plan_corpus,
                    stage.focus,
                    self.retrieval_limit,
                ),
                timeout=self.retrieval_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Plan context retrieval timed out after %.1fs for stage %s.",
                self.retrieval_timeout_seconds,
                stage.stage_num,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Plan context retrieval failed for stage %s: %s", stage.stage_num, exc)
        return []

    async def collect(self, request: AnalysisRequest) -> AnalysisEvent:
        """Consumes a full run and returns its terminal event (`complete` or `error`)."""
        terminal = AnalysisEvent("error", {"message": "Analysis produced no terminal event"})
        async for event in self.run(request):
            if event.event in {"complete", "error"}:
                terminal = event
        return terminal
