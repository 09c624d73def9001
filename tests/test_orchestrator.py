import asyncio
import time
from unittest.mock import MagicMock

import pytest

from council_intel.errors import ConfigurationError
from council_intel.models import PlanChunk, ScoredChunk
from council_intel.orchestrator import AnalysisEvent, AnalysisRequest, StageOrchestrator, format_sse
from council_intel.retrieval import RetrievalService
from council_intel.stage_cache import InMemoryStageCache
from council_intel.stages import ANALYSIS_STAGES, StageDefinition
from council_intel.vector_store import InMemoryVectorStore

from conftest import FakeLLM

STAGES = (
    StageDefinition(1, "Land use", "Audit land use.", "Vacant and underused land."),
    StageDefinition(2, "Housing", "Housing need.", "Housing delivery and allocations."),
    StageDefinition(3, "Green space", "Green infrastructure.", "Parks and open space deficits."),
)

REQUEST = AnalysisRequest(region="cheltenham-centre", bounds=(-2.1, 51.88, -2.05, 51.92), council="Cheltenham")


def _item(title, kind="housing", **extra):
    return {"title": title, "type": kind, "centerPoint": [-2.07, 51.9], **extra}


def _orchestrator(llm, cache=None, retrieval=None, **kwargs):
    return StageOrchestrator(
        cache=cache or InMemoryStageCache(),
        llm=llm,
        retrieval=retrieval,
        stages=STAGES,
        retrieval_timeout_seconds=kwargs.pop("retrieval_timeout_seconds", 1.0),
        retrieval_limit=4,
        cached_stage_delay_seconds=0,
        **kwargs,
    )


async def _events(orchestrator, request=REQUEST):
    return [event async for event in orchestrator.run(request)]


def _names(events):
    return [e.event for e in events]


class TestRequestValidation:
    def test_bounds_must_be_ordered(self):
        with pytest.raises(ValueError):
            AnalysisRequest(region="r", bounds=(1.0, 51.0, 0.5, 52.0), council="Cheltenham")

    def test_plan_corpus_alias(self):
        req = AnalysisRequest.model_validate(
            {"region": "r", "bounds": [0, 51, 1, 52], "council": "Cheltenham", "planCorpus": "Cheltenham"}
        )
        assert req.plan_corpus == "Cheltenham"
        assert req.force is False


def test_format_sse():
    text = format_sse(AnalysisEvent("stage_complete", {"stageNum": 2, "suggestionCount": 0}))
    assert text == 'event: stage_complete\ndata: {"stageNum": 2, "suggestionCount": 0}\n\n'


def test_default_stage_sequence_is_ordered():
    assert [s.stage_num for s in ANALYSIS_STAGES] == list(range(1, 11))
    assert all(s.name and s.description and s.focus for s in ANALYSIS_STAGES)


class TestLiveRun:
    @pytest.mark.asyncio
    async def test_event_sequence(self):
        llm = FakeLLM([[_item("A"), _item("B")], [], [_item("C", "park")]])

        events = await _events(_orchestrator(llm))

        assert _names(events) == [
            "stage_start", "suggestion", "suggestion", "stage_complete",
            "stage_start", "stage_complete",
            "stage_start", "suggestion", "stage_complete",
            "complete",
        ]
        starts = [e.data for e in events if e.event == "stage_start"]
        assert [s["stageNum"] for s in starts] == [1, 2, 3]
        assert all(s["fromCache"] is False for s in starts)
        completes = [e.data for e in events if e.event == "stage_complete"]
        assert [c["suggestionCount"] for c in completes] == [2, 0, 1]
        assert events[-1].data["totalSuggestions"] == 3
        suggestion = events[1].data
        assert suggestion["title"] == "A" and suggestion["stage"] == 1
        assert suggestion["geometry"]["type"] == "Polygon"

    @pytest.mark.asyncio
    async def test_previous_findings_feed_later_prompts(self):
        llm = FakeLLM([[_item("Station Quarter", rationale="Underused car parks.")], [], []])

        await _events(_orchestrator(llm))

        assert "Station Quarter" not in llm.prompts[0]
        assert "Previous analysis stages have identified" in llm.prompts[1]
        assert "Station Quarter" in llm.prompts[1]
        assert "STAGE 2 FOCUS: Housing delivery and allocations." in llm.prompts[1]

    @pytest.mark.asyncio
    async def test_invalid_items_are_dropped_not_fatal(self):
        llm = FakeLLM([[_item("A"), {"title": "no centre", "type": "park"}], [], []])

        events = await _events(_orchestrator(llm))

        assert events[-1].event == "complete"
        assert events[-1].data["totalSuggestions"] == 1

    @pytest.mark.asyncio
    async def test_relations_reported_on_complete(self):
        llm = FakeLLM([[_item("Riverside Park", "park")], [_item("Riverside Homes", relatedToTitle="riverside park")], []])

        events = await _events(_orchestrator(llm))

        [relation] = events[-1].data["relations"]
        parent_id = events[1].data["id"]
        assert relation["parentId"] == parent_id
        assert relation["parentTitle"] == "Riverside Park"


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_run_replays_from_cache(self):
        cache = InMemoryStageCache()
        llm = FakeLLM([[_item("A")], [_item("B")], []])
        first = await _events(_orchestrator(llm, cache))

        second = await _events(_orchestrator(llm, cache))

        assert len(llm.prompts) == 3
        assert all(e.data["fromCache"] is True for e in second if e.event == "stage_start")
        first_ids = [e.data["id"] for e in first if e.event == "suggestion"]
        second_ids = [e.data["id"] for e in second if e.event == "suggestion"]
        assert first_ids == second_ids
        assert second[-1].data["totalSuggestions"] == 2

    @pytest.mark.asyncio
    async def test_partially_cached_region_resumes(self):
        cache = InMemoryStageCache()
        seeding = FakeLLM([[_item("A")]])
        # Only stage 1 is cached.
        await _events(StageOrchestrator(cache=cache, llm=seeding, stages=STAGES[:1], cached_stage_delay_seconds=0))
        llm = FakeLLM([[_item("B")], []])

        events = await _events(_orchestrator(llm, cache))

        assert [e.data["fromCache"] for e in events if e.event == "stage_start"] == [True, False, False]
        assert len(llm.prompts) == 2
        assert "STAGE 2 FOCUS" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_force_ignores_cache(self):
        cache = InMemoryStageCache()
        await _events(_orchestrator(FakeLLM([[_item("A")], [], []]), cache))
        llm = FakeLLM([[_item("A2")], [], []])

        events = await _events(_orchestrator(llm, cache), REQUEST.model_copy(update={"force": True}))

        assert all(e.data["fromCache"] is False for e in events if e.event == "stage_start")
        assert len(llm.prompts) == 3
        assert [s.title for s in cache.load(REQUEST.region).stage_results[1].suggestions] == ["A2"]

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_fail_the_run(self):
        cache = MagicMock()
        cache.load.return_value = None
        cache.upsert_stage.side_effect = RuntimeError("disk full")

        events = await _events(_orchestrator(FakeLLM([[_item("A")], [], []]), cache))

        assert events[-1].event == "complete"
        assert events[-1].data["totalSuggestions"] == 1

    @pytest.mark.asyncio
    async def test_cache_read_failure_runs_live(self):
        cache = MagicMock()
        cache.load.side_effect = RuntimeError("connection reset")
        llm = FakeLLM([[], [], []])

        events = await _events(_orchestrator(llm, cache))

        assert events[-1].event == "complete"
        assert len(llm.prompts) == 3


class TestFailures:
    @pytest.mark.asyncio
    async def test_unconfigured_model_fails_fast(self):
        llm = FakeLLM()
        llm.ensure_configured = MagicMock(side_effect=ConfigurationError("COUNCIL_GEMINI_API_KEY not configured"))

        events = await _events(_orchestrator(llm))

        assert _names(events) == ["error"]
        assert "COUNCIL_GEMINI_API_KEY" in events[0].data["message"]

    @pytest.mark.asyncio
    async def test_fully_cached_region_needs_no_model(self):
        cache = InMemoryStageCache()
        await _events(_orchestrator(FakeLLM([[_item("A")], [], []]), cache))
        llm = FakeLLM()
        llm.ensure_configured = MagicMock(side_effect=ConfigurationError("no key"))

        events = await _events(_orchestrator(llm, cache))

        assert events[-1].event == "complete"

    @pytest.mark.asyncio
    async def test_model_exception_ends_stream_with_error(self):
        llm = FakeLLM([[_item("A")]])
        calls = {"n": 0}
        original = llm.generate_suggestions

        def flaky(prompt, options=None):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("model exploded")
            return original(prompt, options)

        llm.generate_suggestions = flaky

        events = await _events(_orchestrator(llm))

        assert _names(events) == ["stage_start", "suggestion", "stage_complete", "stage_start", "error"]
        assert events[-1].data == {"message": "model exploded"}


class TestPlanContext:
    def _chunk(self):
        return ScoredChunk(
            score=0.9,
            chunk=PlanChunk(
                chunk_id="c1",
                source="plan.pdf",
                council="Cheltenham",
                section="Policy H1: Housing Delivery",
                section_type="policy",
                page_start=3,
                chunk_index=0,
                text="x" * 1000,
                char_count=1000,
            ),
        )

    @pytest.mark.asyncio
    async def test_retrieved_chunks_are_injected_and_truncated(self):
        retrieval = MagicMock()
        retrieval.retrieve_context.return_value = [self._chunk()]
        llm = FakeLLM()

        await _events(_orchestrator(llm, retrieval=retrieval), REQUEST.model_copy(update={"plan_corpus": "Cheltenham"}))

        prompt = llm.prompts[0]
        assert "LOCAL PLAN CONTEXT" in prompt
        assert "[POLICY - Policy H1: Housing Delivery, p.3]" in prompt
        assert "x" * 600 in prompt and "x" * 601 not in prompt
        corpus, focus, limit = retrieval.retrieve_context.call_args_list[0].args
        assert (corpus, focus, limit) == ("Cheltenham", STAGES[0].focus, 4)

    @pytest.mark.asyncio
    async def test_no_corpus_means_no_retrieval(self):
        retrieval = MagicMock()
        llm = FakeLLM()

        await _events(_orchestrator(llm, retrieval=retrieval))

        retrieval.retrieve_context.assert_not_called()
        assert "LOCAL PLAN CONTEXT" not in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_empty_corpus_runs_ungrounded(self, fake_embedder):
        store = InMemoryVectorStore()
        store.ensure_index(3)
        llm = FakeLLM()

        events = await _events(
            _orchestrator(llm, retrieval=RetrievalService(fake_embedder, store)),
            REQUEST.model_copy(update={"plan_corpus": "UnknownCouncil"}),
        )

        assert events[-1].event == "complete"
        assert len(llm.prompts) == len(STAGES)
        assert all("LOCAL PLAN CONTEXT" not in p for p in llm.prompts)

    @pytest.mark.asyncio
    async def test_slow_retrieval_is_abandoned(self):
        retrieval = MagicMock()

        def slow(*args):
            time.sleep(0.3)
            return [self._chunk()]

        retrieval.retrieve_context.side_effect = slow
        llm = FakeLLM()

        events = await _events(
            _orchestrator(llm, retrieval=retrieval, retrieval_timeout_seconds=0.05),
            REQUEST.model_copy(update={"plan_corpus": "Cheltenham"}),
        )

        assert events[-1].event == "complete"
        assert all("LOCAL PLAN CONTEXT" not in p for p in llm.prompts)


@pytest.mark.asyncio
async def test_collect_returns_terminal_event():
    terminal = await _orchestrator(FakeLLM([[_item("A")], [], []])).collect(REQUEST)
    assert terminal.event == "complete"
    assert terminal.data["totalSuggestions"] == 1


def test_run_can_be_driven_from_sync_code():
    events = asyncio.run(_events(_orchestrator(FakeLLM())))
    assert events[-1].event == "complete"
