from __future__ import annotations

from typing import Any

import pytest

from council_intel.embeddings import EmbeddingTask
from council_intel.models import PlanChunk
from council_intel.providers.llm import LLMProvider


class FakeLLM(LLMProvider):
    """Returns queued responses in order; an exhausted queue yields empty stages."""

    def __init__(self, responses: list[list[Any]] | None = None, *, default: list[Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.default = default or []
        self.prompts: list[str] = []
        self.closed = False

    @property
    def provider_family(self) -> str:
        return "fake"

    def generate_suggestions(self, prompt: str, options: dict[str, Any] | None = None) -> list[Any]:
        self.prompts.append(prompt)
        if self.responses:
            return self.responses.pop(0)
        return list(self.default)

    def close(self) -> None:
        self.closed = True


class FakeEmbedder:
    """Deterministic 3-d embeddings keyed on the first word of the text body (after any heading)."""

    VECTORS = {
        "housing": [1.0, 0.0, 0.0],
        "flood": [0.0, 1.0, 0.0],
        "transport": [0.0, 0.0, 1.0],
    }

    def __init__(self) -> None:
        self.calls: list[tuple[list[str], EmbeddingTask]] = []

    def _vector(self, text: str) -> list[float]:
        words = text.split("\n\n")[-1].split()
        word = words[0].lower() if words else ""
        return list(self.VECTORS.get(word, [0.5, 0.5, 0.5]))

    def embed_batch(self, texts: list[str], task: EmbeddingTask = EmbeddingTask.DOCUMENT) -> list[list[float]]:
        self.calls.append((list(texts), task))
        return [self._vector(t) for t in texts]

    def embed_one(self, text: str, task: EmbeddingTask = EmbeddingTask.QUERY) -> list[float]:
        self.calls.append(([text], task))
        return self._vector(text)

    def close(self) -> None:
        return None


def make_chunk(
    chunk_index: int,
    embedding: list[float] | None,
    *,
    source: str = "plan.pdf",
    council: str = "Cheltenham",
    section_type: str = "policy",
    text: str = "Development proposals will be supported where they accord with the plan.",
) -> PlanChunk:
    return PlanChunk(
        chunk_id=f"{source}-{chunk_index}",
        source=source,
        council=council,
        section=f"Policy H{chunk_index}: Housing",
        section_type=section_type,
        page_start=chunk_index + 1,
        chunk_index=chunk_index,
        text=text,
        char_count=len(text),
        embedding=embedding,
    )


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
