from __future__ import annotations

import logging

from .embeddings import EmbeddingClient, EmbeddingTask
from .models import ScoredChunk
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


class RetrievalService:
    """
    Semantic search over an ingested plan corpus.
    """

    def __init__(self, embedder: EmbeddingClient, store: VectorStore, *, candidate_multiplier: int = 10) -> None:
        self.embedder = embedder
        self.store = store
        self.candidate_multiplier = candidate_multiplier

    def search(
        self,
        query: str,
        *,
        limit: int = 5,
        council: str | None = None,
        section_type: str | None = None,
    ) -> list[ScoredChunk]:
        """Embeds `query` and searches the store. Errors propagate."""
        query = (query or "").strip()
        if not query:
            raise ValueError("query must not be empty")
        vector = self.embedder.embed_one(query, EmbeddingTask.QUERY)
        return self.store.search(
            vector,
            limit=max(1, min(int(limit), 50)),
            candidate_multiplier=self.candidate_multiplier,
            council=council,
            section_type=section_type,
        )

    def retrieve_context(self, corpus_id: str, focus_text: str, limit: int = 4) -> list[ScoredChunk]:
        """
        Policy context for one analysis stage.

        Never raises: a missing corpus, embedding failure or store failure yields an empty list so the
        caller can continue with an ungrounded prompt.
        """
        if not corpus_id or not (focus_text or "").strip():
            return []
        try:
            results = self.search(focus_text, limit=limit, council=corpus_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Plan context retrieval failed for corpus %r: %s", corpus_id, exc)
            return []
        logger.debug("Retrieved %s plan chunks for corpus %r.", len(results), corpus_id)
        return results
