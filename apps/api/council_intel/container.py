from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import HTTPException, Request

from .db import Database
from .embeddings import EmbeddingClient
from .orchestrator import StageOrchestrator
from .providers.factory import get_llm_provider
from .providers.llm import LLMProvider
from .retrieval import RetrievalService
from .settings import _embeddings_dim
from .stage_cache import InMemoryStageCache, PostgresStageCache, StageCache
from .vector_store import InMemoryVectorStore, PgVectorStore, VectorStore

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """
    Everything the HTTP layer needs, built once per process and closed on shutdown.
    """

    cache: StageCache
    store: VectorStore
    embedder: EmbeddingClient
    llm: LLMProvider
    db: Database | None = None
    retrieval: RetrievalService = field(init=False)

    def __post_init__(self) -> None:
        self.retrieval = RetrievalService(self.embedder, self.store)

    @classmethod
    def from_env(cls) -> "AppContainer":
        """
        Postgres-backed stores when `COUNCIL_DB_DSN` is set and reachable, in-memory stores otherwise.
        """
        db = Database.from_env()
        cache: StageCache
        store: VectorStore
        if db is not None:
            try:
                db.open()
            except Exception:  # noqa: BLE001
                logger.exception("DB pool init failed; continuing with in-memory stores.")
                db = None

        if db is not None:
            cache = PostgresStageCache(db)
            store = PgVectorStore(db)
            try:
                cache.ensure_schema()
            except Exception:  # noqa: BLE001
                logger.exception("Could not create the stage cache table; cache reads and writes will fail.")
            store.ensure_index(_embeddings_dim())
        else:
            logger.info("COUNCIL_DB_DSN not usable; stage cache and plan corpus are in-memory.")
            cache = InMemoryStageCache()
            store = InMemoryVectorStore()

        embedder = EmbeddingClient()
        embedder.open()
        return cls(cache=cache, store=store, embedder=embedder, llm=get_llm_provider(), db=db)

    def orchestrator(self) -> StageOrchestrator:
        return StageOrchestrator(cache=self.cache, llm=self.llm, retrieval=self.retrieval)

    def close(self) -> None:
        self.llm.close()
        self.embedder.close()
        self.store.close()
        if self.db is not None:
            self.db.close()


def get_container(request: Request) -> AppContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service is still starting up")
    return container
