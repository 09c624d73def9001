from __future__ import annotations

import abc
import logging
import threading
from collections import Counter
from typing import Any, Iterable

import numpy as np

from .db import Database
from .models import PlanChunk, ScoredChunk
from .vector_utils import _vector_literal

logger = logging.getLogger(__name__)

COLLECTION_NAME = "council_plan_chunks"
VECTOR_INDEX_NAME = f"{COLLECTION_NAME}_embedding_hnsw"
DEFAULT_FILTER_FIELDS: tuple[str, ...] = ("council", "section_type")

# similarity metric -> (pgvector operator class, distance operator)
_METRICS: dict[str, tuple[str, str]] = {
    "cosine": ("vector_cosine_ops", "<=>"),
    "euclidean": ("vector_l2_ops", "<->"),
    "dotProduct": ("vector_ip_ops", "<#>"),
}
_FILTERABLE_FIELDS = {"council", "section_type", "source"}
_MAX_EF_SEARCH = 1000


def _single_source(chunks: list[PlanChunk]) -> str:
    sources = {c.source for c in chunks}
    if len(sources) != 1:
        raise ValueError(f"upsert_chunks expects chunks from one source document, got {sorted(sources)}")
    return next(iter(sources))


def _check_dimensions(chunks: Iterable[PlanChunk], dimension: int | None) -> None:
    for chunk in chunks:
        if not chunk.embedding:
            raise ValueError(f"chunk {chunk.chunk_id} has no embedding")
        if dimension is not None and len(chunk.embedding) != dimension:
            raise ValueError(
                f"chunk {chunk.chunk_id} has {len(chunk.embedding)} dims; index expects {dimension}"
            )


class VectorStore(abc.ABC):
    """
    Storage for embedded plan chunks with filtered nearest-neighbour search.
    """

    dimension: int | None = None

    @abc.abstractmethod
    def ensure_index(
        self,
        dimension: int,
        similarity: str = "cosine",
        filter_fields: tuple[str, ...] = DEFAULT_FILTER_FIELDS,
    ) -> None:
        """Creates the vector index if missing. Never raises."""
        pass

    @abc.abstractmethod
    def upsert_chunks(self, chunks: list[PlanChunk]) -> int:
        """
        Replaces every stored chunk sharing the chunks' source document with `chunks`.

        Returns the number of chunks inserted.
        """
        pass

    @abc.abstractmethod
    def search(
        self,
        query_vector: list[float],
        *,
        limit: int = 5,
        candidate_multiplier: int = 10,
        council: str | None = None,
        section_type: str | None = None,
    ) -> list[ScoredChunk]:
        """Returns up to `limit` chunks by descending similarity; ties by chunk index then source."""
        pass

    @abc.abstractmethod
    def delete_source(self, source: str) -> int:
        pass

    @abc.abstractmethod
    def stats(self) -> dict[str, Any]:
        pass

    def close(self) -> None:
        return None


class PgVectorStore(VectorStore):
    """
    pgvector-backed store: one row per chunk, HNSW index for approximate search.
    """

    def __init__(self, db: Database, *, table: str = COLLECTION_NAME) -> None:
        self.db = db
        self.table = table
        self.dimension: int | None = None
        self.similarity = "cosine"

    def ensure_index(
        self,
        dimension: int,
        similarity: str = "cosine",
        filter_fields: tuple[str, ...] = DEFAULT_FILTER_FIELDS,
    ) -> None:
        if similarity not in _METRICS:
            raise ValueError(f"unsupported similarity metric: {similarity}")
        unknown = set(filter_fields) - _FILTERABLE_FIELDS
        if unknown:
            raise ValueError(f"unsupported filter fields: {sorted(unknown)}")
        dimension = int(dimension)
        self.dimension = dimension
        self.similarity = similarity
        ops, _ = _METRICS[similarity]

        statements = [
            "CREATE EXTENSION IF NOT EXISTS vector",
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
              chunk_id text PRIMARY KEY,
              source text NOT NULL,
              council text NOT NULL,
              section text NOT NULL,
              section_type text NOT NULL,
              page_start integer NOT NULL,
              chunk_index integer NOT NULL,
              text text NOT NULL,
              char_count integer NOT NULL,
              embedding vector({dimension}) NOT NULL
            )
            """,
            f"CREATE INDEX IF NOT EXISTS {self.table}_source_idx ON {self.table} (source)",
            f"CREATE INDEX IF NOT EXISTS {self.table}_embedding_hnsw ON {self.table} USING hnsw (embedding {ops})",
        ]
        for field in filter_fields:
            statements.append(f"CREATE INDEX IF NOT EXISTS {self.table}_{field}_idx ON {self.table} ({field})")

        for sql in statements:
            try:
                self.db.execute(sql)
            except Exception as exc:  # noqa: BLE001
                # Managed backends may refuse DDL; the index can be provisioned out-of-band.
                logger.warning("Could not create vector index objects automatically: %s", exc)
                return
        logger.info("Vector index %s ready (%s dims, %s).", VECTOR_INDEX_NAME, dimension, similarity)

    def upsert_chunks(self, chunks: list[PlanChunk]) -> int:
        if not chunks:
            return 0
        source = _single_source(chunks)
        _check_dimensions(chunks, self.dimension)

        rows = [
            (
                c.chunk_id,
                c.source,
                c.council,
                c.section,
                c.section_type,
                c.page_start,
                c.chunk_index,
                c.text,
                c.char_count,
                _vector_literal(c.embedding or []),
            )
            for c in chunks
        ]
        with self.db.transaction() as cur:
            cur.execute(f"DELETE FROM {self.table} WHERE source = %s", (source,))
            cur.executemany(
                f"""
                INSERT INTO {self.table} (
                  chunk_id, source, council, section, section_type,
                  page_start, chunk_index, text, char_count, embedding
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s::vector)
                """,
                rows,
            )
        logger.info("Stored %s chunks for %s.", len(rows), source)
        return len(rows)

    def search(
        self,
        query_vector: list[float],
        *,
        limit: int = 5,
        candidate_multiplier: int = 10,
        council: str | None = None,
        section_type: str | None = None,
    ) -> list[ScoredChunk]:
        limit = max(1, int(limit))
        pool = max(limit, limit * max(1, int(candidate_multiplier)))
        _, op = _METRICS[self.similarity]
        qvec = _vector_literal(query_vector)

        where: list[str] = []
        params: list[Any] = [qvec]
        if council:
            where.append("council = %s")
            params.append(council)
        if section_type:
            where.append("section_type = %s")
            params.append(section_type)
        where_sql = ("WHERE " + " AND ".join(where)) if where else ""
        params.extend([qvec, pool, limit])

        # Inner query walks the ANN index for the candidate pool; outer query re-ranks exactly.
        sql = f"""
            SELECT *
            FROM (
              SELECT
                chunk_id, source, council, section, section_type,
                page_start, chunk_index, text, char_count,
                (embedding {op} %s::vector) AS distance
              FROM {self.table}
              {where_sql}
              ORDER BY embedding {op} %s::vector
              LIMIT %s
            ) candidates
            ORDER BY distance ASC, chunk_index ASC, source ASC
            LIMIT %s
        """
        with self.db.transaction() as cur:
            cur.execute("SELECT set_config('hnsw.ef_search', %s, true)", (str(min(pool, _MAX_EF_SEARCH)),))
            cur.execute(sql, tuple(params))
            rows = cur.fetchall()

        return [ScoredChunk(score=self._score(float(r["distance"])), chunk=_row_to_chunk(r)) for r in rows]

    def _score(self, distance: float) -> float:
        if self.similarity == "cosine":
            return 1.0 - distance
        if self.similarity == "dotProduct":
            return -distance
        return 1.0 / (1.0 + distance)

    def delete_source(self, source: str) -> int:
        return self.db.execute(f"DELETE FROM {self.table} WHERE source = %s", (source,))

    def stats(self) -> dict[str, Any]:
        total_row = self.db.fetch_one(f"SELECT COUNT(*) AS total FROM {self.table}")
        by_council = self.db.fetch_all(
            f"SELECT council, COUNT(*) AS count FROM {self.table} GROUP BY council ORDER BY council"
        )
        by_section = self.db.fetch_all(
            f"""
            SELECT section_type, COUNT(*) AS count
            FROM {self.table}
            GROUP BY section_type
            ORDER BY count DESC
            """
        )
        return {
            "total": int((total_row or {}).get("total") or 0),
            "by_council": [{"council": r["council"], "count": int(r["count"])} for r in by_council],
            "by_section_type": [
                {"section_type": r["section_type"], "count": int(r["count"])} for r in by_section
            ],
        }


def _row_to_chunk(row: dict[str, Any]) -> PlanChunk:
    return PlanChunk(
        chunk_id=str(row["chunk_id"]),
        source=row["source"],
        council=row["council"],
        section=row["section"],
        section_type=row["section_type"],
        page_start=int(row["page_start"]),
        chunk_index=int(row["chunk_index"]),
        text=row["text"],
        char_count=int(row["char_count"]),
    )


class InMemoryVectorStore(VectorStore):
    """
    Exact cosine search over an in-process chunk list. Used in scaffold mode and tests.
    """

    def __init__(self) -> None:
        self.dimension: int | None = None
        self._chunks: dict[str, PlanChunk] = {}
        self._lock = threading.Lock()

    def ensure_index(
        self,
        dimension: int,
        similarity: str = "cosine",
        filter_fields: tuple[str, ...] = DEFAULT_FILTER_FIELDS,
    ) -> None:
        if similarity != "cosine":
            logger.warning("In-memory vector store only supports cosine similarity; ignoring %s.", similarity)
        self.dimension = int(dimension)

    def upsert_chunks(self, chunks: list[PlanChunk]) -> int:
        if not chunks:
            return 0
        source = _single_source(chunks)
        _check_dimensions(chunks, self.dimension)
        with self._lock:
            kept = {cid: c for cid, c in self._chunks.items() if c.source != source}
            for c in chunks:
                kept[c.chunk_id] = c
            self._chunks = kept
        return len(chunks)

    def search(
        self,
        query_vector: list[float],
        *,
        limit: int = 5,
        candidate_multiplier: int = 10,
        council: str | None = None,
        section_type: str | None = None,
    ) -> list[ScoredChunk]:
        limit = max(1, int(limit))
        with self._lock:
            candidates = [
                c
                for c in self._chunks.values()
                if c.embedding
                and (council is None or c.council == council)
                and (section_type is None or c.section_type == section_type)
            ]
        if not candidates:
            return []

        query = np.asarray(query_vector, dtype=float)
        matrix = np.asarray([c.embedding for c in candidates], dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        scores = (matrix @ query) / norms

        ranked = sorted(
            zip(scores.tolist(), candidates),
            key=lambda pair: (-pair[0], pair[1].chunk_index, pair[1].source),
        )
        return [
            ScoredChunk(score=float(score), chunk=chunk.model_copy(update={"embedding": None}))
            for score, chunk in ranked[:limit]
        ]

    def delete_source(self, source: str) -> int:
        with self._lock:
            before = len(self._chunks)
            self._chunks = {cid: c for cid, c in self._chunks.items() if c.source != source}
            return before - len(self._chunks)

    def chunks_for_source(self, source: str) -> list[PlanChunk]:
        with self._lock:
            return sorted((c for c in self._chunks.values() if c.source == source), key=lambda c: c.chunk_index)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            chunks = list(self._chunks.values())
        by_council = Counter(c.council for c in chunks)
        by_section = Counter(c.section_type for c in chunks)
        return {
            "total": len(chunks),
            "by_council": [{"council": k, "count": v} for k, v in sorted(by_council.items())],
            "by_section_type": [{"section_type": k, "count": v} for k, v in by_section.most_common()],
        }
