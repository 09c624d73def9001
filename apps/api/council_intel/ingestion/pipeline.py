from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Any

from council_intel.embeddings import EmbeddingClient, EmbeddingTask, document_text
from council_intel.ingestion.chunking import chunk_plan_pages
from council_intel.ingestion.pdf import extract_page_lines
from council_intel.settings import _embeddings_dim
from council_intel.vector_store import VectorStore

logger = logging.getLogger(__name__)


def ingest_plan(
    document: str | Path | bytes,
    *,
    source: str,
    council: str,
    embedder: EmbeddingClient,
    store: VectorStore,
    dimension: int | None = None,
) -> dict[str, Any]:
    """
    Parses a plan PDF, embeds every chunk and replaces the source's chunks in the store.

    Returns a summary with the chunk count, the per-section-type breakdown and the store totals
    after the write.
    """
    pages = extract_page_lines(document)
    chunks = chunk_plan_pages(pages, source=source, council=council)
    if not chunks:
        logger.warning("No chunks extracted from %s; nothing ingested.", source)
        return {"source": source, "council": council, "chunks": 0, "by_section_type": {}, "stats": store.stats()}

    by_type = Counter(chunk.section_type for chunk in chunks)
    logger.info("Parsed %s into %s chunks across %s pages: %s", source, len(chunks), len(pages), dict(by_type))

    vectors = embedder.embed_batch([document_text(c) for c in chunks], task=EmbeddingTask.DOCUMENT)
    embedded = [chunk.model_copy(update={"embedding": vec}) for chunk, vec in zip(chunks, vectors)]

    store.ensure_index(dimension or _embeddings_dim())
    written = store.upsert_chunks(embedded)
    logger.info("Stored %s chunks for %s (%s).", written, source, council)

    return {
        "source": source,
        "council": council,
        "chunks": written,
        "by_section_type": dict(by_type),
        "stats": store.stats(),
    }
