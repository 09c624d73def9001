#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys

from council_intel.db import Database
from council_intel.embeddings import EmbeddingClient
from council_intel.errors import ConfigurationError, UpstreamError
from council_intel.models import SECTION_TYPES
from council_intel.retrieval import RetrievalService
from council_intel.vector_store import PgVectorStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Semantic search over the ingested plan corpus.")
    parser.add_argument("query", help="Free-text query")
    parser.add_argument("--limit", type=int, default=5, help="Number of results (default: 5)")
    parser.add_argument("--council", default=None, help="Restrict to one council")
    parser.add_argument("--section-type", choices=list(SECTION_TYPES), default=None)
    parser.add_argument("--preview-chars", type=int, default=300)
    args = parser.parse_args()

    db = Database.from_env()
    if db is None:
        print("ERROR: COUNCIL_DB_DSN is not set.", file=sys.stderr)
        return 2

    try:
        with db, EmbeddingClient() as embedder:
            results = RetrievalService(embedder, PgVectorStore(db)).search(
                args.query,
                limit=args.limit,
                council=args.council,
                section_type=args.section_type,
            )
    except (ConfigurationError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except (UpstreamError, TimeoutError) as exc:
        print(f"ERROR: search failed: {exc}", file=sys.stderr)
        return 1

    if not results:
        print("No results.")
        return 0
    for rank, hit in enumerate(results, start=1):
        chunk = hit.chunk
        print(f"#{rank}  score={hit.score:.4f}  [{chunk.section_type}] {chunk.section} (p.{chunk.page_start})")
        print(f"    {chunk.text[: args.preview_chars]}")
        print()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
