#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from council_intel.db import Database
from council_intel.embeddings import EmbeddingClient
from council_intel.errors import ConfigurationError, UpstreamError
from council_intel.ingestion.pipeline import ingest_plan
from council_intel.vector_store import PgVectorStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Parse, embed and store a local plan PDF in the plan corpus.")
    parser.add_argument("pdf", help="Path to the plan PDF")
    parser.add_argument("--council", default="Cheltenham", help="Council (corpus) name (default: Cheltenham)")
    parser.add_argument("--source", default=None, help="Source label stored on each chunk (default: file name)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    pdf_path = Path(args.pdf).resolve()
    if not pdf_path.exists():
        print(f"ERROR: file not found: {pdf_path}", file=sys.stderr)
        return 2

    db = Database.from_env()
    if db is None:
        print("ERROR: COUNCIL_DB_DSN is not set.", file=sys.stderr)
        return 2

    try:
        with db, EmbeddingClient() as embedder:
            summary = ingest_plan(
                pdf_path,
                source=args.source or pdf_path.name,
                council=args.council,
                embedder=embedder,
                store=PgVectorStore(db),
            )
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except (UpstreamError, TimeoutError) as exc:
        print(f"ERROR: ingest failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))
    return 0 if summary["chunks"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
