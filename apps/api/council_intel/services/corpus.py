from __future__ import annotations

import logging
from pathlib import Path

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..container import AppContainer
from ..errors import ConfigurationError, UpstreamError
from ..ingestion.pipeline import ingest_plan
from ..models import SectionType

logger = logging.getLogger(__name__)


class CorpusSearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=50)
    council: str | None = None
    section_type: SectionType | None = Field(default=None, alias="sectionType")


def _upstream_or_500(exc: Exception, what: str) -> HTTPException:
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, (UpstreamError, TimeoutError)):
        return HTTPException(status_code=502, detail=f"{what} failed upstream: {exc}")
    return HTTPException(status_code=500, detail=f"{what} failed: {exc}")


def ingest_upload(container: AppContainer, content: bytes, filename: str, council: str) -> JSONResponse:
    council = (council or "").strip()
    if not council:
        raise HTTPException(status_code=400, detail="council must not be empty")
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    source = Path(filename or "plan.pdf").name
    try:
        summary = ingest_plan(
            content,
            source=source,
            council=council,
            embedder=container.embedder,
            store=container.store,
        )
    except HTTPException:
        raise
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Ingest of %s failed.", source)
        raise _upstream_or_500(exc, "Ingest") from exc
    return JSONResponse(content=jsonable_encoder(summary))


def search_corpus(container: AppContainer, body: CorpusSearchRequest) -> JSONResponse:
    try:
        results = container.retrieval.search(
            body.query,
            limit=body.limit,
            council=body.council,
            section_type=body.section_type,
        )
    except HTTPException:
        raise
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        logger.warning("Corpus search failed: %s", exc)
        raise _upstream_or_500(exc, "Search") from exc
    return JSONResponse(
        content={
            "query": body.query,
            "results": [{"score": r.score, **r.chunk.to_wire()} for r in results],
        }
    )


def corpus_stats(container: AppContainer) -> JSONResponse:
    stats = container.store.stats()
    return JSONResponse(
        content={
            "total": stats.get("total", 0),
            "byCouncil": stats.get("by_council", []),
            "bySectionType": stats.get("by_section_type", []),
        }
    )
