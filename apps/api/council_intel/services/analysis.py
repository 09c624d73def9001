from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from ..container import AppContainer
from ..orchestrator import AnalysisRequest, StageOrchestrator, format_sse

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ClearCacheRequest(BaseModel):
    region: str | None = None


async def _sse_stream(orchestrator: StageOrchestrator, request: AnalysisRequest) -> AsyncIterator[str]:
    async for event in orchestrator.run(request):
        yield format_sse(event)


def stream_analysis(container: AppContainer, body: AnalysisRequest) -> StreamingResponse:
    logger.info("Starting analysis for region %r (%s), force=%s.", body.region, body.council, body.force)
    return StreamingResponse(
        _sse_stream(container.orchestrator(), body),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


def clear_cache(container: AppContainer, body: ClearCacheRequest | None) -> JSONResponse:
    region = body.region if body and body.region else ""
    if region and not region.strip():
        raise HTTPException(status_code=400, detail="region must not be blank")
    try:
        deleted = container.cache.clear(region or None)
    except HTTPException:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Clearing the analysis cache failed.")
        raise HTTPException(status_code=500, detail=f"Failed to clear cache: {exc}") from exc
    logger.info("Cleared %s cached region(s) for %r.", deleted, region or "all")
    return JSONResponse(content={"ok": True, "deleted": deleted, "region": region or "all"})


async def preload_analysis(container: AppContainer, body: AnalysisRequest) -> JSONResponse:
    """Runs the full pipeline server-side so a later stream replays from cache."""
    terminal = await container.orchestrator().collect(body)
    if terminal.event == "error":
        raise HTTPException(status_code=502, detail=terminal.data.get("message") or "Analysis failed")
    total = int(terminal.data.get("totalSuggestions") or 0)
    return JSONResponse(
        content={
            "ok": True,
            "region": body.region,
            "totalSuggestions": total,
            "message": f"Cached {total} suggestions for {body.region}",
        }
    )


def get_cached_region(container: AppContainer, region: str) -> JSONResponse:
    cached = container.cache.load(region)
    if cached is None:
        raise HTTPException(status_code=404, detail=f"No cached analysis for region {region!r}")
    stages = [
        {
            "stageNum": result.stage_num,
            "name": result.name,
            "suggestionCount": len(result.suggestions),
        }
        for _, result in sorted(cached.stage_results.items())
    ]
    return JSONResponse(
        content=jsonable_encoder(
            {
                "regionId": cached.region_id,
                "council": cached.council,
                "bounds": list(cached.bounds),
                "updatedAt": cached.updated_at,
                "stages": stages,
                "totalSuggestions": sum(s["suggestionCount"] for s in stages),
            }
        )
    )
