from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from ..container import AppContainer, get_container
from ..orchestrator import AnalysisRequest
from ..services.analysis import ClearCacheRequest
from ..services.analysis import clear_cache as service_clear_cache
from ..services.analysis import get_cached_region as service_get_cached_region
from ..services.analysis import preload_analysis as service_preload_analysis
from ..services.analysis import stream_analysis as service_stream_analysis


router = APIRouter(prefix="/council", tags=["analysis"])


@router.post("/analyse")
def analyse(body: AnalysisRequest, container: AppContainer = Depends(get_container)) -> StreamingResponse:
    return service_stream_analysis(container, body)


@router.delete("/cache")
def clear_cache(
    body: ClearCacheRequest | None = None,
    container: AppContainer = Depends(get_container),
) -> JSONResponse:
    return service_clear_cache(container, body)


@router.post("/preload")
async def preload(body: AnalysisRequest, container: AppContainer = Depends(get_container)) -> JSONResponse:
    return await service_preload_analysis(container, body)


@router.get("/cache/{region}")
def get_cached_region(region: str, container: AppContainer = Depends(get_container)) -> JSONResponse:
    return service_get_cached_region(container, region)
