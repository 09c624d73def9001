from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from ..container import AppContainer, get_container
from ..services.corpus import CorpusSearchRequest
from ..services.corpus import corpus_stats as service_corpus_stats
from ..services.corpus import ingest_upload as service_ingest_upload
from ..services.corpus import search_corpus as service_search_corpus


router = APIRouter(prefix="/corpus", tags=["corpus"])


@router.post("/ingest")
async def ingest(
    file: UploadFile = File(...),
    council: str = Form(...),
    container: AppContainer = Depends(get_container),
) -> JSONResponse:
    content = await file.read()
    return service_ingest_upload(container, content, file.filename or "plan.pdf", council)


@router.post("/search")
def search(body: CorpusSearchRequest, container: AppContainer = Depends(get_container)) -> JSONResponse:
    return service_search_corpus(container, body)


@router.get("/stats")
def stats(container: AppContainer = Depends(get_container)) -> JSONResponse:
    return service_corpus_stats(container)
