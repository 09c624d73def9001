from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from .container import AppContainer
from .routes.analysis import router as analysis_router
from .routes.core import router as core_router
from .routes.corpus import router as corpus_router

logger = logging.getLogger(__name__)


def create_app(container_factory: Callable[[], AppContainer] = AppContainer.from_env) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.container = container_factory()
        logger.info("Council API started (stores: %s).", "postgres" if app.state.container.db else "in-memory")
        try:
            yield
        finally:
            app.state.container.close()
            app.state.container = None

    app = FastAPI(title="Council Intelligence API", version="0.1.0", lifespan=lifespan)

    app.include_router(core_router)
    app.include_router(analysis_router)
    app.include_router(corpus_router)

    return app


# `council_intel.main:app` is the stable uvicorn entrypoint; it re-exports this app.
app = create_app()
