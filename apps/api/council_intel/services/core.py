from __future__ import annotations

from fastapi import HTTPException

from ..container import AppContainer


def healthz() -> dict[str, str]:
    return {"status": "ok"}


def readyz(container: AppContainer) -> dict[str, str]:
    if container.db is None:
        return {"status": "ready", "db": "memory"}
    if not container.db.ping():
        raise HTTPException(status_code=503, detail={"status": "not_ready", "db": "down"})
    return {"status": "ready", "db": "ok"}
