"""Liveness endpoint."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request

from .deps.catalog import get_service
from .services.catalog_service import CatalogService
from .utils.responses import ok

router = APIRouter()


@router.get("/health", include_in_schema=False)
@router.get("/healthz", tags=["Health"], summary="Process liveness and cache info")
async def healthz(
    request: Request, service: CatalogService = Depends(get_service)
) -> dict:
    """Always 200 while the process is up; ``database`` reports the store."""

    state = service.cache.get()
    online = await service.check_store()
    return ok(
        {
            "status": "ok",
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "itemsCount": len(state.items),
            "lastUpdated": state.last_updated.isoformat(),
            "database": "connected" if online else "unreachable",
            "subscribers": len(service.hub),
        }
    )
