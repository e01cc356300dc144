"""Catalog state routes.

``GET /state`` serves the cached snapshot; ``PUT /state`` replaces the
whole item list (and optionally the wallet and task counters) and pushes the
result to every subscriber. ``/api/menu`` keeps the legacy route names
and payload shape for older clients.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from .deps.catalog import get_service
from .schemas import StateIn
from .services.catalog_service import CatalogService
from .utils.responses import ok

router = APIRouter()


@router.get("/state", tags=["State"], summary="Current catalog snapshot")
async def get_state(service: CatalogService = Depends(get_service)) -> dict:
    return ok(service.cache.get().to_dict())


@router.put("/state", tags=["State"], summary="Replace the catalog")
async def put_state(
    payload: StateIn, service: CatalogService = Depends(get_service)
) -> dict:
    """Reconcile the proposed item list against the current one.

    Returns the ids inserted, updated and deleted.
    """

    plan = await service.replace_state(payload.items, payload.wallet, payload.tasks)
    return ok(plan.summary)


@router.get("/api/menu", tags=["Legacy"], summary="Snapshot with items under menu")
async def legacy_get_menu(service: CatalogService = Depends(get_service)) -> dict:
    return service.cache.get().to_legacy_dict()


@router.post("/api/menu", tags=["Legacy"], summary="Replace the catalog")
async def legacy_post_menu(
    payload: StateIn, service: CatalogService = Depends(get_service)
) -> dict:
    await service.replace_state(payload.items, payload.wallet, payload.tasks)
    return {"success": True}
