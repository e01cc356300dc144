"""Wallet, task and order routes.

Each call is a narrow mutation of the auxiliary state: validated, written to
the store, swapped into the cache and broadcast like a full replacement.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from .deps.catalog import get_service
from .schemas import OrderAction, TaskComplete, WalletAdjust
from .services.catalog_service import CatalogService
from .utils.responses import ok

router = APIRouter()


@router.post("/wallet-adjust", tags=["Wallet"], summary="Adjust one balance")
async def wallet_adjust(
    payload: WalletAdjust, service: CatalogService = Depends(get_service)
) -> dict:
    """Apply a signed amount; spending more than the balance leaves zero."""

    state = await service.adjust_wallet(payload.currency, payload.amount)
    return ok(state.wallet)


@router.post("/task-complete", tags=["Wallet"], summary="Record a finished task")
async def task_complete(
    payload: TaskComplete, service: CatalogService = Depends(get_service)
) -> dict:
    state = await service.complete_task(payload.task)
    return ok({"tasks": state.tasks, "wallet": state.wallet})


@router.post("/order", tags=["Orders"], summary="Change selection or check out")
async def order(
    payload: OrderAction, service: CatalogService = Depends(get_service)
) -> dict:
    """Add or remove a selected item, or pay for the whole selection.

    Checkout fails with ``INSUFFICIENT_FUNDS`` naming the first currency that
    is short; nothing is deducted in that case.
    """

    state = await service.order(payload.action, payload.item_id)
    return ok({"selection": list(state.selection), "wallet": state.wallet})
