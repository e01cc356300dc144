"""Orchestrates reconciliation, persistence, cache swaps and broadcasts.

All mutations run one at a time behind a single-slot lock: read the cache,
compute the new snapshot, write to the store, swap the cache, publish. A
store failure leaves the cache at its last good value.

Item reconciliation is fail-fast: the first failing store call aborts the
request and the error reports which items were already written. A wallet
write that fails after the items succeeded is only logged; wallet and items
are independent records and the next wallet write repeats it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any, Dict, Iterable, Mapping, Optional

from redis.exceptions import RedisError

from ..catalog.normalize import SchemaNormalizer
from ..catalog.reconcile import ReconcilePlan, item_key, reconcile
from ..catalog.state import CanonicalState, StateCache
from ..catalog import wallet as wallet_ops
from ..errors import StoreError, ValidationError
from ..realtime.hub import BroadcastHub
from ..realtime.listener import change_notice
from ..repos.catalog_repo import CatalogRepo
from ..routes_metrics import (
    aux_store_failures_total,
    catalog_reloads_total,
    reconcile_total,
    store_errors_total,
)

logger = logging.getLogger("menusync.catalog")

ORDER_ACTIONS = ("add", "remove", "checkout")


class CatalogService:
    """Owns the mutation paths of the canonical state."""

    def __init__(
        self,
        repo: CatalogRepo,
        cache: StateCache,
        hub: BroadcastHub,
        normalizer: SchemaNormalizer,
        *,
        store_timeout: float = 5.0,
        default_wallet: Optional[Mapping[str, Any]] = None,
        task_credit_unit: int = 1,
        redis_client=None,
        change_channel: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> None:
        self.repo = repo
        self.cache = cache
        self.hub = hub
        self.normalizer = normalizer
        self.store_timeout = store_timeout
        self.default_wallet = normalizer.normalize_wallet(default_wallet or {})
        self.task_credit_unit = task_credit_unit
        self._redis = redis_client
        self.change_channel = change_channel
        self.origin = origin or uuid.uuid4().hex
        self.store_online = False
        self._lock = asyncio.Lock()

    # -- store access -------------------------------------------------

    async def _store(self, op: str, call):
        """Await ``call`` with the store timeout; failures become StoreError."""
        try:
            result = await asyncio.wait_for(call, timeout=self.store_timeout)
        except asyncio.TimeoutError as exc:
            store_errors_total.labels(op=op).inc()
            self.store_online = False
            raise StoreError(
                f"{op} timed out after {self.store_timeout}s", op=op
            ) from exc
        except StoreError:
            store_errors_total.labels(op=op).inc()
            self.store_online = False
            raise
        self.store_online = True
        return result

    async def _read_store(self, lenient_wallet: bool = False) -> CanonicalState:
        """Read items and wallet from the store.

        A wallet read failure fails the whole read unless ``lenient_wallet``
        is set, in which case the default wallet stands in for it. Only the
        startup load is lenient; a reload must never replace real balances
        with defaults.
        """
        rows = await self._store("list_items", self.repo.list_items())
        items = tuple(self.normalizer.normalize_item(row) for row in rows)
        wallet: Optional[Dict[str, Any]] = dict(self.default_wallet)
        tasks: Optional[Dict[str, int]] = None
        try:
            stored = await self._store("load_wallet", self.repo.load_wallet())
        except StoreError as exc:
            if not lenient_wallet:
                raise
            logger.warning("wallet_load_failed", extra={"error": exc.message})
            stored = None
        if stored is not None:
            balances, stored_tasks = stored
            wallet = self.normalizer.normalize_wallet(balances)
            if stored_tasks is not None:
                tasks = self.normalizer.normalize_tasks(stored_tasks)
        selection = wallet_ops.prune_selection(self.cache.get().selection, items)
        return CanonicalState(
            items=items, wallet=wallet, tasks=tasks, selection=selection
        )

    async def check_store(self) -> bool:
        """Check the store and record the result in ``store_online``."""
        try:
            await self._store("ping", self.repo.ping())
        except StoreError:
            return False
        return True

    async def _announce(self) -> None:
        """Tell other processes sharing the store that it changed."""
        if self._redis is None or not self.change_channel:
            return
        try:
            await asyncio.wait_for(
                self._redis.publish(self.change_channel, change_notice(self.origin)),
                timeout=self.store_timeout,
            )
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("change_notice_failed", extra={"error": str(exc)})

    # -- loading ------------------------------------------------------

    async def load(self) -> CanonicalState:
        """Populate the cache at startup; fall back to defaults on failure."""
        async with self._lock:
            try:
                state = await self._read_store(lenient_wallet=True)
            except StoreError as exc:
                logger.error("initial_load_failed", extra={"error": exc.message})
                state = CanonicalState(wallet=dict(self.default_wallet))
            state = self.cache.replace(state)
        logger.info(
            "catalog_loaded",
            extra={"items": len(state.items), "store_online": self.store_online},
        )
        return state

    async def reload(self) -> Optional[CanonicalState]:
        """Reload everything from the store and publish it.

        Returns ``None`` and keeps the current cache when the store fails.
        """
        async with self._lock:
            try:
                state = await self._read_store()
            except StoreError as exc:
                catalog_reloads_total.labels(result="error").inc()
                logger.error("reload_failed", extra={"error": exc.message})
                return None
            state = self.cache.replace(state)
            catalog_reloads_total.labels(result="ok").inc()
            await self.hub.publish(state)
        logger.info("catalog_reloaded", extra={"items": len(state.items)})
        return state

    # -- full replacement ---------------------------------------------

    @staticmethod
    def _with_id(raw: Any) -> Any:
        if isinstance(raw, dict) and raw.get("id") is None:
            return {**raw, "id": uuid.uuid4().hex}
        return raw

    async def replace_state(
        self,
        items: Iterable[Any],
        wallet: Optional[Mapping[str, Any]] = None,
        tasks: Optional[Mapping[str, int]] = None,
    ) -> ReconcilePlan:
        """Make the store and cache hold exactly ``items``.

        ``wallet`` and ``tasks`` replace the stored ones when given and are
        inherited from the current snapshot otherwise.
        """
        proposed = [self._with_id(raw) for raw in items]
        for raw in proposed:
            if isinstance(raw, dict):
                self.normalizer.check_item(raw)
        if wallet is not None:
            self.normalizer.check_kinds(wallet, "wallet")
        if tasks is not None:
            self.normalizer.check_kinds(tasks, "tasks")
        async with self._lock:
            current = self.cache.get()
            plan = reconcile(current.items, proposed, self.normalizer.normalize_item)
            await self._apply_plan(plan)

            new_wallet, new_tasks = current.wallet, current.tasks
            if wallet is not None or tasks is not None:
                if wallet is not None:
                    new_wallet = self.normalizer.normalize_wallet(wallet)
                if tasks is not None:
                    new_tasks = self.normalizer.normalize_tasks(tasks)
                try:
                    await self._store(
                        "save_wallet",
                        self.repo.save_wallet(dict(new_wallet or {}), new_tasks),
                    )
                except StoreError as exc:
                    aux_store_failures_total.inc()
                    logger.warning("aux_store_failure", extra={"error": exc.message})

            state = self.cache.replace(
                CanonicalState(
                    items=tuple(plan.items),
                    wallet=new_wallet,
                    tasks=new_tasks,
                    selection=wallet_ops.prune_selection(current.selection, plan.items),
                )
            )
            reconcile_total.labels(result="ok").inc()
            logger.info(
                "reconciled",
                extra={
                    "inserted": len(plan.to_insert),
                    "updated": len(plan.to_update),
                    "deleted": len(plan.to_delete),
                },
            )
            await self.hub.publish(state)
        await self._announce()
        return plan

    async def _apply_plan(self, plan: ReconcilePlan) -> None:
        deleted: list = []
        applied: list = []
        try:
            if plan.to_delete:
                await self._store("delete_items", self.repo.delete_items(plan.to_delete))
                deleted = list(plan.to_delete)
            for position, item in enumerate(plan.items):
                await self._store("upsert_item", self.repo.upsert_item(item, position))
                applied.append(item["id"])
        except StoreError as exc:
            reconcile_total.labels(result="error").inc()
            exc.details.update({"deleted": deleted, "applied": applied})
            if len(applied) < len(plan.items) and exc.op == "upsert_item":
                exc.details["failed_id"] = plan.items[len(applied)]["id"]
            logger.error(
                "reconcile_failed",
                extra={"op": exc.op, "error": exc.message, "applied": len(applied)},
            )
            raise

    # -- auxiliary state ----------------------------------------------

    def _require_kind(self, name: Any, label: str) -> str:
        if not isinstance(name, str) or not self.normalizer.is_known_kind(name):
            raise ValidationError(f"unknown {label} {name!r}", {label: name})
        return self.normalizer.canonical_kind(name)

    async def _commit_wallet(
        self, current: CanonicalState, **changes: Any
    ) -> CanonicalState:
        wallet = changes.get("wallet", current.wallet)
        tasks = changes.get("tasks", current.tasks)
        await self._store("save_wallet", self.repo.save_wallet(dict(wallet or {}), tasks))
        state = self.cache.replace(replace(current, **changes))
        await self.hub.publish(state)
        return state

    async def adjust_wallet(self, currency: str, amount: int) -> CanonicalState:
        """Add a signed amount to one balance, clamped at zero."""
        kind = self._require_kind(currency, "currency")
        async with self._lock:
            current = self.cache.get()
            wallet = wallet_ops.apply_adjustment(current.wallet or {}, kind, amount)
            state = await self._commit_wallet(current, wallet=wallet)
        logger.info("wallet_adjusted", extra={"currency": kind, "amount": amount})
        await self._announce()
        return state

    async def complete_task(self, task: str) -> CanonicalState:
        """Count a completed task and credit the matching currency."""
        kind = self._require_kind(task, "task")
        async with self._lock:
            current = self.cache.get()
            tasks, wallet = wallet_ops.credit_task(
                current.tasks or {}, current.wallet or {}, kind, self.task_credit_unit
            )
            state = await self._commit_wallet(current, wallet=wallet, tasks=tasks)
        logger.info("task_completed", extra={"task": kind})
        await self._announce()
        return state

    async def order(self, action: str, item_id: Any = None) -> CanonicalState:
        """Apply an order action: ``add``/``remove`` an item or ``checkout``."""
        if action not in ORDER_ACTIONS:
            raise ValidationError(f"unknown action {action!r}", {"action": action})
        if action != "checkout" and item_id is None:
            raise ValidationError(f"{action} needs an item_id")
        async with self._lock:
            current = self.cache.get()
            if action == "checkout":
                wallet = wallet_ops.checkout(
                    current.wallet or {},
                    current.items,
                    current.selection,
                    self.normalizer.currency_kinds,
                )
                state = await self._commit_wallet(current, wallet=wallet, selection=())
                logger.info("order_checked_out", extra={"items": len(current.selection)})
            else:
                if action == "add":
                    if str(item_id) not in {item_key(i) for i in current.items}:
                        raise ValidationError(
                            f"unknown item {item_id!r}", {"item_id": item_id}
                        )
                    selection = wallet_ops.select_item(current.selection, item_id)
                else:
                    selection = wallet_ops.deselect_item(current.selection, item_id)
                # The selection lives in memory only.
                state = self.cache.replace(replace(current, selection=selection))
                await self.hub.publish(state)
        if action == "checkout":
            await self._announce()
        return state


__all__ = ["CatalogService", "ORDER_ACTIONS"]
