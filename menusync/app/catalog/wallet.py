"""Pure transforms for the wallet, task counters and order selection.

None of these functions touch the cache or the store; callers read the
current sub-map, apply a transform and swap the result in.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from ..errors import InsufficientFunds, ValidationError
from .reconcile import item_key

MAX_BALANCE = 2**31 - 1


def apply_adjustment(wallet: Mapping[str, Any], currency: str, amount) -> Dict[str, Any]:
    """Add signed ``amount`` to ``currency``; clamp at zero, saturate at the max."""
    balances = dict(wallet)
    current = balances.get(currency, 0) or 0
    balances[currency] = min(max(current + amount, 0), MAX_BALANCE)
    return balances


def credit_task(
    tasks: Mapping[str, int],
    wallet: Mapping[str, Any],
    kind: str,
    unit: int = 1,
) -> Tuple[Dict[str, int], Dict[str, Any]]:
    """Count one completion of ``kind`` and credit ``unit`` of the same currency."""
    counters = dict(tasks)
    counters[kind] = min((counters.get(kind, 0) or 0) + 1, MAX_BALANCE)
    return counters, apply_adjustment(wallet, kind, unit)


def select_item(selection: Sequence[Any], item_id) -> Tuple[Any, ...]:
    if any(str(existing) == str(item_id) for existing in selection):
        return tuple(selection)
    return tuple(selection) + (item_id,)


def deselect_item(selection: Sequence[Any], item_id) -> Tuple[Any, ...]:
    return tuple(existing for existing in selection if str(existing) != str(item_id))


def prune_selection(selection: Sequence[Any], items: Iterable[Dict[str, Any]]) -> Tuple[Any, ...]:
    """Drop selected ids whose item no longer exists."""
    live = {item_key(item) for item in items}
    return tuple(item_id for item_id in selection if str(item_id) in live)


def order_total(
    items: Iterable[Dict[str, Any]], selection: Sequence[Any]
) -> Dict[str, Any]:
    """Sum the ``prices`` of every selected item per currency."""
    chosen = {str(item_id) for item_id in selection}
    total: Dict[str, Any] = {}
    for item in items:
        if item_key(item) not in chosen:
            continue
        for kind, amount in (item.get("prices") or {}).items():
            if amount:
                total[kind] = total.get(kind, 0) + amount
    return total


def check_funds(
    wallet: Mapping[str, Any],
    total: Mapping[str, Any],
    kinds: Sequence[str] = (),
) -> None:
    """Raise :class:`InsufficientFunds` for the first currency not covered.

    Currencies are checked in ``kinds`` order first, then any others in the
    order they appear in ``total``.
    """
    ordered: List[str] = [kind for kind in kinds if kind in total]
    ordered += [kind for kind in total if kind not in ordered]
    for kind in ordered:
        needed = total[kind]
        available = wallet.get(kind, 0) or 0
        if needed > available:
            raise InsufficientFunds(kind, needed, available)


def checkout(
    wallet: Mapping[str, Any],
    items: Iterable[Dict[str, Any]],
    selection: Sequence[Any],
    kinds: Sequence[str] = (),
) -> Dict[str, Any]:
    """Return the wallet after paying for ``selection``; all or nothing."""
    if not selection:
        raise ValidationError("nothing selected")
    total = order_total(items, selection)
    check_funds(wallet, total, kinds)
    balances = dict(wallet)
    for kind, needed in total.items():
        balances[kind] = (balances.get(kind, 0) or 0) - needed
    return balances


__all__ = [
    "MAX_BALANCE",
    "apply_adjustment",
    "check_funds",
    "checkout",
    "credit_task",
    "deselect_item",
    "order_total",
    "prune_selection",
    "select_item",
]
