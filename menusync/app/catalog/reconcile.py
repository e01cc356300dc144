"""ID-only reconciliation of a full replacement item list.

Matching policy:
- id present in both lists   -> update (the proposed version wins)
- id only in the proposed    -> insert
- id only in the current     -> delete

Ids are compared by their string form so that ``1`` and ``"1"`` address
the same stored row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..errors import ValidationError


def item_key(item: Dict[str, Any]) -> str:
    """Return the store key for ``item``."""
    return str(item["id"])


@dataclass
class ReconcilePlan:
    """Store operations needed to turn the current list into the proposed one."""

    to_insert: List[Dict[str, Any]] = field(default_factory=list)
    to_update: List[Dict[str, Any]] = field(default_factory=list)
    to_delete: List[Any] = field(default_factory=list)
    # Normalized proposed items in caller order.
    items: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, list]:
        return {
            "inserted": [item["id"] for item in self.to_insert],
            "updated": [item["id"] for item in self.to_update],
            "deleted": list(self.to_delete),
        }


def reconcile(
    current_items: Iterable[Dict[str, Any]],
    proposed_items: Iterable[Dict[str, Any]],
    normalize: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
) -> ReconcilePlan:
    """Classify ``proposed_items`` against ``current_items``.

    Raises :class:`ValidationError` when a proposed item has no ``id`` or
    when two proposed items share one.
    """

    current_ids = {item_key(item): item["id"] for item in current_items}
    plan = ReconcilePlan()
    seen: set[str] = set()
    for raw in proposed_items:
        if not isinstance(raw, dict) or raw.get("id") is None:
            raise ValidationError("every item needs an id")
        item = normalize(raw) if normalize else dict(raw)
        key = item_key(item)
        if key in seen:
            raise ValidationError(
                f"duplicate item id {item['id']!r}", {"id": item["id"]}
            )
        seen.add(key)
        plan.items.append(item)
        if key in current_ids:
            plan.to_update.append(item)
        else:
            plan.to_insert.append(item)
    plan.to_delete = [
        original for key, original in current_ids.items() if key not in seen
    ]
    return plan


__all__ = ["ReconcilePlan", "item_key", "reconcile"]
