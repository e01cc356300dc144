"""Process-wide snapshot of the canonical catalog state."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CanonicalState:
    """Immutable snapshot served to readers and subscribers.

    ``items`` keeps the order the last writer supplied. ``wallet`` and
    ``tasks`` are ``None`` when the deployment has never stored them.
    """

    items: Tuple[Dict[str, Any], ...] = ()
    wallet: Optional[Dict[str, Any]] = None
    tasks: Optional[Dict[str, int]] = None
    selection: Tuple[Any, ...] = ()
    last_updated: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [dict(item) for item in self.items],
            "wallet": dict(self.wallet) if self.wallet is not None else None,
            "tasks": dict(self.tasks) if self.tasks is not None else None,
            "selection": list(self.selection),
            "lastUpdated": self.last_updated.isoformat(),
        }

    def to_legacy_dict(self) -> Dict[str, Any]:
        """Shape understood by older ``/api/menu`` clients."""
        data = self.to_dict()
        data["menu"] = data.pop("items")
        return data


class StateCache:
    """Holds exactly one :class:`CanonicalState`; swapped, never edited."""

    def __init__(self, initial: Optional[CanonicalState] = None) -> None:
        self._state = initial or CanonicalState()

    def get(self) -> CanonicalState:
        return self._state

    def replace(self, new_state: CanonicalState) -> CanonicalState:
        """Swap in ``new_state`` stamped with the current time and return it."""
        stamped = replace(new_state, last_updated=_now())
        self._state = stamped
        return stamped


__all__ = ["CanonicalState", "StateCache"]
