"""Catalog state: schema normalization, snapshot cache and reconciliation."""

from .normalize import SchemaNormalizer
from .reconcile import ReconcilePlan, item_key, reconcile
from .state import CanonicalState, StateCache

__all__ = [
    "CanonicalState",
    "ReconcilePlan",
    "SchemaNormalizer",
    "StateCache",
    "item_key",
    "reconcile",
]
