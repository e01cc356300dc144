"""Translate legacy item and wallet shapes into the canonical schema.

Earlier revisions of the menu stored a single ``kissPrice`` per item and
named some currencies differently (``kisses``, ``licks``). Every record that
crosses the store boundary, in either direction, goes through
:class:`SchemaNormalizer` so that only canonical keys reach the cache.
"""

from __future__ import annotations

from numbers import Real
from typing import Any, Dict, Iterable, Mapping

from ..errors import ValidationError


def _is_amount(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and value >= 0


class SchemaNormalizer:
    """Pure, total rewrite rules for items, wallets and task counters."""

    def __init__(
        self,
        currency_kinds: Iterable[str],
        primary_currency: str,
        aliases: Mapping[str, str] | None = None,
        legacy_price_fields: Iterable[str] = ("kissPrice",),
    ) -> None:
        self.currency_kinds = tuple(currency_kinds)
        self.primary_currency = primary_currency
        self.aliases = dict(aliases or {})
        self.legacy_price_fields = tuple(legacy_price_fields)

    @classmethod
    def from_settings(cls, settings) -> "SchemaNormalizer":
        return cls(
            settings.currency_kinds,
            settings.primary_currency,
            settings.legacy_currency_aliases,
            settings.legacy_price_fields,
        )

    def canonical_kind(self, kind: str) -> str:
        """Return the canonical name for ``kind`` (legacy or not)."""
        return self.aliases.get(kind, kind)

    def is_known_kind(self, kind: str) -> bool:
        return self.canonical_kind(kind) in self.currency_kinds

    def rename_kinds(self, mapping: Mapping[str, Any]) -> Dict[str, Any]:
        """Rename legacy keys of ``mapping``; an existing canonical key wins."""
        out: Dict[str, Any] = {}
        for key, value in mapping.items():
            canonical = self.aliases.get(key, key)
            if canonical != key and canonical in mapping:
                continue
            out[canonical] = value
        return out

    def check_kinds(self, mapping: Any, label: str) -> None:
        """Raise :class:`ValidationError` unless ``mapping`` holds known
        kinds mapped to non-negative numbers."""
        if not isinstance(mapping, Mapping):
            raise ValidationError(f"{label} must be an object", {label: mapping})
        for kind, amount in mapping.items():
            if not isinstance(kind, str) or not self.is_known_kind(kind):
                raise ValidationError(f"unknown {label} kind {kind!r}", {label: kind})
            if not _is_amount(amount):
                raise ValidationError(
                    f"{label} {kind!r} must be a non-negative number",
                    {label: kind, "value": amount},
                )

    def check_item(self, raw: Mapping[str, Any]) -> None:
        """Reject items whose prices cannot be totalled at checkout."""
        if raw.get("prices") is not None:
            self.check_kinds(raw["prices"], "prices")
        for name in self.legacy_price_fields:
            if name in raw and not _is_amount(raw[name]):
                raise ValidationError(
                    f"{name} must be a non-negative number",
                    {"field": name, "value": raw[name]},
                )

    def normalize_item(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        item = dict(raw)
        legacy = [name for name in self.legacy_price_fields if name in item]
        if legacy and not isinstance(item.get("prices"), Mapping):
            prices = {kind: 0 for kind in self.currency_kinds}
            prices[self.primary_currency] = item[legacy[0]]
            item["prices"] = prices
        for name in legacy:
            del item[name]
        if isinstance(item.get("prices"), Mapping):
            item["prices"] = self.rename_kinds(item["prices"])
        return item

    def normalize_wallet(self, raw: Mapping[str, Any] | None) -> Dict[str, Any]:
        return self.rename_kinds(raw or {})

    # Task kinds share the currency vocabulary.
    normalize_tasks = normalize_wallet


__all__ = ["SchemaNormalizer"]
