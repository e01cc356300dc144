# errors.py

"""Domain errors raised by the catalog service and mapped to HTTP envelopes."""

from __future__ import annotations

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Base class carrying the HTTP status and machine-readable code."""

    status_code = 500
    code = "CATALOG_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(CatalogError):
    """Malformed request: missing field, unknown currency or task kind."""

    status_code = 400
    code = "VALIDATION_ERROR"


class PreconditionFailed(CatalogError):
    """Request is well-formed but cannot be applied to the current state."""

    status_code = 400
    code = "PRECONDITION_FAILED"


class InsufficientFunds(PreconditionFailed):
    """Checkout total exceeds the wallet balance for ``currency``."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, currency: str, needed, available):
        super().__init__(
            f"insufficient {currency}: needed {needed}, available {available}",
            {"currency": currency, "needed": needed, "available": available},
        )
        self.currency = currency
        self.needed = needed
        self.available = available


class StoreError(CatalogError):
    """The external store failed, timed out or rejected a write."""

    status_code = 500
    code = "STORE_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        op: str = "unknown",
    ):
        super().__init__(message, details)
        self.op = op


__all__ = [
    "CatalogError",
    "InsufficientFunds",
    "PreconditionFailed",
    "StoreError",
    "ValidationError",
]
