"""Response envelopes: ``{"ok": true, "data": ...}`` on success and
``{"ok": false, "request_id": ..., "error": {...}}`` on failure."""

from typing import Any, Dict

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..errors import CatalogError


def ok(data: Any) -> Dict[str, Any]:
    return {"ok": True, "data": data}


def err(
    code: int | str,
    message: str,
    details: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Return an error envelope tagged with the current request id."""
    # Imported late: the middlewares package imports this module.
    from ..middlewares.request_id import current_request_id

    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = jsonable_encoder(details)
    return {"ok": False, "request_id": current_request_id(), "error": error}


def error_response(exc: CatalogError) -> JSONResponse:
    """Render a domain error with its own status and code."""
    return JSONResponse(
        err(exc.code, exc.message, exc.details), status_code=exc.status_code
    )
