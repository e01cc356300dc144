"""Request dependencies for the catalog service."""

from __future__ import annotations

from fastapi import Request

from ..services.catalog_service import CatalogService


def get_service(request: Request) -> CatalogService:
    """Return the process-wide :class:`CatalogService` built at startup."""
    return request.app.state.catalog
