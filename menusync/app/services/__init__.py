from .catalog_service import ORDER_ACTIONS, CatalogService

__all__ = ["CatalogService", "ORDER_ACTIONS"]
