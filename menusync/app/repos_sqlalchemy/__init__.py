from .catalog_repo_sql import CatalogRepoSQL

__all__ = ["CatalogRepoSQL"]
