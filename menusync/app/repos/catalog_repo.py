"""Repository interface for the catalog store."""

from abc import ABC, abstractmethod


class CatalogRepo(ABC):
    """Contract for the persistence capabilities the catalog relies on."""

    @abstractmethod
    async def list_items(self):
        """Return stored items in list order."""
        raise NotImplementedError

    @abstractmethod
    async def upsert_item(self, item, position):
        """Insert or update ``item`` keyed by its id."""
        raise NotImplementedError

    @abstractmethod
    async def delete_items(self, ids):
        """Delete every item whose id is in ``ids`` in one operation."""
        raise NotImplementedError

    @abstractmethod
    async def load_wallet(self):
        """Return ``(balances, tasks)`` or ``None`` when no wallet is stored."""
        raise NotImplementedError

    @abstractmethod
    async def save_wallet(self, balances, tasks):
        """Upsert the singleton wallet record."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self):
        """Raise when the store is unreachable."""
        raise NotImplementedError
