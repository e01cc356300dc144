"""SQLAlchemy implementation of the catalog repository."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..catalog.reconcile import item_key
from ..errors import StoreError
from ..models import WALLET_ID, CatalogItemRow, WalletRow
from ..repos.catalog_repo import CatalogRepo

_INSERTS = {"sqlite": sqlite_insert, "postgresql": pg_insert}


class CatalogRepoSQL(CatalogRepo):
    """Concrete CatalogRepo; every call runs in its own short session."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    @asynccontextmanager
    async def _session(self, op: str):
        try:
            async with self._sessionmaker() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreError(f"{op} failed: {exc}", op=op) from exc

    def _insert(self, session: AsyncSession, model):
        dialect = session.bind.dialect.name
        try:
            return _INSERTS[dialect](model)
        except KeyError:
            raise StoreError(f"upsert not supported on {dialect}", op="upsert")

    async def list_items(self) -> List[Dict[str, Any]]:
        """Return item payloads ordered by their stored position."""
        async with self._session("list_items") as session:
            result = await session.execute(
                select(CatalogItemRow).order_by(
                    CatalogItemRow.position, CatalogItemRow.created_at
                )
            )
            return [dict(row.data) for row in result.scalars().all()]

    async def upsert_item(self, item: Dict[str, Any], position: int) -> None:
        async with self._session("upsert_item") as session:
            stmt = self._insert(session, CatalogItemRow).values(
                id=item_key(item), position=position, data=item
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[CatalogItemRow.id],
                set_={
                    "position": stmt.excluded.position,
                    "data": stmt.excluded.data,
                    "updated_at": func.now(),
                },
            )
            await session.execute(stmt)
            await session.commit()

    async def delete_items(self, ids: Iterable[Any]) -> None:
        keys = [str(item_id) for item_id in ids]
        if not keys:
            return
        async with self._session("delete_items") as session:
            await session.execute(
                delete(CatalogItemRow).where(CatalogItemRow.id.in_(keys))
            )
            await session.commit()

    async def load_wallet(self) -> Optional[Tuple[Dict[str, Any], Optional[Dict[str, int]]]]:
        async with self._session("load_wallet") as session:
            row = await session.get(WalletRow, WALLET_ID)
            if row is None:
                return None
            return dict(row.balances or {}), (
                dict(row.tasks) if row.tasks is not None else None
            )

    async def save_wallet(
        self, balances: Dict[str, Any], tasks: Optional[Dict[str, int]]
    ) -> None:
        async with self._session("save_wallet") as session:
            stmt = self._insert(session, WalletRow).values(
                id=WALLET_ID, balances=balances, tasks=tasks
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[WalletRow.id],
                set_={
                    "balances": stmt.excluded.balances,
                    "tasks": stmt.excluded.tasks,
                    "updated_at": func.now(),
                },
            )
            await session.execute(stmt)
            await session.commit()

    async def ping(self) -> None:
        async with self._session("ping") as session:
            await session.execute(text("SELECT 1"))
