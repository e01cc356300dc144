"""Database models for the catalog store.

Item payloads are kept as JSON so that display attributes stay opaque to the
service; only the id and list position are real columns.
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Integer, String, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()

WALLET_ID = 1


class CatalogItemRow(Base):
    """One menu item keyed by the string form of its id."""

    __tablename__ = "menu_items"

    id = Column(String, primary_key=True)
    position = Column(Integer, nullable=False, default=0)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class WalletRow(Base):
    """Singleton wallet record holding balances and task counters."""

    __tablename__ = "wallet"

    id = Column(Integer, primary_key=True, default=WALLET_ID)
    balances = Column(JSON, nullable=False, default=dict)
    tasks = Column(JSON, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
