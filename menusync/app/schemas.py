# schemas.py

"""Pydantic models for API payloads."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, NonNegativeInt


class StateIn(BaseModel):
    """Full replacement of the catalog plus optional auxiliary state.

    Older clients send the item list under ``menu``.
    """

    items: List[Dict[str, Any]] = Field(
        ..., validation_alias=AliasChoices("items", "menu")
    )
    wallet: Optional[Dict[str, NonNegativeInt]] = None
    tasks: Optional[Dict[str, NonNegativeInt]] = None


class WalletAdjust(BaseModel):
    """Signed change to a single wallet balance."""

    currency: str = Field(..., examples=["kiss"])
    amount: int = Field(..., examples=[-2])


class TaskComplete(BaseModel):
    task: str = Field(..., examples=["massage"])


class OrderAction(BaseModel):
    """Selection change or checkout."""

    action: str = Field(..., examples=["add"])
    item_id: Optional[Union[int, str]] = Field(
        None, validation_alias=AliasChoices("item_id", "itemId", "id")
    )
