from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel


class AvailableBatchResponse(BaseModel):
    id: str
    store_id: str
    sku: str
    batch_number: str
    total_quantity: int
    active_quantity: int
    committed_quantity: int
    available_quantity: int
    unit_cost: Decimal
    sell_price: Decimal


class AvailableBatchListResponse(BaseModel):
    store_id: str
    rows: list[AvailableBatchResponse]
