from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


_DISPATCH_CREATE_EXAMPLE = {
    "source_store_id": "7d0c6c57-8a55-4c1f-9d7f-6b0e1d2f3a41",
    "destination_store_id": "b3f9e0a2-1c4d-4e5f-8a6b-7c8d9e0f1a2b",
    "expected_delivery_date": "2026-10-20",
    "carrier_name": "Metro Couriers",
    "tracking_number": "MC-99812",
    "notes": "Fragile, keep upright",
    "submit": True,
    "items": [{"batch_id": "5e2d1c0b-9a8f-4e7d-b6c5-a4b3c2d1e0f9", "quantity": 10}],
}


class DispatchItemCreate(BaseModel):
    batch_id: UUID
    quantity: int = Field(gt=0)


class DispatchCreateRequest(BaseModel):
    source_store_id: UUID
    destination_store_id: UUID
    items: list[DispatchItemCreate] = Field(default_factory=list)
    expected_delivery_date: date | None = None
    carrier_name: str | None = Field(default=None, max_length=255)
    tracking_number: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    submit: bool = False

    model_config = {"json_schema_extra": {"example": _DISPATCH_CREATE_EXAMPLE}}


class ManifestEntry(BaseModel):
    item_id: UUID
    received_quantity: int = Field(ge=0)
    damaged_quantity: int = Field(default=0, ge=0)
    missing_quantity: int = Field(default=0, ge=0)


class DeliverRequest(BaseModel):
    items: list[ManifestEntry]


class CancelRequest(BaseModel):
    reason: str | None = None


class ScanRequest(BaseModel):
    barcode: str


class ScanProgressResponse(BaseModel):
    dispatch_item_id: str
    required_quantity: int
    scanned_count: int
    remaining_count: int
    all_scanned: bool
    progress_percentage: float


class ScanRecordResponse(BaseModel):
    barcode: str
    sequence: int
    scanned_by: str
    scanned_at: datetime


class ScanProgressDetailResponse(ScanProgressResponse):
    scans: list[ScanRecordResponse]


class DispatchItemResponse(BaseModel):
    id: str
    batch_id: str
    sku: str | None
    batch_number: str | None
    quantity: int
    unit_cost: Decimal
    unit_price: Decimal
    total_cost: Decimal
    total_value: Decimal
    received_quantity: int | None
    damaged_quantity: int | None
    missing_quantity: int | None
    destination_batch_id: str | None
    barcode_scanning: ScanProgressResponse
    created_at: datetime


class DispatchResponse(BaseModel):
    id: str
    dispatch_number: str
    status: str
    version: int
    source_store_id: str
    destination_store_id: str
    expected_delivery_date: date | None
    actual_delivery_date: date | None
    is_overdue: bool
    carrier_name: str | None
    tracking_number: str | None
    notes: str | None
    cancellation_reason: str | None
    total_items: int
    total_quantity: int
    total_cost: Decimal
    total_value: Decimal
    created_by: str
    approved_by: str | None
    approved_at: datetime | None
    dispatched_by: str | None
    dispatched_at: datetime | None
    delivered_by: str | None
    delivered_at: datetime | None
    cancelled_by: str | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime | None
    items: list[DispatchItemResponse]


class DispatchListMeta(BaseModel):
    page: int
    page_size: int
    total_rows: int
    sort_by: str
    sort_dir: Literal["asc", "desc"]


class DispatchListResponse(BaseModel):
    meta: DispatchListMeta
    rows: list[DispatchResponse]


class DispatchStatisticsResponse(BaseModel):
    store_id: str | None
    total_dispatches: int
    draft: int
    pending_approval: int
    approved: int
    in_transit: int
    delivered: int
    cancelled: int
    overdue: int
    expected_today: int
    total_value_in_transit: Decimal
    total_cost_in_transit: Decimal
    total_value: Decimal


class AuditEventResponse(BaseModel):
    action: str
    entity_type: str
    entity_id: str | None
    actor_id: str | None
    trace_id: str | None
    before: dict | None
    metadata: dict | None
    created_at: datetime


class DispatchHistoryResponse(BaseModel):
    dispatch_id: str
    events: list[AuditEventResponse]
