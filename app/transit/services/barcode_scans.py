from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from app.transit.core.config import settings
from app.transit.core.error_catalog import (
    AppError,
    CapacityExceededError,
    ConflictError,
    DuplicateScanError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.transit.core.logging import log_json
from app.transit.core.metrics import metrics
from app.transit.db.models import DispatchItem, DispatchScan, DispatchStatus
from app.transit.repos.dispatches import DispatchRepository
from app.transit.repos.scans import ScanRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanProgress:
    dispatch_item_id: str
    required_quantity: int
    scanned_count: int

    @property
    def remaining_count(self) -> int:
        return max(self.required_quantity - self.scanned_count, 0)

    @property
    def all_scanned(self) -> bool:
        return self.scanned_count >= self.required_quantity

    @property
    def progress_percentage(self) -> float:
        if self.required_quantity <= 0:
            return 0.0
        return round(self.scanned_count * 100 / self.required_quantity, 2)

    def as_dict(self) -> dict:
        return {
            "dispatch_item_id": self.dispatch_item_id,
            "required_quantity": self.required_quantity,
            "scanned_count": self.scanned_count,
            "remaining_count": self.remaining_count,
            "all_scanned": self.all_scanned,
            "progress_percentage": self.progress_percentage,
        }


class BarcodeScanTracker:
    def __init__(self, db):
        self.db = db
        self.dispatches = DispatchRepository(db)
        self.scans = ScanRepository(db)

    def _load(self, dispatch_id, item_id, *, for_update: bool = False):
        dispatch = self.dispatches.get_dispatch(dispatch_id, for_update=for_update)
        if dispatch is None:
            raise NotFoundError("dispatch", dispatch_id)
        item = self.dispatches.get_item(dispatch_id, item_id)
        if item is None:
            raise NotFoundError("dispatch item", item_id)
        return dispatch, item

    def _normalize_barcode(self, barcode: str | None) -> str:
        value = (barcode or "").strip()
        if not value:
            raise ValidationError("barcode must not be empty")
        if len(value) > settings.BARCODE_MAX_LENGTH:
            raise ValidationError("barcode too long", max_length=settings.BARCODE_MAX_LENGTH)
        return value

    def progress(self, item: DispatchItem, scanned_count: int | None = None) -> ScanProgress:
        if scanned_count is None:
            scanned_count = self.scans.count_for_item(item.id)
        return ScanProgress(
            dispatch_item_id=str(item.id),
            required_quantity=item.quantity,
            scanned_count=scanned_count,
        )

    def progress_for_items(self, items: list[DispatchItem]) -> dict[str, ScanProgress]:
        counts = self.dispatches.scanned_counts([item.id for item in items])
        return {str(item.id): self.progress(item, counts.get(str(item.id), 0)) for item in items}

    def scan(self, dispatch_id, item_id, barcode: str | None, actor_id: str) -> ScanProgress:
        try:
            progress = self._scan(dispatch_id, item_id, barcode, actor_id)
        except AppError as exc:
            self.db.rollback()
            metrics.record_scan(exc.error.code)
            raise
        metrics.record_scan("accepted")
        log_json(
            logger,
            {
                "event": "barcode_scanned",
                "dispatch_id": str(dispatch_id),
                "item_id": str(item_id),
                "actor_id": actor_id,
                "scanned_count": progress.scanned_count,
                "required_quantity": progress.required_quantity,
            },
        )
        return progress

    def _scan(self, dispatch_id, item_id, barcode, actor_id) -> ScanProgress:
        value = self._normalize_barcode(barcode)
        dispatch, item = self._load(dispatch_id, item_id, for_update=True)
        if dispatch.status != DispatchStatus.IN_TRANSIT.value:
            raise InvalidStateError(dispatch.status, "scan")
        if not self.dispatches.hold_status(dispatch.id, DispatchStatus.IN_TRANSIT.value):
            self.db.rollback()
            current = self.dispatches.get_dispatch(dispatch_id)
            raise InvalidStateError(current.status, "scan")
        if self.scans.get_by_barcode(item.id, value) is not None:
            raise DuplicateScanError(item.id, value)
        scanned_count = self.scans.count_for_item(item.id)
        if scanned_count >= item.quantity:
            raise CapacityExceededError(item.id, item.quantity)

        try:
            self.scans.create(
                DispatchScan(
                    dispatch_id=dispatch.id,
                    dispatch_item_id=item.id,
                    barcode=value,
                    sequence=scanned_count + 1,
                    scanned_by=actor_id,
                    scanned_at=datetime.utcnow(),
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self.scans.get_by_barcode(item.id, value) is not None:
                raise DuplicateScanError(item.id, value)
            if self.scans.count_for_item(item.id) >= item.quantity:
                raise CapacityExceededError(item.id, item.quantity)
            raise ConflictError("another scan was recorded for this item at the same time", item_id=str(item.id))
        return self.progress(item)

    def get_progress(self, dispatch_id, item_id) -> tuple[ScanProgress, list[DispatchScan]]:
        _dispatch, item = self._load(dispatch_id, item_id)
        records = self.scans.list_for_item(item.id)
        return self.progress(item, len(records)), records
