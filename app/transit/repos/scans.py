from __future__ import annotations

from sqlalchemy import func, select

from app.transit.db.models import DispatchScan


class ScanRepository:
    def __init__(self, db):
        self.db = db

    def count_for_item(self, item_id: str) -> int:
        return int(
            self.db.execute(
                select(func.count()).select_from(DispatchScan).where(DispatchScan.dispatch_item_id == item_id)
            ).scalar_one()
        )

    def get_by_barcode(self, item_id: str, barcode: str) -> DispatchScan | None:
        return (
            self.db.execute(
                select(DispatchScan).where(
                    DispatchScan.dispatch_item_id == item_id,
                    DispatchScan.barcode == barcode,
                )
            )
            .scalars()
            .first()
        )

    def list_for_item(self, item_id: str) -> list[DispatchScan]:
        return (
            self.db.execute(
                select(DispatchScan)
                .where(DispatchScan.dispatch_item_id == item_id)
                .order_by(DispatchScan.sequence.asc())
            )
            .scalars()
            .all()
        )

    def create(self, scan: DispatchScan) -> DispatchScan:
        self.db.add(scan)
        self.db.flush()
        return scan
