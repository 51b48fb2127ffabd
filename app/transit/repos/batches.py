from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update

from app.transit.db.models import Batch


class BatchLedger:
    def __init__(self, db):
        self.db = db

    def get_batch(self, batch_id: str) -> Batch | None:
        return self.db.execute(select(Batch).where(Batch.id == batch_id)).scalars().first()

    def get_batches(self, batch_ids: list[str], *, for_update: bool = False) -> dict[str, Batch]:
        if not batch_ids:
            return {}
        query = select(Batch).where(Batch.id.in_(batch_ids)).order_by(Batch.id)
        if for_update:
            query = query.with_for_update()
        rows = self.db.execute(query).scalars().all()
        return {str(row.id): row for row in rows}

    def get_active_quantity(self, batch_id: str) -> int | None:
        return self.db.execute(select(Batch.active_quantity).where(Batch.id == batch_id)).scalar_one_or_none()

    def adjust_active_quantity(self, batch_id: str, delta: int, *, adjust_total: bool = False) -> bool:
        values = {
            "active_quantity": Batch.active_quantity + delta,
            "updated_at": datetime.utcnow(),
        }
        if adjust_total:
            values["total_quantity"] = Batch.total_quantity + delta
        stmt = (
            update(Batch)
            .where(Batch.id == batch_id, Batch.active_quantity + delta >= 0)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).rowcount == 1

    def list_store_batches(self, store_id: str) -> list[Batch]:
        query = (
            select(Batch)
            .where(Batch.store_id == store_id)
            .order_by(Batch.sku.asc(), Batch.batch_number.asc())
        )
        return self.db.execute(query).scalars().all()

    def find_or_create_counterpart(self, batch: Batch, store_id: str, *, unit_cost, sell_price) -> Batch:
        existing = (
            self.db.execute(
                select(Batch)
                .where(
                    Batch.store_id == store_id,
                    Batch.sku == batch.sku,
                    Batch.batch_number == batch.batch_number,
                )
                .with_for_update()
            )
            .scalars()
            .first()
        )
        if existing:
            return existing
        counterpart = Batch(
            store_id=store_id,
            sku=batch.sku,
            batch_number=batch.batch_number,
            total_quantity=0,
            active_quantity=0,
            unit_cost=unit_cost,
            sell_price=sell_price,
        )
        self.db.add(counterpart)
        self.db.flush()
        return counterpart
