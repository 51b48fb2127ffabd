from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_, select, update

from app.transit.db.models import Dispatch, DispatchItem, DispatchScan, DispatchStatus


IN_FLIGHT_STATUSES = (DispatchStatus.APPROVED.value, DispatchStatus.IN_TRANSIT.value)


@dataclass(frozen=True)
class DispatchQueryFilters:
    status: str | None = None
    source_store_id: str | None = None
    destination_store_id: str | None = None
    store_id: str | None = None
    search: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


class DispatchRepository:
    SORT_COLUMNS = {
        "created_at": Dispatch.created_at,
        "dispatch_number": Dispatch.dispatch_number,
        "status": Dispatch.status,
        "expected_delivery_date": Dispatch.expected_delivery_date,
    }

    def __init__(self, db):
        self.db = db

    def get_dispatch(self, dispatch_id: str, *, for_update: bool = False) -> Dispatch | None:
        query = select(Dispatch).where(Dispatch.id == dispatch_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query.execution_options(populate_existing=True)).scalars().first()

    def get_item(self, dispatch_id: str, item_id: str) -> DispatchItem | None:
        return (
            self.db.execute(
                select(DispatchItem).where(DispatchItem.id == item_id, DispatchItem.dispatch_id == dispatch_id)
            )
            .scalars()
            .first()
        )

    def number_exists(self, dispatch_number: str) -> bool:
        found = self.db.execute(
            select(Dispatch.id).where(Dispatch.dispatch_number == dispatch_number)
        ).first()
        return found is not None

    def list_dispatches(
        self,
        filters: DispatchQueryFilters,
        *,
        page: int,
        page_size: int,
        sort_by: str,
        sort_dir: str,
    ) -> tuple[list[Dispatch], int]:
        base_query = self._apply_filters(filters)
        total_rows = self.db.execute(select(func.count()).select_from(base_query.subquery())).scalar_one()

        sort_column = self.SORT_COLUMNS[sort_by]
        sort_column = sort_column.desc() if sort_dir.lower() == "desc" else sort_column.asc()
        query = (
            base_query.order_by(sort_column, Dispatch.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return self.db.execute(query).scalars().all(), total_rows

    def _apply_filters(self, filters: DispatchQueryFilters):
        query = select(Dispatch)
        if filters.status:
            query = query.where(Dispatch.status == filters.status)
        if filters.source_store_id:
            query = query.where(Dispatch.source_store_id == filters.source_store_id)
        if filters.destination_store_id:
            query = query.where(Dispatch.destination_store_id == filters.destination_store_id)
        if filters.store_id:
            query = query.where(
                or_(
                    Dispatch.source_store_id == filters.store_id,
                    Dispatch.destination_store_id == filters.store_id,
                )
            )
        if filters.search:
            like = f"%{filters.search}%"
            query = query.where(
                or_(
                    Dispatch.dispatch_number.ilike(like),
                    Dispatch.tracking_number.ilike(like),
                    Dispatch.carrier_name.ilike(like),
                    Dispatch.notes.ilike(like),
                )
            )
        if filters.date_from:
            query = query.where(Dispatch.created_at >= filters.date_from)
        if filters.date_to:
            query = query.where(Dispatch.created_at <= filters.date_to)
        return query

    def compare_and_set_status(self, dispatch: Dispatch, new_status: str, **values) -> bool:
        stmt = (
            update(Dispatch)
            .where(
                Dispatch.id == dispatch.id,
                Dispatch.status == dispatch.status,
                Dispatch.version == dispatch.version,
            )
            .values(
                status=new_status,
                version=Dispatch.version + 1,
                updated_at=datetime.utcnow(),
                **values,
            )
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).rowcount == 1

    def touch(self, dispatch: Dispatch) -> bool:
        return self.compare_and_set_status(dispatch, dispatch.status)

    def hold_status(self, dispatch_id, status: str) -> bool:
        # no-op write: takes the row (SQLite: database) write lock until commit
        stmt = (
            update(Dispatch)
            .where(Dispatch.id == dispatch_id, Dispatch.status == status)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def committed_quantities(self, batch_ids: list[str], *, exclude_dispatch_id=None) -> dict[str, int]:
        if not batch_ids:
            return {}
        query = (
            select(DispatchItem.batch_id, func.coalesce(func.sum(DispatchItem.quantity), 0))
            .join(Dispatch, Dispatch.id == DispatchItem.dispatch_id)
            .where(DispatchItem.batch_id.in_(batch_ids), Dispatch.status.in_(IN_FLIGHT_STATUSES))
            .group_by(DispatchItem.batch_id)
        )
        if exclude_dispatch_id is not None:
            query = query.where(Dispatch.id != exclude_dispatch_id)
        return {str(batch_id): int(total or 0) for batch_id, total in self.db.execute(query).all()}

    def scanned_counts(self, item_ids: list) -> dict[str, int]:
        if not item_ids:
            return {}
        query = (
            select(DispatchScan.dispatch_item_id, func.count())
            .where(DispatchScan.dispatch_item_id.in_(item_ids))
            .group_by(DispatchScan.dispatch_item_id)
        )
        return {str(item_id): int(count) for item_id, count in self.db.execute(query).all()}
