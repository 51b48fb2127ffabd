from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import func, or_, select

from app.transit.db.models import Dispatch, DispatchItem, DispatchStatus
from app.transit.repos.dispatches import IN_FLIGHT_STATUSES


OPEN_STATUSES = (
    DispatchStatus.DRAFT.value,
    DispatchStatus.PENDING_APPROVAL.value,
    DispatchStatus.APPROVED.value,
    DispatchStatus.IN_TRANSIT.value,
)

_CENTS = Decimal("0.01")


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(_CENTS)


@dataclass
class DispatchStatistics:
    store_id: str | None
    status_counts: dict[str, int] = field(default_factory=dict)
    overdue: int = 0
    expected_today: int = 0
    total_value_in_transit: Decimal = Decimal("0.00")
    total_cost_in_transit: Decimal = Decimal("0.00")
    total_value: Decimal = Decimal("0.00")

    @property
    def total_dispatches(self) -> int:
        return sum(self.status_counts.values())

    def as_dict(self) -> dict:
        payload = {"store_id": self.store_id, "total_dispatches": self.total_dispatches}
        for status in DispatchStatus:
            payload[status.value] = self.status_counts.get(status.value, 0)
        payload.update(
            {
                "overdue": self.overdue,
                "expected_today": self.expected_today,
                "total_value_in_transit": self.total_value_in_transit,
                "total_cost_in_transit": self.total_cost_in_transit,
                "total_value": self.total_value,
            }
        )
        return payload


class DispatchStatisticsService:
    """Read-only aggregates, recomputed from stored dispatches on every call."""

    def __init__(self, db):
        self.db = db

    def _scoped(self, query, store_id):
        if store_id is None:
            return query
        return query.where(
            or_(Dispatch.source_store_id == store_id, Dispatch.destination_store_id == store_id)
        )

    def _count(self, store_id, *conditions) -> int:
        query = self._scoped(select(func.count(Dispatch.id)).where(*conditions), store_id)
        return int(self.db.execute(query).scalar_one() or 0)

    def _item_sum(self, store_id, column, *conditions):
        query = select(func.sum(DispatchItem.quantity * column)).join(
            Dispatch, Dispatch.id == DispatchItem.dispatch_id
        )
        query = self._scoped(query.where(*conditions), store_id)
        return self.db.execute(query).scalar_one()

    def get_statistics(self, store_id=None, *, today: date | None = None) -> DispatchStatistics:
        today = today or date.today()
        counts_query = self._scoped(
            select(Dispatch.status, func.count(Dispatch.id)).group_by(Dispatch.status), store_id
        )
        status_counts = {status: int(count) for status, count in self.db.execute(counts_query).all()}

        in_transit = Dispatch.status == DispatchStatus.IN_TRANSIT.value
        return DispatchStatistics(
            store_id=str(store_id) if store_id is not None else None,
            status_counts=status_counts,
            overdue=self._count(
                store_id,
                Dispatch.status.in_(IN_FLIGHT_STATUSES),
                Dispatch.expected_delivery_date.is_not(None),
                Dispatch.expected_delivery_date < today,
            ),
            expected_today=self._count(
                store_id,
                Dispatch.status.in_(OPEN_STATUSES),
                Dispatch.expected_delivery_date == today,
            ),
            total_value_in_transit=_money(self._item_sum(store_id, DispatchItem.unit_price, in_transit)),
            total_cost_in_transit=_money(self._item_sum(store_id, DispatchItem.unit_cost, in_transit)),
            total_value=_money(
                self._item_sum(
                    store_id,
                    DispatchItem.unit_price,
                    Dispatch.status != DispatchStatus.CANCELLED.value,
                )
            ),
        )
