from __future__ import annotations

from dataclasses import dataclass

from app.transit.core.error_catalog import ConflictError, ValidationError
from app.transit.db.models import Batch
from app.transit.repos.batches import BatchLedger
from app.transit.repos.dispatches import DispatchRepository


@dataclass(frozen=True)
class BatchAvailability:
    batch: Batch
    committed_quantity: int

    @property
    def active_quantity(self) -> int:
        return self.batch.active_quantity

    @property
    def available_quantity(self) -> int:
        return max(self.batch.active_quantity - self.committed_quantity, 0)


@dataclass(frozen=True)
class RequestedLine:
    batch_id: str
    quantity: int
    item_id: str | None = None


class AvailabilityService:
    def __init__(self, db):
        self.ledger = BatchLedger(db)
        self.dispatches = DispatchRepository(db)

    def resolve(
        self,
        batch_ids: list[str],
        *,
        exclude_dispatch_id=None,
        for_update: bool = False,
    ) -> dict[str, BatchAvailability]:
        batches = self.ledger.get_batches(batch_ids, for_update=for_update)
        committed = self.dispatches.committed_quantities(list(batches), exclude_dispatch_id=exclude_dispatch_id)
        return {
            batch_id: BatchAvailability(batch=batch, committed_quantity=committed.get(batch_id, 0))
            for batch_id, batch in batches.items()
        }

    def available_batches(self, store_id: str) -> list[BatchAvailability]:
        batches = self.ledger.list_store_batches(store_id)
        committed = self.dispatches.committed_quantities([str(batch.id) for batch in batches])
        rows = [BatchAvailability(batch=batch, committed_quantity=committed.get(str(batch.id), 0)) for batch in batches]
        return [row for row in rows if row.available_quantity > 0]

    def check_composition(
        self,
        lines: list[RequestedLine],
        *,
        source_store_id,
        exclude_dispatch_id=None,
    ) -> dict[str, BatchAvailability]:
        resolved = self.resolve([line.batch_id for line in lines], exclude_dispatch_id=exclude_dispatch_id)
        for line in lines:
            availability = resolved.get(line.batch_id)
            if availability is None:
                raise ValidationError("batch not found", batch_id=line.batch_id)
            if str(availability.batch.store_id) != str(source_store_id):
                raise ValidationError(
                    "batch does not belong to the source store",
                    batch_id=line.batch_id,
                    store_id=str(availability.batch.store_id),
                )
            if line.quantity > availability.available_quantity:
                raise ValidationError(
                    "requested quantity exceeds available quantity",
                    batch_id=line.batch_id,
                    requested_quantity=line.quantity,
                    available_quantity=availability.available_quantity,
                )
        return resolved

    def check_approval(self, lines: list[RequestedLine], *, dispatch_id) -> None:
        """Authoritative re-check at approval; batch rows stay locked until commit."""
        resolved = self.resolve(
            [line.batch_id for line in lines],
            exclude_dispatch_id=dispatch_id,
            for_update=True,
        )
        for line in lines:
            availability = resolved.get(line.batch_id)
            available = availability.available_quantity if availability else 0
            if line.quantity > available:
                raise ConflictError(
                    "requested quantity no longer available",
                    item_id=line.item_id,
                    batch_id=line.batch_id,
                    requested_quantity=line.quantity,
                    available_quantity=available,
                )
