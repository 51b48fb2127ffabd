from __future__ import annotations

from dataclasses import dataclass

from app.transit.core.error_catalog import ConflictError, ReconciliationError
from app.transit.db.models import Dispatch, DispatchItem
from app.transit.repos.batches import BatchLedger
from app.transit.schemas.dispatches import ManifestEntry


@dataclass(frozen=True)
class ReconciledLine:
    item: DispatchItem
    received_quantity: int
    damaged_quantity: int
    missing_quantity: int


class DeliveryReconciler:
    def __init__(self, db):
        self.ledger = BatchLedger(db)

    def reconcile(self, dispatch: Dispatch, manifest: list[ManifestEntry]) -> list[ReconciledLine]:
        items = {str(item.id): item for item in dispatch.items}
        entries: dict[str, ManifestEntry] = {}
        for entry in manifest:
            item_id = str(entry.item_id)
            item = items.get(item_id)
            if item is None:
                raise ReconciliationError("manifest entry does not match a dispatch item", item_id=item_id)
            if item_id in entries:
                raise ReconciliationError("item listed more than once in manifest", item_id=item_id)
            accounted = entry.received_quantity + entry.damaged_quantity + entry.missing_quantity
            if accounted != item.quantity:
                raise ReconciliationError(
                    "received + damaged + missing must equal requested quantity",
                    item_id=item_id,
                    requested_quantity=item.quantity,
                    received_quantity=entry.received_quantity,
                    damaged_quantity=entry.damaged_quantity,
                    missing_quantity=entry.missing_quantity,
                )
            entries[item_id] = entry

        lines = []
        for item_id, item in items.items():
            entry = entries.get(item_id)
            if entry is None:
                raise ReconciliationError("manifest entry missing for item", item_id=item_id)
            lines.append(
                ReconciledLine(
                    item=item,
                    received_quantity=entry.received_quantity,
                    damaged_quantity=entry.damaged_quantity,
                    missing_quantity=entry.missing_quantity,
                )
            )
        return lines

    def apply(self, dispatch: Dispatch, lines: list[ReconciledLine]) -> None:
        for line in lines:
            item = line.item
            # Units leave the source for good, whatever their condition on arrival.
            if not self.ledger.adjust_active_quantity(str(item.batch_id), -item.quantity):
                raise ConflictError(
                    "source batch no longer holds the dispatched units",
                    item_id=str(item.id),
                    batch_id=str(item.batch_id),
                    requested_quantity=item.quantity,
                )
            if line.received_quantity > 0:
                counterpart = self.ledger.find_or_create_counterpart(
                    item.batch,
                    str(dispatch.destination_store_id),
                    unit_cost=item.unit_cost,
                    sell_price=item.unit_price,
                )
                self.ledger.adjust_active_quantity(str(counterpart.id), line.received_quantity, adjust_total=True)
                item.destination_batch_id = counterpart.id
            item.received_quantity = line.received_quantity
            item.damaged_quantity = line.damaged_quantity
            item.missing_quantity = line.missing_quantity
