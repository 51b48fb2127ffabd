from __future__ import annotations

import logging
import secrets
from contextlib import contextmanager
from datetime import date, datetime

from app.transit.core.config import settings
from app.transit.core.error_catalog import AppError, InvalidStateError, NotFoundError, ValidationError
from app.transit.core.logging import log_json
from app.transit.core.metrics import metrics
from app.transit.db.models import Dispatch, DispatchItem, DispatchStatus, Store
from app.transit.repos.dispatches import DispatchRepository
from app.transit.schemas.dispatches import DispatchCreateRequest, DispatchItemCreate, ManifestEntry
from app.transit.services.availability import AvailabilityService, RequestedLine
from app.transit.services.delivery import DeliveryReconciler

logger = logging.getLogger(__name__)


# transition -> (allowed predecessor statuses, resulting status)
TRANSITIONS = {
    "submit": ({DispatchStatus.DRAFT.value}, DispatchStatus.PENDING_APPROVAL.value),
    "approve": ({DispatchStatus.PENDING_APPROVAL.value}, DispatchStatus.APPROVED.value),
    "mark_dispatched": ({DispatchStatus.APPROVED.value}, DispatchStatus.IN_TRANSIT.value),
    "mark_delivered": ({DispatchStatus.IN_TRANSIT.value}, DispatchStatus.DELIVERED.value),
    "cancel": (
        {
            DispatchStatus.DRAFT.value,
            DispatchStatus.PENDING_APPROVAL.value,
            DispatchStatus.APPROVED.value,
            DispatchStatus.IN_TRANSIT.value,
        },
        DispatchStatus.CANCELLED.value,
    ),
}

# statuses whose item lines may still be added or removed
EDITABLE_STATUSES = {DispatchStatus.DRAFT.value, DispatchStatus.PENDING_APPROVAL.value}


class DispatchLifecycleService:
    def __init__(self, db):
        self.db = db
        self.dispatches = DispatchRepository(db)
        self.availability = AvailabilityService(db)
        self.reconciler = DeliveryReconciler(db)

    @contextmanager
    def _unit_of_work(self, transition: str):
        try:
            yield
            self.db.commit()
        except AppError as exc:
            self.db.rollback()
            metrics.record_transition(transition, exc.error.code)
            raise
        except Exception:
            self.db.rollback()
            metrics.record_transition(transition, "error")
            raise
        metrics.record_transition(transition, "success")

    def _load(self, dispatch_id, *, for_update: bool = False) -> Dispatch:
        dispatch = self.dispatches.get_dispatch(dispatch_id, for_update=for_update)
        if dispatch is None:
            raise NotFoundError("dispatch", dispatch_id)
        return dispatch

    def _require_status(self, dispatch: Dispatch, transition: str) -> str:
        allowed, new_status = TRANSITIONS[transition]
        if dispatch.status not in allowed:
            raise InvalidStateError(dispatch.status, transition)
        return new_status

    def _require_items(self, dispatch: Dispatch, transition: str) -> None:
        if not dispatch.items:
            raise ValidationError("dispatch has no items", dispatch_id=str(dispatch.id), attempted=transition)

    def _lost_race(self, dispatch: Dispatch, attempted: str) -> InvalidStateError:
        # report the state the winner left behind
        dispatch_id, previous = dispatch.id, dispatch.status
        self.db.rollback()
        current = self.dispatches.get_dispatch(dispatch_id)
        return InvalidStateError(current.status if current else previous, attempted)

    def _require_editable(self, dispatch: Dispatch, attempted: str) -> None:
        if dispatch.status not in EDITABLE_STATUSES:
            raise InvalidStateError(dispatch.status, attempted)

    def _compare_and_set(self, dispatch: Dispatch, transition: str, new_status: str, actor_id: str, **values) -> None:
        previous = dispatch.status
        if not self.dispatches.compare_and_set_status(dispatch, new_status, **values):
            raise self._lost_race(dispatch, transition)
        log_json(
            logger,
            {
                "event": "dispatch_transition",
                "transition": transition,
                "dispatch_id": str(dispatch.id),
                "dispatch_number": dispatch.dispatch_number,
                "from_status": previous,
                "to_status": new_status,
                "actor_id": actor_id,
            },
        )

    def _next_dispatch_number(self) -> str:
        while True:
            candidate = (
                f"{settings.DISPATCH_NUMBER_PREFIX}-{datetime.utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"
            )
            if not self.dispatches.number_exists(candidate):
                return candidate

    def _lines(self, dispatch: Dispatch) -> list[RequestedLine]:
        return [
            RequestedLine(batch_id=str(item.batch_id), quantity=item.quantity, item_id=str(item.id))
            for item in dispatch.items
        ]

    def get_dispatch(self, dispatch_id) -> Dispatch:
        return self._load(dispatch_id)

    def create_dispatch(self, payload: DispatchCreateRequest, actor_id: str) -> Dispatch:
        with self._unit_of_work("create"):
            source_id = str(payload.source_store_id)
            destination_id = str(payload.destination_store_id)
            if source_id == destination_id:
                raise ValidationError("source and destination stores must differ", store_id=source_id)
            for store_id in (payload.source_store_id, payload.destination_store_id):
                if self.db.get(Store, store_id) is None:
                    raise ValidationError("store not found", store_id=str(store_id))
            if payload.submit and not payload.items:
                raise ValidationError("cannot submit a dispatch without items")

            lines = []
            seen: set[str] = set()
            for entry in payload.items:
                batch_id = str(entry.batch_id)
                if batch_id in seen:
                    raise ValidationError("batch listed more than once", batch_id=batch_id)
                seen.add(batch_id)
                lines.append(RequestedLine(batch_id=batch_id, quantity=entry.quantity))
            resolved = self.availability.check_composition(lines, source_store_id=source_id)

            status = DispatchStatus.PENDING_APPROVAL.value if payload.submit else DispatchStatus.DRAFT.value
            dispatch = Dispatch(
                dispatch_number=self._next_dispatch_number(),
                source_store_id=payload.source_store_id,
                destination_store_id=payload.destination_store_id,
                status=status,
                version=1,
                expected_delivery_date=payload.expected_delivery_date,
                carrier_name=payload.carrier_name,
                tracking_number=payload.tracking_number,
                notes=payload.notes,
                created_by=actor_id,
                created_at=datetime.utcnow(),
            )
            self.db.add(dispatch)
            self.db.flush()
            for line in lines:
                batch = resolved[line.batch_id].batch
                self.db.add(
                    DispatchItem(
                        dispatch_id=dispatch.id,
                        batch_id=batch.id,
                        quantity=line.quantity,
                        unit_cost=batch.unit_cost,
                        unit_price=batch.sell_price,
                    )
                )
            self.db.flush()
        log_json(
            logger,
            {
                "event": "dispatch_created",
                "dispatch_id": str(dispatch.id),
                "dispatch_number": dispatch.dispatch_number,
                "status": status,
                "item_count": len(lines),
                "actor_id": actor_id,
            },
        )
        return self._load(dispatch.id)

    def add_item(self, dispatch_id, entry: DispatchItemCreate, actor_id: str) -> Dispatch:
        with self._unit_of_work("add_item"):
            dispatch = self._load(dispatch_id, for_update=True)
            self._require_editable(dispatch, "add_item")
            batch_id = str(entry.batch_id)
            if any(str(item.batch_id) == batch_id for item in dispatch.items):
                raise ValidationError("batch already on dispatch", batch_id=batch_id)
            resolved = self.availability.check_composition(
                [RequestedLine(batch_id=batch_id, quantity=entry.quantity)],
                source_store_id=dispatch.source_store_id,
                exclude_dispatch_id=dispatch.id,
            )
            batch = resolved[batch_id].batch
            self.db.add(
                DispatchItem(
                    dispatch_id=dispatch.id,
                    batch_id=batch.id,
                    quantity=entry.quantity,
                    unit_cost=batch.unit_cost,
                    unit_price=batch.sell_price,
                )
            )
            if not self.dispatches.touch(dispatch):
                raise self._lost_race(dispatch, "add_item")
        logger.info("dispatch %s item added by %s", dispatch_id, actor_id)
        return self._load(dispatch_id)

    def remove_item(self, dispatch_id, item_id, actor_id: str) -> Dispatch:
        with self._unit_of_work("remove_item"):
            dispatch = self._load(dispatch_id, for_update=True)
            self._require_editable(dispatch, "remove_item")
            item = self.dispatches.get_item(dispatch.id, item_id)
            if item is None:
                raise NotFoundError("dispatch item", item_id)
            if dispatch.status != DispatchStatus.DRAFT.value and len(dispatch.items) == 1:
                raise ValidationError(
                    "a submitted dispatch must keep at least one item",
                    dispatch_id=str(dispatch.id),
                    item_id=str(item.id),
                )
            self.db.delete(item)
            if not self.dispatches.touch(dispatch):
                raise self._lost_race(dispatch, "remove_item")
        logger.info("dispatch %s item %s removed by %s", dispatch_id, item_id, actor_id)
        return self._load(dispatch_id)

    def submit(self, dispatch_id, actor_id: str) -> Dispatch:
        with self._unit_of_work("submit"):
            dispatch = self._load(dispatch_id, for_update=True)
            new_status = self._require_status(dispatch, "submit")
            self._require_items(dispatch, "submit")
            self._compare_and_set(dispatch, "submit", new_status, actor_id)
        logger.info("dispatch %s submitted by %s", dispatch_id, actor_id)
        return self._load(dispatch_id)

    def approve(self, dispatch_id, actor_id: str) -> Dispatch:
        with self._unit_of_work("approve"):
            dispatch = self._load(dispatch_id, for_update=True)
            new_status = self._require_status(dispatch, "approve")
            self._require_items(dispatch, "approve")
            self.availability.check_approval(self._lines(dispatch), dispatch_id=dispatch.id)
            self._compare_and_set(
                dispatch,
                "approve",
                new_status,
                actor_id,
                approved_by=actor_id,
                approved_at=datetime.utcnow(),
            )
        return self._load(dispatch_id)

    def mark_dispatched(self, dispatch_id, actor_id: str) -> Dispatch:
        with self._unit_of_work("mark_dispatched"):
            dispatch = self._load(dispatch_id, for_update=True)
            new_status = self._require_status(dispatch, "mark_dispatched")
            self._require_items(dispatch, "mark_dispatched")
            self._compare_and_set(
                dispatch,
                "mark_dispatched",
                new_status,
                actor_id,
                dispatched_by=actor_id,
                dispatched_at=datetime.utcnow(),
            )
        return self._load(dispatch_id)

    def mark_delivered(self, dispatch_id, manifest: list[ManifestEntry], actor_id: str) -> Dispatch:
        with self._unit_of_work("mark_delivered"):
            dispatch = self._load(dispatch_id, for_update=True)
            new_status = self._require_status(dispatch, "mark_delivered")
            self._require_items(dispatch, "mark_delivered")
            lines = self.reconciler.reconcile(dispatch, manifest)
            self._compare_and_set(
                dispatch,
                "mark_delivered",
                new_status,
                actor_id,
                delivered_by=actor_id,
                delivered_at=datetime.utcnow(),
                actual_delivery_date=date.today(),
            )
            self.reconciler.apply(dispatch, lines)
        return self._load(dispatch_id)

    def cancel(self, dispatch_id, actor_id: str, reason: str | None = None) -> Dispatch:
        reason = (reason or "").strip() or None
        with self._unit_of_work("cancel"):
            dispatch = self._load(dispatch_id, for_update=True)
            new_status = self._require_status(dispatch, "cancel")
            self._require_items(dispatch, "cancel")
            if dispatch.status == DispatchStatus.IN_TRANSIT.value and reason is None:
                raise ValidationError(
                    "cancelling an in-transit dispatch requires a reason",
                    dispatch_id=str(dispatch.id),
                    current_status=dispatch.status,
                )
            self._compare_and_set(
                dispatch,
                "cancel",
                new_status,
                actor_id,
                cancelled_by=actor_id,
                cancelled_at=datetime.utcnow(),
                cancellation_reason=reason,
            )
        return self._load(dispatch_id)
