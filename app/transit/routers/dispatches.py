from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.transit.core.config import settings
from app.transit.core.context import RequestContext
from app.transit.core.deps import require_actor
from app.transit.core.error_catalog import ErrorCatalog, ValidationError
from app.transit.db.models import Dispatch, DispatchItem, DispatchStatus
from app.transit.db.session import get_db
from app.transit.repos.dispatches import IN_FLIGHT_STATUSES, DispatchQueryFilters, DispatchRepository
from app.transit.schemas.dispatches import (
    AuditEventResponse,
    CancelRequest,
    DeliverRequest,
    DispatchCreateRequest,
    DispatchHistoryResponse,
    DispatchItemCreate,
    DispatchItemResponse,
    DispatchListMeta,
    DispatchListResponse,
    DispatchResponse,
    DispatchStatisticsResponse,
    ScanProgressDetailResponse,
    ScanProgressResponse,
    ScanRecordResponse,
    ScanRequest,
)
from app.transit.schemas.errors import error_responses
from app.transit.services.audit import AuditService
from app.transit.services.barcode_scans import BarcodeScanTracker, ScanProgress
from app.transit.services.dispatch_lifecycle import DispatchLifecycleService
from app.transit.services.dispatch_statistics import DispatchStatisticsService
from app.transit.services.idempotency import IdempotencyService, extract_idempotency_key


router = APIRouter()


def _item_response(item: DispatchItem, progress: ScanProgress) -> DispatchItemResponse:
    batch = item.batch
    return DispatchItemResponse(
        id=str(item.id),
        batch_id=str(item.batch_id),
        sku=batch.sku if batch else None,
        batch_number=batch.batch_number if batch else None,
        quantity=item.quantity,
        unit_cost=item.unit_cost,
        unit_price=item.unit_price,
        total_cost=item.quantity * Decimal(item.unit_cost),
        total_value=item.quantity * Decimal(item.unit_price),
        received_quantity=item.received_quantity,
        damaged_quantity=item.damaged_quantity,
        missing_quantity=item.missing_quantity,
        destination_batch_id=str(item.destination_batch_id) if item.destination_batch_id else None,
        barcode_scanning=ScanProgressResponse(**progress.as_dict()),
        created_at=item.created_at,
    )


def _is_overdue(dispatch: Dispatch) -> bool:
    return (
        dispatch.status in IN_FLIGHT_STATUSES
        and dispatch.expected_delivery_date is not None
        and dispatch.expected_delivery_date < date.today()
    )


def _dispatch_response(dispatch: Dispatch, progress: dict[str, ScanProgress]) -> DispatchResponse:
    items = [_item_response(item, progress[str(item.id)]) for item in dispatch.items]
    return DispatchResponse(
        id=str(dispatch.id),
        dispatch_number=dispatch.dispatch_number,
        status=dispatch.status,
        version=dispatch.version,
        source_store_id=str(dispatch.source_store_id),
        destination_store_id=str(dispatch.destination_store_id),
        expected_delivery_date=dispatch.expected_delivery_date,
        actual_delivery_date=dispatch.actual_delivery_date,
        is_overdue=_is_overdue(dispatch),
        carrier_name=dispatch.carrier_name,
        tracking_number=dispatch.tracking_number,
        notes=dispatch.notes,
        cancellation_reason=dispatch.cancellation_reason,
        total_items=len(items),
        total_quantity=sum(item.quantity for item in items),
        total_cost=sum((item.total_cost for item in items), Decimal("0")),
        total_value=sum((item.total_value for item in items), Decimal("0")),
        created_by=dispatch.created_by,
        approved_by=dispatch.approved_by,
        approved_at=dispatch.approved_at,
        dispatched_by=dispatch.dispatched_by,
        dispatched_at=dispatch.dispatched_at,
        delivered_by=dispatch.delivered_by,
        delivered_at=dispatch.delivered_at,
        cancelled_by=dispatch.cancelled_by,
        cancelled_at=dispatch.cancelled_at,
        created_at=dispatch.created_at,
        updated_at=dispatch.updated_at,
        items=items,
    )


def _build_response(db, dispatch: Dispatch) -> DispatchResponse:
    progress = BarcodeScanTracker(db).progress_for_items(list(dispatch.items))
    return _dispatch_response(dispatch, progress)


def _begin_idempotent(request: Request, db, body: object):
    """Returns a replay response, or ``None`` after registering the request for replay."""
    idempotency_key = extract_idempotency_key(request.headers)
    if idempotency_key is None:
        return None
    context, replay = IdempotencyService(db).start(
        endpoint=str(request.url.path),
        method=request.method,
        idempotency_key=idempotency_key,
        request_hash=IdempotencyService.fingerprint(body),
    )
    if replay:
        return JSONResponse(
            status_code=replay.status_code,
            content=replay.response_body,
            headers={"X-Idempotency-Result": ErrorCatalog.IDEMPOTENCY_REPLAY.code},
        )
    request.state.idempotency = context
    return None


def _complete(
    request: Request,
    db,
    context: RequestContext,
    *,
    action: str,
    response: DispatchResponse,
    before: dict | None = None,
    metadata: dict | None = None,
    status_code: int = 200,
) -> DispatchResponse:
    body = response.model_dump(mode="json")
    idempotency = getattr(request.state, "idempotency", None)
    if idempotency is not None:
        idempotency.record_success(status_code=status_code, response_body=body)
    AuditService(db).record(
        context,
        action=action,
        entity_type="dispatch",
        entity_id=response.id,
        before=before,
        after=body,
        metadata=metadata,
    )
    return response


def _snapshot(db, dispatch_id: UUID) -> dict:
    dispatch = DispatchLifecycleService(db).get_dispatch(dispatch_id)
    return _build_response(db, dispatch).model_dump(mode="json")


@router.get(
    "/transit/dispatches",
    response_model=DispatchListResponse,
    responses=error_responses(422),
)
def list_dispatches(
    status: DispatchStatus | None = None,
    source_store_id: UUID | None = None,
    destination_store_id: UUID | None = None,
    store_id: UUID | None = None,
    search: str | None = Query(default=None, max_length=255),
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    sort_by: str = "created_at",
    sort_dir: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.DISPATCH_LIST_DEFAULT_PAGE_SIZE, ge=1),
    db=Depends(get_db),
):
    if sort_by not in DispatchRepository.SORT_COLUMNS:
        raise ValidationError(
            "unsupported sort_by",
            sort_by=sort_by,
            allowed=sorted(DispatchRepository.SORT_COLUMNS),
        )
    if page_size > settings.DISPATCH_LIST_MAX_PAGE_SIZE:
        raise ValidationError("page_size too large", max_page_size=settings.DISPATCH_LIST_MAX_PAGE_SIZE)
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")

    filters = DispatchQueryFilters(
        status=status.value if status else None,
        source_store_id=str(source_store_id) if source_store_id else None,
        destination_store_id=str(destination_store_id) if destination_store_id else None,
        store_id=str(store_id) if store_id else None,
        search=search.strip() if search and search.strip() else None,
        date_from=date_from,
        date_to=date_to,
    )
    rows, total_rows = DispatchRepository(db).list_dispatches(
        filters,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    items = [item for dispatch in rows for item in dispatch.items]
    progress = BarcodeScanTracker(db).progress_for_items(items)
    return DispatchListResponse(
        meta=DispatchListMeta(
            page=page,
            page_size=page_size,
            total_rows=total_rows,
            sort_by=sort_by,
            sort_dir=sort_dir,
        ),
        rows=[_dispatch_response(dispatch, progress) for dispatch in rows],
    )


@router.get("/transit/dispatches/statistics", response_model=DispatchStatisticsResponse)
def get_statistics(store_id: UUID | None = None, db=Depends(get_db)):
    statistics = DispatchStatisticsService(db).get_statistics(store_id)
    return DispatchStatisticsResponse(**statistics.as_dict())


@router.post(
    "/transit/dispatches",
    response_model=DispatchResponse,
    status_code=201,
    responses=error_responses(400, 409, 422),
)
def create_dispatch(
    request: Request,
    payload: DispatchCreateRequest,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    replay = _begin_idempotent(request, db, payload.model_dump(mode="json"))
    if replay:
        return replay
    dispatch = DispatchLifecycleService(db).create_dispatch(payload, context.actor_id)
    return _complete(
        request,
        db,
        context,
        action="dispatch.create",
        response=_build_response(db, dispatch),
        metadata={"submit": payload.submit},
        status_code=201,
    )


@router.get(
    "/transit/dispatches/{dispatch_id}",
    response_model=DispatchResponse,
    responses=error_responses(404),
)
def get_dispatch(dispatch_id: UUID, db=Depends(get_db)):
    dispatch = DispatchLifecycleService(db).get_dispatch(dispatch_id)
    return _build_response(db, dispatch)


@router.get(
    "/transit/dispatches/{dispatch_id}/history",
    response_model=DispatchHistoryResponse,
    responses=error_responses(404),
)
def get_dispatch_history(dispatch_id: UUID, db=Depends(get_db)):
    dispatch = DispatchLifecycleService(db).get_dispatch(dispatch_id)
    events = AuditService(db).history(dispatch)
    return DispatchHistoryResponse(
        dispatch_id=str(dispatch.id),
        events=[
            AuditEventResponse(
                action=event.action,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                actor_id=event.actor_id,
                trace_id=event.trace_id,
                before=event.before_payload,
                metadata=event.event_metadata,
                created_at=event.created_at,
            )
            for event in events
        ],
    )


@router.post(
    "/transit/dispatches/{dispatch_id}/items",
    response_model=DispatchResponse,
    responses=error_responses(400, 404, 409, 422),
)
def add_item(
    dispatch_id: UUID,
    request: Request,
    payload: DispatchItemCreate,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    replay = _begin_idempotent(request, db, payload.model_dump(mode="json"))
    if replay:
        return replay
    before = _snapshot(db, dispatch_id)
    dispatch = DispatchLifecycleService(db).add_item(dispatch_id, payload, context.actor_id)
    return _complete(
        request,
        db,
        context,
        action="dispatch.add_item",
        response=_build_response(db, dispatch),
        before=before,
        metadata={"batch_id": str(payload.batch_id), "quantity": payload.quantity},
    )


@router.delete(
    "/transit/dispatches/{dispatch_id}/items/{item_id}",
    response_model=DispatchResponse,
    responses=error_responses(400, 404, 409),
)
def remove_item(
    dispatch_id: UUID,
    item_id: UUID,
    request: Request,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    replay = _begin_idempotent(request, db, {"item_id": str(item_id)})
    if replay:
        return replay
    before = _snapshot(db, dispatch_id)
    dispatch = DispatchLifecycleService(db).remove_item(dispatch_id, item_id, context.actor_id)
    return _complete(
        request,
        db,
        context,
        action="dispatch.remove_item",
        response=_build_response(db, dispatch),
        before=before,
        metadata={"item_id": str(item_id)},
    )


def _transition(request: Request, db, context: RequestContext, dispatch_id: UUID, action: str, body: dict, run):
    replay = _begin_idempotent(request, db, body)
    if replay:
        return replay
    before = _snapshot(db, dispatch_id)
    dispatch = run(DispatchLifecycleService(db))
    return _complete(
        request,
        db,
        context,
        action=f"dispatch.{action}",
        response=_build_response(db, dispatch),
        before={"status": before["status"], "version": before["version"]},
        metadata=body or None,
    )


@router.post(
    "/transit/dispatches/{dispatch_id}/submit",
    response_model=DispatchResponse,
    responses=error_responses(400, 404, 409, 422),
)
def submit_dispatch(
    dispatch_id: UUID,
    request: Request,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    return _transition(
        request, db, context, dispatch_id, "submit", {},
        lambda service: service.submit(dispatch_id, context.actor_id),
    )


@router.post(
    "/transit/dispatches/{dispatch_id}/approve",
    response_model=DispatchResponse,
    responses=error_responses(400, 404, 409, 422),
)
def approve_dispatch(
    dispatch_id: UUID,
    request: Request,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    return _transition(
        request, db, context, dispatch_id, "approve", {},
        lambda service: service.approve(dispatch_id, context.actor_id),
    )


@router.post(
    "/transit/dispatches/{dispatch_id}/dispatch",
    response_model=DispatchResponse,
    responses=error_responses(400, 404, 409, 422),
)
def mark_dispatched(
    dispatch_id: UUID,
    request: Request,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    return _transition(
        request, db, context, dispatch_id, "dispatch", {},
        lambda service: service.mark_dispatched(dispatch_id, context.actor_id),
    )


@router.post(
    "/transit/dispatches/{dispatch_id}/deliver",
    response_model=DispatchResponse,
    responses=error_responses(400, 404, 409, 422),
)
def mark_delivered(
    dispatch_id: UUID,
    request: Request,
    payload: DeliverRequest,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    return _transition(
        request, db, context, dispatch_id, "deliver", payload.model_dump(mode="json"),
        lambda service: service.mark_delivered(dispatch_id, payload.items, context.actor_id),
    )


@router.post(
    "/transit/dispatches/{dispatch_id}/cancel",
    response_model=DispatchResponse,
    responses=error_responses(400, 404, 409, 422),
)
def cancel_dispatch(
    dispatch_id: UUID,
    request: Request,
    payload: CancelRequest | None = None,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    reason = payload.reason if payload else None
    return _transition(
        request, db, context, dispatch_id, "cancel", {"reason": reason} if reason else {},
        lambda service: service.cancel(dispatch_id, context.actor_id, reason=reason),
    )


@router.post(
    "/transit/dispatches/{dispatch_id}/items/{item_id}/scans",
    response_model=ScanProgressResponse,
    responses=error_responses(400, 404, 409, 422),
)
def scan_barcode(
    dispatch_id: UUID,
    item_id: UUID,
    request: Request,
    payload: ScanRequest,
    context: RequestContext = Depends(require_actor),
    db=Depends(get_db),
):
    replay = _begin_idempotent(request, db, payload.model_dump(mode="json"))
    if replay:
        return replay
    progress = BarcodeScanTracker(db).scan(dispatch_id, item_id, payload.barcode, context.actor_id)
    response = ScanProgressResponse(**progress.as_dict())
    idempotency = getattr(request.state, "idempotency", None)
    if idempotency is not None:
        idempotency.record_success(status_code=200, response_body=response.model_dump(mode="json"))
    AuditService(db).record(
        context,
        action="dispatch.scan",
        entity_type="dispatch_item",
        entity_id=str(item_id),
        after=response.model_dump(mode="json"),
        metadata={"dispatch_id": str(dispatch_id), "barcode": payload.barcode.strip()},
    )
    return response


@router.get(
    "/transit/dispatches/{dispatch_id}/items/{item_id}/scans",
    response_model=ScanProgressDetailResponse,
    responses=error_responses(404),
)
def get_scan_progress(dispatch_id: UUID, item_id: UUID, db=Depends(get_db)):
    progress, records = BarcodeScanTracker(db).get_progress(dispatch_id, item_id)
    return ScanProgressDetailResponse(
        **progress.as_dict(),
        scans=[
            ScanRecordResponse(
                barcode=record.barcode,
                sequence=record.sequence,
                scanned_by=record.scanned_by,
                scanned_at=record.scanned_at,
            )
            for record in records
        ],
    )
