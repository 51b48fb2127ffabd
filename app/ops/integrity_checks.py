from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select

from app.transit.core.metrics import metrics
from app.transit.db.models import Batch, Dispatch, DispatchItem, DispatchScan, DispatchStatus


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


def _format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _record(check_id: str, findings: list[IntegrityFinding]) -> list[IntegrityFinding]:
    if findings:
        metrics.increment_invariant_violation(check_id, len(findings))
    return findings


def _stamps_consistent(status: str, approved_at, dispatched_at, delivered_at, cancelled_at) -> bool:
    if status in (DispatchStatus.DRAFT.value, DispatchStatus.PENDING_APPROVAL.value):
        return not any([approved_at, dispatched_at, delivered_at, cancelled_at])
    if status == DispatchStatus.APPROVED.value:
        return approved_at is not None and not any([dispatched_at, delivered_at, cancelled_at])
    if status == DispatchStatus.IN_TRANSIT.value:
        return approved_at is not None and dispatched_at is not None and not any([delivered_at, cancelled_at])
    if status == DispatchStatus.DELIVERED.value:
        return all([approved_at, dispatched_at, delivered_at]) and cancelled_at is None
    if status == DispatchStatus.CANCELLED.value:
        return cancelled_at is not None and delivered_at is None
    return False


def check_dispatch_fsm(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(
            Dispatch.id,
            Dispatch.status,
            Dispatch.approved_at,
            Dispatch.dispatched_at,
            Dispatch.delivered_at,
            Dispatch.cancelled_at,
        )
    ).all()
    findings = []
    for row in rows:
        if _stamps_consistent(row.status, row.approved_at, row.dispatched_at, row.delivered_at, row.cancelled_at):
            continue
        findings.append(
            IntegrityFinding(
                check_id="dispatch_fsm",
                severity=SEVERITY_CRITICAL,
                message="Dispatch state/timestamps inconsistent.",
                entity="dispatches",
                entity_id=str(row.id),
                details={
                    "status": row.status,
                    "approved_at": _format_datetime(row.approved_at),
                    "dispatched_at": _format_datetime(row.dispatched_at),
                    "delivered_at": _format_datetime(row.delivered_at),
                    "cancelled_at": _format_datetime(row.cancelled_at),
                },
            )
        )
    return _record("dispatch_fsm", findings)


def check_scan_ceiling(db) -> list[IntegrityFinding]:
    scanned = func.count(DispatchScan.id)
    rows = db.execute(
        select(DispatchItem.id, DispatchItem.quantity, scanned.label("scanned_count"))
        .join(DispatchScan, DispatchScan.dispatch_item_id == DispatchItem.id)
        .group_by(DispatchItem.id, DispatchItem.quantity)
        .having(scanned > DispatchItem.quantity)
    ).all()
    findings = [
        IntegrityFinding(
            check_id="scan_ceiling",
            severity=SEVERITY_CRITICAL,
            message="Dispatch item has more scans than requested units.",
            entity="dispatch_items",
            entity_id=str(row.id),
            details={"quantity": row.quantity, "scanned_count": int(row.scanned_count)},
        )
        for row in rows
    ]
    return _record("scan_ceiling", findings)


def check_delivery_reconciliation(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(
            DispatchItem.id,
            DispatchItem.quantity,
            DispatchItem.received_quantity,
            DispatchItem.damaged_quantity,
            DispatchItem.missing_quantity,
            Dispatch.status,
        ).join(Dispatch, Dispatch.id == DispatchItem.dispatch_id)
    ).all()
    findings = []
    for row in rows:
        recorded = [row.received_quantity, row.damaged_quantity, row.missing_quantity]
        if row.status == DispatchStatus.DELIVERED.value:
            invalid = any(value is None for value in recorded) or sum(recorded) != row.quantity
        else:
            invalid = any(value is not None for value in recorded)
        if not invalid:
            continue
        findings.append(
            IntegrityFinding(
                check_id="delivery_reconciliation",
                severity=SEVERITY_CRITICAL,
                message="Dispatch item outcome does not reconcile with its status.",
                entity="dispatch_items",
                entity_id=str(row.id),
                details={
                    "status": row.status,
                    "quantity": row.quantity,
                    "received_quantity": row.received_quantity,
                    "damaged_quantity": row.damaged_quantity,
                    "missing_quantity": row.missing_quantity,
                },
            )
        )
    return _record("delivery_reconciliation", findings)


def check_batch_quantities(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(Batch.id, Batch.total_quantity, Batch.active_quantity).where(
            (Batch.active_quantity < 0) | (Batch.active_quantity > Batch.total_quantity)
        )
    ).all()
    findings = [
        IntegrityFinding(
            check_id="batch_quantity_bounds",
            severity=SEVERITY_CRITICAL,
            message="Batch active quantity outside [0, total].",
            entity="batches",
            entity_id=str(row.id),
            details={"total_quantity": row.total_quantity, "active_quantity": row.active_quantity},
        )
        for row in rows
    ]
    return _record("batch_quantity_bounds", findings)


def check_empty_dispatches(db) -> list[IntegrityFinding]:
    item_count = (
        select(func.count(DispatchItem.id))
        .where(DispatchItem.dispatch_id == Dispatch.id)
        .correlate(Dispatch)
        .scalar_subquery()
    )
    rows = db.execute(
        select(Dispatch.id, Dispatch.status)
        .where(Dispatch.status != DispatchStatus.DRAFT.value)
        .where(item_count == 0)
    ).all()
    findings = [
        IntegrityFinding(
            check_id="empty_dispatch",
            severity=SEVERITY_WARN,
            message="Dispatch left draft without items.",
            entity="dispatches",
            entity_id=str(row.id),
            details={"status": row.status},
        )
        for row in rows
    ]
    return _record("empty_dispatch", findings)


def run_integrity_checks(db) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    findings.extend(check_dispatch_fsm(db))
    findings.extend(check_scan_ceiling(db))
    findings.extend(check_delivery_reconciliation(db))
    findings.extend(check_batch_quantities(db))
    findings.extend(check_empty_dispatches(db))
    return findings
