import uuid
from datetime import datetime

from app.ops.integrity_checks import (
    check_batch_quantities,
    check_delivery_reconciliation,
    check_dispatch_fsm,
    check_empty_dispatches,
    check_scan_ceiling,
    run_integrity_checks,
)
from app.transit.db.models import Dispatch, DispatchItem, DispatchScan
from tests.transit_helpers import (
    HEADERS,
    advance_to_in_transit,
    create_batch,
    create_dispatch,
    create_store,
    create_stores_with_batch,
    full_manifest,
    transition,
)


def _raw_dispatch(db_session, source, destination, **overrides):
    dispatch = Dispatch(
        id=uuid.uuid4(),
        dispatch_number=f"RAW-{uuid.uuid4().hex[:8]}",
        source_store_id=source.id,
        destination_store_id=destination.id,
        status=overrides.pop("status", "draft"),
        created_by="ops",
        **overrides,
    )
    db_session.add(dispatch)
    db_session.commit()
    return dispatch


def test_engine_produced_data_is_clean(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=20)
    delivered = create_dispatch(client, source, destination, [(batch, 5)])
    advance_to_in_transit(client, delivered["id"])
    client.post(
        f"/transit/dispatches/{delivered['id']}/items/{delivered['items'][0]['id']}/scans",
        headers=HEADERS,
        json={"barcode": "CLEAN-1"},
    )
    transition(client, delivered["id"], "deliver", json={"items": full_manifest(delivered)})
    cancelled = create_dispatch(client, source, destination, [(batch, 2)])
    transition(client, cancelled["id"], "cancel")
    create_dispatch(client, source, destination, [], submit=False)

    assert run_integrity_checks(db_session) == []


def test_dispatch_fsm_violation(client, db_session):
    source = create_store(db_session)
    destination = create_store(db_session)
    _raw_dispatch(db_session, source, destination, status="in_transit", approved_at=datetime.utcnow())

    findings = check_dispatch_fsm(db_session)

    assert len(findings) == 1
    assert findings[0].severity == "CRITICAL"
    assert findings[0].details["dispatched_at"] is None


def test_scan_ceiling_violation(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=5)
    dispatch = _raw_dispatch(db_session, source, destination, status="draft")
    item = DispatchItem(dispatch_id=dispatch.id, batch_id=batch.id, quantity=1, unit_cost=1, unit_price=2)
    db_session.add(item)
    db_session.commit()
    for sequence, barcode in enumerate(("S1", "S2"), start=1):
        db_session.add(
            DispatchScan(
                dispatch_id=dispatch.id,
                dispatch_item_id=item.id,
                barcode=barcode,
                sequence=sequence,
                scanned_by="ops",
            )
        )
    db_session.commit()

    findings = check_scan_ceiling(db_session)

    assert [finding.entity_id for finding in findings] == [str(item.id)]
    assert findings[0].details == {"quantity": 1, "scanned_count": 2}


def test_delivery_reconciliation_violation(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=5)
    now = datetime.utcnow()
    dispatch = _raw_dispatch(
        db_session,
        source,
        destination,
        status="delivered",
        approved_at=now,
        dispatched_at=now,
        delivered_at=now,
    )
    db_session.add(
        DispatchItem(
            dispatch_id=dispatch.id,
            batch_id=batch.id,
            quantity=4,
            unit_cost=1,
            unit_price=2,
            received_quantity=2,
            damaged_quantity=1,
            missing_quantity=0,
        )
    )
    db_session.commit()

    findings = check_delivery_reconciliation(db_session)

    assert len(findings) == 1
    assert findings[0].details["received_quantity"] == 2


def test_empty_dispatch_outside_draft_is_warned(client, db_session):
    source = create_store(db_session)
    destination = create_store(db_session)
    _raw_dispatch(db_session, source, destination, status="pending_approval")
    _raw_dispatch(db_session, source, destination, status="draft")

    findings = check_empty_dispatches(db_session)

    assert len(findings) == 1
    assert findings[0].severity == "WARN"


def test_batch_quantities_within_bounds(client, db_session):
    store = create_store(db_session)
    create_batch(db_session, store, quantity=3, active_quantity=3)

    assert check_batch_quantities(db_session) == []
