from sqlalchemy import select

from app.transit.db.models import Batch
from app.transit.repos.batches import BatchLedger
from tests.transit_helpers import (
    HEADERS,
    active_quantity,
    advance_to_in_transit,
    create_batch,
    create_dispatch,
    create_stores_with_batch,
    transition,
)


def _scan(client, dispatch_id, item_id, barcode):
    return client.post(
        f"/transit/dispatches/{dispatch_id}/items/{item_id}/scans",
        headers=HEADERS,
        json={"barcode": barcode},
    )


def _destination_batch(db_session, store_id, batch):
    db_session.expire_all()
    return db_session.execute(
        select(Batch).where(
            Batch.store_id == store_id,
            Batch.sku == batch.sku,
            Batch.batch_number == batch.batch_number,
        )
    ).scalars().first()


def test_partial_damage_delivery_moves_received_units_only(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=15)
    dispatch = create_dispatch(client, source, destination, [(batch, 10)])
    assert dispatch["status"] == "pending_approval"

    advance_to_in_transit(client, dispatch["id"])
    item_id = dispatch["items"][0]["id"]
    for index in range(4):
        response = _scan(client, dispatch["id"], item_id, f"UNIT-{index}")
        assert response.status_code == 200

    response = transition(
        client,
        dispatch["id"],
        "deliver",
        json={"items": [{"item_id": item_id, "received_quantity": 9, "damaged_quantity": 1, "missing_quantity": 0}]},
    )
    assert response.status_code == 200, response.text
    delivered = response.json()
    assert delivered["status"] == "delivered"
    assert delivered["delivered_by"] == HEADERS["X-Actor-ID"]
    assert delivered["actual_delivery_date"] is not None

    item = delivered["items"][0]
    assert item["barcode_scanning"]["scanned_count"] == 4
    assert item["received_quantity"] == 9
    assert item["damaged_quantity"] == 1
    assert item["missing_quantity"] == 0

    assert active_quantity(db_session, batch.id) == 5
    counterpart = _destination_batch(db_session, destination.id, batch)
    assert counterpart is not None
    assert counterpart.active_quantity == 9
    assert counterpart.total_quantity == 9
    assert item["destination_batch_id"] == str(counterpart.id)


def test_create_rejects_quantity_above_active(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=15)

    response = client.post(
        "/transit/dispatches",
        headers=HEADERS,
        json={
            "source_store_id": str(source.id),
            "destination_store_id": str(destination.id),
            "items": [{"batch_id": str(batch.id), "quantity": 20}],
            "submit": True,
        },
    )

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert payload["details"]["batch_id"] == str(batch.id)
    assert payload["details"]["available_quantity"] == 15


def test_approve_fails_when_stock_consumed_after_creation(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=15)
    dispatch = create_dispatch(client, source, destination, [(batch, 10)])

    # A sale outside the engine consumes stock between composition and approval.
    assert BatchLedger(db_session).adjust_active_quantity(str(batch.id), -8)
    db_session.commit()

    response = transition(client, dispatch["id"], "approve")
    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == "AVAILABILITY_CONFLICT"
    assert payload["details"]["item_id"] == dispatch["items"][0]["id"]
    assert payload["details"]["available_quantity"] == 7

    current = client.get(f"/transit/dispatches/{dispatch['id']}").json()
    assert current["status"] == "pending_approval"
    assert current["approved_by"] is None


def test_rescanning_same_barcode_is_rejected(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=15)
    dispatch = create_dispatch(client, source, destination, [(batch, 3)])
    advance_to_in_transit(client, dispatch["id"])
    item_id = dispatch["items"][0]["id"]

    first = _scan(client, dispatch["id"], item_id, "TAG-1")
    assert first.status_code == 200
    assert first.json()["scanned_count"] == 1

    second = _scan(client, dispatch["id"], item_id, "TAG-1")
    assert second.status_code == 409
    assert second.json()["code"] == "DUPLICATE_SCAN"

    progress = client.get(f"/transit/dispatches/{dispatch['id']}/items/{item_id}/scans").json()
    assert progress["scanned_count"] == 1
    assert [scan["barcode"] for scan in progress["scans"]] == ["TAG-1"]


def test_unbalanced_manifest_rejects_whole_delivery(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=15)
    other = create_batch(db_session, source, quantity=6, sku="SKU-200")
    dispatch = create_dispatch(client, source, destination, [(batch, 10), (other, 5)])
    advance_to_in_transit(client, dispatch["id"])
    items = {item["batch_id"]: item for item in dispatch["items"]}
    first_item, second_item = items[str(batch.id)], items[str(other.id)]

    response = transition(
        client,
        dispatch["id"],
        "deliver",
        json={
            "items": [
                {"item_id": first_item["id"], "received_quantity": first_item["quantity"]},
                {"item_id": second_item["id"], "received_quantity": 2, "damaged_quantity": 1},
            ]
        },
    )
    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "RECONCILIATION_ERROR"
    assert payload["details"]["item_id"] == second_item["id"]

    current = client.get(f"/transit/dispatches/{dispatch['id']}").json()
    assert current["status"] == "in_transit"
    assert all(item["received_quantity"] is None for item in current["items"])
    assert active_quantity(db_session, batch.id) == 15
    assert active_quantity(db_session, other.id) == 6
    assert _destination_batch(db_session, destination.id, batch) is None
