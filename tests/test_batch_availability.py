from app.transit.repos.batches import BatchLedger
from app.transit.services.availability import AvailabilityService
from tests.transit_helpers import (
    HEADERS,
    advance_to_in_transit,
    create_batch,
    create_dispatch,
    create_stores_with_batch,
    transition,
)


def _available(client, store_id):
    response = client.get(f"/transit/stores/{store_id}/available-batches")
    assert response.status_code == 200
    return {row["id"]: row for row in response.json()["rows"]}


def test_in_flight_dispatches_reduce_availability(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=15)
    approved = create_dispatch(client, source, destination, [(batch, 6)])
    transition(client, approved["id"], "approve")
    in_transit = create_dispatch(client, source, destination, [(batch, 4)])
    advance_to_in_transit(client, in_transit["id"])
    create_dispatch(client, source, destination, [(batch, 3)])

    row = _available(client, source.id)[str(batch.id)]
    assert row["active_quantity"] == 15
    assert row["committed_quantity"] == 10
    assert row["available_quantity"] == 5


def test_exhausted_batches_are_not_offered(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=4)
    empty = create_batch(db_session, source, quantity=5, active_quantity=0, sku="SKU-EMPTY")
    dispatch = create_dispatch(client, source, destination, [(batch, 4)])
    transition(client, dispatch["id"], "approve")

    rows = _available(client, source.id)
    assert str(batch.id) not in rows
    assert str(empty.id) not in rows

    blocked = client.post(
        "/transit/dispatches",
        headers={"X-Actor-ID": "clerk-2"},
        json={
            "source_store_id": str(source.id),
            "destination_store_id": str(destination.id),
            "items": [{"batch_id": str(batch.id), "quantity": 1}],
        },
    )
    assert blocked.status_code == 422


def test_second_approval_conflicts_when_first_took_the_stock(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=10)
    first = create_dispatch(client, source, destination, [(batch, 7)])
    second = create_dispatch(client, source, destination, [(batch, 7)])

    assert transition(client, first["id"], "approve").status_code == 200
    response = transition(client, second["id"], "approve")

    assert response.status_code == 409
    assert response.json()["code"] == "AVAILABILITY_CONFLICT"
    assert response.json()["details"]["available_quantity"] == 3

    transition(client, first["id"], "cancel")
    assert transition(client, second["id"], "approve").status_code == 200


def test_unknown_store_is_not_found(client):
    response = client.get("/transit/stores/00000000-0000-4000-8000-00000000000f/available-batches")
    assert response.status_code == 404


def test_service_excludes_own_dispatch_from_commitments(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=8)
    dispatch = create_dispatch(client, source, destination, [(batch, 8)])
    transition(client, dispatch["id"], "approve")

    service = AvailabilityService(db_session)
    own = service.resolve([str(batch.id)], exclude_dispatch_id=dispatch["id"])[str(batch.id)]
    others = service.resolve([str(batch.id)])[str(batch.id)]

    assert own.available_quantity == 8
    assert others.available_quantity == 0


def test_operator_adjusts_pending_dispatch_after_conflict(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=10)
    spare = create_batch(db_session, source, quantity=6, sku="SKU-SPARE")
    dispatch = create_dispatch(client, source, destination, [(batch, 10)])
    original_item = dispatch["items"][0]["id"]

    # Stock leaves the batch through another channel before approval.
    assert BatchLedger(db_session).adjust_active_quantity(str(batch.id), -3)
    db_session.commit()

    conflict = transition(client, dispatch["id"], "approve")
    assert conflict.status_code == 409
    assert conflict.json()["code"] == "AVAILABILITY_CONFLICT"

    replaced = client.post(
        f"/transit/dispatches/{dispatch['id']}/items",
        headers=HEADERS,
        json={"batch_id": str(batch.id), "quantity": 7},
    )
    assert replaced.status_code == 422

    added = client.post(
        f"/transit/dispatches/{dispatch['id']}/items",
        headers=HEADERS,
        json={"batch_id": str(spare.id), "quantity": 3},
    )
    assert added.status_code == 200
    removed = client.delete(f"/transit/dispatches/{dispatch['id']}/items/{original_item}", headers=HEADERS)
    assert removed.status_code == 200
    assert removed.json()["status"] == "pending_approval"
    assert [item["batch_id"] for item in removed.json()["items"]] == [str(spare.id)]

    approved = transition(client, dispatch["id"], "approve")
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
