from datetime import date, timedelta
from decimal import Decimal

from app.transit.services.dispatch_statistics import DispatchStatisticsService
from tests.transit_helpers import (
    advance_to_in_transit,
    create_dispatch,
    create_store,
    create_stores_with_batch,
    full_manifest,
    transition,
)


def _seed_board(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=100, unit_cost="2.50", sell_price="6.00")
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    today = date.today().isoformat()

    draft = create_dispatch(client, source, destination, [(batch, 1)], submit=False, notes="spring restock")
    pending = create_dispatch(client, source, destination, [(batch, 2)], expected_delivery_date=today)
    approved = create_dispatch(client, source, destination, [(batch, 3)], expected_delivery_date=yesterday)
    transition(client, approved["id"], "approve")
    in_transit = create_dispatch(
        client,
        source,
        destination,
        [(batch, 4)],
        expected_delivery_date=yesterday,
        carrier_name="Metro Couriers",
        tracking_number="TRK-4455",
    )
    advance_to_in_transit(client, in_transit["id"])
    delivered = create_dispatch(client, source, destination, [(batch, 5)])
    advance_to_in_transit(client, delivered["id"])
    transition(client, delivered["id"], "deliver", json={"items": full_manifest(delivered)})
    cancelled = create_dispatch(client, source, destination, [(batch, 6)])
    transition(client, cancelled["id"], "cancel")
    return source, destination, {
        "draft": draft,
        "pending_approval": pending,
        "approved": approved,
        "in_transit": in_transit,
        "delivered": delivered,
        "cancelled": cancelled,
    }


def test_statistics_counts_and_values(client, db_session):
    source, _destination, _dispatches = _seed_board(client, db_session)

    response = client.get("/transit/dispatches/statistics")
    assert response.status_code == 200
    stats = response.json()
    assert stats["store_id"] is None
    assert stats["total_dispatches"] == 6
    for status in ("draft", "pending_approval", "approved", "in_transit", "delivered", "cancelled"):
        assert stats[status] == 1
    assert stats["overdue"] == 2
    assert stats["expected_today"] == 1
    assert stats["total_value_in_transit"] == "24.00"
    assert stats["total_cost_in_transit"] == "10.00"
    # 1 + 2 + 3 + 4 + 5 units at 6.00, cancelled excluded
    assert stats["total_value"] == "90.00"

    scoped = client.get("/transit/dispatches/statistics", params={"store_id": str(source.id)}).json()
    assert scoped["store_id"] == str(source.id)
    assert scoped["total_dispatches"] == 6

    outsider = create_store(db_session)
    empty = client.get("/transit/dispatches/statistics", params={"store_id": str(outsider.id)}).json()
    assert empty["total_dispatches"] == 0
    assert empty["total_value"] == "0.00"


def test_statistics_service_honours_reference_day(client, db_session):
    _seed_board(client, db_session)

    stats = DispatchStatisticsService(db_session).get_statistics(today=date.today() - timedelta(days=1))

    assert stats.overdue == 0
    assert stats.expected_today == 2
    assert stats.total_value_in_transit == Decimal("24.00")


def test_list_filters_and_search(client, db_session):
    source, destination, dispatches = _seed_board(client, db_session)

    by_status = client.get("/transit/dispatches", params={"status": "in_transit"}).json()
    assert [row["id"] for row in by_status["rows"]] == [dispatches["in_transit"]["id"]]

    by_tracking = client.get("/transit/dispatches", params={"search": "trk-44"}).json()
    assert [row["id"] for row in by_tracking["rows"]] == [dispatches["in_transit"]["id"]]

    by_notes = client.get("/transit/dispatches", params={"search": "restock"}).json()
    assert [row["id"] for row in by_notes["rows"]] == [dispatches["draft"]["id"]]

    number = dispatches["pending_approval"]["dispatch_number"]
    by_number = client.get("/transit/dispatches", params={"search": number}).json()
    assert by_number["meta"]["total_rows"] == 1

    inbound = client.get("/transit/dispatches", params={"destination_store_id": str(destination.id)}).json()
    assert inbound["meta"]["total_rows"] == 6
    outbound = client.get("/transit/dispatches", params={"source_store_id": str(destination.id)}).json()
    assert outbound["meta"]["total_rows"] == 0
    either = client.get("/transit/dispatches", params={"store_id": str(source.id)}).json()
    assert either["meta"]["total_rows"] == 6


def test_list_pagination_and_sorting(client, db_session):
    _seed_board(client, db_session)

    first = client.get(
        "/transit/dispatches",
        params={"page": 1, "page_size": 4, "sort_by": "dispatch_number", "sort_dir": "asc"},
    ).json()
    second = client.get(
        "/transit/dispatches",
        params={"page": 2, "page_size": 4, "sort_by": "dispatch_number", "sort_dir": "asc"},
    ).json()

    assert first["meta"] == {
        "page": 1,
        "page_size": 4,
        "total_rows": 6,
        "sort_by": "dispatch_number",
        "sort_dir": "asc",
    }
    assert len(first["rows"]) == 4
    assert len(second["rows"]) == 2
    numbers = [row["dispatch_number"] for row in first["rows"] + second["rows"]]
    assert numbers == sorted(numbers)


def test_list_rejects_bad_parameters(client):
    bad_sort = client.get("/transit/dispatches", params={"sort_by": "carrier_name"})
    assert bad_sort.status_code == 422
    assert bad_sort.json()["details"]["sort_by"] == "carrier_name"

    assert client.get("/transit/dispatches", params={"status": "lost"}).status_code == 422
    assert client.get("/transit/dispatches", params={"page_size": 1000}).status_code == 422
    assert client.get("/transit/dispatches", params={"page": 0}).status_code == 422


def test_list_date_window(client, db_session):
    source, destination, batch = create_stores_with_batch(db_session, quantity=10)
    create_dispatch(client, source, destination, [(batch, 1)])

    later = (date.today() + timedelta(days=2)).isoformat() + "T00:00:00"
    future = client.get("/transit/dispatches", params={"date_from": later}).json()
    assert future["meta"]["total_rows"] == 0

    inverted = client.get(
        "/transit/dispatches",
        params={"date_from": later, "date_to": "2000-01-01T00:00:00"},
    )
    assert inverted.status_code == 422
