import json
import logging
from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.transit.core.db_timing import DbUsage
from app.transit.core.metrics import metrics
from app.transit.middleware.observability import build_request_log_payload
from tests.transit_helpers import create_dispatch, create_stores_with_batch, transition


def test_build_request_log_payload():
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/transit/dispatches/abc/approve",
        "headers": [],
        "route": SimpleNamespace(path="/transit/dispatches/{dispatch_id}/approve"),
    }
    request = Request(scope)
    request.state.trace_id = "trace-1"
    request.state.actor_id = "manager-1"
    request.state.store_id = None
    request.state.error_code = None
    response = Response(status_code=200)

    payload = build_request_log_payload(
        request=request,
        response=response,
        latency_ms=12.3456,
        db_usage=DbUsage(time_ms=4.5678, query_count=3),
    )

    assert payload["trace_id"] == "trace-1"
    assert payload["actor_id"] == "manager-1"
    assert payload["route"] == "/transit/dispatches/{dispatch_id}/approve"
    assert payload["method"] == "POST"
    assert payload["status_code"] == 200
    assert payload["latency_ms"] == 12.35
    assert payload["db_time_ms"] == 4.57
    assert payload["db_query_count"] == 3


def test_request_log_records_error_code(client, db_session, caplog):
    source, destination, batch = create_stores_with_batch(db_session)
    dispatch = create_dispatch(client, source, destination, [(batch, 1)], submit=False)

    with caplog.at_level(logging.INFO, logger="transit.request"):
        response = transition(client, dispatch["id"], "approve")

    assert response.status_code == 409
    entries = [json.loads(record.getMessage()) for record in caplog.records if record.name == "transit.request"]
    assert entries[-1]["error_code"] == "INVALID_STATE"
    assert entries[-1]["route"] == "/transit/dispatches/{dispatch_id}/approve"
    assert entries[-1]["db_query_count"] >= 1


def test_transition_metrics_by_result(client, db_session):
    metrics.reset()
    source, destination, batch = create_stores_with_batch(db_session)
    dispatch = create_dispatch(client, source, destination, [(batch, 1)])
    transition(client, dispatch["id"], "approve")
    transition(client, dispatch["id"], "approve")

    if not metrics.enabled:
        assert "metrics_disabled" in metrics.render().content.decode("utf-8")
        return
    sample = metrics.sample_value
    assert sample("dispatch_transitions_total", {"transition": "approve", "result": "success"}) == 1.0
    assert sample("dispatch_transitions_total", {"transition": "approve", "result": "INVALID_STATE"}) == 1.0
