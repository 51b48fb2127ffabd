import threading

from app.transit.core.error_catalog import AppError, InvalidStateError
from app.transit.services.dispatch_lifecycle import DispatchLifecycleService
from tests.transit_helpers import create_dispatch, create_stores_with_batch


def test_concurrent_approve_has_single_winner(client, db_session):
    from app.transit.db.session import SessionLocal

    source, destination, batch = create_stores_with_batch(db_session, quantity=15)
    dispatch = create_dispatch(client, source, destination, [(batch, 5)])

    barrier = threading.Barrier(2)
    outcomes: list[object] = []
    lock = threading.Lock()

    def approve(actor_id: str) -> None:
        session = SessionLocal()
        try:
            service = DispatchLifecycleService(session)
            barrier.wait()
            try:
                result = service.approve(dispatch["id"], actor_id).approved_by
            except AppError as exc:
                result = exc
            with lock:
                outcomes.append(result)
        finally:
            session.close()

    threads = [threading.Thread(target=approve, args=(f"manager-{index}",)) for index in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    winners = [outcome for outcome in outcomes if isinstance(outcome, str)]
    losers = [outcome for outcome in outcomes if isinstance(outcome, AppError)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], InvalidStateError)
    assert losers[0].current == "approved"

    current = client.get(f"/transit/dispatches/{dispatch['id']}").json()
    assert current["status"] == "approved"
    assert current["version"] == 2
    assert current["approved_by"] == winners[0]
