import json
import uuid

from app.ops.integrity_scan import main, run_scan
from app.transit.db.models import Dispatch
from tests.transit_helpers import create_store


def test_integrity_scan_no_findings(db_session, capsys):
    create_store(db_session)

    database_url = db_session.get_bind().url.render_as_string(hide_password=False)
    exit_code = run_scan("json", False, database_url=database_url)
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert payload["summary"] == {"total": 0, "critical": 0, "warn": 0}


def test_integrity_scan_critical_exit(db_session, capsys):
    source = create_store(db_session)
    destination = create_store(db_session)
    db_session.add(
        Dispatch(
            id=uuid.uuid4(),
            dispatch_number="RAW-CLI-1",
            source_store_id=source.id,
            destination_store_id=destination.id,
            status="delivered",
            created_by="ops",
        )
    )
    db_session.commit()

    database_url = db_session.get_bind().url.render_as_string(hide_password=False)
    exit_code = main(["--format", "text", "--fail-on-critical", "--database-url", database_url])
    output = capsys.readouterr().out

    assert exit_code == 1
    assert "[CRITICAL] dispatch_fsm" in output
