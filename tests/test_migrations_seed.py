import os
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, func, inspect, select
from sqlalchemy.orm import sessionmaker

from app.transit.core.config import settings
from app.transit.db.models import Store
from app.transit.db.seed import run_seed


def _run_migrations(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    config = Config("alembic.ini")
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


def test_migrations_apply(tmp_path: Path):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'migrations.db'}"
    _run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())

    assert {
        "stores",
        "batches",
        "dispatches",
        "dispatch_items",
        "dispatch_scans",
        "idempotency_records",
        "audit_events",
    } <= tables

    scan_uniques = {constraint["name"] for constraint in inspector.get_unique_constraints("dispatch_scans")}
    assert {"uq_dispatch_scans_item_barcode", "uq_dispatch_scans_item_sequence"} <= scan_uniques
    indexes = [index["name"] for index in inspector.get_indexes("dispatches")]
    assert "ix_dispatches_status_created_at" in indexes
    engine.dispose()


def test_seed_is_idempotent(tmp_path: Path):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'seed.db'}"
    _run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    SessionLocal = sessionmaker(bind=engine, future=True)

    with SessionLocal() as db:
        source, destination = run_seed(db)
        count = db.scalar(select(func.count()).select_from(Store))

        again_source, again_destination = run_seed(db)
        assert db.scalar(select(func.count()).select_from(Store)) == count == 2
        assert again_source.id == source.id
        assert again_destination.id == destination.id
        assert source.name == settings.DEFAULT_SOURCE_STORE_NAME
    engine.dispose()
