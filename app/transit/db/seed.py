from sqlalchemy import select

from app.transit.core.config import settings
from app.transit.db.models import Store


def _get_or_create_store(db, name: str) -> Store:
    store = db.execute(select(Store).where(Store.name == name)).scalars().first()
    if store:
        return store
    store = Store(name=name)
    db.add(store)
    db.flush()
    return store


def run_seed(db) -> tuple[Store, Store]:
    source = _get_or_create_store(db, settings.DEFAULT_SOURCE_STORE_NAME)
    destination = _get_or_create_store(db, settings.DEFAULT_DESTINATION_STORE_NAME)
    db.commit()
    return source, destination


if __name__ == "__main__":
    from app.transit.db.session import SessionLocal

    with SessionLocal() as session:
        run_seed(session)
