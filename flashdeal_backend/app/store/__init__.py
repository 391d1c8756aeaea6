"""
Atomic store for offers and reservations.

`build_store` picks the implementation from settings. The SQL store is
imported lazily so the in-memory backend never opens a database engine.
"""
from app.store.base import ReservationStore, UnitOfWork
from app.store.memory import InMemoryStore
from app.store.records import (
    OfferRecord,
    ReservationRecord,
    ReservationStatus,
    STOCK_HOLDING_STATUSES,
    CODE_BEARING_STATUSES,
)


def build_store(backend: str) -> ReservationStore:
    if backend == "memory":
        return InMemoryStore()

    from app.core.config import settings
    from app.core.database import create_engine, create_session_factory
    from app.store.sql import SqlAlchemyStore

    engine = create_engine(settings)
    return SqlAlchemyStore(create_session_factory(engine), engine=engine)


__all__ = [
    "ReservationStore",
    "UnitOfWork",
    "InMemoryStore",
    "OfferRecord",
    "ReservationRecord",
    "ReservationStatus",
    "STOCK_HOLDING_STATUSES",
    "CODE_BEARING_STATUSES",
    "build_store",
]
