"""
Store contract tests: in-memory unit of work semantics and the SQL store's
conditional updates against a mocked session.
"""
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import NotFoundError, StoreError
from app.store.memory import InMemoryStore
from app.store.records import ReservationRecord, ReservationStatus

from conftest import make_offer

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def pending_reservation(reservation_id: str = "r-1", token: str = "tok-1") -> ReservationRecord:
    return ReservationRecord(
        id=reservation_id,
        offer_id="offer-1",
        business_id="business-1",
        consumer_id="consumer-1",
        offer_title="Pizza for two",
        amount_charged=Decimal("40.00"),
        correlation_token=token,
        created_at=NOW,
    )


@pytest.fixture
def memory_store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_offer(make_offer(units=1, now=NOW))
    return store


@pytest.mark.asyncio
async def test_exception_inside_unit_of_work_discards_all_writes(memory_store):
    with pytest.raises(NotFoundError):
        async with memory_store.transaction() as uow:
            assert await uow.decrement_available_units("offer-1")
            await uow.insert_reservation(pending_reservation())
            raise NotFoundError("abort")

    assert (await memory_store.get_offer("offer-1")).available_units == 1
    assert memory_store.reservations() == []


@pytest.mark.asyncio
async def test_decrement_stops_at_zero_and_increment_stops_at_total(memory_store):
    async with memory_store.transaction() as uow:
        assert await uow.decrement_available_units("offer-1") is True
        assert await uow.decrement_available_units("offer-1") is False
        assert await uow.decrement_available_units("missing") is False

    with pytest.raises(StoreError):
        async with memory_store.transaction() as uow:
            await uow.increment_available_units("offer-1", 2)

    assert (await memory_store.get_offer("offer-1")).available_units == 0


@pytest.mark.asyncio
async def test_records_read_are_copies(memory_store):
    async with memory_store.transaction() as uow:
        await uow.insert_reservation(pending_reservation())

    snapshot = await memory_store.get_reservation("r-1")
    snapshot.status = ReservationStatus.EXPIRED

    assert (await memory_store.get_reservation("r-1")).status == ReservationStatus.PENDING


@pytest.mark.asyncio
async def test_writes_violating_lifecycle_invariants_are_rejected(memory_store):
    async with memory_store.transaction() as uow:
        await uow.insert_reservation(pending_reservation())

    bad = replace(pending_reservation(), status=ReservationStatus.CONFIRMED, finalized=True)
    with pytest.raises(StoreError):
        async with memory_store.transaction() as uow:
            # confirmed without a redemption code
            await uow.save_reservation(bad)

    with pytest.raises(StoreError):
        async with memory_store.transaction() as uow:
            await uow.insert_reservation(pending_reservation("r-2", token="tok-1"))


# ----- SQL store -----


@pytest.fixture
def mock_db():
    """Mock async session."""
    session = AsyncMock()
    session.add = MagicMock()
    return session


def _sql_store(session):
    from app.store.sql import SqlAlchemyStore

    session_cm = MagicMock()
    session_cm.__aenter__.return_value = session
    session_cm.__aexit__.return_value = False
    begin_cm = MagicMock()
    begin_cm.__aenter__.return_value = session
    begin_cm.__aexit__.return_value = False
    session.begin = MagicMock(return_value=begin_cm)
    return SqlAlchemyStore(MagicMock(return_value=session_cm))


@pytest.mark.asyncio
async def test_sql_decrement_is_conditional_on_rowcount(mock_db):
    store = _sql_store(mock_db)

    mock_db.execute.return_value = MagicMock(rowcount=1)
    async with store.transaction() as uow:
        assert await uow.decrement_available_units("offer-1") is True

    mock_db.execute.return_value = MagicMock(rowcount=0)
    async with store.transaction() as uow:
        assert await uow.decrement_available_units("offer-1") is False

    statement = str(mock_db.execute.call_args[0][0])
    assert "available_units >" in statement


@pytest.mark.asyncio
async def test_sql_increment_beyond_total_raises(mock_db):
    store = _sql_store(mock_db)
    mock_db.execute.return_value = MagicMock(rowcount=0)

    with pytest.raises(StoreError):
        async with store.transaction() as uow:
            await uow.increment_available_units("offer-1", 1)


@pytest.mark.asyncio
async def test_sql_driver_errors_become_store_errors(mock_db):
    store = _sql_store(mock_db)
    mock_db.execute.side_effect = OperationalError("UPDATE offers", {}, Exception("connection reset"))

    with pytest.raises(StoreError):
        async with store.transaction() as uow:
            await uow.decrement_available_units("offer-1")


@pytest.mark.asyncio
async def test_sql_domain_errors_pass_through(mock_db):
    store = _sql_store(mock_db)

    with pytest.raises(NotFoundError):
        async with store.transaction():
            raise NotFoundError("Offer not found")


def test_reservation_row_mapping_keeps_every_field():
    from app.store.sql import record_to_reservation, reservation_to_record

    record = replace(
        pending_reservation(),
        status=ReservationStatus.CONFIRMED,
        finalized=True,
        redemption_code="FD-ABCDEFGH",
        confirmed_at=NOW,
        gateway_payment_id="pay_1",
    )

    row = record_to_reservation(record)

    assert row.status == "confirmed"
    assert reservation_to_record(row) == record
