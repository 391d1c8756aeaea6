import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import StoreError
from app.services.reservation_reclaimer import ReservationReclaimer
from app.services.stock_ledger import StockLedger
from app.store.records import ReservationStatus

from conftest import make_offer, reserve, reserve_and_confirm


@pytest.mark.asyncio
async def test_stale_pending_reservation_is_expired_and_unit_restored(container, store, clock):
    reservation = await reserve(container)
    clock.advance(minutes=15, seconds=1)

    stats = await container.reclaimer.reclaim_expired_reservations()

    assert stats == {"reservations_expired": 1, "stock_restored": 1, "batches": 1, "errors": 0}
    stored = await store.get_reservation(reservation.id)
    assert stored.status == ReservationStatus.EXPIRED
    assert stored.stock_held is False
    assert stored.expired_at == clock.now
    assert (await store.get_offer("offer-1")).available_units == 5


@pytest.mark.asyncio
async def test_recent_pending_and_confirmed_reservations_are_left_alone(container, store, clock):
    confirmed = await reserve_and_confirm(container, consumer_id="consumer-a")
    clock.advance(minutes=10)
    recent = await reserve(container, consumer_id="consumer-b")
    clock.advance(minutes=10)

    stats = await container.reclaimer.reclaim_expired_reservations()

    assert stats["reservations_expired"] == 0
    assert (await store.get_reservation(confirmed.id)).status == ReservationStatus.CONFIRMED
    assert (await store.get_reservation(recent.id)).status == ReservationStatus.PENDING
    assert (await store.get_offer("offer-1")).available_units == 3


@pytest.mark.asyncio
async def test_reclaims_in_batches(container, store, clock):
    store.add_offer(make_offer("bulk", units=5, now=clock.now))
    for i in range(5):
        await reserve(container, consumer_id=f"consumer-{i}", offer_id="bulk")
    clock.advance(minutes=20)

    reclaimer = ReservationReclaimer(store, payment_window_minutes=15, batch_size=2, clock=clock)
    stats = await reclaimer.reclaim_expired_reservations()

    assert stats["reservations_expired"] == 5
    assert stats["batches"] == 3
    assert (await store.get_offer("bulk")).available_units == 5


@pytest.mark.asyncio
async def test_concurrent_runs_restore_each_unit_once(container, store, clock):
    for i in range(3):
        await reserve(container, consumer_id=f"consumer-{i}")
    clock.advance(minutes=20)

    first, second = await asyncio.gather(
        container.reclaimer.reclaim_expired_reservations(),
        container.reclaimer.reclaim_expired_reservations(),
    )

    assert first["stock_restored"] + second["stock_restored"] == 3
    assert (await store.get_offer("offer-1")).available_units == 5


@pytest.mark.asyncio
async def test_failed_batch_rolls_back_and_is_counted(container, store, clock):
    reservation = await reserve(container)
    clock.advance(minutes=20)

    with patch.object(StockLedger, "increment", new=AsyncMock(side_effect=StoreError("store down"))):
        stats = await container.reclaimer.reclaim_expired_reservations()

    assert stats["errors"] == 1
    assert stats["reservations_expired"] == 0
    assert (await store.get_reservation(reservation.id)).status == ReservationStatus.PENDING
    assert (await store.get_offer("offer-1")).available_units == 4

    # Next run picks it up
    stats = await container.reclaimer.reclaim_expired_reservations()
    assert stats["reservations_expired"] == 1


@pytest.mark.asyncio
async def test_unreclaimable_reservation_does_not_block_the_rest(container, store, clock):
    store.add_offer(make_offer("edited", units=1, now=clock.now))
    stuck = await reserve(container, offer_id="edited")
    # Offer re-authored with its units back at total while the unit is still held
    store.add_offer(make_offer("edited", units=1, now=clock.now))
    clock.advance(minutes=1)
    healthy = await reserve(container)
    clock.advance(minutes=16)

    alert = AsyncMock(return_value=False)
    with patch("app.services.alerting.alert_reclaim_failure", new=alert):
        stats = await container.reclaimer.reclaim_expired_reservations()

    assert stats["reservations_expired"] == 1
    assert stats["errors"] == 1
    assert (await store.get_reservation(healthy.id)).status == ReservationStatus.EXPIRED
    assert (await store.get_offer("offer-1")).available_units == 5
    assert (await store.get_reservation(stuck.id)).status == ReservationStatus.PENDING
    alert.assert_awaited_once()
    assert alert.await_args.args[0] == stuck.id


@pytest.mark.asyncio
async def test_skipped_reservations_do_not_stall_later_batches(container, store, clock):
    store.add_offer(make_offer("edited", units=2, now=clock.now))
    await reserve(container, consumer_id="consumer-x", offer_id="edited")
    await reserve(container, consumer_id="consumer-y", offer_id="edited")
    store.add_offer(make_offer("edited", units=2, now=clock.now))
    clock.advance(minutes=1)
    for i in range(3):
        await reserve(container, consumer_id=f"consumer-{i}")
    clock.advance(minutes=16)

    reclaimer = ReservationReclaimer(store, payment_window_minutes=15, batch_size=2, clock=clock)
    with patch("app.services.alerting.alert_reclaim_failure", new=AsyncMock(return_value=False)):
        stats = await reclaimer.reclaim_expired_reservations()

    assert stats["errors"] == 2
    assert stats["reservations_expired"] == 3
    assert (await store.get_offer("offer-1")).available_units == 5
