import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import (
    OFFER_UNAVAILABLE_MESSAGE,
    ErrorKind,
    PaymentGatewayError,
    StoreError,
)
from app.services.stock_ledger import StockLedger
from app.store.records import ReservationStatus

from conftest import CONSUMER_ID, make_offer


@pytest.mark.asyncio
async def test_create_reservation_decrements_stock_and_returns_payable(container, store, gateway, clock):
    result = await container.reservations.create_reservation(CONSUMER_ID, "offer-1")

    assert result.success
    assert result.data["expires_in_seconds"] == 15 * 60
    assert set(result.data["payable_reference"]) == {"qr_code_image", "copy_paste", "charge_id"}

    offer = await store.get_offer("offer-1")
    assert offer.available_units == 4

    reservation = await store.get_reservation(result.data["reservation_id"])
    assert reservation.status == ReservationStatus.PENDING
    assert reservation.stock_held is True
    assert reservation.finalized is False
    assert reservation.redemption_code is None
    assert reservation.amount_charged == Decimal("40.00")
    assert reservation.offer_title == "Pizza for two"
    assert reservation.created_at == clock.now

    # Charge is correlated by the reservation's token and carries its payment window
    [charge] = gateway.requests
    assert charge.external_reference == reservation.correlation_token
    assert charge.description == "Pizza for two"
    assert charge.amount == Decimal("40.00")
    assert charge.expires_at == clock.now + timedelta(minutes=15)

    # Gateway data attached after the charge was created
    assert reservation.gateway_charge_id == "charge-1"
    assert reservation.payment_copy_paste.endswith(reservation.correlation_token)


@pytest.mark.asyncio
async def test_unknown_offer_is_not_found(container, gateway):
    result = await container.reservations.create_reservation(CONSUMER_ID, "missing")

    assert not result.success
    assert result.kind == ErrorKind.NOT_FOUND
    assert gateway.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "offer_kwargs, reason",
    [
        ({"active": False}, "inactive"),
        ({"available": 0}, "exhausted"),
    ],
)
async def test_unavailable_offer_is_rejected_without_side_effects(container, store, gateway, clock, offer_kwargs, reason):
    store.add_offer(make_offer("offer-2", now=clock.now, **offer_kwargs))

    result = await container.reservations.create_reservation(CONSUMER_ID, "offer-2")

    assert result.kind == ErrorKind.FAILED_PRECONDITION
    assert result.reason == reason
    assert result.error.message == OFFER_UNAVAILABLE_MESSAGE
    assert store.reservations() == []
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_offer_past_end_is_expired_even_if_still_active(container, store, clock):
    store.add_offer(make_offer("offer-2", now=clock.now, ends_at=clock.now))

    result = await container.reservations.create_reservation(CONSUMER_ID, "offer-2")

    assert result.reason == "expired"
    assert (await store.get_offer("offer-2")).available_units == 5


@pytest.mark.asyncio
async def test_last_unit_goes_to_exactly_one_of_two_concurrent_consumers(container, store, gateway, clock):
    store.add_offer(make_offer("last-one", units=1, now=clock.now))
    gateway.delay = 0.01

    first, second = await asyncio.gather(
        container.reservations.create_reservation("consumer-a", "last-one"),
        container.reservations.create_reservation("consumer-b", "last-one"),
    )

    outcomes = sorted([first.success, second.success])
    assert outcomes == [False, True]
    loser = first if not first.success else second
    assert loser.reason == "exhausted"
    assert (await store.get_offer("last-one")).available_units == 0
    assert len([r for r in store.reservations() if r.offer_id == "last-one"]) == 1


@pytest.mark.asyncio
async def test_concurrent_demand_never_oversells(container, store, clock):
    store.add_offer(make_offer("hot", units=3, now=clock.now))

    results = await asyncio.gather(*[
        container.reservations.create_reservation(f"consumer-{i}", "hot") for i in range(10)
    ])

    assert sum(r.success for r in results) == 3
    assert all(r.reason == "exhausted" for r in results if not r.success)
    assert (await store.get_offer("hot")).available_units == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        PaymentGatewayError("Pix gateway rejected the charge", status_code=502),
        PaymentGatewayError("Pix gateway timed out", timed_out=True),
    ],
)
async def test_gateway_failure_releases_unit_and_deletes_reservation(container, store, gateway, error):
    gateway.fail_with(error)

    result = await container.reservations.create_reservation(CONSUMER_ID, "offer-1")

    assert result.kind == ErrorKind.INTERNAL
    assert (await store.get_offer("offer-1")).available_units == 5
    assert store.reservations() == []


@pytest.mark.asyncio
async def test_failed_compensation_alerts_and_reclaimer_restores_later(container, store, gateway, clock):
    gateway.fail_with()
    alert = AsyncMock(return_value=False)

    with patch.object(StockLedger, "increment", new=AsyncMock(side_effect=StoreError("store down"))), \
            patch("app.services.alerting.alert_compensation_failure", new=alert):
        result = await container.reservations.create_reservation(CONSUMER_ID, "offer-1")

    assert result.kind == ErrorKind.INTERNAL
    alert.assert_awaited_once()
    [orphan] = store.reservations()
    assert orphan.status == ReservationStatus.PENDING
    assert (await store.get_offer("offer-1")).available_units == 4

    clock.advance(minutes=16)
    stats = await container.reclaimer.reclaim_expired_reservations()

    assert stats["stock_restored"] == 1
    assert (await store.get_offer("offer-1")).available_units == 5
    assert (await store.get_reservation(orphan.id)).status == ReservationStatus.EXPIRED


@pytest.mark.asyncio
async def test_store_failure_during_admission_is_internal(container, store, gateway):
    with patch.object(StockLedger, "decrement_if_positive", new=AsyncMock(side_effect=StoreError("write failed"))):
        result = await container.reservations.create_reservation(CONSUMER_ID, "offer-1")

    assert result.kind == ErrorKind.INTERNAL
    assert store.reservations() == []
    assert gateway.requests == []
