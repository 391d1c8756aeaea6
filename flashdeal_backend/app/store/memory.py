"""
In-memory store

Single-process implementation of the store contract for local development
and tests. Units of work are serialised with an asyncio.Lock; each one works
on copies of the records and only publishes them on a clean exit, so an
exception inside the block leaves the store exactly as it was.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from app.core.exceptions import StoreError
from app.store.base import ReservationStore, UnitOfWork
from app.store.records import OfferRecord, ReservationRecord, ReservationStatus

logger = logging.getLogger(__name__)


def _check(reservation: ReservationRecord) -> None:
    # Mirrors the CHECK constraints on the reservations table
    try:
        reservation.check_invariants()
    except ValueError as e:
        raise StoreError(str(e)) from e


class _InMemoryUnitOfWork(UnitOfWork):

    def __init__(self, offers: Dict[str, OfferRecord], reservations: Dict[str, ReservationRecord]):
        # Shallow copies: records are replaced, never mutated in place
        self.offers = dict(offers)
        self.reservations = dict(reservations)

    async def get_offer(self, offer_id: str) -> Optional[OfferRecord]:
        offer = self.offers.get(offer_id)
        return replace(offer) if offer else None

    async def decrement_available_units(self, offer_id: str) -> bool:
        offer = self.offers.get(offer_id)
        if offer is None or offer.available_units <= 0:
            return False
        self.offers[offer_id] = replace(offer, available_units=offer.available_units - 1)
        return True

    async def increment_available_units(self, offer_id: str, amount: int) -> None:
        offer = self.offers.get(offer_id)
        if offer is None:
            raise StoreError(f"Offer {offer_id} not found", details={"offer_id": offer_id})
        new_value = offer.available_units + amount
        if new_value > offer.total_units:
            raise StoreError(
                f"Offer {offer_id} available units would exceed total",
                details={"offer_id": offer_id, "available": new_value, "total": offer.total_units},
            )
        self.offers[offer_id] = replace(offer, available_units=new_value)

    async def deactivate_offer(self, offer_id: str, now: datetime) -> bool:
        offer = self.offers.get(offer_id)
        if offer is None or not offer.active:
            return False
        self.offers[offer_id] = replace(offer, active=False)
        return True

    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        reservation = self.reservations.get(reservation_id)
        return replace(reservation) if reservation else None

    async def get_reservation_by_correlation(self, correlation_token: str) -> Optional[ReservationRecord]:
        for reservation in self.reservations.values():
            if reservation.correlation_token == correlation_token:
                return replace(reservation)
        return None

    async def get_reservation_by_code(self, redemption_code: str) -> Optional[ReservationRecord]:
        for reservation in self.reservations.values():
            if reservation.redemption_code == redemption_code:
                return replace(reservation)
        return None

    async def redemption_code_exists(self, redemption_code: str) -> bool:
        return any(r.redemption_code == redemption_code for r in self.reservations.values())

    async def insert_reservation(self, reservation: ReservationRecord) -> None:
        _check(reservation)
        if reservation.id in self.reservations:
            raise StoreError(f"Reservation {reservation.id} already exists")
        if any(r.correlation_token == reservation.correlation_token for r in self.reservations.values()):
            raise StoreError("Duplicate correlation token")
        self.reservations[reservation.id] = replace(reservation)

    async def save_reservation(self, reservation: ReservationRecord) -> None:
        _check(reservation)
        if reservation.id not in self.reservations:
            raise StoreError(f"Reservation {reservation.id} not found")
        if reservation.redemption_code is not None and any(
            r.redemption_code == reservation.redemption_code and r.id != reservation.id
            for r in self.reservations.values()
        ):
            raise StoreError("Duplicate redemption code")
        self.reservations[reservation.id] = replace(reservation)

    async def delete_reservation(self, reservation_id: str) -> bool:
        return self.reservations.pop(reservation_id, None) is not None


class InMemoryStore(ReservationStore):
    """Process-local store. Not durable; forbidden in production by config validation."""

    def __init__(self):
        self._offers: Dict[str, OfferRecord] = {}
        self._reservations: Dict[str, ReservationRecord] = {}
        self._lock = asyncio.Lock()

    def add_offer(self, offer: OfferRecord) -> None:
        """Seed an offer (the authoring flow lives outside this service)."""
        self._offers[offer.id] = replace(offer)

    def reservations(self) -> List[ReservationRecord]:
        return [replace(r) for r in self._reservations.values()]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        async with self._lock:
            uow = _InMemoryUnitOfWork(self._offers, self._reservations)
            yield uow
            await self._commit(uow)

    async def _commit(self, uow: _InMemoryUnitOfWork) -> None:
        self._offers = uow.offers
        self._reservations = uow.reservations

    async def get_offer(self, offer_id: str) -> Optional[OfferRecord]:
        offer = self._offers.get(offer_id)
        return replace(offer) if offer else None

    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        reservation = self._reservations.get(reservation_id)
        return replace(reservation) if reservation else None

    async def find_stale_pending_ids(self, created_before: datetime, limit: int) -> List[str]:
        stale = sorted(
            (
                r for r in self._reservations.values()
                if r.status == ReservationStatus.PENDING and r.created_at < created_before
            ),
            key=lambda r: r.created_at,
        )
        return [r.id for r in stale[:limit]]

    async def find_offers_past_end_ids(self, now: datetime, limit: int) -> List[str]:
        ended = [o.id for o in self._offers.values() if o.active and o.ends_at < now]
        return ended[:limit]

    async def find_reminder_candidates(
        self, ends_after: datetime, ends_before: datetime, limit: int
    ) -> List[ReservationRecord]:
        candidates = []
        for reservation in self._reservations.values():
            if reservation.status != ReservationStatus.CONFIRMED or reservation.reminder_sent_at:
                continue
            offer = self._offers.get(reservation.offer_id)
            if offer and ends_after < offer.ends_at < ends_before:
                candidates.append(replace(reservation))
        return candidates[:limit]

    async def list_late_payments(self, limit: int) -> List[ReservationRecord]:
        flagged = [replace(r) for r in self._reservations.values() if r.late_payment_at is not None]
        flagged.sort(key=lambda r: r.late_payment_at, reverse=True)
        return flagged[:limit]

    async def ping(self) -> bool:
        return True
