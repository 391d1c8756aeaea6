"""
Store contract

The reservation engine coordinates exclusively through the store's atomic
units of work: there is no in-process shared state. Every read that feeds a
write happens inside the same unit of work, with the row locked.

A unit of work commits when its `transaction()` block exits normally and
rolls back when any exception escapes it.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, List, Optional

from app.store.records import OfferRecord, ReservationRecord


class UnitOfWork(ABC):
    """Operations available inside one atomic transaction."""

    # ----- Offers -----

    @abstractmethod
    async def get_offer(self, offer_id: str) -> Optional[OfferRecord]:
        """Read an offer, locking it until the unit of work ends."""

    @abstractmethod
    async def decrement_available_units(self, offer_id: str) -> bool:
        """Take one unit if any is left. Returns False when stock is 0 or the offer is missing."""

    @abstractmethod
    async def increment_available_units(self, offer_id: str, amount: int) -> None:
        """Return units to the offer. Raises StoreError if the offer is missing or would exceed total."""

    @abstractmethod
    async def deactivate_offer(self, offer_id: str, now: datetime) -> bool:
        """Set active=False. Returns False if the offer was already inactive or missing."""

    # ----- Reservations -----

    @abstractmethod
    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        """Read a reservation by id, locking it."""

    @abstractmethod
    async def get_reservation_by_correlation(self, correlation_token: str) -> Optional[ReservationRecord]:
        """Read a reservation by payment correlation token, locking it."""

    @abstractmethod
    async def get_reservation_by_code(self, redemption_code: str) -> Optional[ReservationRecord]:
        """Read a reservation by redemption code, locking it."""

    @abstractmethod
    async def redemption_code_exists(self, redemption_code: str) -> bool:
        """True if any reservation already carries this code."""

    @abstractmethod
    async def insert_reservation(self, reservation: ReservationRecord) -> None:
        """Insert a new reservation."""

    @abstractmethod
    async def save_reservation(self, reservation: ReservationRecord) -> None:
        """Overwrite the mutable fields of an existing reservation."""

    @abstractmethod
    async def delete_reservation(self, reservation_id: str) -> bool:
        """Delete a reservation. Only used by the gateway-failure compensation."""


class ReservationStore(ABC):
    """Entry point to the atomic store plus the non-locking scans used by scheduled jobs."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[UnitOfWork]:
        """Open a unit of work."""

    @abstractmethod
    async def get_offer(self, offer_id: str) -> Optional[OfferRecord]:
        """Snapshot read, no lock. Never use the result to decide a write."""

    @abstractmethod
    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        """Snapshot read, no lock. Never use the result to decide a write."""

    @abstractmethod
    async def find_stale_pending_ids(self, created_before: datetime, limit: int) -> List[str]:
        """Ids of pending reservations created before the cutoff, oldest first."""

    @abstractmethod
    async def find_offers_past_end_ids(self, now: datetime, limit: int) -> List[str]:
        """Ids of active offers whose validity ended before now."""

    @abstractmethod
    async def find_reminder_candidates(
        self, ends_after: datetime, ends_before: datetime, limit: int
    ) -> List[ReservationRecord]:
        """Confirmed, not yet reminded reservations whose offer ends inside the window."""

    @abstractmethod
    async def list_late_payments(self, limit: int) -> List[ReservationRecord]:
        """Reservations flagged with a payment that arrived after they left pending."""

    @abstractmethod
    async def ping(self) -> bool:
        """Health check."""

    async def close(self) -> None:
        """Release connections. Default: nothing to release."""
