"""
PostgreSQL store

Implements the store contract on SQLAlchemy async sessions. Each unit of
work is one `session.begin()` transaction; reads that feed writes take
`SELECT ... FOR UPDATE` row locks and the stock decrement is a conditional
UPDATE so two transactions can never both take the last unit.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional

from sqlalchemy import select, update, delete, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import FlashDealError, StoreError
from app.models import Offer, Reservation
from app.store.base import ReservationStore, UnitOfWork
from app.store.records import OfferRecord, ReservationRecord, ReservationStatus

logger = logging.getLogger(__name__)

# Columns copied verbatim between Reservation rows and ReservationRecord
_RESERVATION_FIELDS = (
    "id", "offer_id", "business_id", "consumer_id", "offer_title", "amount_charged",
    "correlation_token", "created_at", "finalized", "stock_held", "redemption_code",
    "cancellation_reason", "gateway_charge_id", "gateway_payment_id", "payment_qr_code",
    "payment_copy_paste", "confirmed_at", "cancelled_at", "used_at", "expired_at",
    "late_payment_at", "reminder_sent_at",
)

# Fields a saved reservation may change after insert
_MUTABLE_RESERVATION_FIELDS = (
    "status", "finalized", "stock_held", "redemption_code", "cancellation_reason",
    "gateway_charge_id", "gateway_payment_id", "payment_qr_code", "payment_copy_paste",
    "confirmed_at", "cancelled_at", "used_at", "expired_at", "late_payment_at",
    "reminder_sent_at",
)


def offer_to_record(row: Offer) -> OfferRecord:
    return OfferRecord(
        id=row.id,
        business_id=row.business_id,
        title=row.title,
        original_price=row.original_price,
        discounted_price=row.discounted_price,
        discount_percent=row.discount_percent,
        total_units=row.total_units,
        available_units=row.available_units,
        starts_at=row.starts_at,
        ends_at=row.ends_at,
        active=row.active,
    )


def reservation_to_record(row: Reservation) -> ReservationRecord:
    values = {name: getattr(row, name) for name in _RESERVATION_FIELDS}
    return ReservationRecord(status=ReservationStatus(row.status), **values)


def record_to_reservation(record: ReservationRecord) -> Reservation:
    values = {name: getattr(record, name) for name in _RESERVATION_FIELDS}
    return Reservation(status=record.status.value, **values)


class _SqlUnitOfWork(UnitOfWork):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _locked_reservation(self, *criteria) -> Optional[ReservationRecord]:
        result = await self.session.execute(
            select(Reservation).where(*criteria).with_for_update()
        )
        row = result.scalar_one_or_none()
        return reservation_to_record(row) if row else None

    async def get_offer(self, offer_id: str) -> Optional[OfferRecord]:
        result = await self.session.execute(
            select(Offer).where(Offer.id == offer_id).with_for_update()
        )
        row = result.scalar_one_or_none()
        return offer_to_record(row) if row else None

    async def decrement_available_units(self, offer_id: str) -> bool:
        result = await self.session.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.available_units > 0)
            .values(available_units=Offer.available_units - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def increment_available_units(self, offer_id: str, amount: int) -> None:
        result = await self.session.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.available_units + amount <= Offer.total_units)
            .values(available_units=Offer.available_units + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StoreError(
                f"Could not return {amount} unit(s) to offer {offer_id}",
                details={"offer_id": offer_id, "amount": amount},
            )

    async def deactivate_offer(self, offer_id: str, now: datetime) -> bool:
        result = await self.session.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.active.is_(True))
            .values(active=False, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        return await self._locked_reservation(Reservation.id == reservation_id)

    async def get_reservation_by_correlation(self, correlation_token: str) -> Optional[ReservationRecord]:
        return await self._locked_reservation(Reservation.correlation_token == correlation_token)

    async def get_reservation_by_code(self, redemption_code: str) -> Optional[ReservationRecord]:
        return await self._locked_reservation(Reservation.redemption_code == redemption_code)

    async def redemption_code_exists(self, redemption_code: str) -> bool:
        result = await self.session.execute(
            select(Reservation.id).where(Reservation.redemption_code == redemption_code)
        )
        return result.first() is not None

    async def insert_reservation(self, reservation: ReservationRecord) -> None:
        self.session.add(record_to_reservation(reservation))
        await self.session.flush()

    async def save_reservation(self, reservation: ReservationRecord) -> None:
        values = {name: getattr(reservation, name) for name in _MUTABLE_RESERVATION_FIELDS}
        values["status"] = reservation.status.value
        result = await self.session.execute(
            update(Reservation)
            .where(Reservation.id == reservation.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StoreError(f"Reservation {reservation.id} not found")

    async def delete_reservation(self, reservation_id: str) -> bool:
        result = await self.session.execute(
            delete(Reservation).where(Reservation.id == reservation_id)
        )
        return result.rowcount == 1


class SqlAlchemyStore(ReservationStore):
    """Store backed by PostgreSQL through the shared async session factory."""

    def __init__(self, session_factory: async_sessionmaker, engine=None):
        self.session_factory = session_factory
        self.engine = engine

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield _SqlUnitOfWork(session)
            except FlashDealError:
                raise
            except IntegrityError as e:
                raise StoreError("Store rejected the write", details={"error": str(e.orig)}) from e
            except SQLAlchemyError as e:
                logger.error(f"Unit of work failed: {e}", exc_info=True)
                raise StoreError("Store unavailable", details={"error": str(e)}) from e

    async def _read(self, statement):
        try:
            async with self.session_factory() as session:
                result = await session.execute(statement)
                return result.scalars().all()
        except SQLAlchemyError as e:
            raise StoreError("Store unavailable", details={"error": str(e)}) from e

    async def get_offer(self, offer_id: str) -> Optional[OfferRecord]:
        rows = await self._read(select(Offer).where(Offer.id == offer_id))
        return offer_to_record(rows[0]) if rows else None

    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        rows = await self._read(select(Reservation).where(Reservation.id == reservation_id))
        return reservation_to_record(rows[0]) if rows else None

    async def find_stale_pending_ids(self, created_before: datetime, limit: int) -> List[str]:
        return list(await self._read(
            select(Reservation.id)
            .where(
                Reservation.status == ReservationStatus.PENDING.value,
                Reservation.created_at < created_before,
            )
            .order_by(Reservation.created_at)
            .limit(limit)
        ))

    async def find_offers_past_end_ids(self, now: datetime, limit: int) -> List[str]:
        return list(await self._read(
            select(Offer.id)
            .where(Offer.active.is_(True), Offer.ends_at < now)
            .limit(limit)
        ))

    async def find_reminder_candidates(
        self, ends_after: datetime, ends_before: datetime, limit: int
    ) -> List[ReservationRecord]:
        rows = await self._read(
            select(Reservation)
            .join(Offer, Offer.id == Reservation.offer_id)
            .where(
                Reservation.status == ReservationStatus.CONFIRMED.value,
                Reservation.reminder_sent_at.is_(None),
                Offer.ends_at > ends_after,
                Offer.ends_at < ends_before,
            )
            .limit(limit)
        )
        return [reservation_to_record(row) for row in rows]

    async def list_late_payments(self, limit: int) -> List[ReservationRecord]:
        rows = await self._read(
            select(Reservation)
            .where(Reservation.late_payment_at.is_not(None))
            .order_by(Reservation.late_payment_at.desc())
            .limit(limit)
        )
        return [reservation_to_record(row) for row in rows]

    async def ping(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Store ping failed: {e}")
            return False

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
