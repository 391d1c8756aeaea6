"""
Cancellation handler

A consumer may cancel a confirmed reservation until shortly before the
offer ends. The unit returns to stock in the same unit of work; the refund
itself is settled by the business outside this system, so the business is
notified with the amount to return.
"""
import logging
from datetime import timedelta
from typing import Optional

from app.core.exceptions import (
    CANCELLATION_CLOSED_MESSAGE,
    DomainError,
    FlashDealError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    PreconditionReason,
)
from app.core.utils import Clock, utcnow
from app.services.notifications import BackgroundDispatcher, format_brl
from app.services.results import OperationResult
from app.services.stock_ledger import StockLedger
from app.store.base import ReservationStore
from app.store.records import ReservationStatus

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "Cancelled by consumer"


class CancellationService:

    def __init__(
        self,
        store: ReservationStore,
        notifier: Optional[BackgroundDispatcher] = None,
        cutoff_minutes: int = 30,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.cutoff = timedelta(minutes=cutoff_minutes)
        self.clock = clock

    async def cancel_reservation(
        self,
        consumer_id: str,
        reservation_id: str,
        reason: Optional[str] = None,
    ) -> OperationResult:
        now = self.clock()
        reason = (reason or "").strip() or DEFAULT_CANCELLATION_REASON

        try:
            async with self.store.transaction() as uow:
                reservation = await uow.get_reservation(reservation_id)
                if reservation is None:
                    raise NotFoundError("Reservation not found", details={"reservation_id": reservation_id})
                if reservation.consumer_id != consumer_id:
                    raise PermissionDeniedError(
                        "Reservation belongs to another consumer",
                        details={"reservation_id": reservation_id},
                    )
                if reservation.status != ReservationStatus.CONFIRMED:
                    raise PreconditionError(
                        f"Only confirmed reservations can be cancelled (status: {reservation.status.value})",
                        reason=PreconditionReason.WRONG_STATUS,
                    )

                offer = await uow.get_offer(reservation.offer_id)
                if offer is None:
                    raise NotFoundError("Offer not found", details={"offer_id": reservation.offer_id})
                if now >= offer.ends_at - self.cutoff:
                    raise PreconditionError(CANCELLATION_CLOSED_MESSAGE, reason=PreconditionReason.CUTOFF_PASSED)

                # A code only exists while the voucher can still be used
                reservation.redemption_code = None
                reservation.status = ReservationStatus.CANCELLED
                reservation.cancelled_at = now
                reservation.cancellation_reason = reason
                reservation.stock_held = False
                await uow.save_reservation(reservation)
                await StockLedger.increment(uow, reservation.offer_id)
        except DomainError as e:
            logger.info(f"Cancellation of {reservation_id} rejected: {e.message}")
            return OperationResult.failed(e)
        except FlashDealError as e:
            logger.error(f"Cancellation of {reservation_id} failed: {e}")
            return OperationResult.failed(InternalError("Could not cancel reservation. Try again."))

        logger.info(f"RESERVATION_METRIC: cancelled reservation={reservation_id} offer={reservation.offer_id}")

        if self.notifier is not None:
            self.notifier.submit(
                reservation.business_id,
                "Reservation cancelled",
                f"A customer cancelled {reservation.offer_title}. "
                f"Refund {format_brl(reservation.amount_charged)} to the customer.",
            )

        return OperationResult.ok(ok=True)
