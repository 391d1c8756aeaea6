"""
Reservation manager

Admits a consumer's reservation against an offer and creates the Pix charge
for it.

Admission (validation, stock decrement, reservation insert) is one unit of
work so concurrent requests for the last unit cannot both succeed. The
gateway call happens after commit; if it fails, a compensating unit of work
returns the unit and deletes the reservation.
"""
import logging
from datetime import timedelta

from app.core.exceptions import (
    DomainError,
    FlashDealError,
    InternalError,
    NotFoundError,
    PreconditionReason,
    offer_unavailable,
)
from app.core.utils import Clock, new_id, utcnow
from app.services import alerting
from app.services.payment_gateway import ChargeRequest, PaymentGateway, PayableReference
from app.services.results import OperationResult
from app.services.stock_ledger import StockLedger
from app.store.base import ReservationStore
from app.store.records import ReservationRecord, ReservationStatus

logger = logging.getLogger(__name__)


class ReservationManager:
    """Creates reservations and their Pix charges."""

    def __init__(
        self,
        store: ReservationStore,
        gateway: PaymentGateway,
        payment_window_minutes: int = 15,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.gateway = gateway
        self.payment_window = timedelta(minutes=payment_window_minutes)
        self.clock = clock

    async def create_reservation(self, consumer_id: str, offer_id: str) -> OperationResult:
        """
        Reserve one unit of an offer for a consumer.

        Returns:
            OperationResult with reservation_id, payable_reference and
            expires_in_seconds, or the domain/internal error.
        """
        now = self.clock()

        try:
            reservation = await self._admit(consumer_id, offer_id, now)
        except DomainError as e:
            logger.info(
                f"RESERVATION_METRIC: rejected offer={offer_id} consumer={consumer_id} "
                f"kind={e.kind.value} details={e.details}"
            )
            return OperationResult.failed(e)
        except FlashDealError as e:
            logger.error(f"Reservation admission failed for offer {offer_id}: {e}")
            return OperationResult.failed(InternalError("Could not create reservation. Try again."))

        logger.info(
            f"RESERVATION_METRIC: admitted reservation={reservation.id} offer={offer_id} "
            f"consumer={consumer_id}"
        )

        charge = ChargeRequest(
            amount=reservation.amount_charged,
            description=reservation.offer_title,
            external_reference=reservation.correlation_token,
            expires_at=now + self.payment_window,
        )
        try:
            payable = await self.gateway.create_charge(charge)
        except Exception as e:
            logger.error(f"Pix charge failed for reservation {reservation.id}: {e}")
            await self._compensate(reservation)
            return OperationResult.failed(InternalError("Could not generate Pix charge. Try again."))

        await self._attach_payable(reservation.id, payable)

        return OperationResult.ok(
            reservation_id=reservation.id,
            payable_reference=payable.to_dict(),
            expires_in_seconds=int(self.payment_window.total_seconds()),
        )

    async def _admit(self, consumer_id: str, offer_id: str, now) -> ReservationRecord:
        async with self.store.transaction() as uow:
            offer = await uow.get_offer(offer_id)
            if offer is None:
                raise NotFoundError("Offer not found", details={"offer_id": offer_id})
            if not offer.active:
                raise offer_unavailable(PreconditionReason.INACTIVE, offer_id)
            if offer.has_ended(now):
                raise offer_unavailable(PreconditionReason.EXPIRED, offer_id)
            if offer.available_units <= 0:
                raise offer_unavailable(PreconditionReason.EXHAUSTED, offer_id)

            await StockLedger.decrement_if_positive(uow, offer_id)

            reservation = ReservationRecord(
                id=new_id(),
                offer_id=offer.id,
                business_id=offer.business_id,
                consumer_id=consumer_id,
                offer_title=offer.title,
                amount_charged=offer.discounted_price,
                correlation_token=new_id(),
                created_at=now,
            )
            await uow.insert_reservation(reservation)
        return reservation

    async def _compensate(self, reservation: ReservationRecord) -> None:
        """Undo the admission: return the unit and delete the reservation."""
        try:
            async with self.store.transaction() as uow:
                current = await uow.get_reservation(reservation.id)
                if current is None:
                    return
                if current.status != ReservationStatus.PENDING or current.finalized:
                    # Already moved on (paid or reclaimed); nothing to undo
                    logger.warning(
                        f"Skipping compensation for reservation {reservation.id}: status={current.status.value}"
                    )
                    return
                await StockLedger.increment(uow, current.offer_id)
                await uow.delete_reservation(current.id)
            logger.info(f"RESERVATION_METRIC: compensated reservation={reservation.id} offer={reservation.offer_id}")
        except Exception as e:
            logger.critical(
                f"Compensation failed for reservation {reservation.id} on offer {reservation.offer_id}: {e}",
                exc_info=True,
            )
            await alerting.alert_compensation_failure(reservation.id, reservation.offer_id, str(e))

    async def _attach_payable(self, reservation_id: str, payable: PayableReference) -> None:
        try:
            async with self.store.transaction() as uow:
                current = await uow.get_reservation(reservation_id)
                if current is None:
                    return
                current.gateway_charge_id = payable.charge_id
                current.payment_qr_code = payable.qr_code_image
                current.payment_copy_paste = payable.copy_paste
                await uow.save_reservation(current)
        except Exception as e:
            logger.warning(f"Could not attach Pix data to reservation {reservation_id}: {e}")
