"""
Voucher redemption

The business scans or types the consumer's code at the counter. Validation
is a read-only preview; redemption moves the reservation to `used`, which
consumes the unit for good (no stock is returned).
"""
import logging
from typing import Optional

from app.core.exceptions import (
    DomainError,
    FlashDealError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    PreconditionReason,
)
from app.core.utils import Clock, utcnow
from app.services.notifications import BackgroundDispatcher
from app.services.results import OperationResult
from app.store.base import ReservationStore, UnitOfWork
from app.store.records import ReservationRecord, ReservationStatus

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def voucher_summary(reservation: ReservationRecord) -> dict:
    return {
        "reservation_id": reservation.id,
        "code": reservation.redemption_code,
        "offer_title": reservation.offer_title,
        "amount_charged": str(reservation.amount_charged),
        "consumer_id": reservation.consumer_id,
        "status": reservation.status.value,
    }


class RedemptionService:

    def __init__(
        self,
        store: ReservationStore,
        notifier: Optional[BackgroundDispatcher] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock

    async def _redeemable(self, uow: UnitOfWork, business_id: str, code: str) -> ReservationRecord:
        reservation = await uow.get_reservation_by_code(code)
        if reservation is None:
            raise NotFoundError("Voucher not found", details={"code": code})
        if reservation.business_id != business_id:
            raise PermissionDeniedError("Voucher belongs to another business", details={"code": code})
        if reservation.status != ReservationStatus.CONFIRMED:
            raise PreconditionError(
                f"Voucher is {reservation.status.value}",
                reason=PreconditionReason.WRONG_STATUS,
                details={"code": code},
            )
        return reservation

    async def validate_voucher(self, business_id: str, code: str) -> OperationResult:
        code = normalize_code(code)
        try:
            async with self.store.transaction() as uow:
                reservation = await self._redeemable(uow, business_id, code)
        except DomainError as e:
            return OperationResult.failed(e)
        except FlashDealError as e:
            logger.error(f"Voucher validation failed for {code}: {e}")
            return OperationResult.failed(InternalError("Could not validate voucher. Try again."))
        return OperationResult.ok(**voucher_summary(reservation))

    async def redeem_voucher(self, business_id: str, code: str) -> OperationResult:
        code = normalize_code(code)
        now = self.clock()
        try:
            async with self.store.transaction() as uow:
                reservation = await self._redeemable(uow, business_id, code)
                reservation.status = ReservationStatus.USED
                reservation.used_at = now
                reservation.stock_held = False
                await uow.save_reservation(reservation)
        except DomainError as e:
            logger.info(f"Redemption of {code} rejected: {e.message}")
            return OperationResult.failed(e)
        except FlashDealError as e:
            logger.error(f"Redemption of {code} failed: {e}")
            return OperationResult.failed(InternalError("Could not redeem voucher. Try again."))

        logger.info(f"RESERVATION_METRIC: redeemed reservation={reservation.id} business={business_id}")

        if self.notifier is not None:
            self.notifier.submit(
                reservation.consumer_id,
                "Voucher used",
                f"Your voucher for {reservation.offer_title} was redeemed. Enjoy!",
            )

        return OperationResult.ok(**voucher_summary(reservation))
