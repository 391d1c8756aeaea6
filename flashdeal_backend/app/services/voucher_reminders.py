"""
Expiring voucher reminders

Every 30 minutes, remind consumers holding a confirmed voucher for an offer
that ends within the next hour. `reminder_sent_at` is set before the
notification goes out, so a consumer is reminded at most once even if
two runs overlap.
"""
import logging
from datetime import timedelta
from typing import Optional

from app.core.utils import Clock, utcnow
from app.services.notifications import BackgroundDispatcher
from app.store.base import ReservationStore
from app.store.records import ReservationStatus

logger = logging.getLogger(__name__)


class VoucherReminderJob:

    def __init__(
        self,
        store: ReservationStore,
        notifier: Optional[BackgroundDispatcher] = None,
        window_minutes: int = 60,
        batch_size: int = 500,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.window = timedelta(minutes=window_minutes)
        self.batch_size = batch_size
        self.clock = clock

    async def notify_expiring_vouchers(self) -> int:
        """Returns the number of consumers reminded."""
        now = self.clock()
        candidates = await self.store.find_reminder_candidates(now, now + self.window, self.batch_size)
        if not candidates:
            return 0

        reminded = []
        async with self.store.transaction() as uow:
            for candidate in candidates:
                reservation = await uow.get_reservation(candidate.id)
                if (
                    reservation is None
                    or reservation.status != ReservationStatus.CONFIRMED
                    or reservation.reminder_sent_at is not None
                ):
                    continue
                reservation.reminder_sent_at = now
                await uow.save_reservation(reservation)
                reminded.append(reservation)

        if self.notifier is not None:
            for reservation in reminded:
                self.notifier.submit(
                    reservation.consumer_id,
                    "Your voucher expires soon",
                    f"Your voucher {reservation.redemption_code} for {reservation.offer_title} "
                    f"expires within the hour.",
                )

        if reminded:
            logger.info(f"RESERVATION_METRIC: vouchers_reminded={len(reminded)}")
        return len(reminded)
