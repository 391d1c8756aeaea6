"""
Expired reservation reclaimer

Background service that expires reservations left unpaid past the payment
window and returns their units to stock. Runs every 15 minutes from the
scheduler.

Each batch is one unit of work and every reservation is re-read under lock
before it is expired, so concurrent runs and a confirmation racing the
reclaimer cannot both win: whichever commits first moves the reservation
out of pending and the other sees that and skips it.

When a batch fails it is replayed one reservation per unit of work. A
reservation that still fails is skipped for the rest of the run and
alerted, so it never holds back the reservations queued behind it.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Set, Tuple

from app.core.utils import Clock, utcnow
from app.services import alerting
from app.services.stock_ledger import StockLedger
from app.store.base import ReservationStore
from app.store.records import ReservationStatus

logger = logging.getLogger(__name__)


class ReservationReclaimer:

    def __init__(
        self,
        store: ReservationStore,
        payment_window_minutes: int = 15,
        batch_size: int = 500,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.payment_window = timedelta(minutes=payment_window_minutes)
        self.batch_size = batch_size
        self.clock = clock

    async def _expire(self, ids: List[str], now: datetime) -> Tuple[int, int]:
        """Expire the still-pending reservations among `ids` in one unit of work."""
        expired = 0
        restored = 0
        async with self.store.transaction() as uow:
            for reservation_id in ids:
                reservation = await uow.get_reservation(reservation_id)
                if reservation is None or reservation.status != ReservationStatus.PENDING:
                    continue

                held = reservation.stock_held
                reservation.status = ReservationStatus.EXPIRED
                reservation.expired_at = now
                reservation.stock_held = False
                await uow.save_reservation(reservation)
                if held:
                    await StockLedger.increment(uow, reservation.offer_id)
                    restored += 1
                expired += 1
        return expired, restored

    async def reclaim_expired_reservations(self) -> dict:
        """
        Expire every stale pending reservation and restore its unit.

        Returns:
            dict with reservations expired, units restored, batches run and
            reservations (or scans) that failed
        """
        stats = {
            "reservations_expired": 0,
            "stock_restored": 0,
            "batches": 0,
            "errors": 0,
        }

        now = self.clock()
        cutoff = now - self.payment_window
        skipped: Set[str] = set()

        while True:
            limit = self.batch_size + len(skipped)
            try:
                found = await self.store.find_stale_pending_ids(cutoff, limit)
            except Exception as e:
                logger.error(f"Error scanning stale reservations: {e}", exc_info=True)
                stats["errors"] += 1
                break

            ids = [reservation_id for reservation_id in found if reservation_id not in skipped]
            if not ids:
                break

            try:
                expired, restored = await self._expire(ids, now)
            except Exception as e:
                logger.warning(f"Batch of {len(ids)} reservations failed, retrying one at a time: {e}")
                expired, restored = 0, 0
                for reservation_id in ids:
                    try:
                        one_expired, one_restored = await self._expire([reservation_id], now)
                    except Exception as e:
                        logger.error(f"Could not reclaim reservation {reservation_id}: {e}", exc_info=True)
                        skipped.add(reservation_id)
                        stats["errors"] += 1
                        await alerting.alert_reclaim_failure(reservation_id, str(e))
                        continue
                    expired += one_expired
                    restored += one_restored

            stats["batches"] += 1
            stats["reservations_expired"] += expired
            stats["stock_restored"] += restored

            if len(found) < limit:
                break

        if stats["reservations_expired"]:
            logger.info(
                f"RESERVATION_METRIC: reclaimed expired={stats['reservations_expired']} "
                f"restored={stats['stock_restored']} batches={stats['batches']}"
            )
        else:
            logger.debug("No expired reservations to reclaim")

        return stats
