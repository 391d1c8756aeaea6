"""
Offer lifecycle sweeper

Hourly job that deactivates offers whose validity has ended. Stock is left
as is: confirmed vouchers for an ended offer are still honoured and pending
reservations are handled by the reclaimer.
"""
import logging

from app.core.utils import Clock, utcnow
from app.store.base import ReservationStore

logger = logging.getLogger(__name__)


class OfferSweeper:

    def __init__(self, store: ReservationStore, batch_size: int = 500, clock: Clock = utcnow):
        self.store = store
        self.batch_size = batch_size
        self.clock = clock

    async def sweep_expired_offers(self) -> dict:
        stats = {"offers_deactivated": 0, "errors": 0}
        now = self.clock()

        while True:
            try:
                ids = await self.store.find_offers_past_end_ids(now, self.batch_size)
            except Exception as e:
                logger.error(f"Error scanning ended offers: {e}", exc_info=True)
                stats["errors"] += 1
                break

            if not ids:
                break

            deactivated = 0
            try:
                async with self.store.transaction() as uow:
                    for offer_id in ids:
                        if await uow.deactivate_offer(offer_id, now):
                            deactivated += 1
            except Exception as e:
                logger.error(f"Error deactivating batch of {len(ids)} offers: {e}", exc_info=True)
                stats["errors"] += 1
                break

            stats["offers_deactivated"] += deactivated
            if len(ids) < self.batch_size:
                break

        if stats["offers_deactivated"]:
            logger.info(f"RESERVATION_METRIC: offers_deactivated={stats['offers_deactivated']}")
        return stats
