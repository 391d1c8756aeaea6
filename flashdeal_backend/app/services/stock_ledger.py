"""
Stock ledger

The only writer of `offers.available_units`. Both operations take a unit of
work so they can never run outside a transaction that also writes the
reservation the unit belongs to.
"""
import logging

from app.core.exceptions import PreconditionReason, offer_unavailable
from app.store.base import UnitOfWork

logger = logging.getLogger(__name__)


class StockLedger:

    @staticmethod
    async def decrement_if_positive(uow: UnitOfWork, offer_id: str) -> None:
        """
        Take one unit from the offer.

        Raises PreconditionError(exhausted) when no unit is left, which
        aborts the surrounding unit of work.
        """
        if not await uow.decrement_available_units(offer_id):
            logger.info(f"RESERVATION_METRIC: stock_exhausted offer={offer_id}")
            raise offer_unavailable(PreconditionReason.EXHAUSTED, offer_id)

    @staticmethod
    async def increment(uow: UnitOfWork, offer_id: str, amount: int = 1) -> None:
        """Return units to the offer. Never exceeds total_units (StoreError)."""
        await uow.increment_available_units(offer_id, amount)
