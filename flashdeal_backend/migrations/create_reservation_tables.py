"""
Migration: Create offers and reservations tables

Creates the offer inventory and reservation lifecycle tables. The CHECK
constraints keep stock within bounds and tie `stock_held` and the voucher
code to the reservation status, so a bug in application code fails the
transaction instead of corrupting inventory.
"""
import asyncio
import logging
import os
import sys

from sqlalchemy import text

# Ensure app modules are importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import settings  # noqa: E402
from app.core.database import create_engine, create_session_factory  # noqa: E402

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def table_exists(db, table_name: str) -> bool:
    result = await db.execute(
        text("SELECT EXISTS (SELECT 1 FROM information_schema.tables WHERE table_name = :name)"),
        {"name": table_name}
    )
    return result.scalar()


async def create_offers_table(db) -> None:
    if await table_exists(db, "offers"):
        logger.info("offers table already exists, skipping creation")
        return

    logger.info("Creating offers table")
    await db.execute(text("""
        CREATE TABLE offers (
            id VARCHAR(64) PRIMARY KEY,
            business_id VARCHAR(128) NOT NULL,
            title VARCHAR(255) NOT NULL,
            original_price NUMERIC(12, 2) NOT NULL,
            discounted_price NUMERIC(12, 2) NOT NULL,
            discount_percent INTEGER NOT NULL,
            total_units INTEGER NOT NULL,
            available_units INTEGER NOT NULL,
            starts_at TIMESTAMP WITH TIME ZONE NOT NULL,
            ends_at TIMESTAMP WITH TIME ZONE NOT NULL,
            active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            CONSTRAINT check_available_units_non_negative CHECK (available_units >= 0),
            CONSTRAINT check_available_units_within_total CHECK (available_units <= total_units),
            CONSTRAINT check_discounted_price_positive CHECK (discounted_price > 0)
        )
    """))

    await db.execute(text("CREATE INDEX ix_offers_business_id ON offers(business_id)"))
    await db.execute(text("CREATE INDEX ix_offers_active_ends_at ON offers(active, ends_at)"))


async def create_reservations_table(db) -> None:
    if await table_exists(db, "reservations"):
        logger.info("reservations table already exists, skipping creation")
        return

    logger.info("Creating reservations table")
    await db.execute(text("""
        CREATE TABLE reservations (
            id VARCHAR(64) PRIMARY KEY,
            offer_id VARCHAR(64) NOT NULL REFERENCES offers(id),
            business_id VARCHAR(128) NOT NULL,
            consumer_id VARCHAR(128) NOT NULL,
            offer_title VARCHAR(255) NOT NULL,
            amount_charged NUMERIC(12, 2) NOT NULL,
            correlation_token VARCHAR(128) NOT NULL UNIQUE,
            gateway_charge_id VARCHAR(128),
            gateway_payment_id VARCHAR(128),
            payment_qr_code TEXT,
            payment_copy_paste TEXT,
            finalized BOOLEAN NOT NULL DEFAULT FALSE,
            stock_held BOOLEAN NOT NULL DEFAULT TRUE,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            redemption_code VARCHAR(16) UNIQUE,
            cancellation_reason VARCHAR(500),
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            confirmed_at TIMESTAMP WITH TIME ZONE,
            cancelled_at TIMESTAMP WITH TIME ZONE,
            used_at TIMESTAMP WITH TIME ZONE,
            expired_at TIMESTAMP WITH TIME ZONE,
            late_payment_at TIMESTAMP WITH TIME ZONE,
            reminder_sent_at TIMESTAMP WITH TIME ZONE,
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            CONSTRAINT check_reservation_status
                CHECK (status IN ('pending', 'confirmed', 'used', 'cancelled', 'expired')),
            CONSTRAINT check_stock_held_matches_status
                CHECK (stock_held = (status IN ('pending', 'confirmed'))),
            CONSTRAINT check_redemption_code_matches_status
                CHECK ((redemption_code IS NOT NULL) = (status IN ('confirmed', 'used')))
        )
    """))

    logger.info("Creating indexes on reservations")
    await db.execute(text("CREATE INDEX ix_reservations_offer_id ON reservations(offer_id)"))
    await db.execute(text("CREATE INDEX ix_reservations_business_id ON reservations(business_id)"))
    await db.execute(text("CREATE INDEX ix_reservations_consumer_id ON reservations(consumer_id)"))
    await db.execute(text(
        "CREATE INDEX ix_reservations_status_created_at ON reservations(status, created_at)"
    ))
    await db.execute(text(
        "CREATE INDEX ix_reservations_late_payment_at ON reservations(late_payment_at) "
        "WHERE late_payment_at IS NOT NULL"
    ))


async def create_reservation_tables() -> None:
    engine = create_engine(settings)
    try:
        async with create_session_factory(engine)() as db:
            try:
                await create_offers_table(db)
                await create_reservations_table(db)
                await db.commit()
                logger.info("offers and reservations tables ready")
            except Exception:
                await db.rollback()
                logger.exception("Failed to create reservation tables")
                raise
    finally:
        await engine.dispose()


async def main():
    logger.info("Starting migration: create offers and reservations tables")
    await create_reservation_tables()
    logger.info("Migration complete")


if __name__ == "__main__":
    asyncio.run(main())
