"""
Offer model

A business's time-boxed, quantity-limited discounted listing.
`available_units` is the authoritative stock count and is only written by
the stock ledger, inside a transaction that also writes a reservation.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Index, CheckConstraint
from sqlalchemy.sql import func

from app.core.database import Base


class Offer(Base):
    __tablename__ = "offers"

    id = Column(String(64), primary_key=True)
    business_id = Column(String(128), nullable=False, index=True)
    title = Column(String(255), nullable=False)

    # Pricing - Numeric(12,2) for monetary fields
    original_price = Column(Numeric(12, 2), nullable=False)
    discounted_price = Column(Numeric(12, 2), nullable=False)
    discount_percent = Column(Integer, nullable=False)

    # Inventory
    total_units = Column(Integer, nullable=False)
    available_units = Column(Integer, nullable=False)

    # Validity window
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=func.now()
    )

    __table_args__ = (
        # Sweeper scans active offers by end date
        Index("ix_offers_active_ends_at", active, ends_at),
        CheckConstraint("available_units >= 0", name="check_available_units_non_negative"),
        CheckConstraint("available_units <= total_units", name="check_available_units_within_total"),
        CheckConstraint("discounted_price > 0", name="check_discounted_price_positive"),
    )
