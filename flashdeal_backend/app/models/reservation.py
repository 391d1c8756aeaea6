"""
Reservation model

A consumer's claim on one unit of an offer.

Lifecycle:
1. pending    - created with the stock unit decremented, awaiting Pix payment
2. confirmed  - payment settled, voucher code issued (finalized=True)
3. used       - voucher redeemed at the business, unit permanently consumed
4. cancelled  - consumer cancelled after confirmation, unit returned
5. expired    - payment window elapsed unpaid, unit returned
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime, Numeric, Text, ForeignKey, Index, CheckConstraint

from app.core.database import Base


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(64), primary_key=True)
    offer_id = Column(String(64), ForeignKey("offers.id"), nullable=False, index=True)
    business_id = Column(String(128), nullable=False, index=True)
    consumer_id = Column(String(128), nullable=False, index=True)
    offer_title = Column(String(255), nullable=False)

    # Price captured from the offer snapshot at admission time
    amount_charged = Column(Numeric(12, 2), nullable=False)

    # Payment correlation
    correlation_token = Column(String(128), nullable=False, unique=True)
    gateway_charge_id = Column(String(128), nullable=True)
    gateway_payment_id = Column(String(128), nullable=True)
    payment_qr_code = Column(Text, nullable=True)
    payment_copy_paste = Column(Text, nullable=True)

    # Anti-replay guard, independent of status
    finalized = Column(Boolean, default=False, nullable=False)
    stock_held = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), default="pending", nullable=False)

    redemption_code = Column(String(16), nullable=True, unique=True)
    cancellation_reason = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False,
                        default=lambda: datetime.now(timezone.utc))
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    late_payment_at = Column(DateTime(timezone=True), nullable=True)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        # Reclaimer scans pending reservations by age
        Index("ix_reservations_status_created_at", status, created_at),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'used', 'cancelled', 'expired')",
            name="check_reservation_status",
        ),
        CheckConstraint(
            "stock_held = (status IN ('pending', 'confirmed'))",
            name="check_stock_held_matches_status",
        ),
        CheckConstraint(
            "(redemption_code IS NOT NULL) = (status IN ('confirmed', 'used'))",
            name="check_redemption_code_matches_status",
        ),
    )
