"""
Store records

Explicit, typed shapes for the two persisted collections. The store
implementations map their rows to and from these at the store boundary so
services never read untyped documents.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    USED = "used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Statuses in which a reservation holds one decremented stock unit
STOCK_HOLDING_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})

# Statuses in which a reservation carries a redemption code
CODE_BEARING_STATUSES = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.USED})


@dataclass
class OfferRecord:
    id: str
    business_id: str
    title: str
    original_price: Decimal
    discounted_price: Decimal
    discount_percent: int
    total_units: int
    available_units: int
    starts_at: datetime
    ends_at: datetime
    active: bool = True

    def has_ended(self, now: datetime) -> bool:
        return now >= self.ends_at


@dataclass
class ReservationRecord:
    id: str
    offer_id: str
    business_id: str
    consumer_id: str
    offer_title: str
    amount_charged: Decimal
    correlation_token: str
    created_at: datetime
    status: ReservationStatus = ReservationStatus.PENDING
    finalized: bool = False
    stock_held: bool = True
    redemption_code: Optional[str] = None
    cancellation_reason: Optional[str] = None
    gateway_charge_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    payment_qr_code: Optional[str] = None
    payment_copy_paste: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    late_payment_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None

    def check_invariants(self) -> None:
        """Raise ValueError if the record violates the lifecycle invariants."""
        if self.stock_held != (self.status in STOCK_HOLDING_STATUSES):
            raise ValueError(
                f"Reservation {self.id}: stock_held={self.stock_held} inconsistent with status={self.status.value}"
            )
        if (self.redemption_code is not None) != (self.status in CODE_BEARING_STATUSES):
            raise ValueError(
                f"Reservation {self.id}: redemption code presence inconsistent with status={self.status.value}"
            )
        if self.status in CODE_BEARING_STATUSES and not self.finalized:
            raise ValueError(f"Reservation {self.id}: {self.status.value} without finalized flag")
