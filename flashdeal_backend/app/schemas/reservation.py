"""
Reservation schemas
"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class ReservationCreate(BaseModel):
    offer_id: str = Field(..., min_length=1, max_length=64)


class PayableReferenceResponse(BaseModel):
    qr_code_image: str
    copy_paste: str
    charge_id: str


class ReservationCreated(BaseModel):
    reservation_id: str
    payable_reference: PayableReferenceResponse
    expires_in_seconds: int


class CancellationRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OkResponse(BaseModel):
    ok: bool = True


class LatePaymentResponse(BaseModel):
    reservation_id: str
    offer_id: str
    business_id: str
    consumer_id: str
    status: str
    amount_charged: str
    gateway_payment_id: Optional[str]
    late_payment_at: datetime


class LatePaymentList(BaseModel):
    anomalies: List[LatePaymentResponse]
    total: int
