"""
Voucher schemas
"""
from pydantic import BaseModel, Field


class VoucherRequest(BaseModel):
    code: str = Field(..., min_length=3, max_length=16)


class VoucherSummary(BaseModel):
    reservation_id: str
    code: str
    offer_title: str
    amount_charged: str
    consumer_id: str
    status: str
