"""
Voucher Routes

Business-facing redemption at the counter.
"""
import logging

from fastapi import APIRouter, Depends

from app.api.deps import Caller, get_container, require_role
from app.core.container import ServiceContainer
from app.core.error_handler import flashdeal_error_response
from app.schemas.voucher import VoucherRequest, VoucherSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vouchers", tags=["vouchers"])


@router.post("/validate", response_model=VoucherSummary)
async def validate_voucher(
    payload: VoucherRequest,
    caller: Caller = Depends(require_role("business")),
    container: ServiceContainer = Depends(get_container),
):
    """Check a code without consuming it."""
    result = await container.redemptions.validate_voucher(caller.uid, payload.code)
    if not result.success:
        return flashdeal_error_response(result.error)
    return result.data


@router.post("/redeem", response_model=VoucherSummary)
async def redeem_voucher(
    payload: VoucherRequest,
    caller: Caller = Depends(require_role("business")),
    container: ServiceContainer = Depends(get_container),
):
    result = await container.redemptions.redeem_voucher(caller.uid, payload.code)
    if not result.success:
        return flashdeal_error_response(result.error)
    return result.data
