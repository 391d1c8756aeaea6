"""
Reservation Routes

Consumer-facing reservation lifecycle:
1. POST /reservations - reserve one unit and get the Pix charge to pay
2. POST /reservations/{id}/cancel - cancel a confirmed reservation before the cutoff

Rate limited: every admission creates a charge at the gateway.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from app.api.deps import Caller, get_container, require_role
from app.core.config import settings
from app.core.container import ServiceContainer
from app.core.error_handler import flashdeal_error_response
from app.core.rate_limit import caller_key, limiter
from app.schemas.reservation import CancellationRequest, OkResponse, ReservationCreate, ReservationCreated

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post("", status_code=201, response_model=ReservationCreated)
@limiter.limit(settings.RATE_LIMIT_RESERVATIONS, key_func=caller_key)
async def create_reservation(
    request: Request,
    payload: ReservationCreate,
    caller: Caller = Depends(require_role("consumer")),
    container: ServiceContainer = Depends(get_container),
):
    """
    Reserve one unit of an offer.

    Errors:
    - 404 offer not found
    - 409 offer inactive, expired or exhausted (`reason` says which)
    - 500 the Pix charge could not be created (the unit is released)
    """
    result = await container.reservations.create_reservation(caller.uid, payload.offer_id)
    if not result.success:
        return flashdeal_error_response(result.error)
    return result.data


@router.post("/{reservation_id}/cancel", response_model=OkResponse)
async def cancel_reservation(
    reservation_id: str,
    payload: Optional[CancellationRequest] = None,
    caller: Caller = Depends(require_role("consumer")),
    container: ServiceContainer = Depends(get_container),
):
    result = await container.cancellations.cancel_reservation(
        caller.uid, reservation_id, payload.reason if payload else None
    )
    if not result.success:
        return flashdeal_error_response(result.error)
    return {"ok": True}
