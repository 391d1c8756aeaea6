"""
Admin Routes

Payment anomalies awaiting manual reconciliation: Pix payments that
settled after their reservation expired or was cancelled.
"""
import logging

from fastapi import APIRouter, Depends, Query

from app.api.deps import Caller, get_container, require_role
from app.core.container import ServiceContainer
from app.schemas.reservation import LatePaymentList

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/payment-anomalies", response_model=LatePaymentList)
async def list_payment_anomalies(
    limit: int = Query(100, ge=1, le=500),
    caller: Caller = Depends(require_role("admin")),
    container: ServiceContainer = Depends(get_container),
):
    reservations = await container.store.list_late_payments(limit)
    anomalies = [
        {
            "reservation_id": r.id,
            "offer_id": r.offer_id,
            "business_id": r.business_id,
            "consumer_id": r.consumer_id,
            "status": r.status.value,
            "amount_charged": str(r.amount_charged),
            "gateway_payment_id": r.gateway_payment_id,
            "late_payment_at": r.late_payment_at,
        }
        for r in reservations
    ]
    return {"anomalies": anomalies, "total": len(anomalies)}
