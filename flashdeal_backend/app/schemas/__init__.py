from app.schemas.reservation import (
    ReservationCreate,
    ReservationCreated,
    PayableReferenceResponse,
    CancellationRequest,
    OkResponse,
    LatePaymentResponse,
    LatePaymentList,
)
from app.schemas.voucher import VoucherRequest, VoucherSummary
