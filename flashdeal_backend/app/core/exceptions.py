"""
FlashDeal Exception Hierarchy

Structured exception classes for the reservation lifecycle engine.
All exceptions include code, message, and details for audit trail and debugging.

Exception Hierarchy:
    FlashDealError
    ├── DomainError                 (terminal, returned to the caller)
    │   ├── NotFoundError
    │   ├── PreconditionError
    │   ├── PermissionDeniedError
    │   └── UnauthorizedError
    └── InfrastructureError         (store/gateway, may be retried)
        ├── InternalError
        ├── StoreError
        └── PaymentGatewayError
"""
import logging
from enum import Enum
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Error taxonomy exposed to callers."""
    NOT_FOUND = "not-found"
    FAILED_PRECONDITION = "failed-precondition"
    PERMISSION_DENIED = "permission-denied"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"


class PreconditionReason(str, Enum):
    """Which precondition failed for a FAILED_PRECONDITION error."""
    INACTIVE = "inactive"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    WRONG_STATUS = "wrong-status"
    CUTOFF_PASSED = "cutoff-passed"


OFFER_UNAVAILABLE_MESSAGE = "This offer is no longer available, choose another."
CANCELLATION_CLOSED_MESSAGE = "Cancellation window has closed."


class FlashDealError(Exception):
    """
    Base exception for all FlashDeal custom errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "FLASHDEAL_ERROR"
    default_severity: str = "P2"
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# DOMAIN ERRORS
# =============================================================================

class DomainError(FlashDealError):
    """Rejections caused by the request itself. Never retried automatically."""
    default_code = "DOMAIN_ERROR"
    default_severity = "P3"


class NotFoundError(DomainError):
    """Offer or reservation missing."""
    default_code = "NOT_FOUND"
    kind = ErrorKind.NOT_FOUND


class PreconditionError(DomainError):
    """Inactive/expired/exhausted offer, wrong reservation status, cutoff passed."""
    default_code = "FAILED_PRECONDITION"
    kind = ErrorKind.FAILED_PRECONDITION

    def __init__(self, message: str, reason: PreconditionReason, **kwargs):
        details = kwargs.pop("details", {})
        details["reason"] = reason.value
        self.reason = reason
        super().__init__(message, details=details, **kwargs)


class PermissionDeniedError(DomainError):
    """Caller does not own the resource."""
    default_code = "PERMISSION_DENIED"
    kind = ErrorKind.PERMISSION_DENIED


class UnauthorizedError(DomainError):
    """Webhook authentication failure. Attacker-facing only."""
    default_code = "UNAUTHORIZED"
    default_severity = "P2"
    kind = ErrorKind.UNAUTHORIZED


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================

class InfrastructureError(FlashDealError):
    """Base exception for store and gateway failures."""
    default_code = "INFRASTRUCTURE_ERROR"
    default_severity = "P1"
    kind = ErrorKind.INTERNAL


class InternalError(InfrastructureError):
    """Failure surfaced to the caller as `internal`."""
    default_code = "INTERNAL"


class StoreError(InfrastructureError):
    """The atomic store rejected or failed a unit of work."""
    default_code = "STORE_ERROR"


class PaymentGatewayError(InfrastructureError):
    """Pix gateway call failed or timed out."""
    default_code = "PAYMENT_GATEWAY_ERROR"
    default_severity = "P1"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        timed_out: bool = False,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "status_code": status_code,
            "timed_out": timed_out,
        })
        self.timed_out = timed_out
        super().__init__(message, details=details, **kwargs)


def offer_unavailable(reason: PreconditionReason, offer_id: str) -> PreconditionError:
    """Build the error returned when an offer cannot admit a reservation."""
    return PreconditionError(
        OFFER_UNAVAILABLE_MESSAGE,
        reason=reason,
        details={"offer_id": offer_id},
    )
