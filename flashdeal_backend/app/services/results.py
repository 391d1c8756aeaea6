"""
Service results

Lifecycle services return an OperationResult instead of raising, so a
caller can tell a domain rejection (not-found, failed-precondition,
permission-denied) from an infrastructure failure without catching.
"""
from typing import Any, Dict, Optional

from app.core.exceptions import ErrorKind, FlashDealError, PreconditionError


class OperationResult:
    """Result of a lifecycle operation."""

    def __init__(
        self,
        success: bool,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[FlashDealError] = None,
    ):
        self.success = success
        self.data = data or {}
        self.error = error

    @classmethod
    def ok(cls, **data) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: FlashDealError) -> "OperationResult":
        return cls(success=False, error=error)

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @property
    def reason(self) -> Optional[str]:
        if isinstance(self.error, PreconditionError):
            return self.error.reason.value
        return None

    def __repr__(self) -> str:
        if self.success:
            return f"OperationResult(success=True, data={self.data!r})"
        return f"OperationResult(success=False, kind={self.kind}, reason={self.reason})"
