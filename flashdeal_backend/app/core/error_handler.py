"""
Error handling and sanitization middleware

Maps lifecycle errors to HTTP responses and sanitizes anything unhandled
to prevent internal information leakage:
- Database errors → generic message
- Stack traces → logged only, not returned to client
- Validation errors → kept as-is (safe to expose)
"""
import logging
import traceback
from typing import Union

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.exceptions import ErrorKind, FlashDealError, PreconditionError

logger = logging.getLogger(__name__)

# Patterns that indicate internal/sensitive error information
SENSITIVE_PATTERNS = [
    "password",
    "secret",
    "token",
    "key",
    "credential",
    "sqlalchemy",
    "asyncpg",
    "psycopg",
    "postgresql",
    "mysql",
    "sqlite",
    "traceback",
    "file \"",
    "line ",
    "/app/",
    "\\app\\",
]


def is_sensitive_error(message: str) -> bool:
    """Check if error message contains sensitive information."""
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_error_message(error: Union[str, Exception]) -> str:
    """Sanitize an error message for safe client exposure."""
    if isinstance(error, str):
        message = error
    else:
        message = str(error)

    # In debug mode, return full message
    if settings.DEBUG:
        return message

    # Check for sensitive patterns
    if is_sensitive_error(message):
        return "An internal error occurred. Please try again later."

    # Truncate very long messages
    if len(message) > 200:
        return message[:200] + "..."

    return message


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Middleware to catch unhandled exceptions and sanitize error responses.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except HTTPException:
            # Let FastAPI handle HTTPExceptions normally
            raise
        except Exception as e:
            # Log full error with traceback
            error_id = f"{request.client.host if request.client else 'unknown'}-{id(e)}"
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            # Return sanitized response
            if settings.DEBUG:
                return JSONResponse(
                    status_code=500,
                    content={
                        "error": "internal_error",
                        "message": str(e),
                        "type": type(e).__name__,
                        "error_id": error_id,
                    }
                )
            else:
                return JSONResponse(
                    status_code=500,
                    content={
                        "error": "internal_error",
                        "message": "An unexpected error occurred. Please try again later.",
                        "error_id": error_id,
                    }
                )


# Error kind -> HTTP status for lifecycle operations
ERROR_KIND_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FAILED_PRECONDITION: 409,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.INTERNAL: 500,
}


def flashdeal_error_response(error: FlashDealError) -> JSONResponse:
    """Render a lifecycle error as {"error", "reason", "message"}."""
    status_code = ERROR_KIND_STATUS.get(error.kind, 500)
    reason = error.reason.value if isinstance(error, PreconditionError) else None

    if status_code >= 500:
        message = sanitize_error_message(error.message)
    else:
        message = error.message

    return JSONResponse(
        status_code=status_code,
        content={
            "error": error.kind.value,
            "reason": reason,
            "message": message,
        },
    )


async def flashdeal_exception_handler(request: Request, exc: FlashDealError) -> JSONResponse:
    """Exception handler for lifecycle errors raised outside a service boundary."""
    if exc.kind == ErrorKind.INTERNAL:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.to_dict()}")
    return flashdeal_error_response(exc)
