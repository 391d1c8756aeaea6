"""
FlashDeal Backend
FastAPI application entry point

- Lifecycle schedulers (reclaimer, offer sweeper, voucher reminders) with heartbeat metrics
- Rate limiting with SlowAPI
- Error sanitization middleware
- Health endpoint with store ping
- Request size limits
- HTTP client lifecycle management
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from app.api.routes import admin, reservations, vouchers, webhooks
from app.core.config import settings
from app.core.container import build_container
from app.core.error_handler import ErrorSanitizationMiddleware, flashdeal_exception_handler
from app.core.exceptions import FlashDealError
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.core.redis_client import close_redis
from app.jobs.scheduler import LifecycleScheduler

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the service container and start background schedulers.

    Shutdown drains pending notifications and closes the gateway,
    notification, store and Redis clients.
    """
    container = build_container(settings)
    app.state.container = container

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = LifecycleScheduler(container)
        scheduler.start()
        logger.info("Lifecycle schedulers ENABLED")
    else:
        logger.info("Lifecycle schedulers DISABLED via config")
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        await scheduler.stop()

    await container.close()
    await close_redis()
    logger.info("HTTP and store clients closed")


app = FastAPI(
    lifespan=lifespan,
    title="FlashDeal API",
    description="""
## FlashDeal Reservation API

Time-boxed, quantity-limited local deals paid with Pix.

### Flow
1. A consumer reserves one unit of an offer and receives a Pix QR code.
2. The payment gateway notifies the Pix webhook; the reservation is confirmed and a voucher code issued.
3. The business validates and redeems the voucher at the counter.

Unpaid reservations expire after 15 minutes and their unit returns to stock.

### Authentication
Bearer tokens issued by the identity provider (`sub` = user id, `role` = consumer/business/admin).
The Pix webhook authenticates with the `asaas-access-token` header instead.

### Rate Limits
- Reservations: 10 requests/minute
- General: 100 requests/minute
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check and monitoring endpoints"},
        {"name": "Reservations", "description": "Reserve and cancel offer units"},
        {"name": "Webhooks", "description": "Pix payment notifications"},
        {"name": "Vouchers", "description": "Voucher validation and redemption"},
        {"name": "Admin", "description": "Payment anomalies awaiting reconciliation"},
    ],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(FlashDealError, flashdeal_exception_handler)


# Request size limit middleware (1MB max, bodies here are tiny JSON)
MAX_REQUEST_SIZE = 1024 * 1024


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests that exceed the size limit."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE:
            logger.warning(
                f"Request size limit exceeded: {content_length} bytes from "
                f"{request.client.host if request.client else 'unknown'}"
            )
            return JSONResponse(
                status_code=413,
                content={
                    "error": "request_too_large",
                    "message": f"Request body exceeds maximum size of {MAX_REQUEST_SIZE // 1024}KB",
                },
            )
        return await call_next(request)


app.add_middleware(RequestSizeLimitMiddleware)

# Error sanitization (catches unhandled exceptions)
app.add_middleware(ErrorSanitizationMiddleware)

# CORS - adjust origins for production
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reservations.router, prefix="/api", tags=["Reservations"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(vouchers.router, prefix="/api", tags=["Vouchers"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check with an actual store ping and scheduler heartbeats.
    Returns 503 if the store is unreachable.
    """
    container = request.app.state.container
    scheduler = getattr(request.app.state, "scheduler", None)

    health_status = {
        "status": "healthy",
        "store": "unknown",
        "store_backend": settings.STORE_BACKEND,
        "schedulers": scheduler.heartbeats if scheduler else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if await container.store.ping():
        health_status["store"] = "connected"
    else:
        health_status["store"] = "unreachable"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
