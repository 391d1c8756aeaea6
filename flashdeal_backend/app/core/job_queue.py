"""
Job Queue Configuration

ARQ worker settings for the reservation lifecycle jobs. Run with:
    arq app.core.job_queue.WorkerSettings
"""
from urllib.parse import urlparse

from arq import cron
from arq.connections import RedisSettings

from app.core.config import settings

# Import actual functions, not strings
from app.jobs.lifecycle import (
    startup,
    shutdown,
    reclaim_expired_reservations,
    sweep_expired_offers,
    notify_expiring_vouchers,
)


def parse_redis_url(url: str) -> RedisSettings:
    """Parse Redis URL into ARQ RedisSettings."""
    if not url:
        # Default to localhost
        return RedisSettings()

    # Parse redis://host:port/db or redis://:password@host:port/db
    parsed = urlparse(url)

    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password,
        database=int(parsed.path.lstrip("/") or 0) if parsed.path else 0,
    )


class WorkerSettings:
    """
    ARQ Worker configuration.

    Schedules:
    - Reclaim expired reservations: every 15 minutes
    - Sweep ended offers: hourly
    - Expiring voucher reminders: every 30 minutes
    """

    functions = [
        reclaim_expired_reservations,
        sweep_expired_offers,
        notify_expiring_vouchers,
    ]

    on_startup = startup
    on_shutdown = shutdown

    cron_jobs = [
        cron(
            reclaim_expired_reservations,
            minute={0, 15, 30, 45},
            unique=True,
        ),
        cron(
            sweep_expired_offers,
            minute=5,
            unique=True,
        ),
        cron(
            notify_expiring_vouchers,
            minute={10, 40},
            unique=True,
        ),
    ]

    # Redis connection
    redis_settings = parse_redis_url(settings.ARQ_REDIS_URL or settings.REDIS_URL)

    # Worker settings
    max_jobs = 10
    job_timeout = 300  # 5 minutes
    keep_result = 3600  # 1 hour

    # Retry settings
    max_tries = 3
    retry_delay = 60  # 1 minute between retries
