"""
Reservation Lifecycle Jobs

ARQ job functions for the timer-driven parts of the lifecycle. Each job
uses the ServiceContainer the worker builds in `startup`.
"""
import logging

from app.core.config import settings
from app.core.container import build_container
from app.services import alerting

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:
    ctx["container"] = build_container(settings)
    logger.info("Lifecycle worker started")


async def shutdown(ctx: dict) -> None:
    container = ctx.get("container")
    if container is not None:
        await container.close()
    logger.info("Lifecycle worker stopped")


async def reclaim_expired_reservations(ctx: dict) -> dict:
    """Expire unpaid reservations past the payment window and restore stock."""
    stats = await ctx["container"].reclaimer.reclaim_expired_reservations()
    if stats["errors"]:
        await alerting.alert_job_failure("reclaim_expired_reservations", f"{stats['errors']} batch error(s)")
    return stats


async def sweep_expired_offers(ctx: dict) -> dict:
    """Deactivate offers whose validity ended."""
    stats = await ctx["container"].sweeper.sweep_expired_offers()
    if stats["errors"]:
        await alerting.alert_job_failure("sweep_expired_offers", f"{stats['errors']} batch error(s)")
    return stats


async def notify_expiring_vouchers(ctx: dict) -> dict:
    """Remind consumers whose voucher lapses within the hour."""
    container = ctx["container"]
    reminded = await container.reminders.notify_expiring_vouchers()
    await container.notifier.drain()
    return {"status": "complete", "reminded": reminded}
