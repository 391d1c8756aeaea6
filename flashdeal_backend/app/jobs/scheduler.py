"""
In-process lifecycle scheduler

Runs the reclaimer, the offer sweeper and the voucher reminders on fixed
intervals inside the API process, with heartbeat metrics for /health.
Multi-instance deployments disable this (SCHEDULER_ENABLED=false) and run
the same jobs from the ARQ worker instead.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List

from app.core.container import ServiceContainer
from app.core.utils import utcnow
from app.services import alerting

logger = logging.getLogger(__name__)


def _new_heartbeat() -> dict:
    return {
        "last_run": None,
        "last_success": None,
        "records_processed": 0,
        "errors": 0,
    }


class LifecycleScheduler:

    def __init__(self, container: ServiceContainer):
        self.container = container
        settings = container.settings
        # job name -> (runner, interval in seconds)
        self.jobs: Dict[str, tuple] = {
            "reclaim_expired_reservations": (
                self._reclaim,
                settings.RECLAIM_INTERVAL_MINUTES * 60,
            ),
            "sweep_expired_offers": (
                self._sweep,
                settings.OFFER_SWEEP_INTERVAL_MINUTES * 60,
            ),
            "notify_expiring_vouchers": (
                self._remind,
                settings.VOUCHER_REMINDER_INTERVAL_MINUTES * 60,
            ),
        }
        self.heartbeats: Dict[str, dict] = {name: _new_heartbeat() for name in self.jobs}
        self._tasks: List[asyncio.Task] = []

    async def _reclaim(self) -> int:
        stats = await self.container.reclaimer.reclaim_expired_reservations()
        if stats["errors"]:
            raise RuntimeError(f"{stats['errors']} reservation(s) could not be reclaimed")
        return stats["reservations_expired"]

    async def _sweep(self) -> int:
        stats = await self.container.sweeper.sweep_expired_offers()
        if stats["errors"]:
            raise RuntimeError(f"{stats['errors']} sweep batch error(s)")
        return stats["offers_deactivated"]

    async def _remind(self) -> int:
        return await self.container.reminders.notify_expiring_vouchers()

    async def run_once(self, name: str) -> None:
        """Run one job and update its heartbeat. Never raises."""
        runner: Callable[[], Awaitable[int]] = self.jobs[name][0]
        heartbeat = self.heartbeats[name]
        heartbeat["last_run"] = utcnow().isoformat()
        try:
            processed = await runner()
            heartbeat["last_success"] = utcnow().isoformat()
            heartbeat["records_processed"] += processed
        except Exception as e:
            heartbeat["errors"] += 1
            logger.error(f"Scheduled job {name} failed: {e}")
            await alerting.alert_job_failure(name, str(e))

    async def _loop(self, name: str, interval_seconds: int) -> None:
        logger.info(f"{name} scheduler started (interval: {interval_seconds // 60} minutes)")
        while True:
            await self.run_once(name)
            await asyncio.sleep(interval_seconds)

    def start(self) -> None:
        for name, (_, interval) in self.jobs.items():
            self._tasks.append(asyncio.create_task(self._loop(name, interval)))

    async def stop(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Lifecycle schedulers cancelled")
