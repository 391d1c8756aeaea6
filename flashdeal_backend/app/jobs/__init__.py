"""
Jobs Package

Timer-driven reservation lifecycle: ARQ job functions and the in-process
interval scheduler.
"""
from app.jobs.lifecycle import (
    reclaim_expired_reservations,
    sweep_expired_offers,
    notify_expiring_vouchers,
)
from app.jobs.scheduler import LifecycleScheduler
