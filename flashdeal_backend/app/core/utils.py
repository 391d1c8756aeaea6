"""
Core Utilities

Shared helpers used across the application.
"""
import uuid
from datetime import datetime, timezone
from typing import Callable

# Services take a clock so tests can pin "now"
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque identifier for reservations and correlation tokens."""
    return uuid.uuid4().hex
