"""
Pix event markers in Redis

A marker per gateway event id lets any instance answer a redelivered Pix
webhook without touching the store. Markers are advisory: the reservation's
`finalized` flag is what actually prevents a second confirmation, so every
Redis failure here is logged and treated as "no marker".
"""
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)

PIX_EVENT_KEY = "webhook:pix:{event_id}"
PIX_EVENT_TTL_SECONDS = 24 * 3600

_client: Optional[redis.Redis] = None


def _redis() -> Optional[redis.Redis]:
    global _client
    if not settings.REDIS_URL:
        return None
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


async def pix_event_handled(event_id: str) -> bool:
    client = _redis()
    if client is None:
        return False
    try:
        return bool(await client.exists(PIX_EVENT_KEY.format(event_id=event_id)))
    except RedisError as e:
        logger.warning(f"Pix event marker lookup failed for {event_id}: {e}")
        return False


async def record_pix_event(event_id: str) -> None:
    client = _redis()
    if client is None:
        return
    try:
        await client.set(PIX_EVENT_KEY.format(event_id=event_id), "1", ex=PIX_EVENT_TTL_SECONDS)
    except RedisError as e:
        logger.warning(f"Could not record Pix event {event_id}: {e}")


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
