"""
Notification dispatch

`notify(user_id, title, body)` is fire-and-forget from the caller's point of
view: the lifecycle services hand a message to the BackgroundDispatcher and
return. Delivery failures are logged on the dispatcher's own channel and
never reach the operation that triggered them.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Optional, Protocol, Set

import httpx

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def notify(self, user_id: str, title: str, body: str) -> None:
        ...


class LoggingNotificationDispatcher:
    """Used when no push service is configured (local development)."""

    async def notify(self, user_id: str, title: str, body: str) -> None:
        logger.info(f"Notification to {user_id}: {title} - {body}")


class HttpNotificationDispatcher:
    """Posts notifications to the push service."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def notify(self, user_id: str, title: str, body: str) -> None:
        response = await self._client.post(
            "/notifications",
            json={"user_id": user_id, "title": title, "body": body},
        )
        response.raise_for_status()

    async def close(self) -> None:
        await self._client.aclose()


class BackgroundDispatcher:
    """
    Runs notifications and alerts as tracked asyncio tasks.

    `drain()` waits for in-flight sends; it is called on shutdown and by
    tests that assert on delivered messages.
    """

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher
        self._tasks: Set[asyncio.Task] = set()
        self.failures = 0

    def submit(self, user_id: str, title: str, body: str) -> None:
        self.spawn(self.dispatcher.notify(user_id, title, body), f"notification to {user_id} ({title})")

    def spawn(self, side_effect: Awaitable, label: str) -> None:
        """Run any best-effort side effect (notification, alert) off the request path."""
        task = asyncio.create_task(self._run(side_effect, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, side_effect: Awaitable, label: str) -> None:
        try:
            await side_effect
        except Exception as e:
            self.failures += 1
            logger.warning(f"Background {label} failed: {e}")

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def format_brl(amount: Decimal) -> str:
    """Format an amount as Brazilian reais, e.g. R$ 1.234,50."""
    quantized = Decimal(amount).quantize(Decimal("0.01"))
    text = f"{quantized:,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")
