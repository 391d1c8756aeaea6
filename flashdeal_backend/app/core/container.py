"""
Service container

Wires the store, the gateway and the notifier into the lifecycle services
once per process. The FastAPI app keeps it on `app.state.container`; the ARQ
worker builds its own in `startup`.
"""
import logging
from typing import Optional

from app.core.config import Settings
from app.core.utils import Clock, utcnow
from app.services.cancellation_service import CancellationService
from app.services.notifications import (
    BackgroundDispatcher,
    HttpNotificationDispatcher,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from app.services.offer_sweeper import OfferSweeper
from app.services.payment_gateway import PaymentGateway, PixGatewayClient
from app.services.payment_webhook import PaymentWebhookProcessor
from app.services.redemption_service import RedemptionService
from app.services.reservation_reclaimer import ReservationReclaimer
from app.services.reservation_service import ReservationManager
from app.services.voucher_reminders import VoucherReminderJob
from app.store import ReservationStore, build_store

logger = logging.getLogger(__name__)


class ServiceContainer:

    def __init__(
        self,
        settings: Settings,
        store: ReservationStore,
        gateway: PaymentGateway,
        dispatcher: NotificationDispatcher,
        clock: Clock = utcnow,
    ):
        self.settings = settings
        self.store = store
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.notifier = BackgroundDispatcher(dispatcher)

        self.reservations = ReservationManager(
            store,
            gateway,
            payment_window_minutes=settings.PAYMENT_WINDOW_MINUTES,
            clock=clock,
        )
        self.webhooks = PaymentWebhookProcessor(
            store,
            webhook_token=settings.PIX_WEBHOOK_TOKEN,
            notifier=self.notifier,
            clock=clock,
        )
        self.cancellations = CancellationService(
            store,
            notifier=self.notifier,
            cutoff_minutes=settings.CANCELLATION_CUTOFF_MINUTES,
            clock=clock,
        )
        self.redemptions = RedemptionService(store, notifier=self.notifier, clock=clock)
        self.reclaimer = ReservationReclaimer(
            store,
            payment_window_minutes=settings.PAYMENT_WINDOW_MINUTES,
            batch_size=settings.RECLAIM_BATCH_SIZE,
            clock=clock,
        )
        self.sweeper = OfferSweeper(store, batch_size=settings.RECLAIM_BATCH_SIZE, clock=clock)
        self.reminders = VoucherReminderJob(
            store,
            notifier=self.notifier,
            window_minutes=settings.VOUCHER_REMINDER_WINDOW_MINUTES,
            batch_size=settings.RECLAIM_BATCH_SIZE,
            clock=clock,
        )

    async def close(self) -> None:
        await self.notifier.drain()
        for client in (self.gateway, self.dispatcher):
            close = getattr(client, "close", None)
            if close is not None:
                await close()
        await self.store.close()


def build_container(settings: Settings, store: Optional[ReservationStore] = None) -> ServiceContainer:
    """Build the production wiring from settings."""
    if store is None:
        store = build_store(settings.STORE_BACKEND)

    gateway = PixGatewayClient(
        base_url=settings.PIX_GATEWAY_URL,
        api_key=settings.PIX_GATEWAY_API_KEY,
        address_key=settings.PIX_ADDRESS_KEY,
        timeout_seconds=settings.PIX_GATEWAY_TIMEOUT_SECONDS,
    )

    if settings.NOTIFICATION_SERVICE_URL:
        dispatcher = HttpNotificationDispatcher(
            settings.NOTIFICATION_SERVICE_URL,
            token=settings.NOTIFICATION_SERVICE_TOKEN,
            timeout_seconds=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
    else:
        logger.info("NOTIFICATION_SERVICE_URL not set, notifications are logged only")
        dispatcher = LoggingNotificationDispatcher()

    logger.info(f"Service container built with {settings.STORE_BACKEND} store")
    return ServiceContainer(settings, store, gateway, dispatcher)
