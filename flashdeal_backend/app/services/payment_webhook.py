"""
Pix payment webhook processor

The gateway delivers payment events at least once, possibly out of order
and possibly long after the reservation expired. Each settled payment must
confirm its reservation exactly once:

1. Authenticate the pre-shared token (constant time).
2. Ignore every event kind except a settled payment.
3. Correlate by the external reference sent when the charge was created.
4. `finalized` is the replay guard, checked and set under the row lock.
5. A payment for a reservation that already expired or was cancelled is
   flagged for manual reconciliation, never silently re-activated.
"""
import hmac
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from app.core.exceptions import InfrastructureError
from app.core.utils import Clock, utcnow
from app.services import alerting
from app.services.notifications import BackgroundDispatcher
from app.services.voucher_issuer import issue_unique_code
from app.store.base import ReservationStore
from app.store.records import ReservationRecord, ReservationStatus

logger = logging.getLogger(__name__)

SETTLED_EVENTS = frozenset({"PAYMENT_CONFIRMED", "PAYMENT_RECEIVED"})


class WebhookOutcome(str, Enum):
    CONFIRMED = "confirmed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNKNOWN_REFERENCE = "unknown-reference"
    LATE_PAYMENT = "late-payment"
    UNAUTHORIZED = "unauthorized"
    INVALID_PAYLOAD = "invalid-payload"
    RETRYABLE_FAILURE = "retryable-failure"


# HTTP status returned to the gateway; 5xx makes it redeliver
OUTCOME_HTTP_STATUS = {
    WebhookOutcome.CONFIRMED: 200,
    WebhookOutcome.DUPLICATE: 200,
    WebhookOutcome.IGNORED: 200,
    WebhookOutcome.UNKNOWN_REFERENCE: 200,
    WebhookOutcome.LATE_PAYMENT: 200,
    WebhookOutcome.UNAUTHORIZED: 401,
    WebhookOutcome.INVALID_PAYLOAD: 400,
    WebhookOutcome.RETRYABLE_FAILURE: 503,
}


@dataclass
class WebhookResult:
    outcome: WebhookOutcome
    reservation_id: Optional[str] = None
    redemption_code: Optional[str] = None

    @property
    def http_status(self) -> int:
        return OUTCOME_HTTP_STATUS[self.outcome]


@dataclass
class PaymentEvent:
    event: str
    external_reference: Optional[str]
    payment_id: Optional[str]
    event_id: Optional[str]


def parse_payment_event(raw_event: Union[bytes, str, Dict[str, Any]]) -> Optional[PaymentEvent]:
    """Parse an Asaas-style event body. Returns None for non-objects and non-string identifiers."""
    if isinstance(raw_event, (bytes, str)):
        try:
            data = json.loads(raw_event)
        except (ValueError, UnicodeDecodeError):
            return None
    else:
        data = raw_event

    if not isinstance(data, dict) or not isinstance(data.get("event"), str):
        return None

    payment = data.get("payment")
    if not isinstance(payment, dict):
        payment = {}

    external_reference = payment.get("externalReference")
    payment_id = payment.get("id")
    event_id = data.get("id")
    # Identifiers are stored and compared as strings
    for value in (external_reference, payment_id, event_id):
        if value is not None and not isinstance(value, str):
            return None

    return PaymentEvent(
        event=data["event"],
        external_reference=external_reference or None,
        payment_id=payment_id or None,
        event_id=event_id or None,
    )


class PaymentWebhookProcessor:

    def __init__(
        self,
        store: ReservationStore,
        webhook_token: str,
        notifier: Optional[BackgroundDispatcher] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.webhook_token = webhook_token
        self.notifier = notifier
        self.clock = clock

    def authenticate(self, auth_token: Optional[str]) -> bool:
        # An unset secret rejects everything
        if not self.webhook_token or not auth_token:
            return False
        return hmac.compare_digest(auth_token.encode(), self.webhook_token.encode())

    async def handle_payment_event(
        self,
        raw_event: Union[bytes, str, Dict[str, Any]],
        auth_token: Optional[str],
    ) -> WebhookResult:
        if not self.authenticate(auth_token):
            logger.warning("Pix webhook rejected: missing or invalid access token")
            return WebhookResult(WebhookOutcome.UNAUTHORIZED)

        event = parse_payment_event(raw_event)
        if event is None:
            logger.warning("Pix webhook rejected: body is not a JSON event object")
            return WebhookResult(WebhookOutcome.INVALID_PAYLOAD)

        if event.event not in SETTLED_EVENTS:
            logger.debug(f"Ignoring Pix webhook event {event.event}")
            return WebhookResult(WebhookOutcome.IGNORED)

        if not event.external_reference:
            logger.warning(f"Pix webhook {event.event} without externalReference")
            return WebhookResult(WebhookOutcome.INVALID_PAYLOAD)

        try:
            return await self._settle(event)
        except InfrastructureError as e:
            logger.error(f"Pix webhook for reference {event.external_reference} failed, gateway will retry: {e}")
            return WebhookResult(WebhookOutcome.RETRYABLE_FAILURE)

    async def _settle(self, event: PaymentEvent) -> WebhookResult:
        now = self.clock()
        first_late_flag = False

        async with self.store.transaction() as uow:
            reservation = await uow.get_reservation_by_correlation(event.external_reference)
            if reservation is None:
                logger.warning(f"Pix webhook for unknown reference {event.external_reference}")
                return WebhookResult(WebhookOutcome.UNKNOWN_REFERENCE)

            if reservation.finalized:
                logger.info(f"RESERVATION_METRIC: duplicate_payment_event reservation={reservation.id}")
                return WebhookResult(WebhookOutcome.DUPLICATE, reservation_id=reservation.id)

            if reservation.status != ReservationStatus.PENDING:
                if reservation.late_payment_at is None:
                    reservation.late_payment_at = now
                    reservation.gateway_payment_id = event.payment_id
                    await uow.save_reservation(reservation)
                    first_late_flag = True
                late = reservation
            else:
                late = None
                reservation.status = ReservationStatus.CONFIRMED
                reservation.finalized = True
                reservation.confirmed_at = now
                reservation.redemption_code = await issue_unique_code(uow)
                reservation.gateway_payment_id = event.payment_id
                await uow.save_reservation(reservation)

        if late is not None:
            return await self._report_late_payment(late, event, first_late_flag)

        logger.info(
            f"RESERVATION_METRIC: confirmed reservation={reservation.id} offer={reservation.offer_id} "
            f"payment={event.payment_id}"
        )
        self._notify_confirmed(reservation)
        return WebhookResult(
            WebhookOutcome.CONFIRMED,
            reservation_id=reservation.id,
            redemption_code=reservation.redemption_code,
        )

    async def _report_late_payment(
        self, reservation: ReservationRecord, event: PaymentEvent, first_time: bool
    ) -> WebhookResult:
        if first_time:
            logger.error(
                f"Late Pix payment {event.payment_id} for reservation {reservation.id} "
                f"in status {reservation.status.value}; flagged for manual reconciliation"
            )
            alert = alerting.alert_late_payment(
                reservation.id,
                reservation.status.value,
                event.payment_id,
                reservation.amount_charged,
            )
            if self.notifier is not None:
                self.notifier.spawn(alert, f"late payment alert for {reservation.id}")
            else:
                await alert
        else:
            logger.info(f"Late payment for reservation {reservation.id} already flagged")
        return WebhookResult(WebhookOutcome.LATE_PAYMENT, reservation_id=reservation.id)

    def _notify_confirmed(self, reservation: ReservationRecord) -> None:
        if self.notifier is None:
            return
        self.notifier.submit(
            reservation.consumer_id,
            "Your voucher is ready",
            f"Payment confirmed for {reservation.offer_title}. Your code is {reservation.redemption_code}.",
        )
        self.notifier.submit(
            reservation.business_id,
            "New confirmed reservation",
            f"A customer paid for {reservation.offer_title}.",
        )
