"""
Alerting Service

PagerDuty integration for conditions that need a human:
- Pix payments that arrived after the reservation left pending
- Failed compensation after a gateway error (stock held until reclaimed)
- Scheduled job failures

Alerts never raise: a failed alert degrades to a CRITICAL log line.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

# PagerDuty API
PAGERDUTY_EVENTS_API = "https://events.pagerduty.com/v2/enqueue"

# Alert severity mapping
SEVERITY_MAPPING = {
    "critical": "critical",
    "high": "error",
    "warning": "warning",
    "info": "info",
}


async def send_pagerduty_alert(
    severity: str,
    summary: str,
    details: Optional[Dict[str, Any]] = None,
    source: str = "flashdeal-backend",
    component: str = "reservations",
    group: str = "reservation-lifecycle",
    dedup_key: Optional[str] = None,
) -> bool:
    """
    Send an alert to PagerDuty.

    Args:
        severity: Alert severity (critical, high, warning, info)
        summary: Short summary of the alert
        details: Additional details for the alert
        source: Source of the alert
        component: Component that generated the alert
        group: Logical grouping for the alert
        dedup_key: Deduplication key (optional)

    Returns:
        True if alert was sent successfully
    """
    pd_severity = SEVERITY_MAPPING.get(severity.lower(), "warning")

    if not settings.PAGERDUTY_ENABLED or not settings.PAGERDUTY_ROUTING_KEY:
        logger.warning(f"Alert [{pd_severity}] (PagerDuty disabled): {summary}")
        if details:
            logger.warning(f"Alert details: {json.dumps(details, default=str)}")
        return False

    payload = {
        "routing_key": settings.PAGERDUTY_ROUTING_KEY,
        "event_action": "trigger",
        "payload": {
            "summary": summary[:1024],  # PagerDuty limit
            "severity": pd_severity,
            "source": source,
            "component": component,
            "group": group,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "custom_details": details or {},
        },
    }

    if dedup_key:
        payload["dedup_key"] = dedup_key

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(PAGERDUTY_EVENTS_API, json=payload)

        if response.status_code == 202:
            logger.info(f"PagerDuty alert sent: {summary}")
            return True
        logger.error(f"PagerDuty API error: {response.status_code} - {response.text}")
        return False

    except httpx.HTTPError as e:
        logger.error(f"Failed to send PagerDuty alert: {e}")
        logger.critical(f"[ALERT FAILED] {summary}")
        if details:
            logger.critical(f"[ALERT FAILED] Details: {json.dumps(details, default=str)}")
        return False


# Convenience functions for specific alert types


async def alert_late_payment(
    reservation_id: str,
    status: str,
    payment_id: Optional[str],
    amount: Any,
) -> bool:
    """A settled Pix payment matched a reservation that is no longer pending."""
    return await send_pagerduty_alert(
        severity="high",
        summary=f"[LATE PAYMENT] Reservation {reservation_id} paid while {status}",
        details={
            "reservation_id": reservation_id,
            "status": status,
            "gateway_payment_id": payment_id,
            "amount": str(amount),
            "action": "Refund the consumer or re-issue the voucher manually",
        },
        component="payment-webhook",
        dedup_key=f"late-payment-{reservation_id}",
    )


async def alert_compensation_failure(
    reservation_id: str,
    offer_id: str,
    error: str,
) -> bool:
    """Stock stays held by an unpaid reservation until the reclaimer runs."""
    return await send_pagerduty_alert(
        severity="critical",
        summary=f"[COMPENSATION FAILED] Reservation {reservation_id} not rolled back after gateway failure",
        details={
            "reservation_id": reservation_id,
            "offer_id": offer_id,
            "error": error[:500],
            "action": "Unit is restored by the reclaimer after the payment window; verify store health",
        },
        component="reservation-manager",
        dedup_key=f"compensation-{reservation_id}",
    )


async def alert_reclaim_failure(reservation_id: str, error: str) -> bool:
    """An expired reservation could not be reclaimed; its unit stays held."""
    return await send_pagerduty_alert(
        severity="high",
        summary=f"[RECLAIM FAILED] Reservation {reservation_id} could not be expired",
        details={
            "reservation_id": reservation_id,
            "error": error[:500],
            "action": "Check the offer's unit counts; the reservation is retried on every run",
        },
        component="reservation-reclaimer",
        dedup_key=f"reclaim-{reservation_id}",
    )


async def alert_job_failure(job_name: str, error: str) -> bool:
    """Scheduled lifecycle job raised or reported errors."""
    return await send_pagerduty_alert(
        severity="warning",
        summary=f"[JOB FAILURE] {job_name} failed",
        details={
            "job": job_name,
            "error": error[:500],
        },
        component="scheduler",
        dedup_key=f"job-failure-{job_name}",
    )
