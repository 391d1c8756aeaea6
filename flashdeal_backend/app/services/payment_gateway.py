"""
Pix payment gateway client

Creates one static Pix charge per reservation against an Asaas-compatible
API. The call is bounded by PIX_GATEWAY_TIMEOUT_SECONDS and is never
retried here: a retry could create a second charge for the same
reservation, so any failure is reported to the reservation manager which
compensates instead.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

import httpx

from app.core.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


@dataclass
class ChargeRequest:
    amount: Decimal
    description: str
    external_reference: str
    expires_at: datetime


@dataclass
class PayableReference:
    """What the consumer needs to pay: QR image, copy-paste payload and the gateway's charge id."""
    qr_code_image: str
    copy_paste: str
    charge_id: str

    def to_dict(self) -> dict:
        return {
            "qr_code_image": self.qr_code_image,
            "copy_paste": self.copy_paste,
            "charge_id": self.charge_id,
        }


class PaymentGateway(Protocol):
    async def create_charge(self, request: ChargeRequest) -> PayableReference:
        ...


class PixGatewayClient:
    """Asaas static QR code endpoint over httpx."""

    CHARGE_PATH = "/pix/qrCodes/static"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        address_key: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.address_key = address_key
        self.timeout_seconds = timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Content-Type": "application/json",
                "access_token": api_key,
            },
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def create_charge(self, request: ChargeRequest) -> PayableReference:
        payload = {
            "addressKey": self.address_key,
            "value": float(request.amount),
            "description": request.description,
            "expirationDate": request.expires_at.isoformat(),
            "externalReference": request.external_reference,
        }

        try:
            # httpx bounds each phase; wait_for bounds the call as a whole
            response = await asyncio.wait_for(
                self._client.post(self.CHARGE_PATH, json=payload),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"Pix gateway timed out for reference {request.external_reference}")
            raise PaymentGatewayError("Pix gateway timed out", timed_out=True) from e
        except httpx.HTTPError as e:
            logger.error(f"Pix gateway request failed for reference {request.external_reference}: {e}")
            raise PaymentGatewayError(f"Pix gateway request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                f"Pix gateway returned {response.status_code} for reference "
                f"{request.external_reference}: {response.text[:500]}"
            )
            raise PaymentGatewayError(
                "Pix gateway rejected the charge",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PaymentGatewayError(
                "Pix gateway returned a non-JSON body",
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise PaymentGatewayError("Pix gateway returned an unexpected body", status_code=response.status_code)

        return PayableReference(
            qr_code_image=data.get("encodedImage") or "",
            copy_paste=data.get("payload") or "",
            charge_id=data.get("id") or request.external_reference,
        )
