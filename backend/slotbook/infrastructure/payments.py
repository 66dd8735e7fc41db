"""
Razorpay order creation over the REST API.

Only the server-side half of the checkout lives here: creating the remote order
the hosted checkout pays against. Signature checks are in ``utils.signature``.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import Settings
from ..domain.errors import PaymentGatewayError, PaymentNotConfiguredError
from ..domain.repositories import PaymentGateway

logger = logging.getLogger(__name__)


class RazorpayGateway(PaymentGateway):
    def __init__(
        self,
        *,
        key_id: str,
        key_secret: str,
        api_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayGateway":
        return cls(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            api_url=settings.razorpay_api_url,
        )

    async def create_order(
        self,
        *,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[dict[str, str]] = None,
    ) -> str:
        if not self.key_id or not self.key_secret:
            raise PaymentNotConfiguredError()
        payload = {"amount": amount_minor, "currency": currency, "receipt": receipt, "notes": notes or {}}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                auth=(self.key_id, self.key_secret),
                transport=self._transport,
            ) as client:
                resp = await client.post(f"{self.api_url}/orders", json=payload)
        except httpx.HTTPError as exc:
            logger.error("Razorpay order request failed: %s", exc)
            raise PaymentGatewayError() from exc

        if resp.status_code >= 400:
            logger.error("Razorpay rejected order %s: %s %s", receipt, resp.status_code, resp.text[:500])
            raise PaymentGatewayError()
        order_id = resp.json().get("id")
        if not order_id:
            logger.error("Razorpay response for %s has no order id", receipt)
            raise PaymentGatewayError()
        return str(order_id)
