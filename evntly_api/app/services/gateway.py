"""
Razorpay payment gateway client.

Only order creation is needed by the booking flow: the browser opens
the gateway checkout with the returned order id, and the outcome
arrives later through the signed webhook or the client verify call.
The client is an explicit object handed to the services that need it,
so tests can replace it with a fake.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from evntly_api.app.core.config import settings
from evntly_api.app.core.exceptions import ConfigurationError, PaymentGatewayError

logger = logging.getLogger(__name__)


class RazorpayGateway:
    """Creates orders through the Razorpay REST API.

    Parameters
    ----------
    api_url : Optional[str]
        Base URL of the API, ``settings.razorpay_api_url`` by default.
    timeout : Optional[float]
        Per-request timeout in seconds.
    max_attempts : Optional[int]
        Attempts per order on transport errors and 5xx responses.
    transport : Optional[httpx.AsyncBaseTransport]
        Custom transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = (api_url or settings.razorpay_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.gateway_timeout
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.gateway_max_attempts)
        self.transport = transport
        self.retry_delay = 0.5

    async def create_order(
        self,
        key_id: Optional[str],
        key_secret: Optional[str],
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create a gateway order and return the decoded response.

        ``amount`` is in minor currency units.  ``notes`` is stored by
        the gateway alongside the order and echoed back in webhooks.
        Raises ``PaymentGatewayError`` when the gateway rejects the
        order or stays unreachable after ``max_attempts`` tries.
        """
        if not key_id or not key_secret:
            raise ConfigurationError("Payment gateway credentials are not configured")
        payload = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": {k: str(v) for k, v in (notes or {}).items()},
        }
        last_error: Optional[str] = None
        async with httpx.AsyncClient(
            base_url=self.api_url,
            auth=(key_id, key_secret),
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    response = await client.post("/orders", json=payload)
                except httpx.TransportError as e:
                    last_error = f"transport error: {e}"
                    logger.warning("Gateway order attempt %s/%s failed: %s", attempt, self.max_attempts, e)
                else:
                    if response.status_code < 400:
                        data = response.json()
                        if not data.get("id"):
                            raise PaymentGatewayError("Payment gateway returned an order without id")
                        logger.info("Created gateway order %s for receipt %s", data["id"], receipt)
                        return data
                    if response.status_code < 500:
                        logger.error(
                            "Gateway rejected order for receipt %s: %s %s",
                            receipt,
                            response.status_code,
                            response.text,
                        )
                        raise PaymentGatewayError(f"Payment gateway rejected the order ({response.status_code})")
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(
                        "Gateway order attempt %s/%s returned %s", attempt, self.max_attempts, response.status_code
                    )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay * attempt)
        raise PaymentGatewayError(f"Payment gateway unavailable: {last_error}")
