# storefront/integrations/razorpay.py
"""
Razorpay REST client.

Thin async wrapper around the three gateway endpoints checkout needs:
create an order (payment intent), fetch it back (for its notes), and fetch a
captured payment (for its method). Transient failures on the two reads are
retried with exponential backoff; every call goes through an optional circuit
breaker.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception, before_sleep_log

from storefront.integrations.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A failed gateway call; ``description`` is the gateway's own message when it sent one."""

    def __init__(self, message: str, status_code: Optional[int] = None, description: Optional[str] = None):
        self.status_code = status_code
        self.description = description
        super().__init__(message)

    @classmethod
    def from_response(cls, response: httpx.Response) -> "GatewayError":
        description = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            description = body["error"].get("description")
        return cls(
            f"Razorpay {response.request.method} {response.request.url.path} returned {response.status_code}",
            status_code=response.status_code,
            description=description,
        )


def is_retryable_error(exception) -> bool:
    """Return True for transport failures and 429/5xx gateway responses."""
    if isinstance(exception, httpx.TransportError):
        return True
    if isinstance(exception, GatewayError) and exception.status_code:
        return exception.status_code == 429 or exception.status_code >= 500
    return False


class RazorpayClient:
    """
    Async Razorpay API client.

    Built once per process (see main.lifespan) and shared by requests.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self.breaker = breaker
        self._http = httpx.AsyncClient(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
        )

    async def close(self):
        await self._http.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        async def _execute():
            response = await self._http.request(method, path, **kwargs)
            if response.is_error:
                raise GatewayError.from_response(response)
            return response.json()

        if self.breaker:
            return await self.breaker.call(_execute)
        return await _execute()

    @retry(
        retry=retry_if_exception(is_retryable_error),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=5),
        stop=stop_after_attempt(3),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def _fetch(self, path: str) -> Dict[str, Any]:
        """GET with retries; only reads are safe to repeat."""
        return await self._send("GET", path)

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create a gateway order. ``amount`` is in minor units (paise)."""
        payload: Dict[str, Any] = {"amount": amount, "currency": currency, "receipt": receipt}
        if notes:
            payload["notes"] = notes
        # Not retried: a timeout after the gateway accepted the POST would create a second order.
        order = await self._send("POST", "/orders", json=payload)
        logger.info(f"Razorpay order created: {order.get('id')} ({amount} {currency})")
        return order

    async def fetch_order(self, order_id: str) -> Dict[str, Any]:
        return await self._fetch(f"/orders/{order_id}")

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._fetch(f"/payments/{payment_id}")
