# storefront/integrations/mailer.py
"""
Transactional email connector.

Posts a rendered message to an HTTP mail API. When no API URL is
configured the message is logged and reported as not sent.
"""

import logging
from typing import Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception, before_sleep_log

logger = logging.getLogger(__name__)


def is_retryable_error(exception) -> bool:
    """Return True if exception is a transport error or a retryable HTTP error (429, 5xx)."""
    if isinstance(exception, httpx.TransportError):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        status = exception.response.status_code
        return status == 429 or status >= 500
    return False


class EmailConnector:

    def __init__(
        self,
        api_url: Optional[str],
        api_key: Optional[str],
        sender: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.transport = transport

    def _headers(self) -> dict:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @retry(
        retry=retry_if_exception(is_retryable_error),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
        stop=stop_after_attempt(3),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def send_transactional(self, to_email: str, subject: str, html: str) -> bool:
        """Send one message. Returns False when mail delivery is not configured."""
        if not self.api_url:
            logger.info(f"Email to {to_email} skipped (no EMAIL_API_URL): {subject}")
            return False

        payload = {"from": self.sender, "to": [to_email], "subject": subject, "html": html}
        async with httpx.AsyncClient(transport=self.transport, timeout=10.0) as client:
            response = await client.post(self.api_url, json=payload, headers=self._headers())
            response.raise_for_status()

        logger.info(f"Email sent to {to_email}: {subject}")
        return True
