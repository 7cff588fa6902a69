"""
Webhook Transport — delivers one message as a JSON POST to a fixed endpoint.

Body:    {"to": <recipient>, "content": <content>}
Success: any 2xx status. Anything else, or a transport failure, raises
DeliveryError. Retrying is the dispatcher's job, not this client's.
"""
from __future__ import annotations

import structlog
from typing import Optional

import httpx

from core.errors import DeliveryError

logger = structlog.get_logger()


class WebhookClient:
    def __init__(
        self,
        url: str,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_s),
                limits=httpx.Limits(
                    max_connections=100,
                    max_keepalive_connections=10,
                    keepalive_expiry=90.0,
                ),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def deliver(self, recipient: str, content: str) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.post(self.url, json={"to": recipient, "content": content})
        except httpx.HTTPError as e:
            raise DeliveryError(f"error sending request: {e}", recipient=recipient) from e

        if not 200 <= response.status_code < 300:
            raise DeliveryError(
                f"unexpected status code: {response.status_code}",
                recipient=recipient,
                status_code=response.status_code,
            )

        logger.debug("webhook_delivered", to=recipient, status=response.status_code)
        return response

    async def close(self):
        if self._client:
            await self._client.aclose()
