# attention_market/services/channel_client.py
"""
Outbound channel client.

POSTs approved messages to the messaging gateway configured at
CHANNEL_SEND_URL. Transient HTTP failures are retried with backoff;
anything still failing is raised as DeliveryError with an error class the
delivery record keeps.
"""

import asyncio

import httpx

from attention_market.config import settings
from attention_market.features.notification_queue.domain import DeliveryError
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 3
BACKOFF_FACTOR = 0.5
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class HttpOutboundChannel:
    """OutboundChannel that delivers through an HTTP messaging gateway."""

    def __init__(
        self,
        send_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.send_url = send_url or settings.CHANNEL_SEND_URL
        self.api_key = api_key or settings.CHANNEL_API_KEY
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(settings.CHANNEL_TIMEOUT_SECONDS)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post_with_retry(self, body: dict) -> httpx.Response:
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.post(self.send_url, json=body, headers=self._headers())
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Channel send retrying",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.TimeoutException as e:
                if attempt >= MAX_RETRIES:
                    raise DeliveryError(f"Channel timed out: {e}", error_class="timeout") from e
                await asyncio.sleep(BACKOFF_FACTOR * (2 ** (attempt - 1)))
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise DeliveryError(f"Channel unreachable: {e}", error_class="network_error") from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug("Channel request error, retrying", attempt=attempt, error=str(e), backoff_seconds=backoff)
                await asyncio.sleep(backoff)
        raise DeliveryError("Channel retry loop exhausted", error_class="channel_error")

    async def send(self, recipient_id: str, content: str) -> None:
        if not self.send_url:
            raise DeliveryError("CHANNEL_SEND_URL not configured", error_class="not_configured", recoverable=False)

        response = await self._post_with_retry({"recipient": recipient_id, "text": content})

        if response.is_success:
            logger.info("Channel send accepted", recipient=recipient_id, status_code=response.status_code)
            return

        error_class = "rejected" if 400 <= response.status_code < 500 else "channel_error"
        logger.error(
            "Channel send failed",
            recipient=recipient_id,
            status_code=response.status_code,
            response_text=response.text[:200] if response.text else "",
        )
        raise DeliveryError(
            f"Channel returned HTTP {response.status_code}",
            error_class=error_class,
            recoverable=error_class != "rejected",
        )
