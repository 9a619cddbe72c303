# attention_market/services/response_pipeline.py
"""
Client for the downstream response pipeline that generates replies once a
burst of human messages has settled.
"""

import httpx

from attention_market.config import settings
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ResponsePipelineError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class HttpResponsePipeline:
    """ResponsePipeline that triggers a reply through RESPONSE_PIPELINE_URL."""

    def __init__(self, url: str | None = None, client: httpx.AsyncClient | None = None):
        self.url = url or settings.RESPONSE_PIPELINE_URL
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(settings.CHANNEL_TIMEOUT_SECONDS))

    async def close(self) -> None:
        await self._client.aclose()

    async def respond(self, conversation_id: str, timestamp: str) -> None:
        if not self.url:
            raise ResponsePipelineError("RESPONSE_PIPELINE_URL not configured")

        response = await self._client.post(
            self.url,
            json={"conversation_id": conversation_id, "timestamp_when_triggered": timestamp},
        )
        if not response.is_success:
            raise ResponsePipelineError(
                f"Response pipeline returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        logger.info("Response pipeline triggered", conversation_id=conversation_id, timestamp=timestamp)
