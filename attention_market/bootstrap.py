"""
Production wiring shared by the API process and the background workers.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass

from attention_market.db.pool import db_pool
from attention_market.features.notification_queue.repository.recipient_repository import (
    SegmentMembershipRepository,
)
from attention_market.features.notification_queue.services.engine import NotificationEngine
from attention_market.infrastructure.observability.logging import get_logger
from attention_market.services.channel_client import HttpOutboundChannel
from attention_market.services.openai_service import OpenAIValuationService
from attention_market.services.response_pipeline import HttpResponsePipeline

logger = get_logger(__name__)


@dataclass
class Collaborators:
    """External clients the engine and the debounce coordinator talk to."""

    valuation: OpenAIValuationService
    channel: HttpOutboundChannel
    response_pipeline: HttpResponsePipeline

    @classmethod
    def from_settings(cls) -> "Collaborators":
        return cls(
            valuation=OpenAIValuationService(),
            channel=HttpOutboundChannel(),
            response_pipeline=HttpResponsePipeline(),
        )

    async def close(self) -> None:
        for name, client in (
            ("response_pipeline", self.response_pipeline),
            ("channel", self.channel),
            ("valuation", self.valuation),
        ):
            try:
                await client.close()
            except Exception as e:
                logger.error("Error closing client", client=name, error=str(e))


def build_engine(collaborators: Collaborators) -> NotificationEngine:
    return NotificationEngine.build(
        collaborators.valuation,
        collaborators.channel,
        SegmentMembershipRepository,
    )


@asynccontextmanager
async def worker_engine():
    """Database pool plus a fully wired engine for a worker process."""
    await db_pool.initialize(role="worker")
    collaborators = None
    try:
        collaborators = Collaborators.from_settings()
        yield build_engine(collaborators)
    finally:
        if collaborators is not None:
            await collaborators.close()
        await db_pool.close()
