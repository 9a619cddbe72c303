"""
Debounce Coordinator.

Coalesces a burst of human messages in one conversation into a single
downstream response. Every inbound message overwrites the conversation's
"latest" token in Redis and schedules a delayed trigger carrying that token.
A token is the message timestamp plus a random suffix, so messages sharing a
timestamp stay distinguishable. When a trigger wakes up it only proceeds if
its token is still the latest; every earlier trigger finds a newer value and
drops out.

Last write wins, no lock is taken. If Redis cannot be read when a trigger
fires, the trigger proceeds: a duplicate reply is preferred over none.
"""

import asyncio
import uuid
from datetime import UTC, datetime

from attention_market.config import settings
from attention_market.features.notification_queue.services.capabilities import ResponsePipeline
from attention_market.infrastructure.observability.logging import get_logger
from attention_market.services.redis_client import FastRedisClient

logger = get_logger(__name__)

KEY_PREFIX = "debounce:latest:"
TOKEN_SEPARATOR = "#"


class DebounceStoreError(Exception):
    """The latest-timestamp entry could not be written."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


def debounce_key(conversation_id: str) -> str:
    return f"{KEY_PREFIX}{conversation_id}"


def make_trigger_token(timestamp: str) -> str:
    """Per-message token; two messages sharing a timestamp still get distinct tokens."""
    return f"{timestamp}{TOKEN_SEPARATOR}{uuid.uuid4().hex}"


def token_timestamp(token: str) -> str:
    return token.partition(TOKEN_SEPARATOR)[0]


def to_trigger_timestamp(created_at: datetime | str | None) -> str:
    if created_at is None:
        return datetime.now(UTC).isoformat()
    if isinstance(created_at, datetime):
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return created_at.isoformat()
    return str(created_at)


class DebounceCoordinator:
    def __init__(
        self,
        store: FastRedisClient,
        pipeline: ResponsePipeline,
        *,
        delay_seconds: float | None = None,
        ttl_seconds: int | None = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.delay_seconds = delay_seconds if delay_seconds is not None else settings.DEBOUNCE_DELAY_SECONDS
        self.ttl_seconds = ttl_seconds or settings.DEBOUNCE_KEY_TTL_SECONDS
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def on_inbound(self, conversation_id: str, created_at: datetime | str | None = None) -> str:
        """Record the message as the conversation's latest and schedule its trigger."""
        timestamp = to_trigger_timestamp(created_at)
        token = make_trigger_token(timestamp)

        stored = await self.store.set_with_ttl(debounce_key(conversation_id), token, self.ttl_seconds)
        if not stored:
            raise DebounceStoreError(f"Could not record debounce timestamp for {conversation_id}")

        task = asyncio.create_task(self._fire_after_delay(conversation_id, token))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        logger.debug(
            "Debounce trigger scheduled",
            conversation_id=conversation_id,
            timestamp=timestamp,
            delay_seconds=self.delay_seconds,
        )
        return timestamp

    async def fire(self, conversation_id: str, token: str) -> bool:
        """Invoke the response pipeline if token is still the conversation's latest."""
        timestamp = token_timestamp(token)
        latest = await self.store.get(debounce_key(conversation_id))

        if latest is not None and latest != token:
            logger.debug(
                "Stale debounce trigger dropped",
                conversation_id=conversation_id,
                timestamp=timestamp,
                latest=latest,
            )
            return False

        if latest is None:
            store_reachable = await self.store.ping()
            logger.warning(
                "Debounce entry missing, proceeding",
                conversation_id=conversation_id,
                store_reachable=store_reachable,
                cause="expired" if store_reachable else "store_unavailable",
            )

        await self.pipeline.respond(conversation_id, timestamp)
        logger.info("Debounced response triggered", conversation_id=conversation_id, timestamp=timestamp)
        return True

    async def _fire_after_delay(self, conversation_id: str, token: str) -> None:
        await asyncio.sleep(self.delay_seconds)
        try:
            await self.fire(conversation_id, token)
        except Exception:
            logger.exception(
                "Debounced response failed",
                conversation_id=conversation_id,
                timestamp=token_timestamp(token),
            )

    async def close(self) -> None:
        """Cancel triggers that have not fired yet."""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("Cancelled pending debounce triggers", count=len(pending))
