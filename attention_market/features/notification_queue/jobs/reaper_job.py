"""
Stale-processing reaper.

A batch that crashes after claiming leaves its requests in processing.
Anything claimed more than PROCESSING_STALE_MINUTES ago is moved to failed
with "processing timed out". Requests are never returned to pending, since
some recipients may already have been forwarded the message.
"""

import asyncio

from attention_market.config import settings
from attention_market.db.pool import db_pool
from attention_market.features.notification_queue.repository.queue_repository import QueueRepository
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 60


async def reap_stale_processing(queue=QueueRepository, stale_minutes: int | None = None) -> list[str]:
    stale_minutes = stale_minutes or settings.PROCESSING_STALE_MINUTES
    reaped = await queue.fail_stale_processing(stale_minutes)
    logger.info("Stale processing sweep completed", reaped=len(reaped), stale_minutes=stale_minutes)
    return reaped


async def reaper_loop(
    queue=QueueRepository,
    *,
    interval_seconds: float | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    interval = interval_seconds if interval_seconds is not None else settings.REAPER_INTERVAL_SECONDS
    stop_event = stop_event or asyncio.Event()

    logger.info("Starting stale processing reaper", interval_seconds=interval)

    while not stop_event.is_set():
        delay = interval
        try:
            await reap_stale_processing(queue)
        except Exception as e:
            logger.error("Error in stale processing reaper", error=str(e), error_type=type(e).__name__)
            delay = ERROR_BACKOFF_SECONDS

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    logger.info("Stale processing reaper stopped")


async def start_reaper_scheduler() -> None:
    """Worker entrypoint; the reaper only needs the database."""
    await db_pool.initialize(role="reaper")
    try:
        await reaper_loop()
    finally:
        await db_pool.close()
