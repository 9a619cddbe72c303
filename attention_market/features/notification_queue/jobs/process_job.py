"""
Periodic batch processing.

Each cycle claims one batch; when the batch came back full there is likely
more waiting, so the next cycle starts immediately instead of sleeping.
"""

import asyncio

from attention_market.config import settings
from attention_market.features.notification_queue.services.engine import NotificationEngine
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 30


async def process_messages_loop(
    engine: NotificationEngine,
    *,
    interval_seconds: float | None = None,
    batch_size: int | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    interval = interval_seconds if interval_seconds is not None else settings.PROCESS_INTERVAL_SECONDS
    batch_size = batch_size or settings.PROCESS_BATCH_SIZE
    stop_event = stop_event or asyncio.Event()

    logger.info("Starting message processing scheduler", interval_seconds=interval, batch_size=batch_size)

    while not stop_event.is_set():
        try:
            result = await engine.processor.run_batch(batch_size)
            delay = 0 if result.claimed >= batch_size else interval
        except Exception as e:
            logger.error("Error in message processing scheduler", error=str(e), error_type=type(e).__name__)
            delay = ERROR_BACKOFF_SECONDS

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    logger.info("Message processing scheduler stopped")


async def start_process_messages_scheduler() -> None:
    """Worker entrypoint: wire production resources and run the loop forever."""
    from attention_market.bootstrap import worker_engine

    async with worker_engine() as engine:
        await process_messages_loop(engine)
