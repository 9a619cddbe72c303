import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from attention_market.features.notification_queue.domain import RequestStatus
from attention_market.features.notification_queue.jobs import (
    process_messages_loop,
    reap_stale_processing,
    reaper_loop,
)
from attention_market.features.notification_queue.services.batch_processor import BatchResult


def segment_body(segment_id="s"):
    return {"target": {"type": "segment", "segment_id": segment_id}, "source": "shop", "payload": {"text": "hi"}}


@pytest.mark.asyncio
async def test_reaper_fails_requests_stuck_in_processing(fakes, engine):
    fakes.segments.segments["s"] = []
    stuck = await engine.ingestion.submit(segment_body())
    fresh = await engine.ingestion.submit(segment_body())
    await fakes.queue.claim_pending(10)
    fakes.queue.claimed_at[stuck.id] = datetime.now(UTC) - timedelta(minutes=30)

    reaped = await reap_stale_processing(fakes.queue, stale_minutes=15)

    assert reaped == [stuck.id]
    assert fakes.queue.requests[stuck.id].status == RequestStatus.FAILED
    assert fakes.queue.requests[stuck.id].error == "processing timed out"
    assert fakes.queue.requests[fresh.id].status == RequestStatus.PROCESSING


@pytest.mark.asyncio
async def test_late_completion_after_reap_is_ignored(fakes, engine):
    stuck = await engine.ingestion.submit(segment_body())
    await fakes.queue.claim_pending(10)
    fakes.queue.claimed_at[stuck.id] = datetime.now(UTC) - timedelta(minutes=30)
    await reap_stale_processing(fakes.queue, stale_minutes=15)

    assert await fakes.queue.mark_completed(stuck.id) is False
    assert fakes.queue.requests[stuck.id].status == RequestStatus.FAILED


@pytest.mark.asyncio
async def test_process_loop_drains_queue_then_stops(fakes, engine):
    fakes.segments.segments["s"] = []
    for _ in range(5):
        await engine.ingestion.submit(segment_body())
    stop_event = asyncio.Event()

    task = asyncio.create_task(
        process_messages_loop(engine, interval_seconds=0.01, batch_size=2, stop_event=stop_event)
    )
    await asyncio.sleep(0.1)
    stop_event.set()
    await asyncio.wait_for(task, timeout=1)

    assert all(r.status == RequestStatus.COMPLETED for r in fakes.queue.requests.values())


@pytest.mark.asyncio
async def test_process_loop_survives_batch_errors(engine, monkeypatch):
    calls = {"count": 0}

    async def flaky_run_batch(batch_size):
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("database went away")
        return BatchResult()

    monkeypatch.setattr(engine.processor, "run_batch", flaky_run_batch)
    monkeypatch.setattr(
        "attention_market.features.notification_queue.jobs.process_job.ERROR_BACKOFF_SECONDS", 0.01
    )
    stop_event = asyncio.Event()

    task = asyncio.create_task(process_messages_loop(engine, interval_seconds=0.01, batch_size=1, stop_event=stop_event))
    await asyncio.sleep(0.1)
    stop_event.set()
    await asyncio.wait_for(task, timeout=1)

    assert calls["count"] > 1


@pytest.mark.asyncio
async def test_reaper_loop_stops_on_event(fakes):
    stop_event = asyncio.Event()
    task = asyncio.create_task(reaper_loop(fakes.queue, interval_seconds=0.01, stop_event=stop_event))

    await asyncio.sleep(0.05)
    stop_event.set()

    await asyncio.wait_for(task, timeout=1)
