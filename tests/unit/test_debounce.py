import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from attention_market.features.debounce.coordinator import (
    DebounceCoordinator,
    DebounceStoreError,
    debounce_key,
    make_trigger_token,
    to_trigger_timestamp,
)

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_burst_produces_single_response(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=0.05)

    await coordinator.on_inbound("+1555", T0)
    await asyncio.sleep(0.02)
    latest = await coordinator.on_inbound("+1555", T0 + timedelta(seconds=2))

    await asyncio.sleep(0.15)

    assert fake_pipeline.calls == [("+1555", latest)]
    assert coordinator.pending_count == 0


@pytest.mark.asyncio
async def test_separate_conversations_each_respond(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=0.02)

    await coordinator.on_inbound("+1", T0)
    await coordinator.on_inbound("+2", T0)
    await asyncio.sleep(0.1)

    assert sorted(cid for cid, _ in fake_pipeline.calls) == ["+1", "+2"]


@pytest.mark.asyncio
async def test_burst_with_identical_timestamps_responds_once(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=0.05)

    await coordinator.on_inbound("+1555", T0)
    await asyncio.sleep(0.01)
    await coordinator.on_inbound("+1555", T0)
    await asyncio.sleep(0.15)

    assert fake_pipeline.calls == [("+1555", to_trigger_timestamp(T0))]


@pytest.mark.asyncio
async def test_stale_trigger_is_dropped(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=60)
    stale = make_trigger_token(to_trigger_timestamp(T0))
    fake_redis.store[debounce_key("+1555")] = make_trigger_token(to_trigger_timestamp(T0))

    proceeded = await coordinator.fire("+1555", stale)

    assert proceeded is False
    assert fake_pipeline.calls == []


@pytest.mark.asyncio
async def test_matching_trigger_passes_timestamp_downstream(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=60)
    timestamp = to_trigger_timestamp(T0)
    token = make_trigger_token(timestamp)
    fake_redis.store[debounce_key("+1555")] = token

    assert await coordinator.fire("+1555", token) is True
    assert fake_pipeline.calls == [("+1555", timestamp)]


@pytest.mark.asyncio
async def test_missing_entry_still_proceeds(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=60)

    assert await coordinator.fire("+1555", make_trigger_token(to_trigger_timestamp(T0))) is True


@pytest.mark.asyncio
async def test_missing_entry_checks_whether_store_is_reachable(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=60)
    fake_redis.ping = AsyncMock(return_value=False)

    assert await coordinator.fire("+1555", make_trigger_token(to_trigger_timestamp(T0))) is True
    fake_redis.ping.assert_awaited_once()


@pytest.mark.asyncio
async def test_present_entry_skips_reachability_check(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=60)
    token = make_trigger_token(to_trigger_timestamp(T0))
    fake_redis.store[debounce_key("+1555")] = token
    fake_redis.ping = AsyncMock(return_value=True)

    await coordinator.fire("+1555", token)

    fake_redis.ping.assert_not_awaited()


def test_tokens_differ_for_identical_timestamps():
    timestamp = to_trigger_timestamp(T0)

    assert make_trigger_token(timestamp) != make_trigger_token(timestamp)
    assert make_trigger_token(timestamp).startswith(timestamp)


@pytest.mark.asyncio
async def test_store_write_failure_raises(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=60)
    fake_redis.fail_writes = True

    with pytest.raises(DebounceStoreError):
        await coordinator.on_inbound("+1555", T0)
    assert coordinator.pending_count == 0


@pytest.mark.asyncio
async def test_pipeline_failure_is_contained(fake_redis):
    class BrokenPipeline:
        async def respond(self, conversation_id, timestamp):
            raise RuntimeError("downstream down")

    coordinator = DebounceCoordinator(fake_redis, BrokenPipeline(), delay_seconds=0.01)

    await coordinator.on_inbound("+1555", T0)
    await asyncio.sleep(0.05)

    assert coordinator.pending_count == 0


@pytest.mark.asyncio
async def test_close_cancels_pending_triggers(fake_redis, fake_pipeline):
    coordinator = DebounceCoordinator(fake_redis, fake_pipeline, delay_seconds=60)
    await coordinator.on_inbound("+1555", T0)

    assert coordinator.pending_count == 1
    await coordinator.close()

    assert coordinator.pending_count == 0
    assert fake_pipeline.calls == []


def test_naive_timestamps_are_treated_as_utc():
    assert to_trigger_timestamp(datetime(2025, 1, 1, 12, 0, 0)) == "2025-01-01T12:00:00+00:00"
    assert to_trigger_timestamp("2025-01-01T12:00:00Z") == "2025-01-01T12:00:00Z"
