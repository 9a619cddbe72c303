from unittest.mock import AsyncMock

import pytest

from attention_market.features.notification_queue.domain import RequestStatus
from attention_market.features.notification_queue.repository import queue_repository
from attention_market.features.notification_queue.repository.queue_repository import (
    MAX_ERROR_LENGTH,
    QueueRepository,
)


@pytest.fixture
def fetch_one(monkeypatch):
    mock = AsyncMock(return_value={"id": "msg-1"})
    monkeypatch.setattr(queue_repository, "fetch_one", mock)
    return mock


def test_finalizing_transitions_only_leave_processing():
    assert QueueRepository._source_statuses(RequestStatus.COMPLETED) == ["processing"]
    assert QueueRepository._source_statuses(RequestStatus.FAILED) == ["processing"]
    assert QueueRepository._source_statuses(RequestStatus.PROCESSING) == ["pending"]


@pytest.mark.asyncio
async def test_mark_completed_guards_on_allowed_source_statuses(fetch_one):
    assert await QueueRepository.mark_completed("msg-1") is True

    query, params = fetch_one.await_args.args
    assert "status = ANY(%s)" in query
    assert params == ("completed", None, "msg-1", ["processing"])


@pytest.mark.asyncio
async def test_mark_failed_truncates_error(fetch_one):
    await QueueRepository.mark_failed("msg-1", "x" * (MAX_ERROR_LENGTH + 50))

    _, params = fetch_one.await_args.args
    assert params[0] == "failed"
    assert len(params[1]) == MAX_ERROR_LENGTH


@pytest.mark.asyncio
async def test_skipped_transition_returns_false(fetch_one, monkeypatch):
    fetch_one.return_value = None
    load = AsyncMock(return_value=None)
    monkeypatch.setattr(QueueRepository, "load", load)

    assert await QueueRepository.mark_completed("msg-1") is False
    load.assert_awaited_once_with("msg-1")
