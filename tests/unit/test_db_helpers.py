import pytest

from attention_market.db.helpers import DatabaseError, with_db_retry


@pytest.mark.asyncio
async def test_recoverable_errors_are_retried():
    attempts = {"count": 0}

    @with_db_retry(max_retries=2, base_delay=0)
    async def flaky():
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise DatabaseError("connection reset", recoverable=True)
        return "ok"

    assert await flaky() == "ok"
    assert attempts["count"] == 3


@pytest.mark.asyncio
async def test_non_recoverable_errors_raise_immediately():
    attempts = {"count": 0}

    @with_db_retry(max_retries=3, base_delay=0)
    async def broken():
        attempts["count"] += 1
        raise DatabaseError("unique violation", recoverable=False)

    with pytest.raises(DatabaseError):
        await broken()
    assert attempts["count"] == 1


@pytest.mark.asyncio
async def test_retries_are_bounded():
    attempts = {"count": 0}

    @with_db_retry(max_retries=1, base_delay=0)
    async def always_down():
        attempts["count"] += 1
        raise DatabaseError("pool timeout")

    with pytest.raises(DatabaseError):
        await always_down()
    assert attempts["count"] == 2
