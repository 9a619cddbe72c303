"""
Persistence layer for the notification queue.

All status transitions live here. Each UPDATE is guarded on the current
status, so a row only ever moves pending -> processing -> completed|failed
and terminal rows are never rewritten.
"""

from psycopg.types.json import Jsonb

from attention_market.db.helpers import DatabaseError, fetch_all, fetch_one, with_db_retry
from attention_market.features.notification_queue.domain import (
    Bribe,
    NewRequest,
    QueuedRequest,
    RequestStatus,
    can_transition,
    parse_target,
    target_to_dict,
)
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 500


class QueueRepositoryError(DatabaseError):
    """More specific exception for queue persistence failures."""


class QueueRepository:
    """Queue Store backed by the queued_messages table."""

    SELECT_COLUMNS = """
        id, target, source, bribe_payload, payload, status,
        processed_at, error, created_at
    """

    @classmethod
    def _row_to_request(cls, row: dict | None) -> QueuedRequest | None:
        if not row:
            return None

        return QueuedRequest(
            id=str(row["id"]),
            target=parse_target(row["target"]),
            source=row["source"],
            payload=row["payload"] or {},
            status=RequestStatus(row["status"]),
            created_at=row["created_at"],
            bribe=Bribe.from_dict(row.get("bribe_payload")),
            processed_at=row.get("processed_at"),
            error=row.get("error"),
        )

    @classmethod
    async def enqueue(cls, request: NewRequest) -> QueuedRequest:
        """Insert a new pending request and return the stored row."""

        query = f"""
            INSERT INTO queued_messages (target, source, bribe_payload, payload)
            VALUES (%s, %s, %s, %s)
            RETURNING {cls.SELECT_COLUMNS}
        """

        bribe = Jsonb(request.bribe.to_dict()) if request.bribe else None
        row = await fetch_one(
            query,
            (Jsonb(target_to_dict(request.target)), request.source, bribe, Jsonb(request.payload)),
        )
        if not row:
            raise QueueRepositoryError("Failed to enqueue request", operation="enqueue")

        queued = cls._row_to_request(row)
        logger.info(
            "Request enqueued",
            message_id=queued.id,
            source=queued.source,
            target_type=queued.target.type,
            has_bribe=request.bribe is not None,
        )
        return queued

    @classmethod
    @with_db_retry(max_retries=2)
    async def claim_pending(cls, batch_size: int) -> list[QueuedRequest]:
        """
        Atomically move up to batch_size of the oldest pending rows to processing.

        SKIP LOCKED lets concurrent batches proceed without ever claiming the
        same row twice.
        """

        query = f"""
            UPDATE queued_messages
            SET status = 'processing',
                claimed_at = NOW()
            WHERE id IN (
                SELECT id FROM queued_messages
                WHERE status = 'pending'
                ORDER BY created_at
                LIMIT %s
                FOR UPDATE SKIP LOCKED
            )
            AND status = 'pending'
            RETURNING {cls.SELECT_COLUMNS}
        """

        rows = await fetch_all(query, (batch_size,))
        claimed = [cls._row_to_request(row) for row in rows]
        # RETURNING order is unspecified
        claimed.sort(key=lambda r: r.created_at)

        if claimed:
            logger.info("Claimed pending requests", count=len(claimed), batch_size=batch_size)
        return claimed

    @classmethod
    def _source_statuses(cls, target: RequestStatus) -> list[str]:
        return [status.value for status in RequestStatus if can_transition(status, target)]

    @classmethod
    async def _finish(cls, request_id: str, target: RequestStatus, error: str | None) -> bool:
        """Apply a finalizing transition; False when the row was not in an allowed source state."""

        query = """
            UPDATE queued_messages
            SET status = %s,
                processed_at = NOW(),
                error = %s
            WHERE id = %s AND status = ANY(%s)
            RETURNING id
        """

        row = await fetch_one(query, (target.value, error, request_id, cls._source_statuses(target)))
        if row:
            return True

        current = await cls.load(request_id)
        logger.warning(
            "Transition skipped",
            message_id=request_id,
            target_status=target.value,
            current_status=current.status.value if current else None,
            already_terminal=bool(current and current.status.is_terminal),
        )
        return False

    @classmethod
    async def mark_completed(cls, request_id: str) -> bool:
        """Move a processing row to completed. False if it was not processing."""

        if not await cls._finish(request_id, RequestStatus.COMPLETED, None):
            return False

        logger.info("Request completed", message_id=request_id)
        return True

    @classmethod
    async def mark_failed(cls, request_id: str, error_message: str) -> bool:
        """Move a processing row to failed with the captured error."""

        truncated_error = (error_message or "unknown error")[:MAX_ERROR_LENGTH]
        if not await cls._finish(request_id, RequestStatus.FAILED, truncated_error):
            return False

        logger.warning("Request failed", message_id=request_id, error=truncated_error)
        return True

    @classmethod
    async def load(cls, request_id: str) -> QueuedRequest | None:
        """Return the request if it exists."""

        query = f"SELECT {cls.SELECT_COLUMNS} FROM queued_messages WHERE id::text = %s"
        row = await fetch_one(query, (request_id,))
        return cls._row_to_request(row)

    @classmethod
    async def fail_stale_processing(cls, stale_minutes: int) -> list[str]:
        """
        Fail rows stuck in processing for longer than stale_minutes.

        A crashed batch can leave rows claimed forever; they are failed rather
        than re-queued so a recipient never sees the same message twice.
        """

        query = """
            UPDATE queued_messages
            SET status = 'failed',
                processed_at = NOW(),
                error = 'processing timed out'
            WHERE status = 'processing'
              AND claimed_at < NOW() - make_interval(mins => %s)
            RETURNING id
        """

        rows = await fetch_all(query, (stale_minutes,))
        reaped = [str(row["id"]) for row in rows]
        if reaped:
            logger.warning("Reaped stale processing requests", count=len(reaped), stale_minutes=stale_minutes)
        return reaped
