"""
Forwarding outcomes (delivery_records).
"""

from attention_market.db.helpers import DatabaseError, fetch_all, fetch_one
from attention_market.features.notification_queue.domain import DeliveryRecord
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DeliveryRepository:
    SELECT_COLUMNS = """
        id, queued_message_id, source, conversation_id, forwarded,
        rejection_reason, error_class, created_at
    """

    @classmethod
    def _row_to_record(cls, row: dict) -> DeliveryRecord:
        return DeliveryRecord(
            id=str(row["id"]),
            queued_message_id=str(row["queued_message_id"]),
            source=row["source"],
            conversation_id=row["conversation_id"],
            forwarded=row["forwarded"],
            rejection_reason=row.get("rejection_reason"),
            error_class=row.get("error_class"),
            created_at=row.get("created_at"),
        )

    @classmethod
    async def record(cls, record: DeliveryRecord) -> DeliveryRecord:
        """Store the outcome, or return the existing one for the same pair."""

        query = f"""
            INSERT INTO delivery_records (
                queued_message_id, source, conversation_id, forwarded,
                rejection_reason, error_class
            )
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (queued_message_id, conversation_id) DO NOTHING
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query,
            (
                record.queued_message_id,
                record.source,
                record.conversation_id,
                record.forwarded,
                record.rejection_reason,
                record.error_class,
            ),
        )
        if row:
            return cls._row_to_record(row)

        existing = await fetch_one(
            f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM delivery_records
            WHERE queued_message_id = %s AND conversation_id = %s
            """,
            (record.queued_message_id, record.conversation_id),
        )
        if not existing:
            raise DatabaseError("Delivery conflict but no stored row found", operation="record_delivery")
        return cls._row_to_record(existing)

    @classmethod
    async def list_for_message(cls, message_id: str) -> list[DeliveryRecord]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM delivery_records
            WHERE queued_message_id::text = %s
            ORDER BY created_at
        """
        rows = await fetch_all(query, (message_id,))
        return [cls._row_to_record(row) for row in rows]
