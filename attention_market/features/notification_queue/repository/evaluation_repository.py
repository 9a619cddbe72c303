"""
Append-only admission decisions (message_evaluations).
"""

from attention_market.db.helpers import DatabaseError, fetch_all, fetch_one
from attention_market.features.notification_queue.domain import (
    Evaluation,
    EvaluationOutcome,
    to_money,
)
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EvaluationRepository:
    SELECT_COLUMNS = """
        id, queued_message_id, conversation_id, base_value, bribe_amount,
        total_value, threshold, passed, reason, created_at
    """

    @classmethod
    def _row_to_evaluation(cls, row: dict) -> Evaluation:
        return Evaluation(
            id=str(row["id"]),
            queued_message_id=str(row["queued_message_id"]),
            conversation_id=row["conversation_id"],
            base_value=to_money(row["base_value"]),
            bribe_amount=to_money(row["bribe_amount"]),
            total_value=to_money(row["total_value"]),
            threshold=to_money(row["threshold"]),
            passed=row["passed"],
            reason=row["reason"],
            created_at=row.get("created_at"),
        )

    @classmethod
    async def insert_if_absent(cls, evaluation: Evaluation) -> EvaluationOutcome:
        """
        Insert the evaluation unless one exists for the (message, conversation) pair.

        On conflict the stored row wins and is returned with created=False.
        """

        insert_query = f"""
            INSERT INTO message_evaluations (
                queued_message_id, conversation_id, base_value, bribe_amount,
                total_value, threshold, passed, reason
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (queued_message_id, conversation_id) DO NOTHING
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(
            insert_query,
            (
                evaluation.queued_message_id,
                evaluation.conversation_id,
                evaluation.base_value,
                evaluation.bribe_amount,
                evaluation.total_value,
                evaluation.threshold,
                evaluation.passed,
                evaluation.reason,
            ),
        )
        if row:
            return EvaluationOutcome(evaluation=cls._row_to_evaluation(row), created=True)

        existing = await fetch_one(
            f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM message_evaluations
            WHERE queued_message_id = %s AND conversation_id = %s
            """,
            (evaluation.queued_message_id, evaluation.conversation_id),
        )
        if not existing:
            raise DatabaseError(
                "Evaluation conflict but no stored row found", operation="insert_evaluation"
            )

        logger.info(
            "Evaluation already recorded, keeping stored decision",
            message_id=evaluation.queued_message_id,
            conversation_id=evaluation.conversation_id,
        )
        return EvaluationOutcome(evaluation=cls._row_to_evaluation(existing), created=False)

    @classmethod
    async def list_for_message(cls, message_id: str) -> list[Evaluation]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM message_evaluations
            WHERE queued_message_id::text = %s
            ORDER BY created_at
        """
        rows = await fetch_all(query, (message_id,))
        return [cls._row_to_evaluation(row) for row in rows]

    @classmethod
    async def list_for_conversation(cls, conversation_id: str, limit: int = 50) -> list[Evaluation]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM message_evaluations
            WHERE conversation_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (conversation_id, limit))
        return [cls._row_to_evaluation(row) for row in rows]
