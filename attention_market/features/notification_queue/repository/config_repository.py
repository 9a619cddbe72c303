"""
Per-conversation admission policy (prioritization_configs).
"""

from decimal import Decimal

from attention_market.db.helpers import DatabaseError, execute_query, fetch_one
from attention_market.features.notification_queue.domain import PrioritizationConfig, to_money
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ConfigRepository:
    """Config Store: at most one row per conversation."""

    SELECT_COLUMNS = """
        conversation_id, minimum_notify_price, custom_value_prompt,
        is_enabled, created_at, updated_at
    """

    @classmethod
    def _row_to_config(cls, row: dict | None) -> PrioritizationConfig | None:
        if not row:
            return None

        return PrioritizationConfig(
            conversation_id=row["conversation_id"],
            minimum_notify_price=to_money(row["minimum_notify_price"]),
            custom_value_prompt=row.get("custom_value_prompt"),
            is_enabled=row["is_enabled"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @classmethod
    async def load(cls, conversation_id: str) -> PrioritizationConfig | None:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM prioritization_configs
            WHERE conversation_id = %s
        """
        row = await fetch_one(query, (conversation_id,))
        return cls._row_to_config(row)

    @classmethod
    async def upsert(
        cls,
        conversation_id: str,
        minimum_notify_price: Decimal,
        custom_value_prompt: str | None,
        is_enabled: bool,
    ) -> PrioritizationConfig:
        """Create or replace the conversation's policy."""

        query = f"""
            INSERT INTO prioritization_configs (
                conversation_id, minimum_notify_price, custom_value_prompt, is_enabled
            )
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (conversation_id) DO UPDATE SET
                minimum_notify_price = EXCLUDED.minimum_notify_price,
                custom_value_prompt = EXCLUDED.custom_value_prompt,
                is_enabled = EXCLUDED.is_enabled,
                updated_at = NOW()
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query, (conversation_id, to_money(minimum_notify_price), custom_value_prompt, is_enabled)
        )
        if not row:
            raise DatabaseError("Failed to upsert prioritization config", operation="upsert_config")

        logger.info(
            "Prioritization config saved",
            conversation_id=conversation_id,
            minimum_notify_price=str(minimum_notify_price),
            is_enabled=is_enabled,
            has_custom_prompt=bool(custom_value_prompt),
        )
        return cls._row_to_config(row)

    @classmethod
    async def delete(cls, conversation_id: str) -> bool:
        """Remove the override; the conversation falls back to defaults."""

        deleted = await execute_query(
            "DELETE FROM prioritization_configs WHERE conversation_id = %s", (conversation_id,)
        )
        if deleted:
            logger.info("Prioritization config deleted", conversation_id=conversation_id)
        return deleted > 0
