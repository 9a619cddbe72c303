"""
Table definitions for the attention market store.

Applied idempotently at startup (CREATE ... IF NOT EXISTS), so a fresh
database and an existing one converge on the same layout.

Tables:
- queued_messages: inbound notification requests and their lifecycle status
- prioritization_configs: per-conversation admission policy
- message_evaluations: one admission decision per (message, conversation)
- delivery_records: one forwarding attempt per passed (message, conversation)
- users / segment_members: identities the target resolver expands into
"""

from attention_market.db.helpers import execute_transaction
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        phone_number TEXT UNIQUE,
        notifications_opt_in BOOLEAN NOT NULL DEFAULT true,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS segment_members (
        segment_id TEXT NOT NULL,
        conversation_id TEXT NOT NULL,
        added_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        PRIMARY KEY (segment_id, conversation_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS queued_messages (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        target JSONB NOT NULL,
        source TEXT NOT NULL,
        bribe_payload JSONB,
        payload JSONB NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
        claimed_at TIMESTAMPTZ,
        processed_at TIMESTAMPTZ,
        error TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_queued_messages_status_created
        ON queued_messages (status, created_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS prioritization_configs (
        conversation_id TEXT PRIMARY KEY,
        minimum_notify_price NUMERIC(10, 2) NOT NULL,
        custom_value_prompt TEXT,
        is_enabled BOOLEAN NOT NULL DEFAULT true,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS message_evaluations (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        queued_message_id UUID NOT NULL REFERENCES queued_messages (id),
        conversation_id TEXT NOT NULL,
        base_value NUMERIC(10, 2) NOT NULL,
        bribe_amount NUMERIC(10, 2) NOT NULL DEFAULT 0,
        total_value NUMERIC(10, 2) NOT NULL,
        threshold NUMERIC(10, 2) NOT NULL,
        passed BOOLEAN NOT NULL,
        reason TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (queued_message_id, conversation_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_message_evaluations_conversation
        ON message_evaluations (conversation_id, created_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS delivery_records (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        queued_message_id UUID NOT NULL REFERENCES queued_messages (id),
        source TEXT NOT NULL,
        conversation_id TEXT NOT NULL,
        forwarded BOOLEAN NOT NULL,
        rejection_reason TEXT,
        error_class TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (queued_message_id, conversation_id)
    )
    """,
]


async def apply_schema() -> None:
    """Create any missing tables and indexes in one transaction."""
    await execute_transaction([(statement, ()) for statement in SCHEMA_STATEMENTS])
    logger.info("Database schema applied", statements=len(SCHEMA_STATEMENTS))
