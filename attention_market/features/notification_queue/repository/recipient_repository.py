"""
Identity lookups used by the target resolver.

For direct messages the conversation id is the user's phone number.
"""

from attention_market.db.helpers import fetch_all, fetch_one


class RecipientRepository:
    @classmethod
    async def conversation_for_user(cls, user_id: str) -> str | None:
        """Phone number of the user, None if the user is unknown or unreachable."""
        row = await fetch_one("SELECT phone_number FROM users WHERE id = %s", (user_id,))
        if not row:
            return None
        return row.get("phone_number") or None

    @classmethod
    async def conversation_for_phone(cls, phone_number: str) -> str | None:
        row = await fetch_one(
            "SELECT phone_number FROM users WHERE phone_number = %s", (phone_number,)
        )
        return row["phone_number"] if row else None

    @classmethod
    async def opted_in_conversations(cls) -> list[str]:
        rows = await fetch_all(
            """
            SELECT phone_number
            FROM users
            WHERE notifications_opt_in AND phone_number IS NOT NULL
            ORDER BY created_at, id
            """
        )
        return [row["phone_number"] for row in rows]


class SegmentMembershipRepository:
    """Segment membership backed by the segment_members table."""

    @classmethod
    async def members(cls, segment_id: str) -> list[str]:
        rows = await fetch_all(
            """
            SELECT conversation_id
            FROM segment_members
            WHERE segment_id = %s
            ORDER BY added_at, conversation_id
            """,
            (segment_id,),
        )
        return [row["conversation_id"] for row in rows]
