"""
Target Resolver: expands a target descriptor into recipient conversation ids.
"""

from attention_market.features.notification_queue.domain import (
    GlobalTarget,
    NotFound,
    PhoneTarget,
    SegmentTarget,
    Target,
    UserTarget,
    ValidationError,
)
from attention_market.features.notification_queue.repository.recipient_repository import (
    RecipientRepository,
    SegmentMembershipRepository,
)
from attention_market.features.notification_queue.services.capabilities import SegmentMembership
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TargetResolver:
    def __init__(self, recipients=RecipientRepository, segments: SegmentMembership = SegmentMembershipRepository):
        self.recipients = recipients
        self.segments = segments

    async def resolve(self, target: Target) -> list[str]:
        """
        Return the deduplicated, order-preserving list of conversation ids.

        Raises:
            NotFound: user_id / phone_number target with no reachable user
            ValidationError: unsupported target kind
        """
        if isinstance(target, UserTarget):
            conversation_id = await self.recipients.conversation_for_user(target.user_id)
            if not conversation_id:
                raise NotFound(f"User not found or has no phone number: {target.user_id}", identity=target.user_id)
            conversation_ids = [conversation_id]

        elif isinstance(target, PhoneTarget):
            conversation_id = await self.recipients.conversation_for_phone(target.phone_number)
            if not conversation_id:
                raise NotFound(f"No user with phone number: {target.phone_number}", identity=target.phone_number)
            conversation_ids = [conversation_id]

        elif isinstance(target, GlobalTarget):
            conversation_ids = await self.recipients.opted_in_conversations()

        elif isinstance(target, SegmentTarget):
            # Unknown segments are not an error, they simply have no members
            conversation_ids = await self.segments.members(target.segment_id)

        else:
            raise ValidationError(f"Unknown target type: {target!r}", field="target")

        resolved = list(dict.fromkeys(cid for cid in conversation_ids if cid))
        logger.debug("Target resolved", target_type=target.type, recipients=len(resolved))
        return resolved
