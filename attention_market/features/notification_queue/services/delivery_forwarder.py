"""
Delivery Forwarder: sends admitted messages and records what happened.
"""

from attention_market.features.notification_queue.domain import (
    DeliveryError,
    DeliveryRecord,
    QueuedRequest,
    RecipientOutcome,
)
from attention_market.features.notification_queue.repository.delivery_repository import DeliveryRepository
from attention_market.features.notification_queue.repository.evaluation_repository import (
    EvaluationRepository,
)
from attention_market.features.notification_queue.services.capabilities import (
    OutboundChannel,
    extract_delivery_text,
)
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DeliveryForwarder:
    def __init__(self, channel: OutboundChannel, deliveries=DeliveryRepository, evaluations=EvaluationRepository):
        self.channel = channel
        self.deliveries = deliveries
        self.evaluations = evaluations

    async def forward(self, request: QueuedRequest, conversation_id: str) -> DeliveryRecord:
        """
        Send the request's content to one recipient.

        Channel failures are recorded as forwarded=False; they never escape
        to sibling recipients.
        """
        content = extract_delivery_text(request.payload)
        record = DeliveryRecord(
            queued_message_id=request.id,
            source=request.source,
            conversation_id=conversation_id,
            forwarded=True,
        )

        try:
            await self.channel.send(conversation_id, content)
            logger.info("Message forwarded", conversation_id=conversation_id)
        except DeliveryError as e:
            record.forwarded = False
            record.rejection_reason = str(e)
            record.error_class = e.error_class
            logger.warning(
                "Channel rejected delivery",
                conversation_id=conversation_id,
                error_class=e.error_class,
                error=str(e),
            )
        except Exception as e:
            record.forwarded = False
            record.rejection_reason = str(e) or type(e).__name__
            record.error_class = "unexpected_error"
            logger.exception("Unexpected channel failure", conversation_id=conversation_id)

        return await self.deliveries.record(record)

    async def recipient_outcomes(self, request_id: str) -> list[RecipientOutcome]:
        """Per-recipient view joining evaluations with their delivery records."""
        evaluations = await self.evaluations.list_for_message(request_id)
        deliveries = {d.conversation_id: d for d in await self.deliveries.list_for_message(request_id)}

        outcomes = []
        for evaluation in evaluations:
            delivery = deliveries.get(evaluation.conversation_id)
            outcomes.append(
                RecipientOutcome(
                    recipient_id=evaluation.conversation_id,
                    evaluation_passed=evaluation.passed,
                    base_value=evaluation.base_value,
                    bribe_amount=evaluation.bribe_amount,
                    total_value=evaluation.total_value,
                    threshold=evaluation.threshold,
                    reason=evaluation.reason,
                    forwarded=delivery.forwarded if delivery else None,
                    rejection_reason=delivery.rejection_reason if delivery else None,
                    delivered_at=delivery.created_at if delivery and delivery.forwarded else None,
                )
            )
        return outcomes
