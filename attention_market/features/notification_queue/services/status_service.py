"""
Read-side views: message status with per-recipient outcomes, evaluation
history, and the prioritization config surface.
"""

from decimal import Decimal
from typing import Any

from attention_market.features.notification_queue.domain import (
    Evaluation,
    NotFound,
    PrioritizationConfig,
    ValidationError,
    target_to_dict,
    to_money,
)
from attention_market.features.notification_queue.repository.config_repository import ConfigRepository
from attention_market.features.notification_queue.repository.evaluation_repository import (
    EvaluationRepository,
)
from attention_market.features.notification_queue.repository.queue_repository import QueueRepository
from attention_market.features.notification_queue.services.admission_evaluator import AdmissionEvaluator
from attention_market.features.notification_queue.services.delivery_forwarder import DeliveryForwarder

MIN_NOTIFY_PRICE = Decimal("-1000")
MAX_NOTIFY_PRICE = Decimal("10000")
MAX_EVALUATIONS_LIMIT = 500


def _average(values: list[Decimal]) -> Decimal:
    if not values:
        return Decimal("0.00")
    return to_money(sum(values) / len(values))


def evaluation_stats(evaluations: list[Evaluation]) -> dict[str, Any]:
    passed = sum(1 for e in evaluations if e.passed)
    return {
        "total": len(evaluations),
        "passed": passed,
        "failed": len(evaluations) - passed,
        "average_value": _average([e.total_value for e in evaluations]),
    }


class StatusService:
    def __init__(self, forwarder: DeliveryForwarder, queue=QueueRepository):
        self.forwarder = forwarder
        self.queue = queue

    async def message_status(self, message_id: str) -> dict[str, Any]:
        request = await self.queue.load(message_id)
        if request is None:
            raise NotFound(f"Message not found: {message_id}", identity=message_id)

        outcomes = await self.forwarder.recipient_outcomes(message_id)
        passed = sum(1 for o in outcomes if o.evaluation_passed)

        return {
            "message_id": request.id,
            "status": request.status.value,
            "source": request.source,
            "target": target_to_dict(request.target),
            "error": request.error,
            "processed_at": request.processed_at,
            "created_at": request.created_at,
            "per_recipient": outcomes,
            "stats": {
                "total": len(outcomes),
                "passed": passed,
                "failed": len(outcomes) - passed,
                "average_total_value": _average([o.total_value for o in outcomes]),
            },
        }


class PrioritizationService:
    def __init__(self, evaluator: AdmissionEvaluator, configs=ConfigRepository, evaluations=EvaluationRepository):
        self.evaluator = evaluator
        self.configs = configs
        self.evaluations = evaluations

    async def get_config(self, conversation_id: str) -> PrioritizationConfig:
        return await self.evaluator.load_config(conversation_id)

    async def update_config(
        self,
        conversation_id: str,
        minimum_notify_price: Any,
        custom_value_prompt: str | None = None,
        is_enabled: bool = True,
    ) -> PrioritizationConfig:
        price = to_money(minimum_notify_price)
        if not MIN_NOTIFY_PRICE <= price <= MAX_NOTIFY_PRICE:
            raise ValidationError(
                f"minimum_notify_price must be between {MIN_NOTIFY_PRICE} and {MAX_NOTIFY_PRICE}",
                field="minimum_notify_price",
            )

        prompt = custom_value_prompt.strip() if custom_value_prompt else None
        return await self.configs.upsert(conversation_id, price, prompt or None, is_enabled)

    async def delete_config(self, conversation_id: str) -> bool:
        return await self.configs.delete(conversation_id)

    async def conversation_evaluations(self, conversation_id: str, limit: int = 50) -> dict[str, Any]:
        if not 1 <= limit <= MAX_EVALUATIONS_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_EVALUATIONS_LIMIT}", field="limit")

        evaluations = await self.evaluations.list_for_conversation(conversation_id, limit)
        return {
            "conversation_id": conversation_id,
            "evaluations": evaluations,
            "stats": evaluation_stats(evaluations),
        }

    async def message_evaluations(self, message_id: str) -> dict[str, Any]:
        evaluations = await self.evaluations.list_for_message(message_id)
        if not evaluations:
            raise NotFound(f"No evaluations found for message: {message_id}", identity=message_id)

        stats = evaluation_stats(evaluations)
        stats["average_base_value"] = _average([e.base_value for e in evaluations])
        stats["total_bribe_amount"] = to_money(sum(e.bribe_amount for e in evaluations))
        return {"message_id": message_id, "evaluations": evaluations, "stats": stats}
