"""
Ingestion: validates inbound notification requests and enqueues them.

Malformed requests are rejected here with ValidationError and never reach
the queue.
"""

from typing import Any

from attention_market.features.notification_queue.domain import (
    Bribe,
    NewRequest,
    QueuedRequest,
    ValidationError,
    parse_target,
)
from attention_market.features.notification_queue.repository.queue_repository import QueueRepository


class IngestionService:
    def __init__(self, queue=QueueRepository):
        self.queue = queue

    def validate(self, body: dict[str, Any]) -> NewRequest:
        if not isinstance(body, dict):
            raise ValidationError("Request body must be an object")

        target = parse_target(body.get("target"))

        source = body.get("source")
        if not isinstance(source, str) or not source.strip():
            raise ValidationError("source is required and must be a non-empty string", field="source")

        payload = body.get("payload")
        if not isinstance(payload, dict):
            raise ValidationError("payload is required and must be an object", field="payload")

        raw_bribe = body.get("bribe")
        if raw_bribe is None:
            raw_bribe = body.get("bribePayload")

        return NewRequest(
            target=target,
            source=source.strip(),
            payload=payload,
            bribe=Bribe.from_dict(raw_bribe),
        )

    async def submit(self, body: dict[str, Any]) -> QueuedRequest:
        return await self.queue.enqueue(self.validate(body))
