"""
Collaborator interfaces the pipeline depends on.

Production implementations live in attention_market.services; tests swap in
in-memory fakes. Also holds the two content renderings the pipeline needs:
the text handed to the valuation model and the text sent to a recipient.
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from attention_market.features.notification_queue.domain import QueuedRequest

DELIVERY_TEXT_FIELDS = ("message", "text", "content", "body")


@dataclass(slots=True)
class Valuation:
    base_value: Decimal
    reason: str


class ValuationCapability(Protocol):
    async def estimate(
        self,
        content: str,
        prompt_override: str | None,
        recipient_hints: dict[str, Any],
    ) -> Valuation: ...


class OutboundChannel(Protocol):
    async def send(self, recipient_id: str, content: str) -> None:
        """Deliver content to the recipient or raise DeliveryError."""
        ...


class SegmentMembership(Protocol):
    async def members(self, segment_id: str) -> list[str]: ...


class ResponsePipeline(Protocol):
    async def respond(self, conversation_id: str, timestamp: str) -> None: ...


def format_for_valuation(request: QueuedRequest) -> str:
    """Render a queued request as the user message for the valuation model."""
    parts = [
        "--- MESSAGE TO EVALUATE ---",
        f"Source: {request.source}",
        "\nMessage Content:",
        json.dumps(request.payload, indent=2, default=str),
    ]

    if request.bribe is not None:
        parts.append("\nNote: Sender included payment/bribe metadata:")
        parts.append(json.dumps(request.bribe.to_dict(), indent=2, default=str))
        parts.append(
            "(You should evaluate the message content independently. "
            "The payment amount will be added separately.)"
        )

    return "\n".join(parts)


def extract_delivery_text(payload: dict[str, Any]) -> str:
    """First non-blank common text field, else the whole payload as JSON."""
    for field in DELIVERY_TEXT_FIELDS:
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return value
    return json.dumps(payload, indent=2, default=str)
