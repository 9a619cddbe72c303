"""
Inbound human-message entry point used by the channel webhook handlers.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from attention_market.features.debounce.coordinator import DebounceCoordinator, DebounceStoreError
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/inbound", tags=["inbound"])


class InboundMessageRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    created_at: datetime | None = Field(default=None, description="Message timestamp; defaults to now")


class InboundMessageResponse(BaseModel):
    scheduled: bool
    conversation_id: str
    timestamp: str


def get_debounce(request: Request) -> DebounceCoordinator:
    coordinator = getattr(request.app.state, "debounce", None)
    if coordinator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Debounce not initialized")
    return coordinator


@router.post("/messages", response_model=InboundMessageResponse, status_code=status.HTTP_202_ACCEPTED)
async def receive_inbound_message(
    body: InboundMessageRequest, coordinator: DebounceCoordinator = Depends(get_debounce)
):
    """Record the message and schedule a debounced response."""
    try:
        timestamp = await coordinator.on_inbound(body.conversation_id, body.created_at)
    except DebounceStoreError as e:
        logger.error("Debounce store unavailable", conversation_id=body.conversation_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

    return InboundMessageResponse(scheduled=True, conversation_id=body.conversation_id, timestamp=timestamp)
