"""
Notification queue routes.

/messages covers ingestion, status lookups and the manual batch trigger;
/prioritization covers per-conversation policy and evaluation history.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status

from attention_market.db.helpers import DatabaseError
from attention_market.features.notification_queue.api.schemas import (
    BatchResultResponse,
    ConfigResponse,
    ConversationEvaluationsResponse,
    DeleteConfigResponse,
    EnqueueMessageRequest,
    EnqueueMessageResponse,
    EvaluationResponse,
    EvaluationStatsResponse,
    MessageEvaluationsResponse,
    MessageStatsResponse,
    MessageStatusResponse,
    ProcessBatchRequest,
    RecipientOutcomeResponse,
    UpdateConfigRequest,
)
from attention_market.features.notification_queue.domain import (
    NotFound,
    NotificationError,
    ValidationError,
)
from attention_market.features.notification_queue.services.engine import NotificationEngine
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

messages_router = APIRouter(prefix="/messages", tags=["messages"])
prioritization_router = APIRouter(prefix="/prioritization", tags=["prioritization"])


def get_engine(request: Request) -> NotificationEngine:
    """The engine built during application startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Engine not initialized")
    return engine


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, DatabaseError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")


def _stats_response(stats: dict[str, Any]) -> EvaluationStatsResponse:
    return EvaluationStatsResponse(
        total=stats["total"],
        passed=stats["passed"],
        failed=stats["failed"],
        average_value=float(stats["average_value"]),
        average_base_value=float(stats["average_base_value"]) if "average_base_value" in stats else None,
        total_bribe_amount=float(stats["total_bribe_amount"]) if "total_bribe_amount" in stats else None,
    )


# ---------------------------------------------------------------------------
# /messages
# ---------------------------------------------------------------------------


@messages_router.post("", response_model=EnqueueMessageResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_message(body: EnqueueMessageRequest, engine: NotificationEngine = Depends(get_engine)):
    """Validate and queue a notification for prioritized delivery."""
    try:
        queued = await engine.ingestion.submit(body.model_dump())
        return EnqueueMessageResponse(success=True, message_id=queued.id)

    except (NotificationError, DatabaseError) as e:
        logger.warning("Message rejected at ingestion", error=str(e), source=body.source)
        raise _http_error(e) from e


@messages_router.get("/{message_id}/status", response_model=MessageStatusResponse)
async def get_message_status(message_id: str, engine: NotificationEngine = Depends(get_engine)):
    """Lifecycle status plus what happened to each recipient."""
    try:
        view = await engine.status.message_status(message_id)
    except (NotificationError, DatabaseError) as e:
        raise _http_error(e) from e

    stats = view["stats"]
    return MessageStatusResponse(
        message_id=view["message_id"],
        status=view["status"],
        source=view["source"],
        target=view["target"],
        error=view["error"],
        processed_at=view["processed_at"],
        created_at=view["created_at"],
        per_recipient=[RecipientOutcomeResponse.from_domain(o) for o in view["per_recipient"]],
        stats=MessageStatsResponse(
            total=stats["total"],
            passed=stats["passed"],
            failed=stats["failed"],
            average_total_value=float(stats["average_total_value"]),
        ),
    )


@messages_router.post("/process", response_model=BatchResultResponse)
async def process_messages_now(
    body: ProcessBatchRequest | None = Body(default=None),
    engine: NotificationEngine = Depends(get_engine),
):
    """Run one batch immediately instead of waiting for the worker loop."""
    batch_size = body.batch_size if body else None
    try:
        result = await engine.processor.run_batch(batch_size)
    except DatabaseError as e:
        logger.error("Manual batch failed", error=str(e))
        raise _http_error(e) from e

    return BatchResultResponse(**result.to_dict())


# ---------------------------------------------------------------------------
# /prioritization
# ---------------------------------------------------------------------------


@prioritization_router.get("/config/{conversation_id}", response_model=ConfigResponse)
async def get_config(conversation_id: str, engine: NotificationEngine = Depends(get_engine)):
    """Stored policy, or the defaults (is_default=true) when none exists."""
    try:
        config = await engine.prioritization.get_config(conversation_id)
    except DatabaseError as e:
        raise _http_error(e) from e
    return ConfigResponse.from_domain(config)


@prioritization_router.put("/config/{conversation_id}", response_model=ConfigResponse)
async def update_config(
    conversation_id: str, body: UpdateConfigRequest, engine: NotificationEngine = Depends(get_engine)
):
    try:
        config = await engine.prioritization.update_config(
            conversation_id,
            body.minimum_notify_price,
            body.custom_value_prompt,
            body.is_enabled,
        )
    except (NotificationError, DatabaseError) as e:
        raise _http_error(e) from e
    return ConfigResponse.from_domain(config)


@prioritization_router.delete("/config/{conversation_id}", response_model=DeleteConfigResponse)
async def delete_config(conversation_id: str, engine: NotificationEngine = Depends(get_engine)):
    try:
        deleted = await engine.prioritization.delete_config(conversation_id)
    except DatabaseError as e:
        raise _http_error(e) from e
    return DeleteConfigResponse(success=True, deleted=deleted)


@prioritization_router.get("/evaluations", response_model=ConversationEvaluationsResponse)
async def list_conversation_evaluations(
    conversation_id: str = Query(..., min_length=1),
    limit: int = Query(default=50, ge=1, le=500, description="Maximum evaluations to return (1-500)"),
    engine: NotificationEngine = Depends(get_engine),
):
    """Recent admission decisions for one conversation."""
    try:
        view = await engine.prioritization.conversation_evaluations(conversation_id, limit)
    except (NotificationError, DatabaseError) as e:
        raise _http_error(e) from e

    return ConversationEvaluationsResponse(
        conversation_id=view["conversation_id"],
        evaluations=[EvaluationResponse.from_domain(e) for e in view["evaluations"]],
        stats=_stats_response(view["stats"]),
    )


@prioritization_router.get("/evaluations/{message_id}", response_model=MessageEvaluationsResponse)
async def list_message_evaluations(message_id: str, engine: NotificationEngine = Depends(get_engine)):
    """Every admission decision made for one message."""
    try:
        view = await engine.prioritization.message_evaluations(message_id)
    except (NotificationError, DatabaseError) as e:
        raise _http_error(e) from e

    return MessageEvaluationsResponse(
        message_id=view["message_id"],
        evaluations=[EvaluationResponse.from_domain(e) for e in view["evaluations"]],
        stats=_stats_response(view["stats"]),
    )
