"""
Request and response models for the notification queue routes.
Money amounts travel as JSON numbers.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from attention_market.features.notification_queue.domain import (
    Evaluation,
    PrioritizationConfig,
    RecipientOutcome,
)

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class EnqueueMessageRequest(BaseModel):
    """Inbound notification from an upstream sender."""

    target: dict[str, Any] = Field(..., description="Tagged target: user_id | phone_number | global | segment")
    source: str = Field(..., description="Opaque sender identifier")
    payload: dict[str, Any] = Field(..., description="Message content, any JSON object")
    bribe: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("bribe", "bribePayload"),
        description="Optional payment attached to the message",
    )


class ProcessBatchRequest(BaseModel):
    batch_size: int | None = Field(
        default=None,
        ge=1,
        le=100,
        validation_alias=AliasChoices("batch_size", "batchSize"),
        description="Maximum requests to claim (defaults to PROCESS_BATCH_SIZE)",
    )


class UpdateConfigRequest(BaseModel):
    minimum_notify_price: Decimal = Field(
        ...,
        validation_alias=AliasChoices("minimum_notify_price", "minimumNotifyPrice"),
        description="Threshold in dollars, may be negative",
    )
    custom_value_prompt: str | None = Field(
        default=None,
        max_length=4000,
        validation_alias=AliasChoices("custom_value_prompt", "customValuePrompt"),
    )
    is_enabled: bool = Field(default=True, validation_alias=AliasChoices("is_enabled", "isEnabled"))


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class EnqueueMessageResponse(BaseModel):
    success: bool
    message_id: str


class RecipientOutcomeResponse(BaseModel):
    recipient_id: str
    evaluation_passed: bool
    base_value: float
    bribe_amount: float
    total_value: float
    reason: str
    forwarded: bool | None = None
    rejection_reason: str | None = None
    delivered_at: datetime | None = None

    @classmethod
    def from_domain(cls, outcome: RecipientOutcome) -> "RecipientOutcomeResponse":
        return cls(
            recipient_id=outcome.recipient_id,
            evaluation_passed=outcome.evaluation_passed,
            base_value=float(outcome.base_value),
            bribe_amount=float(outcome.bribe_amount),
            total_value=float(outcome.total_value),
            reason=outcome.reason,
            forwarded=outcome.forwarded,
            rejection_reason=outcome.rejection_reason,
            delivered_at=outcome.delivered_at,
        )


class MessageStatsResponse(BaseModel):
    total: int
    passed: int
    failed: int
    average_total_value: float


class MessageStatusResponse(BaseModel):
    message_id: str
    status: str
    source: str
    target: dict[str, Any]
    error: str | None = None
    processed_at: datetime | None = None
    created_at: datetime
    per_recipient: list[RecipientOutcomeResponse]
    stats: MessageStatsResponse


class BatchResultResponse(BaseModel):
    success: bool = True
    claimed: int
    processed: int
    failed: int
    errors: list[dict[str, Any]]
    stats: dict[str, int]
    duration_seconds: float


class ConfigResponse(BaseModel):
    conversation_id: str
    minimum_notify_price: float
    custom_value_prompt: str | None = None
    is_enabled: bool
    is_default: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, config: PrioritizationConfig) -> "ConfigResponse":
        return cls(
            conversation_id=config.conversation_id,
            minimum_notify_price=float(config.minimum_notify_price),
            custom_value_prompt=config.custom_value_prompt,
            is_enabled=config.is_enabled,
            is_default=config.is_default,
            created_at=config.created_at,
            updated_at=config.updated_at,
        )


class DeleteConfigResponse(BaseModel):
    success: bool
    deleted: bool


class EvaluationResponse(BaseModel):
    id: str | None = None
    message_id: str
    conversation_id: str
    base_value: float
    bribe_amount: float
    total_value: float
    threshold: float
    passed: bool
    reason: str
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, evaluation: Evaluation) -> "EvaluationResponse":
        return cls(
            id=evaluation.id,
            message_id=evaluation.queued_message_id,
            conversation_id=evaluation.conversation_id,
            base_value=float(evaluation.base_value),
            bribe_amount=float(evaluation.bribe_amount),
            total_value=float(evaluation.total_value),
            threshold=float(evaluation.threshold),
            passed=evaluation.passed,
            reason=evaluation.reason,
            created_at=evaluation.created_at,
        )


class EvaluationStatsResponse(BaseModel):
    total: int
    passed: int
    failed: int
    average_value: float
    average_base_value: float | None = None
    total_bribe_amount: float | None = None


class ConversationEvaluationsResponse(BaseModel):
    conversation_id: str
    evaluations: list[EvaluationResponse]
    stats: EvaluationStatsResponse


class MessageEvaluationsResponse(BaseModel):
    message_id: str
    evaluations: list[EvaluationResponse]
    stats: EvaluationStatsResponse
