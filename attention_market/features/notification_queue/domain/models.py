"""
Domain models for the notification queue.

Plain dataclasses shared by the repositories, services and API layer.
Money amounts are Decimals rounded to cents so that
total_value == base_value + bribe_amount holds exactly after a round trip
through NUMERIC(10, 2) columns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from .errors import ValidationError

CENT = Decimal("0.01")
# Bribes and valuations are bounded so base + bribe always fits NUMERIC(10, 2)
MAX_AMOUNT = Decimal("1000000.00")


def to_money(value: Any) -> Decimal:
    """Coerce a number (or numeric string) into a cent-rounded Decimal."""
    if isinstance(value, bool):
        raise ValidationError("Amount must be a number, not a boolean")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_amount(amount: Decimal) -> Decimal:
    return max(-MAX_AMOUNT, min(MAX_AMOUNT, amount))


class RequestStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.FAILED)


ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.PROCESSING}),
    RequestStatus.PROCESSING: frozenset({RequestStatus.COMPLETED, RequestStatus.FAILED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.FAILED: frozenset(),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UserTarget:
    user_id: str
    type: str = field(default="user_id", init=False)


@dataclass(frozen=True, slots=True)
class PhoneTarget:
    phone_number: str
    type: str = field(default="phone_number", init=False)


@dataclass(frozen=True, slots=True)
class GlobalTarget:
    type: str = field(default="global", init=False)


@dataclass(frozen=True, slots=True)
class SegmentTarget:
    segment_id: str
    type: str = field(default="segment", init=False)


Target = UserTarget | PhoneTarget | GlobalTarget | SegmentTarget

TARGET_TYPES = ("user_id", "phone_number", "global", "segment")

# id field per target kind, with the camelCase spelling older senders use
_TARGET_ID_FIELDS = {
    "user_id": ("user_id", "userId"),
    "phone_number": ("phone_number", "phoneNumber"),
    "segment": ("segment_id", "segmentId"),
}


def _require_id(raw: dict[str, Any], kind: str) -> str:
    for key in _TARGET_ID_FIELDS[kind]:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise ValidationError(
        f"{kind} target must have a non-empty '{_TARGET_ID_FIELDS[kind][0]}' field",
        field="target",
    )


def parse_target(raw: Any) -> Target:
    """Build a Target from its JSON form, rejecting unknown or incomplete kinds."""
    if not isinstance(raw, dict):
        raise ValidationError("target must be an object", field="target")

    kind = raw.get("type")
    if not kind:
        raise ValidationError("target must have a 'type' field", field="target")

    if kind == "user_id":
        return UserTarget(user_id=_require_id(raw, kind))
    if kind == "phone_number":
        return PhoneTarget(phone_number=_require_id(raw, kind))
    if kind == "global":
        return GlobalTarget()
    if kind == "segment":
        return SegmentTarget(segment_id=_require_id(raw, kind))

    raise ValidationError(
        f"target.type must be one of: {', '.join(TARGET_TYPES)}", field="target"
    )


def target_to_dict(target: Target) -> dict[str, str]:
    if isinstance(target, UserTarget):
        return {"type": target.type, "user_id": target.user_id}
    if isinstance(target, PhoneTarget):
        return {"type": target.type, "phone_number": target.phone_number}
    if isinstance(target, SegmentTarget):
        return {"type": target.type, "segment_id": target.segment_id}
    if isinstance(target, GlobalTarget):
        return {"type": target.type}
    raise ValidationError(f"Unsupported target: {target!r}", field="target")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Bribe:
    """Optional payment attached by the sender to raise its admission odds."""

    amount: Decimal | None = None
    currency: str | None = None
    transaction_id: str | None = None
    payment_method: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Any) -> "Bribe | None":
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise ValidationError("bribe must be an object", field="bribe")

        amount = raw.get("amount")
        if amount is not None:
            amount = to_money(amount)
            if amount < 0:
                raise ValidationError("bribe.amount cannot be negative", field="bribe")
            if amount > MAX_AMOUNT:
                raise ValidationError(f"bribe.amount cannot exceed {MAX_AMOUNT}", field="bribe")

        metadata = raw.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValidationError("bribe.metadata must be an object", field="bribe")

        return cls(
            amount=amount,
            currency=raw.get("currency"),
            transaction_id=raw.get("transaction_id") or raw.get("transactionId"),
            payment_method=raw.get("payment_method") or raw.get("paymentMethod"),
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "amount": str(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "transaction_id": self.transaction_id,
            "payment_method": self.payment_method,
        }
        if self.metadata:
            data["metadata"] = self.metadata
        return data


@dataclass(slots=True)
class NewRequest:
    """A validated ingestion request, ready to be enqueued."""

    target: Target
    source: str
    payload: dict[str, Any]
    bribe: Bribe | None = None


@dataclass(slots=True)
class QueuedRequest:
    """A queued_messages row."""

    id: str
    target: Target
    source: str
    payload: dict[str, Any]
    status: RequestStatus
    created_at: datetime
    bribe: Bribe | None = None
    processed_at: datetime | None = None
    error: str | None = None

    @property
    def bribe_amount(self) -> Decimal:
        if self.bribe is None or self.bribe.amount is None:
            return Decimal("0.00")
        return to_money(self.bribe.amount)


# ---------------------------------------------------------------------------
# Admission policy and audit records
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class PrioritizationConfig:
    conversation_id: str
    minimum_notify_price: Decimal
    custom_value_prompt: str | None = None
    is_enabled: bool = True
    is_default: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def default(cls, conversation_id: str, threshold: Decimal) -> "PrioritizationConfig":
        return cls(
            conversation_id=conversation_id,
            minimum_notify_price=to_money(threshold),
            is_default=True,
        )


@dataclass(slots=True)
class Evaluation:
    """One admission decision for a (message, conversation) pair."""

    queued_message_id: str
    conversation_id: str
    base_value: Decimal
    bribe_amount: Decimal
    total_value: Decimal
    threshold: Decimal
    passed: bool
    reason: str
    created_at: datetime | None = None
    id: str | None = None


@dataclass(slots=True)
class EvaluationOutcome:
    evaluation: Evaluation
    created: bool  # False when an earlier run already recorded this pair


@dataclass(slots=True)
class DeliveryRecord:
    queued_message_id: str
    source: str
    conversation_id: str
    forwarded: bool
    rejection_reason: str | None = None
    error_class: str | None = None
    created_at: datetime | None = None
    id: str | None = None


@dataclass(slots=True)
class RecipientOutcome:
    """Evaluation joined with its delivery record, if any."""

    recipient_id: str
    evaluation_passed: bool
    base_value: Decimal
    bribe_amount: Decimal
    total_value: Decimal
    threshold: Decimal
    reason: str
    forwarded: bool | None = None
    rejection_reason: str | None = None
    delivered_at: datetime | None = None
