"""
Domain subpackage for the notification queue feature.
"""

from .errors import (
    DeliveryError,
    EvaluationTimeout,
    NotFound,
    NotificationError,
    ValidationError,
)
from .models import (
    Bribe,
    DeliveryRecord,
    Evaluation,
    EvaluationOutcome,
    GlobalTarget,
    MAX_AMOUNT,
    NewRequest,
    PhoneTarget,
    PrioritizationConfig,
    QueuedRequest,
    RecipientOutcome,
    RequestStatus,
    SegmentTarget,
    Target,
    UserTarget,
    can_transition,
    clamp_amount,
    parse_target,
    target_to_dict,
    to_money,
)

__all__ = [
    "Bribe",
    "DeliveryError",
    "DeliveryRecord",
    "Evaluation",
    "EvaluationOutcome",
    "EvaluationTimeout",
    "GlobalTarget",
    "MAX_AMOUNT",
    "NewRequest",
    "NotFound",
    "NotificationError",
    "PhoneTarget",
    "PrioritizationConfig",
    "QueuedRequest",
    "RecipientOutcome",
    "RequestStatus",
    "SegmentTarget",
    "Target",
    "UserTarget",
    "ValidationError",
    "can_transition",
    "clamp_amount",
    "parse_target",
    "target_to_dict",
    "to_money",
]
