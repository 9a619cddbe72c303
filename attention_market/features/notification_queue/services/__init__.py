"""
Service layer for the notification queue feature.
"""

from .admission_evaluator import AdmissionEvaluator
from .batch_processor import BatchProcessor, BatchResult
from .delivery_forwarder import DeliveryForwarder
from .engine import NotificationEngine
from .ingestion import IngestionService
from .status_service import PrioritizationService, StatusService
from .target_resolver import TargetResolver

__all__ = [
    "AdmissionEvaluator",
    "BatchProcessor",
    "BatchResult",
    "DeliveryForwarder",
    "IngestionService",
    "NotificationEngine",
    "PrioritizationService",
    "StatusService",
    "TargetResolver",
]
