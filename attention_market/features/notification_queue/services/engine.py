"""
Explicit wiring of the notification pipeline.

Built once at startup from concrete collaborators and stored on
app.state; nothing in the pipeline reaches for module-level singletons.
"""

from dataclasses import dataclass

from attention_market.features.notification_queue.repository.config_repository import ConfigRepository
from attention_market.features.notification_queue.repository.delivery_repository import DeliveryRepository
from attention_market.features.notification_queue.repository.evaluation_repository import (
    EvaluationRepository,
)
from attention_market.features.notification_queue.repository.queue_repository import QueueRepository
from attention_market.features.notification_queue.repository.recipient_repository import (
    RecipientRepository,
    SegmentMembershipRepository,
)
from attention_market.features.notification_queue.services.admission_evaluator import AdmissionEvaluator
from attention_market.features.notification_queue.services.batch_processor import BatchProcessor
from attention_market.features.notification_queue.services.capabilities import (
    OutboundChannel,
    SegmentMembership,
    ValuationCapability,
)
from attention_market.features.notification_queue.services.delivery_forwarder import DeliveryForwarder
from attention_market.features.notification_queue.services.ingestion import IngestionService
from attention_market.features.notification_queue.services.status_service import (
    PrioritizationService,
    StatusService,
)
from attention_market.features.notification_queue.services.target_resolver import TargetResolver


@dataclass
class NotificationEngine:
    queue: object
    ingestion: IngestionService
    resolver: TargetResolver
    evaluator: AdmissionEvaluator
    forwarder: DeliveryForwarder
    processor: BatchProcessor
    status: StatusService
    prioritization: PrioritizationService

    @classmethod
    def build(
        cls,
        valuation: ValuationCapability,
        channel: OutboundChannel,
        segments: SegmentMembership = SegmentMembershipRepository,
        *,
        queue=QueueRepository,
        recipients=RecipientRepository,
        configs=ConfigRepository,
        evaluations=EvaluationRepository,
        deliveries=DeliveryRepository,
        **evaluator_options,
    ) -> "NotificationEngine":
        resolver = TargetResolver(recipients, segments)
        evaluator = AdmissionEvaluator(valuation, configs, evaluations, **evaluator_options)
        forwarder = DeliveryForwarder(channel, deliveries, evaluations)

        return cls(
            queue=queue,
            ingestion=IngestionService(queue),
            resolver=resolver,
            evaluator=evaluator,
            forwarder=forwarder,
            processor=BatchProcessor(resolver, evaluator, forwarder, queue),
            status=StatusService(forwarder, queue),
            prioritization=PrioritizationService(evaluator, configs, evaluations),
        )
