"""
Batch Processor: drives queued requests through their lifecycle.

    pending --claim--> processing --> completed
                                  \\-> failed (unresolvable target or recipient error)

Claiming is the only pending -> processing transition and is atomic in the
queue store, so concurrent batches never share a request. Inside a request
every recipient is evaluated (and forwarded, if admitted) in its own task;
one recipient's failure never stops its siblings. Evaluation timeouts and
channel errors are recorded outcomes; anything else escaping a recipient
(a store outage, say) fails the request once its siblings have finished.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

from attention_market.config import settings
from attention_market.db.helpers import DatabaseError
from attention_market.features.notification_queue.domain import QueuedRequest
from attention_market.features.notification_queue.repository.queue_repository import QueueRepository
from attention_market.features.notification_queue.services.admission_evaluator import AdmissionEvaluator
from attention_market.features.notification_queue.services.delivery_forwarder import DeliveryForwarder
from attention_market.features.notification_queue.services.target_resolver import TargetResolver
from attention_market.infrastructure.observability.logging import bind_message_context, get_logger

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """Counters for one batch run."""

    claimed: int = 0
    processed: int = 0
    failed: int = 0
    total_recipients: int = 0
    total_evaluations: int = 0
    total_passed: int = 0
    total_delivered: int = 0
    recipient_errors: int = 0
    errors: list[dict] = field(default_factory=list)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_seconds: float = 0.0

    def record_failure(self, message_id: str, error: str) -> None:
        self.failed += 1
        self.errors.append({"message_id": message_id, "error": error})

    def finalize(self) -> None:
        self.duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "claimed": self.claimed,
            "processed": self.processed,
            "failed": self.failed,
            "errors": self.errors,
            "stats": {
                "total_recipients": self.total_recipients,
                "total_evaluations": self.total_evaluations,
                "total_passed": self.total_passed,
                "total_delivered": self.total_delivered,
                "recipient_errors": self.recipient_errors,
            },
            "duration_seconds": round(self.duration_seconds, 3),
        }


class BatchProcessor:
    def __init__(
        self,
        resolver: TargetResolver,
        evaluator: AdmissionEvaluator,
        forwarder: DeliveryForwarder,
        queue=QueueRepository,
        *,
        max_concurrent_recipients: int | None = None,
    ):
        self.resolver = resolver
        self.evaluator = evaluator
        self.forwarder = forwarder
        self.queue = queue
        self.max_concurrent_recipients = max_concurrent_recipients or settings.MAX_CONCURRENT_RECIPIENTS

    async def run_batch(self, batch_size: int | None = None) -> BatchResult:
        """Claim up to batch_size pending requests and process each one."""
        batch_size = batch_size or settings.PROCESS_BATCH_SIZE
        result = BatchResult()

        claimed = await self.queue.claim_pending(batch_size)
        result.claimed = len(claimed)

        if not claimed:
            logger.debug("No pending messages to process")
            result.finalize()
            return result

        logger.info("Processing queued messages", count=len(claimed), batch_size=batch_size)

        for request in claimed:
            with bind_message_context(request.id, source=request.source):
                try:
                    await self._process_request(request, result)
                except Exception as e:
                    logger.exception("Message processing aborted")
                    await self._fail_after_error(request, e, result)

        result.finalize()
        logger.info("Batch completed", **result.to_dict())
        return result

    async def _process_request(self, request: QueuedRequest, result: BatchResult) -> None:
        try:
            recipients = await self.resolver.resolve(request.target)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning("Target resolution failed", target_type=request.target.type, error=error)
            await self.queue.mark_failed(request.id, error)
            result.record_failure(request.id, error)
            return

        result.total_recipients += len(recipients)
        if not recipients:
            logger.warning("No recipients resolved", target_type=request.target.type)

        semaphore = asyncio.Semaphore(self.max_concurrent_recipients)
        tasks = [
            self._process_recipient_with_semaphore(semaphore, request, conversation_id, result)
            for conversation_id in recipients
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        failures = [(cid, error) for cid, error in zip(recipients, outcomes) if isinstance(error, Exception)]
        if failures:
            # A recipient without a recorded outcome means the request did not complete
            conversation_id, error = failures[0]
            message = (
                f"{len(failures)} of {len(recipients)} recipients failed; "
                f"{conversation_id}: {str(error) or type(error).__name__}"
            )
            await self.queue.mark_failed(request.id, message)
            result.record_failure(request.id, message)
            return

        await self.queue.mark_completed(request.id)
        result.processed += 1

    async def _process_recipient_with_semaphore(
        self,
        semaphore: asyncio.Semaphore,
        request: QueuedRequest,
        conversation_id: str,
        result: BatchResult,
    ) -> None:
        async with semaphore:
            await self._process_recipient(request, conversation_id, result)

    async def _process_recipient(self, request: QueuedRequest, conversation_id: str, result: BatchResult) -> None:
        try:
            outcome = await self.evaluator.evaluate(request, conversation_id)
            result.total_evaluations += 1

            evaluation = outcome.evaluation
            if not evaluation.passed:
                return
            result.total_passed += 1

            # An evaluation recorded by an earlier run may already have been forwarded
            if not outcome.created:
                logger.info("Skipping forward for previously evaluated recipient", conversation_id=conversation_id)
                return

            record = await self.forwarder.forward(request, conversation_id)
            if record.forwarded:
                result.total_delivered += 1

        except Exception:
            result.recipient_errors += 1
            logger.exception("Recipient processing failed", conversation_id=conversation_id)
            raise

    async def _fail_after_error(self, request: QueuedRequest, error: Exception, result: BatchResult) -> None:
        message = str(error) or type(error).__name__
        try:
            await self.queue.mark_failed(request.id, message)
        except DatabaseError as e:
            logger.error("Could not mark message failed, leaving for reaper", error=str(e))
        result.record_failure(request.id, message)
