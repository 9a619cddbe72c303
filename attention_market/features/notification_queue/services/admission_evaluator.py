"""
Admission Evaluator.

Scores one queued request for one recipient conversation:

    total_value = base_value (AI estimate) + bribe_amount
    passed      = total_value >= minimum_notify_price

The policy is read fresh for every evaluation so config edits apply to the
next message without a restart. The valuation call runs under a hard timeout
with a bounded number of attempts; when every attempt fails the decision is
a recorded reject, never an exception.
"""

import asyncio
import time
from decimal import Decimal

from attention_market.config import settings
from attention_market.features.notification_queue.domain import (
    Evaluation,
    EvaluationOutcome,
    EvaluationTimeout,
    PrioritizationConfig,
    QueuedRequest,
    clamp_amount,
    to_money,
)
from attention_market.features.notification_queue.repository.config_repository import ConfigRepository
from attention_market.features.notification_queue.repository.evaluation_repository import (
    EvaluationRepository,
)
from attention_market.features.notification_queue.services.capabilities import (
    Valuation,
    ValuationCapability,
    format_for_valuation,
)
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DISABLED_REASON = "prioritization disabled"
FAIL_CLOSED_REASON = "evaluation failed, defaulting to reject"

ZERO = Decimal("0.00")


class AdmissionEvaluator:
    def __init__(
        self,
        valuation: ValuationCapability,
        configs=ConfigRepository,
        evaluations=EvaluationRepository,
        *,
        timeout_seconds: float | None = None,
        max_attempts: int | None = None,
        default_threshold: Decimal | None = None,
    ):
        self.valuation = valuation
        self.configs = configs
        self.evaluations = evaluations
        self.timeout_seconds = timeout_seconds or settings.VALUATION_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts or settings.VALUATION_MAX_ATTEMPTS)
        self.default_threshold = to_money(
            default_threshold if default_threshold is not None else settings.DEFAULT_MINIMUM_NOTIFY_PRICE
        )

    async def load_config(self, conversation_id: str) -> PrioritizationConfig:
        """Stored policy for the conversation, or the system default."""
        config = await self.configs.load(conversation_id)
        if config is None:
            return PrioritizationConfig.default(conversation_id, self.default_threshold)
        return config

    async def evaluate(self, request: QueuedRequest, conversation_id: str) -> EvaluationOutcome:
        started = time.perf_counter()
        config = await self.load_config(conversation_id)
        threshold = config.minimum_notify_price

        if not config.is_enabled:
            evaluation = Evaluation(
                queued_message_id=request.id,
                conversation_id=conversation_id,
                base_value=ZERO,
                bribe_amount=ZERO,
                total_value=ZERO,
                threshold=threshold,
                passed=True,
                reason=DISABLED_REASON,
            )
            logger.info("Prioritization disabled, auto-passing", conversation_id=conversation_id)
            return await self.evaluations.insert_if_absent(evaluation)

        bribe_amount = request.bribe_amount
        try:
            valuation = await self._estimate_with_retry(
                format_for_valuation(request),
                config.custom_value_prompt,
                {"conversation_id": conversation_id},
            )
            base_value = clamp_amount(to_money(valuation.base_value))
            reason = valuation.reason
        except EvaluationTimeout as e:
            logger.warning(
                "Valuation unavailable, failing closed",
                conversation_id=conversation_id,
                attempts=e.attempts,
                error=str(e),
            )
            evaluation = Evaluation(
                queued_message_id=request.id,
                conversation_id=conversation_id,
                base_value=ZERO,
                bribe_amount=bribe_amount,
                total_value=bribe_amount,
                threshold=threshold,
                passed=False,
                reason=FAIL_CLOSED_REASON,
            )
            return await self.evaluations.insert_if_absent(evaluation)

        total_value = base_value + bribe_amount
        evaluation = Evaluation(
            queued_message_id=request.id,
            conversation_id=conversation_id,
            base_value=base_value,
            bribe_amount=bribe_amount,
            total_value=total_value,
            threshold=threshold,
            passed=total_value >= threshold,
            reason=reason,
        )
        outcome = await self.evaluations.insert_if_absent(evaluation)

        logger.info(
            "Message evaluated",
            conversation_id=conversation_id,
            base_value=str(base_value),
            bribe_amount=str(bribe_amount),
            total_value=str(total_value),
            threshold=str(threshold),
            passed=outcome.evaluation.passed,
            created=outcome.created,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return outcome

    async def _estimate_with_retry(self, content: str, prompt_override: str | None, hints: dict) -> Valuation:
        """Call the valuation capability with a hard timeout per attempt."""
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self.valuation.estimate(content, prompt_override, hints),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(
                    "Valuation timed out",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    timeout=self.timeout_seconds,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "Valuation failed",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        raise EvaluationTimeout(
            f"Valuation failed after {self.max_attempts} attempts: {last_error!r}",
            attempts=self.max_attempts,
        ) from last_error
