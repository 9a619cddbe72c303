# attention_market/services/openai_service.py
"""
OpenAI Service for message valuation.
Asks the model for a dollar value of an incoming message to its recipient.
"""

import json
from typing import Any

from openai import AsyncOpenAI

from attention_market.config import settings
from attention_market.features.notification_queue.domain import (
    MAX_AMOUNT,
    ValidationError,
    clamp_amount,
    to_money,
)
from attention_market.features.notification_queue.services.capabilities import Valuation
from attention_market.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_VALUE_PROMPT = """
You are evaluating an incoming message for its relevance and value to the recipient.

Your task is to output a single dollar amount representing the message's value:
- Positive values = beneficial, interesting, or valuable content
- Negative values = spam, annoying, or costly (waste of time/attention)
- Zero = neutral or informational

Consider:
- Is this relevant to the recipient?
- Is this time-sensitive or urgent?
- Does this provide value (information, opportunity, entertainment)?
- Is this spam or low-quality content?

Output a dollar amount that represents the value of this message to the recipient.
Examples:
- Important business opportunity: $50-$500
- Useful information: $5-$20
- Casual update: $1-$5
- Neutral/informational: $0
- Mild annoyance/spam: -$1 to -$5
- Significant spam/scam: -$10 to -$50

### Output Requirements
Return ONLY valid JSON (no backticks, no prose):
{"value": <number, may be negative>, "reason": "<brief explanation>"}
""".strip()


class OpenAIServiceError(Exception):
    """Base exception for OpenAI service errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


def build_system_prompt(custom_prompt: str | None) -> str:
    if custom_prompt:
        return f"{DEFAULT_VALUE_PROMPT}\n\n--- CUSTOM INSTRUCTIONS ---\n{custom_prompt}"
    return DEFAULT_VALUE_PROMPT


class OpenAIValuationService:
    """
    Valuation capability backed by the OpenAI chat completions API.

    Makes a single call per estimate; timeout and retry policy belong to the
    admission evaluator so that fail-closed behaviour is decided in one place.
    """

    def __init__(self, client: AsyncOpenAI | None = None):
        self.client = client or self._create_client()

    def _create_client(self) -> AsyncOpenAI:
        if not settings.OPENAI_API_KEY:
            raise OpenAIServiceError("OPENAI_API_KEY not configured in settings", recoverable=False)

        logger.info(
            "OpenAI client initialized",
            model=settings.OPENAI_MODEL,
            timeout=settings.VALUATION_TIMEOUT_SECONDS,
        )
        # SDK-level retries off; the evaluator owns the retry budget
        return AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.VALUATION_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def close(self) -> None:
        await self.client.close()

    def _build_user_message(self, content: str, recipient_hints: dict[str, Any]) -> str:
        if not recipient_hints:
            return content
        hints = json.dumps(recipient_hints, indent=2, default=str)
        return f"{content}\n\n--- RECIPIENT ---\n{hints}"

    async def estimate(
        self,
        content: str,
        prompt_override: str | None,
        recipient_hints: dict[str, Any],
    ) -> Valuation:
        response = await self.client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": build_system_prompt(prompt_override)},
                {"role": "user", "content": self._build_user_message(content, recipient_hints)},
            ],
            max_tokens=settings.OPENAI_MAX_TOKENS,
            temperature=settings.OPENAI_TEMPERATURE,
            response_format={"type": "json_object"},
        )

        if not response.choices or not response.choices[0].message.content:
            raise OpenAIServiceError("Empty response from OpenAI API")

        valuation = self._parse_valuation(response.choices[0].message.content.strip())
        logger.debug(
            "OpenAI valuation received",
            base_value=str(valuation.base_value),
            usage_tokens=response.usage.total_tokens if response.usage else 0,
        )
        return valuation

    def _parse_valuation(self, raw_result: str) -> Valuation:
        """Parse {"value": number, "reason": str} from the model output."""
        try:
            result = json.loads(raw_result)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse OpenAI valuation", error=str(e), raw=raw_result[:200])
            raise OpenAIServiceError(f"Invalid JSON from valuation model: {e}") from e

        value = result.get("value") if isinstance(result, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise OpenAIServiceError(f"Valuation model returned no numeric value: {raw_result[:200]}")

        try:
            base_value = to_money(value)
        except ValidationError as e:
            raise OpenAIServiceError(f"Valuation model returned invalid value: {value!r}") from e

        if abs(base_value) > MAX_AMOUNT:
            logger.warning("Valuation out of range, clamping", value=str(base_value), limit=str(MAX_AMOUNT))
            base_value = clamp_amount(base_value)

        reason = str(result.get("reason") or "no reason given").strip()
        return Valuation(base_value=base_value, reason=reason)
