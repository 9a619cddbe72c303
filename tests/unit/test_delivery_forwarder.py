from datetime import UTC, datetime
from decimal import Decimal

import pytest

from attention_market.features.notification_queue.domain import (
    Bribe,
    Evaluation,
    QueuedRequest,
    RequestStatus,
    UserTarget,
)
from attention_market.features.notification_queue.services.capabilities import (
    extract_delivery_text,
    format_for_valuation,
)


def make_request(payload) -> QueuedRequest:
    return QueuedRequest(
        id="msg-1",
        target=UserTarget(user_id="u-1"),
        source="shop",
        payload=payload,
        status=RequestStatus.PROCESSING,
        created_at=datetime.now(UTC),
    )


@pytest.mark.asyncio
async def test_successful_send_records_forwarded(fakes, engine):
    record = await engine.forwarder.forward(make_request({"text": "sale ends today"}), "+1555")

    assert record.forwarded is True
    assert record.rejection_reason is None
    assert fakes.channel.sent == [("+1555", "sale ends today")]


@pytest.mark.asyncio
async def test_channel_failure_is_recorded_not_raised(fakes, engine):
    fakes.channel.failing["+1555"] = "rejected"

    record = await engine.forwarder.forward(make_request({"text": "hi"}), "+1555")

    assert record.forwarded is False
    assert record.error_class == "rejected"
    assert record.rejection_reason == "gateway said no"
    assert ("msg-1", "+1555") in fakes.deliveries.rows


@pytest.mark.asyncio
async def test_unexpected_channel_exception_is_recorded(fakes, engine):
    async def explode(recipient_id, content):
        raise RuntimeError("socket closed")

    fakes.channel.send = explode

    record = await engine.forwarder.forward(make_request({"text": "hi"}), "+1555")

    assert record.forwarded is False
    assert record.error_class == "unexpected_error"


@pytest.mark.asyncio
async def test_recipient_outcomes_join_evaluations_and_deliveries(fakes, engine):
    for cid, passed in (("+1", True), ("+2", False)):
        await fakes.evaluations.insert_if_absent(
            Evaluation(
                queued_message_id="msg-1",
                conversation_id=cid,
                base_value=Decimal("1.00"),
                bribe_amount=Decimal("0.00"),
                total_value=Decimal("1.00"),
                threshold=Decimal("1.00") if passed else Decimal("2.00"),
                passed=passed,
                reason="r",
            )
        )
    await engine.forwarder.forward(make_request({"text": "hi"}), "+1")

    outcomes = {o.recipient_id: o for o in await engine.forwarder.recipient_outcomes("msg-1")}

    assert outcomes["+1"].forwarded is True
    assert outcomes["+1"].delivered_at is not None
    assert outcomes["+2"].evaluation_passed is False
    assert outcomes["+2"].forwarded is None


def test_delivery_text_prefers_common_fields():
    assert extract_delivery_text({"title": "x", "body": "the body"}) == "the body"
    assert extract_delivery_text({"message": "  ", "content": "c"}) == "c"


def test_delivery_text_falls_back_to_json():
    text = extract_delivery_text({"price": 5})

    assert '"price": 5' in text


def test_valuation_content_mentions_bribe_separately():
    request = make_request({"text": "buy now"})
    assert "payment amount will be added separately" not in format_for_valuation(request)

    request.bribe = Bribe(amount=Decimal("5.00"), currency="USD")
    content = format_for_valuation(request)

    assert "Source: shop" in content
    assert "buy now" in content
    assert "payment amount will be added separately" in content
