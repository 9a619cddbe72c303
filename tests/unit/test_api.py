from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from attention_market.db.helpers import DatabaseError
from attention_market.features.debounce.coordinator import DebounceStoreError
from attention_market.features.notification_queue.api.router import get_engine
from attention_market.main import app


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()
    if hasattr(app.state, "debounce"):
        del app.state.debounce


def enqueue_body(**overrides):
    data = {
        "target": {"type": "user_id", "user_id": "u-1"},
        "source": "shop",
        "payload": {"text": "sale ends today"},
    }
    data.update(overrides)
    return data


class TestMessages:
    def test_enqueue_returns_created_with_id(self, client, fakes):
        response = client.post("/messages", json=enqueue_body(bribePayload={"amount": 5}))

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert fakes.queue.requests[data["message_id"]].bribe_amount == Decimal("5.00")

    def test_unknown_target_type_is_bad_request(self, client, fakes):
        response = client.post("/messages", json=enqueue_body(target={"type": "everyone"}))

        assert response.status_code == 400
        assert fakes.queue.requests == {}

    def test_bribe_beyond_money_column_is_bad_request(self, client, fakes):
        response = client.post("/messages", json=enqueue_body(bribe={"amount": 50_000_000}))

        assert response.status_code == 400
        assert fakes.queue.requests == {}

    def test_missing_payload_is_unprocessable(self, client):
        body = enqueue_body()
        del body["payload"]

        assert client.post("/messages", json=body).status_code == 422

    def test_storage_outage_is_service_unavailable(self, client, engine, monkeypatch):
        monkeypatch.setattr(engine.ingestion, "submit", AsyncMock(side_effect=DatabaseError("pool closed")))

        assert client.post("/messages", json=enqueue_body()).status_code == 503

    def test_status_of_unknown_message_is_not_found(self, client):
        assert client.get("/messages/does-not-exist/status").status_code == 404

    def test_status_after_processing_lists_recipients(self, client, fakes):
        fakes.segments.segments["vip"] = ["+1", "+2"]
        fakes.valuation.base_value = Decimal("2")
        message_id = client.post(
            "/messages", json=enqueue_body(target={"type": "segment", "segment_id": "vip"})
        ).json()["message_id"]

        batch = client.post("/messages/process", json={"batchSize": 5})
        status = client.get(f"/messages/{message_id}/status")

        assert batch.status_code == 200
        assert batch.json()["processed"] == 1
        assert batch.json()["stats"]["total_delivered"] == 2

        data = status.json()
        assert data["status"] == "completed"
        assert data["target"] == {"type": "segment", "segment_id": "vip"}
        assert {r["recipient_id"] for r in data["per_recipient"]} == {"+1", "+2"}
        assert all(r["forwarded"] for r in data["per_recipient"])
        assert data["stats"] == {"total": 2, "passed": 2, "failed": 0, "average_total_value": 2.0}

    def test_process_without_body_uses_default_batch_size(self, client):
        response = client.post("/messages/process")

        assert response.status_code == 200
        assert response.json()["claimed"] == 0

    def test_process_rejects_oversized_batch(self, client):
        assert client.post("/messages/process", json={"batch_size": 1000}).status_code == 422


class TestPrioritization:
    def test_missing_config_returns_defaults(self, client):
        data = client.get("/prioritization/config/+1555").json()

        assert data["is_default"] is True
        assert data["minimum_notify_price"] == 1.0
        assert data["is_enabled"] is True

    def test_put_then_get_round_trips(self, client):
        response = client.put(
            "/prioritization/config/+1555",
            json={"minimumNotifyPrice": -2.5, "customValuePrompt": "I like deals", "isEnabled": True},
        )
        data = client.get("/prioritization/config/+1555").json()

        assert response.status_code == 200
        assert data["minimum_notify_price"] == -2.5
        assert data["custom_value_prompt"] == "I like deals"
        assert data["is_default"] is False

    @pytest.mark.parametrize("price", [-1000.01, 10000.01])
    def test_put_out_of_range_price_is_bad_request(self, client, price):
        response = client.put("/prioritization/config/+1555", json={"minimum_notify_price": price})

        assert response.status_code == 400

    def test_delete_reports_whether_a_row_existed(self, client, fakes):
        client.put("/prioritization/config/+1555", json={"minimum_notify_price": 3})

        first = client.delete("/prioritization/config/+1555").json()
        second = client.delete("/prioritization/config/+1555").json()

        assert first["deleted"] is True
        assert second["deleted"] is False
        assert "+1555" not in fakes.configs.rows

    @pytest.mark.parametrize("limit", [0, 501])
    def test_evaluation_limit_is_bounded(self, client, limit):
        response = client.get("/prioritization/evaluations", params={"conversation_id": "+1", "limit": limit})

        assert response.status_code == 422

    def test_message_without_evaluations_is_not_found(self, client):
        assert client.get("/prioritization/evaluations/msg-unknown").status_code == 404

    def test_evaluation_history_includes_stats(self, client, fakes):
        fakes.segments.segments["vip"] = ["+1"]
        fakes.valuation.base_value = Decimal("0.50")
        message_id = client.post(
            "/messages",
            json=enqueue_body(target={"type": "segment", "segment_id": "vip"}, bribe={"amount": 1}),
        ).json()["message_id"]
        client.post("/messages/process")

        by_message = client.get(f"/prioritization/evaluations/{message_id}").json()
        by_conversation = client.get("/prioritization/evaluations", params={"conversation_id": "+1"}).json()

        assert by_message["stats"]["total_bribe_amount"] == 1.0
        assert by_message["stats"]["average_base_value"] == 0.5
        assert by_message["evaluations"][0]["total_value"] == 1.5
        assert by_conversation["stats"]["passed"] == 1
        assert by_conversation["evaluations"][0]["message_id"] == message_id


class TestInbound:
    def test_inbound_message_is_accepted(self, client):
        coordinator = MagicMock()
        coordinator.on_inbound = AsyncMock(return_value="2025-01-01T12:00:00+00:00")
        app.state.debounce = coordinator

        response = client.post("/inbound/messages", json={"conversation_id": "+1555"})

        assert response.status_code == 202
        assert response.json()["scheduled"] is True
        coordinator.on_inbound.assert_awaited_once_with("+1555", None)

    def test_store_failure_is_service_unavailable(self, client):
        coordinator = MagicMock()
        coordinator.on_inbound = AsyncMock(side_effect=DebounceStoreError("redis down"))
        app.state.debounce = coordinator

        assert client.post("/inbound/messages", json={"conversation_id": "+1555"}).status_code == 503

    def test_missing_coordinator_is_service_unavailable(self, client):
        assert client.post("/inbound/messages", json={"conversation_id": "+1555"}).status_code == 503
