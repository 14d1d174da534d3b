import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.database import get_db
from app.main import app
from app.routers import whatsapp_webhook
from app.services.assistant_service import get_assistants_provider
from app.services.errors import DeliveryError
from app.services.llm import Run, RunStatus, ToolCall
from app.services.run_controller import FALLBACK_REPLY
from app.services.session_store import SessionStore

SECRET_HEADERS = {"X-Webhook-Secret": "test-secret"}


def _event(message_id="m1", body="1", **data):
    return {
        "event": "message:in:new",
        "data": {"id": message_id, "fromNumber": "+6591234567", "body": body, "fromMe": False, **data},
    }


@pytest.fixture
def provider(make_provider):
    calls = [ToolCall(id="call_1", name="selectJob", arguments='{"jobId": "wo-42"}')]
    return make_provider(
        runs=[
            Run(id="run_1", thread_id="thread_1", status=RunStatus.REQUIRES_ACTION, tool_calls=calls),
            Run(id="run_1", thread_id="thread_1", status=RunStatus.COMPLETED),
        ],
        reply="Job started.\n[1] Kitchen\n[2] Living Room\n[3] Store Room",
    )


@pytest.fixture
def store(fake_redis):
    return SessionStore(redis_client=fake_redis, ttl_seconds=3600)


@pytest.fixture
def client(db_session, seeded_job, provider, store, fake_redis):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_assistants_provider] = lambda: provider
    app.dependency_overrides[whatsapp_webhook.get_session_store] = lambda: store
    with patch("app.services.dedup_service.get_redis", return_value=fake_redis):
        yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mock_deliver():
    with patch("app.routers.whatsapp_webhook.deliver_reply", new_callable=AsyncMock) as mock:
        mock.return_value = 1
        yield mock


@pytest.fixture
def mock_send():
    with patch("app.routers.whatsapp_webhook.send_whatsapp_message", new_callable=AsyncMock) as mock:
        mock.return_value = True
        yield mock


class TestVerification:
    def test_correct_secret(self, client):
        response = client.get("/whatsapp/webhook", params={"secret": "test-secret"})

        assert response.status_code == 200
        assert response.text == "OK"

    def test_wrong_secret(self, client):
        response = client.get("/whatsapp/webhook", params={"secret": "nope"})
        assert response.status_code == 403

    def test_post_without_secret_rejected(self, client, mock_deliver):
        response = client.post("/whatsapp/webhook", json=_event())

        assert response.status_code == 401
        mock_deliver.assert_not_awaited()

    def test_bearer_token_accepted(self, client, mock_deliver):
        response = client.post(
            "/whatsapp/webhook", json=_event(), headers={"Authorization": "Bearer test-secret"}
        )
        assert response.status_code == 200


class TestInbound:
    def test_select_job_reply_lists_locations(self, client, mock_deliver, provider, store):
        response = client.post("/whatsapp/webhook", json=_event(body="1"), headers=SECRET_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"success": True}
        phone, text = mock_deliver.call_args.args
        assert phone == "6591234567"
        assert "[1] Kitchen" in text
        assert mock_deliver.call_args.kwargs["message_id"] == "m1"
        assert provider.messages == [("thread_1", "1")]
        assert asyncio.run(store.get_context("6591234567"))["work_order_id"] == "wo-42"

    def test_duplicate_delivery_processed_once(self, client, mock_deliver, provider):
        client.post("/whatsapp/webhook", json=_event(message_id="m1"), headers=SECRET_HEADERS)
        response = client.post("/whatsapp/webhook", json=_event(message_id="m1"), headers=SECRET_HEADERS)

        assert response.status_code == 200
        assert mock_deliver.await_count == 1
        assert len(provider.messages) == 1

    def test_outbound_echo_ignored(self, client, mock_deliver):
        response = client.post("/whatsapp/webhook", json=_event(fromMe=True), headers=SECRET_HEADERS)

        assert response.status_code == 200
        mock_deliver.assert_not_awaited()

    def test_other_events_ignored(self, client, mock_deliver):
        payload = {"event": "message:out:new", "data": {"id": "m9", "fromNumber": "+6591234567", "body": "x"}}

        response = client.post("/whatsapp/webhook", json=payload, headers=SECRET_HEADERS)

        assert response.status_code == 200
        mock_deliver.assert_not_awaited()

    def test_garbage_payload_acknowledged(self, client, mock_deliver):
        response = client.post("/whatsapp/webhook", content=b"not json", headers=SECRET_HEADERS)

        assert response.status_code == 200
        mock_deliver.assert_not_awaited()

    def test_unknown_tool_still_replies(self, client, mock_deliver, provider):
        calls = [ToolCall(id="call_x", name="deleteEverything", arguments="{}")]
        provider.runs = [
            Run(id="run_1", thread_id="thread_1", status=RunStatus.REQUIRES_ACTION, tool_calls=calls),
            Run(id="run_1", thread_id="thread_1", status=RunStatus.COMPLETED),
        ]
        provider.reply = "Sorry, I can't do that."

        client.post("/whatsapp/webhook", json=_event(message_id="m2", body="wipe it"), headers=SECRET_HEADERS)

        assert provider.submitted[0][0]["tool_call_id"] == "call_x"
        assert mock_deliver.call_args.args[1] == "Sorry, I can't do that."


class TestFailures:
    def test_deadline_sends_apology(self, client, mock_send):
        async def slow_turn(*args, **kwargs):
            await asyncio.sleep(5)

        with (
            patch("app.routers.whatsapp_webhook.process_inbound_message", slow_turn),
            patch.object(whatsapp_webhook.settings, "turn_timeout_seconds", 0.05),
        ):
            response = client.post("/whatsapp/webhook", json=_event(), headers=SECRET_HEADERS)

        assert response.status_code == 200
        mock_send.assert_awaited_once_with("6591234567", FALLBACK_REPLY)

    def test_unexpected_error_sends_apology(self, client, mock_send):
        with (
            patch(
                "app.routers.whatsapp_webhook.process_inbound_message",
                AsyncMock(side_effect=RuntimeError("boom")),
            ),
            patch("app.routers.whatsapp_webhook.alert_error", new_callable=AsyncMock) as mock_alert,
        ):
            response = client.post("/whatsapp/webhook", json=_event(), headers=SECRET_HEADERS)

        assert response.status_code == 200
        mock_send.assert_awaited_once_with("6591234567", FALLBACK_REPLY)
        mock_alert.assert_awaited_once()
        assert "boom" in mock_alert.call_args.args[0]
        assert mock_alert.call_args.args[1] == {"message_id": "m1", "phone": "6591234567"}

    def test_failed_delivery_is_acknowledged_without_apology(self, client, mock_deliver, mock_send):
        mock_deliver.side_effect = DeliveryError("6591234567", 0, "gateway rejected the message")

        with patch("app.routers.whatsapp_webhook.alert_error", new_callable=AsyncMock) as mock_alert:
            response = client.post("/whatsapp/webhook", json=_event(), headers=SECRET_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"success": True}
        mock_deliver.assert_awaited_once()
        mock_send.assert_not_awaited()
        mock_alert.assert_not_awaited()
