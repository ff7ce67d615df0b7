import json

import httpx
import pytest

from src.refill_dispatch.models.domain import Request, RequestStatus
from src.refill_dispatch.services.notifications.gateway import PushClient
from src.refill_dispatch.services.notifications.messages import (
    STATUS_MESSAGES,
    build_payload,
    is_valid_device_token,
    status_message,
)
from src.refill_dispatch.services.notifications.notifier import StatusNotifier

TOKEN = "K1:" + "A1b2_C3-d4" * 16


def _client(handler) -> PushClient:
    return PushClient(
        base_url="https://push.test/",
        project_id="refill-prod",
        access_token="secret-token",
        transport=httpx.MockTransport(handler),
    )


def test_catalog_covers_every_status():
    assert set(STATUS_MESSAGES) == set(RequestStatus)


def test_completed_by_refiller_uses_its_own_message():
    assert status_message(RequestStatus.COMPLETED).type == "notify_order_completed"
    assert status_message(RequestStatus.COMPLETED, by_refiller=True).type == "notify_request_completed"


def test_payload_values_are_strings():
    payload = build_payload("REQ-0001", RequestStatus.ASSIGNED, status_message(RequestStatus.ASSIGNED), priority=1, note=None)

    assert payload == {
        "type": "notify_request_assigned",
        "requestId": "REQ-0001",
        "status": "Assigned",
        "priority": "1",
    }


@pytest.mark.parametrize(
    "token, valid",
    [(TOKEN, True), ("short:token", False), (TOKEN + " ", False), (TOKEN.replace("_", "/"), False), (None, False)],
)
def test_device_token_validation(token, valid):
    assert is_valid_device_token(token) is valid


def test_push_client_requires_configuration():
    with pytest.raises(ValueError):
        PushClient(project_id="", access_token="")


def test_push_client_sends_message():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"name": "projects/refill-prod/messages/42"})

    result = _client(handler).send(TOKEN, "New Order", "New Order Assigned", {"requestId": "REQ-0001"})

    assert result.success is True
    assert result.message_id == "projects/refill-prod/messages/42"
    request = captured[0]
    assert str(request.url) == "https://push.test/v1/projects/refill-prod/messages:send"
    assert request.headers["Authorization"] == "Bearer secret-token"
    body = json.loads(request.content)
    assert body["message"]["token"] == TOKEN
    assert body["message"]["notification"] == {"title": "New Order", "body": "New Order Assigned"}
    assert body["message"]["data"] == {"requestId": "REQ-0001"}


def test_malformed_token_is_rejected_without_a_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    result = _client(handler).send("bad token", "t", "b", {})

    assert result.success is False
    assert result.message == "Invalid device token format"


def test_unregistered_token_should_be_removed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            404,
            json={
                "error": {
                    "status": "NOT_FOUND",
                    "details": [
                        {"@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError", "errorCode": "UNREGISTERED"}
                    ],
                }
            },
        )

    result = _client(handler).send(TOKEN, "t", "b", {})

    assert result.success is False
    assert result.should_remove_token is True
    assert result.message == "Device token not registered"


def test_invalid_argument_should_be_removed():
    result = _client(lambda request: httpx.Response(400, json={"error": {"status": "INVALID_ARGUMENT"}})).send(
        TOKEN, "t", "b", {}
    )

    assert result.should_remove_token is True
    assert result.message == "Invalid device token"


@pytest.mark.parametrize(
    "status_code, message",
    [(503, "Push provider unavailable, retry later"), (401, "Push authentication error"), (429, "Push quota exceeded")],
)
def test_transient_failures_keep_the_token(status_code, message):
    result = _client(lambda request: httpx.Response(status_code)).send(TOKEN, "t", "b", {})

    assert result.success is False
    assert result.should_remove_token is False
    assert result.message == message


def test_timeout_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    result = _client(handler).send(TOKEN, "t", "b", {})

    assert result.success is False
    assert result.message == "Push provider timed out"


def test_notifier_reports_missing_and_malformed_tokens(directory, gateway):
    directory.device_tokens["K2"] = "not-long-enough"
    notifier = StatusNotifier(directory, gateway)

    missing = notifier.notify("nobody", "REQ-0001", RequestStatus.PENDING)
    malformed = notifier.notify("K2", "REQ-0001", RequestStatus.PENDING)

    assert missing.message == "Device token not found for user: nobody"
    assert malformed.message == "Invalid device token format for user: K2"
    assert gateway.sent == []


def test_notify_counterpart(notifier, gateway):
    request = Request(
        request_id="REQ-0001",
        machine_id="M1",
        request_status=RequestStatus.REFILLED,
        kitchen_user_id="K1",
        agent_user_id="A1",
    )

    to_kitchen = notifier.notify_counterpart(request, "A1", RequestStatus.COMPLETED)
    to_agent = notifier.notify_counterpart(request, "K1", RequestStatus.SUBMITTED)

    assert to_kitchen.user_id == "K1"
    assert to_agent.user_id == "A1"
    assert [sent["payload"]["type"] for sent in gateway.sent] == ["notify_request_completed", "notify_request_submitted"]


def test_notify_counterpart_without_recipient(notifier, gateway):
    request = Request(request_id="REQ-0001", machine_id="M1", request_status=RequestStatus.PENDING, kitchen_user_id="K1")

    assert notifier.notify_counterpart(request, "K1", RequestStatus.ORDER_READY) is None
    assert gateway.sent == []


def test_broadcast_reports_each_recipient(notifier, gateway):
    outcomes = notifier.broadcast(["A1", "nobody", "K1"], "REQ-0001", RequestStatus.ORDER_READY)

    assert [(outcome.user_id, outcome.success) for outcome in outcomes] == [
        ("A1", True),
        ("nobody", False),
        ("K1", True),
    ]
    assert gateway.recipients() == ["A1", "K1"]
