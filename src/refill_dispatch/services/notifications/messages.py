"""Push notification catalog for request status changes."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ...config import settings
from ...models.domain import RequestStatus


@dataclass(frozen=True, slots=True)
class StatusMessage:
    type: str
    title: str
    body: str


STATUS_MESSAGES: dict[RequestStatus, StatusMessage] = {
    RequestStatus.PENDING: StatusMessage("notify_new_request", "New Request", "New Request Assigned"),
    RequestStatus.ORDER_READY: StatusMessage("notify_new_order", "New Order", "New Order Assigned"),
    RequestStatus.ASSIGNED: StatusMessage(
        "notify_request_assigned", "Request Assigned", "Request Assigned to Refiller"
    ),
    RequestStatus.REFILLED: StatusMessage(
        "notify_request_refilled", "Refilled by Refiller", "Request Refilled by Refiller"
    ),
    RequestStatus.SUBMITTED: StatusMessage(
        "notify_request_submitted", "Submitted by Kitchen", "Request Submitted by Kitchen"
    ),
    RequestStatus.NOT_SUBMITTED: StatusMessage(
        "notify_request_notSubmitted", "NotSubmitted by Kitchen", "Request NotSubmitted by Kitchen"
    ),
    RequestStatus.CANCELLED: StatusMessage("notify_order_canceled", "Order Canceled", "Order Canceled by Kitchen"),
    RequestStatus.COMPLETED: StatusMessage("notify_order_completed", "Order Completed", "Order Completed by Kitchen"),
}

REFILLER_COMPLETED = StatusMessage("notify_request_completed", "Request Completed", "Request Completed by Refiller")

_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_:\-]+$")


def status_message(status: RequestStatus, *, by_refiller: bool = False) -> StatusMessage:
    if status is RequestStatus.COMPLETED and by_refiller:
        return REFILLER_COMPLETED
    return STATUS_MESSAGES[status]


def build_payload(request_id: str, status: RequestStatus, message: StatusMessage, **extra: object) -> dict[str, str]:
    """Data payload for the push message. The provider only accepts string values."""
    payload = {"type": message.type, "requestId": request_id, "status": status.value}
    payload.update({key: value for key, value in extra.items() if value is not None})
    return {key: str(value) for key, value in payload.items()}


def is_valid_device_token(token: str | None, *, min_length: int | None = None) -> bool:
    if not token or not isinstance(token, str):
        return False
    minimum = min_length if min_length is not None else settings.min_device_token_length
    return len(token) >= minimum and bool(_TOKEN_PATTERN.match(token))
