"""Push notification exports."""

from .gateway import DeliveryResult, NotificationGateway, PushClient
from .messages import STATUS_MESSAGES, build_payload, is_valid_device_token, status_message
from .notifier import NotificationOutcome, StatusNotifier

__all__ = [
    "DeliveryResult",
    "NotificationGateway",
    "PushClient",
    "STATUS_MESSAGES",
    "build_payload",
    "is_valid_device_token",
    "status_message",
    "NotificationOutcome",
    "StatusNotifier",
]
