"""Status notifications to the actors assigned to a request."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ...data.directory import DirectoryStore
from ...models.domain import Request, RequestStatus
from .gateway import NotificationGateway
from .messages import build_payload, is_valid_device_token, status_message

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NotificationOutcome:
    """Per-recipient result. Failures are values so one recipient never aborts another."""

    user_id: str
    success: bool
    message: str
    should_remove_token: bool = False


class StatusNotifier:
    def __init__(self, directory: DirectoryStore, gateway: Optional[NotificationGateway]) -> None:
        self.directory = directory
        self.gateway = gateway

    def notify(
        self,
        user_id: str,
        request_id: str,
        status: RequestStatus,
        *,
        by_refiller: bool = False,
        **extra: object,
    ) -> NotificationOutcome:
        if self.gateway is None:
            return NotificationOutcome(user_id, False, "Push gateway not configured")
        try:
            token = self.directory.get_device_token(user_id)
            if not token:
                logger.warning(f"Device token not found for user: {user_id}")
                return NotificationOutcome(user_id, False, f"Device token not found for user: {user_id}")
            if not is_valid_device_token(token):
                logger.warning(f"Invalid device token format for user: {user_id}")
                return NotificationOutcome(user_id, False, f"Invalid device token format for user: {user_id}")

            message = status_message(status, by_refiller=by_refiller)
            result = self.gateway.send(
                token, message.title, message.body, build_payload(request_id, status, message, **extra)
            )
        except Exception as e:
            logger.warning(f"Error notifying user {user_id} about {request_id}: {e}")
            return NotificationOutcome(user_id, False, str(e) or type(e).__name__)

        if result.should_remove_token:
            logger.warning(f"Device token for user {user_id} is no longer valid and should be purged")
        elif not result.success:
            logger.warning(f"Failed to notify user {user_id}: {result.message}")
        return NotificationOutcome(user_id, result.success, result.message, result.should_remove_token)

    def notify_counterpart(
        self, request: Request, actor_user_id: str, status: RequestStatus
    ) -> Optional[NotificationOutcome]:
        """Tell the other side of the request that ``actor_user_id`` moved it to ``status``."""
        by_refiller = bool(request.agent_user_id) and actor_user_id == request.agent_user_id
        recipient = request.kitchen_user_id if by_refiller else request.agent_user_id
        if not recipient or recipient == actor_user_id:
            logger.info(f"No counterpart to notify for request {request.request_id}")
            return None
        return self.notify(recipient, request.request_id, status, by_refiller=by_refiller)

    def broadcast(self, user_ids: Iterable[str], request_id: str, status: RequestStatus) -> list[NotificationOutcome]:
        return [self.notify(user_id, request_id, status) for user_id in user_ids]
