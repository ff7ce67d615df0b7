"""HTTP client for the push notification provider (FCM HTTP v1)."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from ...config import settings
from .messages import is_valid_device_token

logger = logging.getLogger(__name__)

# Provider error codes meaning the token will never work again.
_PURGE_ERROR_CODES = {"UNREGISTERED", "INVALID_ARGUMENT"}


@dataclass(slots=True)
class DeliveryResult:
    success: bool
    message: str
    should_remove_token: bool = False
    message_id: Optional[str] = None


class NotificationGateway(ABC):
    """Contract for delivering a push message to a device token."""

    @abstractmethod
    def send(self, device_token: str, title: str, body: str, payload: dict[str, str]) -> DeliveryResult:
        raise NotImplementedError


def _error_code(response: httpx.Response) -> str | None:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return None
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode"):
            return str(detail["errorCode"])
    return error.get("status")


def _failure_from_response(response: httpx.Response) -> DeliveryResult:
    code = _error_code(response)
    if code == "UNREGISTERED":
        return DeliveryResult(False, "Device token not registered", should_remove_token=True)
    if code in _PURGE_ERROR_CODES:
        return DeliveryResult(False, "Invalid device token", should_remove_token=True)
    if code == "SENDER_ID_MISMATCH":
        return DeliveryResult(False, "Push credentials mismatch")
    if code == "THIRD_PARTY_AUTH_ERROR" or response.status_code in (401, 403):
        return DeliveryResult(False, "Push authentication error")
    if code == "UNAVAILABLE" or response.status_code == 503:
        return DeliveryResult(False, "Push provider unavailable, retry later")
    if code == "QUOTA_EXCEEDED" or response.status_code == 429:
        return DeliveryResult(False, "Push quota exceeded")
    return DeliveryResult(False, f"Push error: {code or response.status_code}")


class PushClient(NotificationGateway):
    """Sends one message per call. Failures are returned, never raised, and never retried."""

    def __init__(
        self,
        base_url: str | None = None,
        project_id: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.push_base_url).rstrip("/")
        self.project_id = project_id or settings.push_project_id
        self.access_token = access_token or settings.push_access_token
        if not self.project_id or not self.access_token:
            raise ValueError("Push provider project id and access token are not configured.")
        self.timeout = timeout if timeout is not None else settings.push_timeout_seconds
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/v1/projects/{self.project_id}/messages:send"

    def _get_client(self) -> httpx.Client:
        # One client per send keeps the fan-out threads independent
        return httpx.Client(timeout=httpx.Timeout(self.timeout, connect=5.0), transport=self.transport)

    def send(self, device_token: str, title: str, body: str, payload: dict[str, str]) -> DeliveryResult:
        if not is_valid_device_token(device_token):
            logger.warning("Rejected push to malformed device token")
            return DeliveryResult(False, "Invalid device token format")

        message = {
            "message": {
                "token": device_token,
                "notification": {"title": title, "body": body},
                "data": {key: str(value) for key, value in payload.items()},
            }
        }
        client = self._get_client()
        try:
            response = client.post(
                self.endpoint,
                json=message,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Push request timed out: {e}")
            return DeliveryResult(False, "Push provider timed out")
        except httpx.HTTPError as e:
            logger.warning(f"Push request failed: {e}")
            return DeliveryResult(False, f"Push provider unreachable: {e}")
        finally:
            client.close()

        if response.is_success:
            try:
                message_id = response.json().get("name")
            except ValueError:
                message_id = None
            return DeliveryResult(True, "Notification sent successfully", message_id=message_id)

        result = _failure_from_response(response)
        logger.warning(f"Push rejected with HTTP {response.status_code}: {result.message}")
        return result
