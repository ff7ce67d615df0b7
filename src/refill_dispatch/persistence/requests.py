"""Request aggregate and append-only status ledger persistence."""

from __future__ import annotations

import itertools
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import fields, replace
from datetime import datetime
from typing import Any, Optional

from ..models.domain import (
    ActorRole,
    AgentNotification,
    LowSupplyNotification,
    Request,
    RequestStatus,
    StatusUpdate,
    TERMINAL_STATUSES,
    utcnow,
)

logger = logging.getLogger(__name__)

REQUEST_ID_PREFIX = "REQ"
_REQUEST_FIELDS = {f.name for f in fields(Request)}


def next_request_id(last_request_id: str | None) -> str:
    """Return the business key following ``last_request_id`` (REQ-0001, REQ-0002, ...)."""
    counter = 1
    if last_request_id:
        try:
            counter = int(last_request_id.split("-")[1]) + 1
        except (IndexError, ValueError):
            counter = 1
    return f"{REQUEST_ID_PREFIX}-{counter:04d}"


def _validate_patch(patch: dict[str, Any]) -> None:
    unknown = set(patch) - _REQUEST_FIELDS
    if unknown:
        raise ValueError(f"Unknown request fields in patch: {', '.join(sorted(unknown))}")


def _involves(request: Request, role: ActorRole, user_id: str) -> bool:
    if role is ActorRole.KITCHEN:
        return request.kitchen_user_id == user_id
    return request.agent_user_id == user_id or user_id in request.candidate_agent_ids


class RequestStore(ABC):
    """Contract for the request snapshot table and its status ledger."""

    @abstractmethod
    def create_request(self, request: Request) -> Request:
        """Insert a request. An empty ``request_id`` is replaced by the next business key."""
        raise NotImplementedError

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[Request]:
        raise NotImplementedError

    @abstractmethod
    def compare_and_patch(
        self, request_id: str, expected_version: int, patch: dict[str, Any]
    ) -> Optional[Request]:
        """Apply ``patch`` only if the stored version still equals ``expected_version``.

        Returns the updated request, or None when the request changed underneath.
        """
        raise NotImplementedError

    @abstractmethod
    def append_status_update(self, update: StatusUpdate) -> StatusUpdate:
        raise NotImplementedError

    @abstractmethod
    def list_status_updates(self, request_id: str) -> list[StatusUpdate]:
        """Ledger rows for a request ordered by timestamp."""
        raise NotImplementedError

    @abstractmethod
    def list_status_updates_for_actor(self, user_id: str) -> list[StatusUpdate]:
        raise NotImplementedError

    @abstractmethod
    def list_requests_for_machine(self, machine_id: str) -> list[Request]:
        raise NotImplementedError

    @abstractmethod
    def list_active_requests_for_actor(self, role: ActorRole, user_id: str) -> list[Request]:
        raise NotImplementedError

    @abstractmethod
    def save_low_supply_notification(self, notification: LowSupplyNotification) -> str:
        raise NotImplementedError

    @abstractmethod
    def save_agent_notification(self, notification: AgentNotification) -> str:
        raise NotImplementedError


class InMemoryRequestStore(RequestStore):
    """Process-local store. One lock guards every read-modify-write."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._requests: dict[str, Request] = {}
        self._ledger: list[StatusUpdate] = []
        self._sequence = itertools.count(1)
        self._last_request_id: str | None = None
        self.low_supply_notifications: dict[str, LowSupplyNotification] = {}
        self.agent_notifications: dict[str, AgentNotification] = {}

    def create_request(self, request: Request) -> Request:
        with self._lock:
            if not request.request_id:
                request = replace(request, request_id=next_request_id(self._last_request_id))
            if request.request_id in self._requests:
                raise ValueError(f"Request '{request.request_id}' already exists")
            self._requests[request.request_id] = request
            self._last_request_id = request.request_id
            return replace(request)

    def get_request(self, request_id: str) -> Optional[Request]:
        with self._lock:
            request = self._requests.get(request_id)
            return replace(request) if request else None

    def compare_and_patch(
        self, request_id: str, expected_version: int, patch: dict[str, Any]
    ) -> Optional[Request]:
        _validate_patch(patch)
        with self._lock:
            current = self._requests.get(request_id)
            if current is None or current.version != expected_version:
                return None
            updated = replace(current, **patch, version=expected_version + 1, updated_at=utcnow())
            self._requests[request_id] = updated
            return replace(updated)

    def append_status_update(self, update: StatusUpdate) -> StatusUpdate:
        with self._lock:
            stored = replace(update, sequence=next(self._sequence))
            self._ledger.append(stored)
            return stored

    def list_status_updates(self, request_id: str) -> list[StatusUpdate]:
        with self._lock:
            rows = [row for row in self._ledger if row.request_id == request_id]
        return sorted(rows, key=lambda row: (row.timestamp, row.sequence))

    def list_status_updates_for_actor(self, user_id: str) -> list[StatusUpdate]:
        with self._lock:
            rows = [row for row in self._ledger if row.actor_user_id == user_id]
        return sorted(rows, key=lambda row: (row.timestamp, row.sequence))

    def list_requests_for_machine(self, machine_id: str) -> list[Request]:
        with self._lock:
            return [replace(r) for r in self._requests.values() if r.machine_id == machine_id]

    def list_active_requests_for_actor(self, role: ActorRole, user_id: str) -> list[Request]:
        with self._lock:
            return [
                replace(r)
                for r in self._requests.values()
                if r.request_status not in TERMINAL_STATUSES and _involves(r, role, user_id)
            ]

    def save_low_supply_notification(self, notification: LowSupplyNotification) -> str:
        with self._lock:
            self.low_supply_notifications[notification.notification_id] = notification
        return notification.notification_id

    def save_agent_notification(self, notification: AgentNotification) -> str:
        with self._lock:
            self.agent_notifications[notification.notification_id] = notification
        return notification.notification_id


def new_notification_id() -> str:
    return uuid.uuid4().hex


def _to_row(value: Any) -> Any:
    if isinstance(value, RequestStatus):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return utcnow()


def _optional_status(value: Any) -> Optional[RequestStatus]:
    return RequestStatus(value) if value else None


def _request_to_row(request: Request) -> dict[str, Any]:
    return {f.name: _to_row(getattr(request, f.name)) for f in fields(Request)}


def _request_from_row(row: dict[str, Any]) -> Request:
    data = {name: row.get(name) for name in _REQUEST_FIELDS if name in row}
    data["request_status"] = RequestStatus(row["request_status"])
    data["kitchen_status"] = _optional_status(row.get("kitchen_status"))
    data["agent_status"] = _optional_status(row.get("agent_status"))
    data["candidate_agent_ids"] = list(row.get("candidate_agent_ids") or [])
    data["priority"] = int(row.get("priority") or 2)
    data["version"] = int(row.get("version") or 0)
    data["created_at"] = _parse_datetime(row.get("created_at"))
    data["updated_at"] = _parse_datetime(row.get("updated_at"))
    return Request(**data)


def _status_update_to_row(update: StatusUpdate) -> dict[str, Any]:
    row = {f.name: _to_row(getattr(update, f.name)) for f in fields(StatusUpdate)}
    row.pop("sequence")
    return row


def _status_update_from_row(row: dict[str, Any]) -> StatusUpdate:
    return StatusUpdate(
        request_id=row["request_id"],
        actor_user_id=row["actor_user_id"],
        status=RequestStatus(row["status"]),
        latitude=row.get("latitude"),
        longitude=row.get("longitude"),
        is_proceed_next=bool(row.get("is_proceed_next")),
        timestamp=_parse_datetime(row.get("timestamp")),
        reason=row.get("reason"),
        message=row.get("message"),
        total_distance_km=row.get("total_distance_km"),
        reported_at=_parse_datetime(row["reported_at"]) if row.get("reported_at") else None,
        sequence=int(row.get("id") or 0),
    )


class SupabaseRequestStore(RequestStore):
    """Store backed by the ``requests`` and ``request_status_updates`` tables.

    Request id generation reads the latest row and is not atomic across writers;
    the unique constraint on ``request_id`` rejects a colliding insert.
    """

    def __init__(self, client) -> None:
        self.client = client

    def _latest_request_id(self) -> str | None:
        response = (
            self.client.table("requests")
            .select("request_id")
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0]["request_id"] if rows else None

    def create_request(self, request: Request) -> Request:
        if not request.request_id:
            request = replace(request, request_id=next_request_id(self._latest_request_id()))
        self.client.table("requests").insert(_request_to_row(request)).execute()
        return request

    def get_request(self, request_id: str) -> Optional[Request]:
        response = self.client.table("requests").select("*").eq("request_id", request_id).limit(1).execute()
        rows = response.data or []
        return _request_from_row(rows[0]) if rows else None

    def compare_and_patch(
        self, request_id: str, expected_version: int, patch: dict[str, Any]
    ) -> Optional[Request]:
        _validate_patch(patch)
        row_patch = {key: _to_row(value) for key, value in patch.items()}
        row_patch["version"] = expected_version + 1
        row_patch["updated_at"] = utcnow().isoformat()
        response = (
            self.client.table("requests")
            .update(row_patch)
            .eq("request_id", request_id)
            .eq("version", expected_version)
            .execute()
        )
        rows = response.data or []
        return _request_from_row(rows[0]) if rows else None

    def append_status_update(self, update: StatusUpdate) -> StatusUpdate:
        response = self.client.table("request_status_updates").insert(_status_update_to_row(update)).execute()
        rows = response.data or []
        return _status_update_from_row(rows[0]) if rows else update

    def list_status_updates(self, request_id: str) -> list[StatusUpdate]:
        response = (
            self.client.table("request_status_updates")
            .select("*")
            .eq("request_id", request_id)
            .order("timestamp")
            .order("id")
            .execute()
        )
        return [_status_update_from_row(row) for row in response.data or []]

    def list_status_updates_for_actor(self, user_id: str) -> list[StatusUpdate]:
        response = (
            self.client.table("request_status_updates")
            .select("*")
            .eq("actor_user_id", user_id)
            .order("timestamp")
            .execute()
        )
        return [_status_update_from_row(row) for row in response.data or []]

    def list_requests_for_machine(self, machine_id: str) -> list[Request]:
        response = self.client.table("requests").select("*").eq("machine_id", machine_id).execute()
        return [_request_from_row(row) for row in response.data or []]

    def list_active_requests_for_actor(self, role: ActorRole, user_id: str) -> list[Request]:
        terminal = [status.value for status in TERMINAL_STATUSES]
        query = self.client.table("requests").select("*").not_.in_("request_status", terminal)
        if role is ActorRole.KITCHEN:
            query = query.eq("kitchen_user_id", user_id)
        else:
            query = query.or_(f"agent_user_id.eq.{user_id},candidate_agent_ids.cs.{{{user_id}}}")
        response = query.execute()
        return [_request_from_row(row) for row in response.data or []]

    def save_low_supply_notification(self, notification: LowSupplyNotification) -> str:
        row = {f.name: _to_row(getattr(notification, f.name)) for f in fields(LowSupplyNotification)}
        self.client.table("low_supply_notifications").insert(row).execute()
        return notification.notification_id

    def save_agent_notification(self, notification: AgentNotification) -> str:
        row = {f.name: _to_row(getattr(notification, f.name)) for f in fields(AgentNotification)}
        self.client.table("agent_notifications").insert(row).execute()
        return notification.notification_id
