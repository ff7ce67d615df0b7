"""Domain models for machines, refill actors, requests and their audit ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


ONLINE = "online"
OFFLINE = "offline"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStatus(str, Enum):
    """Closed set of statuses a replenishment request can hold."""

    PENDING = "Pending"
    SUBMITTED = "Submitted"
    NOT_SUBMITTED = "NotSubmitted"
    ASSIGNED = "Assigned"
    ORDER_READY = "OrderReady"
    REFILLED = "Refilled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})


class ActorRole(str, Enum):
    KITCHEN = "kitchen"
    AGENT = "agent"


@dataclass(slots=True)
class Machine:
    """A dispensing machine as published by the machine registry.

    Coordinates are kept as received; the registry stores them as strings.
    """

    machine_id: str
    latitude: str | float | None
    longitude: str | float | None
    supply_level: Optional[float] = None
    status: str = ONLINE
    name: Optional[str] = None
    address: dict[str, str] = field(default_factory=dict)

    @property
    def is_online(self) -> bool:
        return self.status == ONLINE

    def formatted_address(self) -> Optional[str]:
        parts = [self.address.get(key) for key in ("building", "floor", "area", "district", "state")]
        parts = [str(part).strip() for part in parts if part]
        return ", ".join(parts) if parts else None


@dataclass(slots=True)
class Kitchen:
    """Refill source location. Eligible for matching only while online."""

    user_id: str
    latitude: float
    longitude: float
    status: str = OFFLINE
    name: Optional[str] = None
    address: Optional[str] = None
    manager: Optional[str] = None
    manager_mobile: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == ONLINE

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(slots=True)
class DeliveryAgent:
    """Refiller. Coordinates are absent until the agent reports a position."""

    user_id: str
    status: str = OFFLINE
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    name: Optional[str] = None
    mobile: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == ONLINE

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(slots=True)
class Request:
    """Current snapshot of a replenishment request."""

    request_id: str
    machine_id: str
    request_status: RequestStatus
    kitchen_user_id: Optional[str] = None
    agent_user_id: Optional[str] = None
    kitchen_status: Optional[RequestStatus] = None
    agent_status: Optional[RequestStatus] = None
    src_address: Optional[str] = None
    src_latitude: Optional[float] = None
    src_longitude: Optional[float] = None
    src_contact_name: Optional[str] = None
    src_contact_number: Optional[str] = None
    dst_address: Optional[str] = None
    dst_latitude: Optional[float] = None
    dst_longitude: Optional[float] = None
    dst_contact_name: Optional[str] = None
    assign_refiller_name: Optional[str] = None
    assign_refiller_contact_number: Optional[str] = None
    reason: Optional[str] = None
    status_message: Optional[str] = None
    tea_type: Optional[str] = None
    quantity: Optional[int] = None
    priority: int = 2
    candidate_agent_ids: list[str] = field(default_factory=list)
    version: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.request_status in TERMINAL_STATUSES


@dataclass(slots=True)
class StatusUpdate:
    """One ledger row: a single transition attempt, accepted or rejected."""

    request_id: str
    actor_user_id: str
    status: RequestStatus
    latitude: Optional[float]
    longitude: Optional[float]
    is_proceed_next: bool
    timestamp: datetime = field(default_factory=utcnow)
    reason: Optional[str] = None
    message: Optional[str] = None
    total_distance_km: Optional[float] = None
    reported_at: Optional[datetime] = None
    sequence: int = 0


@dataclass(slots=True)
class LowSupplyNotification:
    notification_id: str
    machine_id: str
    kitchen_user_id: str
    distance_km: float
    supply_level: float
    message: str
    request_id: Optional[str] = None
    status: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class AgentNotification:
    notification_id: str
    machine_id: str
    agent_user_id: str
    kitchen_user_id: str
    message: str
    distance_km: Optional[float] = None
    request_id: Optional[str] = None
    status: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
