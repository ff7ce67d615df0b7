"""Request lifecycle schemas: status reports, snapshots and ledger rows."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from ..models.domain import Request, RequestStatus, StatusUpdate
from .base import CamelModel
from .dispatch import NotificationOutcomeModel


class _ActorReport(CamelModel):
    request_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    reason: Optional[str] = None
    timestamp: Optional[datetime] = Field(None, description="Time the actor made the report.")

    @model_validator(mode="after")
    def check_coordinate_pair(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self

    @property
    def geo(self) -> Optional[tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


class StatusReport(_ActorReport):
    """Kitchen or agent report, and the unconditional status set."""

    status: RequestStatus
    is_proceed_next: bool = True


class DecisionReport(_ActorReport):
    """Complete-or-cancel and submitted-or-not decisions."""

    is_proceed_next: bool


class OrderReadyReport(_ActorReport):
    """Kitchen marks the order ready for pickup."""

    tea_type: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)


class DeclineReport(_ActorReport):
    """Kitchen turns a pending request down."""


class RequestModel(CamelModel):
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
    priority: int
    candidate_agent_ids: List[str] = Field(default_factory=list)
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, request: Request) -> "RequestModel":
        return cls.model_validate(asdict(request))


class StatusUpdateModel(CamelModel):
    request_id: str
    actor_user_id: str
    status: RequestStatus
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_proceed_next: bool
    timestamp: datetime
    reason: Optional[str] = None
    message: Optional[str] = None
    total_distance_km: Optional[float] = None
    reported_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, update: StatusUpdate) -> "StatusUpdateModel":
        data = asdict(update)
        data.pop("sequence")
        return cls.model_validate(data)


class TransitionResponse(CamelModel):
    success: bool
    message: str
    request: Optional[RequestModel] = None
    status_update: Optional[StatusUpdateModel] = None
    notification: Optional[NotificationOutcomeModel] = None


class BroadcastResponse(TransitionResponse):
    """Transition that pushes the new status to every user it was handed to."""

    notifications: List[NotificationOutcomeModel] = Field(default_factory=list)


class LedgerResponse(CamelModel):
    request_id: str
    items: List[StatusUpdateModel]
