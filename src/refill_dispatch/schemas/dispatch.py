"""Dispatch request/response schemas."""

from __future__ import annotations

from dataclasses import asdict
from typing import Dict, List, Optional

from pydantic import Field

from ..services.dispatch.service import DispatchResult
from ..services.dispatch.sweep import SweepSummary
from .base import CamelModel


class LowSupplyReport(CamelModel):
    machine_id: str = Field(..., min_length=1)
    supply_level: float = Field(..., ge=0, le=100, description="Remaining supply as a percentage.")


class NotificationOutcomeModel(CamelModel):
    user_id: str
    success: bool
    message: str
    should_remove_token: bool = False


class DispatchResponse(CamelModel):
    success: bool
    message: str
    dispatched: bool
    request_id: Optional[str] = None
    kitchen_user_id: Optional[str] = None
    kitchen_distance_km: Optional[float] = None
    kitchen_notification_id: Optional[str] = None
    agent_user_id: Optional[str] = None
    agent_distance_km: Optional[float] = None
    agent_notification_id: Optional[str] = None
    notifications: List[NotificationOutcomeModel] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: DispatchResult) -> "DispatchResponse":
        return cls.model_validate(asdict(result))


class MachineSweepModel(CamelModel):
    machine_id: str
    success: bool
    message: str
    request_id: Optional[str] = None
    kitchen_user_id: Optional[str] = None
    search_distance_km: Optional[float] = None
    nearby_agent_ids: List[str] = Field(default_factory=list)
    notifications: List[NotificationOutcomeModel] = Field(default_factory=list)


class SweepSummaryModel(CamelModel):
    total_machines: int
    successful_machines: int
    failed_machines: int
    total_notifications: int
    successful_notifications: int
    failed_notifications: int
    search_distance_breakdown: Dict[str, int]
    tokens_to_remove: List[str]


class SweepResponse(CamelModel):
    message: str
    summary: SweepSummaryModel
    data: List[MachineSweepModel]

    @classmethod
    def from_summary(cls, summary: SweepSummary) -> "SweepResponse":
        counts = asdict(summary)
        results = counts.pop("results")
        return cls(message=summary.message, summary=SweepSummaryModel.model_validate(counts), data=results)
