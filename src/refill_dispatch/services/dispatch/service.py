"""Low-supply dispatch: machine -> nearest kitchen -> nearest delivery agent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ...config import settings
from ...data.directory import DirectoryStore
from ...exceptions import MachineNotFound, NoKitchenAvailable
from ...models.domain import (
    AgentNotification,
    Kitchen,
    LowSupplyNotification,
    Machine,
    Request,
    RequestStatus,
    StatusUpdate,
    utcnow,
)
from ...persistence.requests import RequestStore, new_notification_id
from ..geospatial import parse_point
from ..matching import Match, find_nearest_agent, find_nearest_kitchen
from ..notifications.notifier import NotificationOutcome, StatusNotifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchResult:
    success: bool
    message: str
    dispatched: bool = False
    request_id: Optional[str] = None
    kitchen_user_id: Optional[str] = None
    kitchen_distance_km: Optional[float] = None
    kitchen_notification_id: Optional[str] = None
    agent_user_id: Optional[str] = None
    agent_distance_km: Optional[float] = None
    agent_notification_id: Optional[str] = None
    notifications: list[NotificationOutcome] = field(default_factory=list)


def request_priority(store: RequestStore, machine_id: str) -> int:
    """Priority 1 for the first request a machine raises on the current UTC day."""
    today = utcnow().date()
    already_today = any(r.created_at.date() == today for r in store.list_requests_for_machine(machine_id))
    return 2 if already_today else 1


def open_request(
    store: RequestStore,
    machine: Machine,
    destination: tuple[float, float],
    kitchen: Kitchen,
    status: RequestStatus,
    candidate_agent_ids: Sequence[str] = (),
) -> Request:
    """Create a request for ``machine`` with its destination snapshot and the creation ledger row."""
    request = store.create_request(
        Request(
            request_id="",
            machine_id=machine.machine_id,
            request_status=status,
            kitchen_user_id=kitchen.user_id,
            dst_address=machine.formatted_address(),
            dst_latitude=destination[0],
            dst_longitude=destination[1],
            dst_contact_name=machine.name,
            priority=request_priority(store, machine.machine_id),
            candidate_agent_ids=list(candidate_agent_ids),
        )
    )
    store.append_status_update(
        StatusUpdate(
            request_id=request.request_id,
            actor_user_id=kitchen.user_id,
            status=status,
            latitude=kitchen.latitude,
            longitude=kitchen.longitude,
            is_proceed_next=False,
            message=f"Request created for machine {machine.machine_id}",
        )
    )
    return request


class DispatchEngine:
    """Entry point for direct low-supply reports."""

    def __init__(
        self,
        directory: DirectoryStore,
        store: RequestStore,
        notifier: StatusNotifier,
        *,
        threshold_percent: float | None = None,
    ) -> None:
        self.directory = directory
        self.store = store
        self.notifier = notifier
        self.threshold_percent = (
            threshold_percent if threshold_percent is not None else settings.low_supply_threshold_percent
        )

    def _locate(self, machine_id: str) -> tuple[Machine, tuple[float, float]]:
        machine = self.directory.get_machine(machine_id)
        if machine is None:
            raise MachineNotFound(machine_id)
        return machine, parse_point(machine_id, machine.latitude, machine.longitude)

    def on_low_supply(self, machine_id: str, supply_level: float) -> DispatchResult:
        if supply_level >= self.threshold_percent:
            return DispatchResult(
                success=True,
                message=f"Supply level {supply_level}% is not below {self.threshold_percent}%; nothing to dispatch",
            )

        machine, (lat, lon) = self._locate(machine_id)
        kitchen_match = find_nearest_kitchen(self.directory.list_online_kitchens(), lat, lon)
        if kitchen_match is None:
            raise NoKitchenAvailable(machine_id)
        kitchen = kitchen_match.entity
        logger.info(f"Machine {machine_id} at {supply_level}% matched kitchen {kitchen.user_id} ({kitchen_match.distance_km} km)")

        agent_match = find_nearest_agent(self.directory.list_online_agents(), kitchen.latitude, kitchen.longitude)
        candidates = [agent_match.user_id] if agent_match else []
        request = open_request(self.store, machine, (lat, lon), kitchen, RequestStatus.PENDING, candidates)

        kitchen_notification_id = self.store.save_low_supply_notification(
            LowSupplyNotification(
                notification_id=new_notification_id(),
                machine_id=machine_id,
                kitchen_user_id=kitchen.user_id,
                distance_km=kitchen_match.distance_km,
                supply_level=supply_level,
                message=f"Machine {machine_id} is low on supply ({supply_level}%)",
                request_id=request.request_id,
                status=RequestStatus.PENDING.value,
            )
        )
        notifications = [self.notifier.notify(kitchen.user_id, request.request_id, RequestStatus.PENDING)]

        result = DispatchResult(
            success=True,
            message="Kitchen notified",
            dispatched=True,
            request_id=request.request_id,
            kitchen_user_id=kitchen.user_id,
            kitchen_distance_km=kitchen_match.distance_km,
            kitchen_notification_id=kitchen_notification_id,
            notifications=notifications,
        )
        if agent_match is None:
            logger.warning(f"No delivery agent available for machine {machine_id}")
            result.message = "Kitchen notified; no delivery agent available"
            return result

        self._notify_agent(result, machine_id, kitchen, agent_match)
        return result

    def _notify_agent(
        self, result: DispatchResult, machine_id: str, kitchen: Kitchen, agent_match: Match
    ) -> None:
        result.agent_user_id = agent_match.user_id
        result.agent_distance_km = agent_match.distance_km
        result.agent_notification_id = self.store.save_agent_notification(
            AgentNotification(
                notification_id=new_notification_id(),
                machine_id=machine_id,
                agent_user_id=agent_match.user_id,
                kitchen_user_id=kitchen.user_id,
                message=f"Refill needed for machine {machine_id} from kitchen {kitchen.name or kitchen.user_id}",
                distance_km=agent_match.distance_km,
                request_id=result.request_id,
                status=RequestStatus.PENDING.value,
            )
        )
        result.notifications.append(
            self.notifier.notify(agent_match.user_id, result.request_id, RequestStatus.PENDING)
        )
        result.message = "Kitchen and delivery agent notified"
        logger.info(
            f"Request {result.request_id}: agent {agent_match.user_id} "
            f"({agent_match.distance_km if agent_match.distance_km is not None else 'unknown'} km from kitchen)"
        )
