"""Scheduled sweep: open an OrderReady request per active machine and alert nearby agents."""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ...config import settings
from ...data.directory import DirectoryStore
from ...models.domain import AgentNotification, DeliveryAgent, Kitchen, Machine, RequestStatus
from ...persistence.requests import RequestStore, new_notification_id
from ..geospatial import parse_point
from ..matching import Match, find_agents_within, find_nearest_kitchen
from ..notifications.notifier import NotificationOutcome, StatusNotifier
from .service import open_request

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MachineSweepResult:
    machine_id: str
    success: bool
    message: str
    request_id: Optional[str] = None
    kitchen_user_id: Optional[str] = None
    search_distance_km: Optional[float] = None
    nearby_agent_ids: list[str] = field(default_factory=list)
    notifications: list[NotificationOutcome] = field(default_factory=list)


@dataclass(slots=True)
class SweepSummary:
    total_machines: int
    successful_machines: int
    failed_machines: int
    total_notifications: int
    successful_notifications: int
    failed_notifications: int
    search_distance_breakdown: dict[str, int]
    tokens_to_remove: list[str]
    results: list[MachineSweepResult]

    @property
    def message(self) -> str:
        return (
            f"Processed {self.total_machines} machines: {self.successful_machines} successful, "
            f"{self.failed_machines} failed. Notifications: "
            f"{self.successful_notifications}/{self.total_notifications} sent successfully."
        )


def _radius_label(radius_km: float) -> str:
    return f"{radius_km:g}km"


def summarize(results: Sequence[MachineSweepResult]) -> SweepSummary:
    notifications = [outcome for result in results for outcome in result.notifications]
    successful_machines = sum(1 for result in results if result.success)
    successful_notifications = sum(1 for outcome in notifications if outcome.success)
    breakdown = Counter(
        _radius_label(result.search_distance_km) for result in results if result.search_distance_km
    )
    return SweepSummary(
        total_machines=len(results),
        successful_machines=successful_machines,
        failed_machines=len(results) - successful_machines,
        total_notifications=len(notifications),
        successful_notifications=successful_notifications,
        failed_notifications=len(notifications) - successful_notifications,
        search_distance_breakdown=dict(breakdown),
        tokens_to_remove=sorted({outcome.user_id for outcome in notifications if outcome.should_remove_token}),
        results=list(results),
    )


class DispatchSweep:
    """Fans out over active machines, and within each machine over its candidate agents.

    A failure for one machine or one agent is recorded in its own result and
    never stops sibling work.
    """

    def __init__(
        self,
        directory: DirectoryStore,
        store: RequestStore,
        notifier: StatusNotifier,
        *,
        radii_km: Sequence[float] | None = None,
        max_workers: int | None = None,
        notification_workers: int | None = None,
    ) -> None:
        self.directory = directory
        self.store = store
        self.notifier = notifier
        self.radii_km = tuple(radii_km or settings.agent_search_radii_km)
        self.max_workers = max_workers or settings.sweep_max_workers
        self.notification_workers = notification_workers or settings.notification_max_workers

    def run(self) -> SweepSummary:
        machines = self.directory.list_active_machines()
        logger.info(f"Sweeping {len(machines)} active machines")
        if not machines:
            return summarize([])

        # Registry snapshots are read once and shared by every machine
        kitchens = self.directory.list_online_kitchens()
        agents = self.directory.list_online_agents()

        results: list[MachineSweepResult] = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_machine = {
                executor.submit(self._process_machine, machine, kitchens, agents): machine for machine in machines
            }
            for future in as_completed(future_to_machine):
                machine = future_to_machine[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.warning(f"Error processing machine {machine.machine_id}: {e}")
                    results.append(MachineSweepResult(machine.machine_id, False, str(e) or type(e).__name__))

        summary = summarize(results)
        logger.info(
            f"Sweep completed: {summary.successful_machines} successful machines, "
            f"{summary.failed_machines} failed machines"
        )
        logger.info(f"Notifications: {summary.successful_notifications}/{summary.total_notifications} successful")
        logger.info(f"Search distance breakdown: {summary.search_distance_breakdown}")
        for user_id in summary.tokens_to_remove:
            logger.warning(f"Consider removing invalid device token for user: {user_id}")
        return summary

    def _process_machine(
        self,
        machine: Machine,
        kitchens: Sequence[Kitchen],
        agents: Sequence[DeliveryAgent],
    ) -> MachineSweepResult:
        lat, lon = parse_point(machine.machine_id, machine.latitude, machine.longitude)

        kitchen_match = find_nearest_kitchen(kitchens, lat, lon)
        if kitchen_match is None:
            return MachineSweepResult(machine.machine_id, False, "No online kitchen available")
        kitchen = kitchen_match.entity

        agent_matches, radius = find_agents_within(agents, kitchen.latitude, kitchen.longitude, self.radii_km)
        if not agent_matches:
            return MachineSweepResult(
                machine.machine_id,
                False,
                f"No delivery agents found within {_radius_label(max(self.radii_km))}",
                kitchen_user_id=kitchen.user_id,
            )

        agent_ids = [match.user_id for match in agent_matches]
        request = open_request(
            self.store, machine, (lat, lon), kitchen, RequestStatus.ORDER_READY, candidate_agent_ids=agent_ids
        )
        notifications = self._notify_agents(machine, kitchen, request.request_id, agent_matches)
        return MachineSweepResult(
            machine_id=machine.machine_id,
            success=True,
            message=f"Request created and sent to {len(agent_ids)} delivery agents",
            request_id=request.request_id,
            kitchen_user_id=kitchen.user_id,
            search_distance_km=radius,
            nearby_agent_ids=agent_ids,
            notifications=notifications,
        )

    def _notify_agents(
        self,
        machine: Machine,
        kitchen: Kitchen,
        request_id: str,
        agent_matches: Sequence[Match[DeliveryAgent]],
    ) -> list[NotificationOutcome]:
        outcomes: list[NotificationOutcome] = []
        with ThreadPoolExecutor(max_workers=self.notification_workers) as executor:
            future_to_agent = {
                executor.submit(self._notify_agent, machine, kitchen, request_id, match): match.user_id
                for match in agent_matches
            }
            for future in as_completed(future_to_agent):
                agent_id = future_to_agent[future]
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    logger.warning(f"Error processing notification for agent {agent_id}: {e}")
                    outcomes.append(NotificationOutcome(agent_id, False, str(e) or type(e).__name__))
        return outcomes

    def _notify_agent(
        self, machine: Machine, kitchen: Kitchen, request_id: str, match: Match[DeliveryAgent]
    ) -> NotificationOutcome:
        self.store.save_agent_notification(
            AgentNotification(
                notification_id=new_notification_id(),
                machine_id=machine.machine_id,
                agent_user_id=match.user_id,
                kitchen_user_id=kitchen.user_id,
                message=f"Order ready for machine {machine.machine_id} at kitchen {kitchen.name or kitchen.user_id}",
                distance_km=match.distance_km,
                request_id=request_id,
                status=RequestStatus.ORDER_READY.value,
            )
        )
        return self.notifier.notify(match.user_id, request_id, RequestStatus.ORDER_READY)
