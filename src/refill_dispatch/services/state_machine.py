"""Guarded status transitions for replenishment requests.

Every operation reads the current request, evaluates a status precondition and
applies its patch as one compare-and-set unit against the request version. Each
attempt that reaches a request appends exactly one ledger row, whether the
guard accepted it or not. Guard failures are results, not exceptions. A kitchen
decline additionally logs one row for each kitchen the request is offered to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from ..config import settings
from ..data.directory import DirectoryStore
from ..exceptions import MissingReason, RequestNotFound
from ..models.domain import ActorRole, Kitchen, Request, RequestStatus, StatusUpdate
from ..persistence.requests import RequestStore
from .geospatial import trip_distance_km
from .matching import Match, find_agents_within, find_kitchens_within

logger = logging.getLogger(__name__)

GeoPoint = tuple[float, float]

REQUEST_NOT_FOUND = "Request not found"
STATUS_MISMATCH = "Unable to Proceed due to status mismatch"
CONCURRENT_UPDATE = "Request changed concurrently, please retry"
NO_KITCHEN_AVAILABLE = "No new nearby kitchens found"
KITCHEN_DECLINED = "Declined by kitchen"
KITCHEN_OFFERED = "Offered after kitchen decline"
ORDER_READY_FOR_PICKUP = "Order is ready for pickup"


@dataclass(slots=True)
class TransitionResult:
    success: bool
    message: str
    request: Optional[Request] = None
    status_update: Optional[StatusUpdate] = None
    # Users to push the new status to, besides the counterpart
    recipients: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TransitionPlan:
    patch: dict[str, Any]
    total_distance_km: Optional[float] = None


@dataclass(frozen=True, slots=True)
class RoleFields:
    """Request fields a role writes when it reports a status."""

    status_field: str
    user_field: str
    label: str


ROLE_FIELDS: dict[ActorRole, RoleFields] = {
    ActorRole.KITCHEN: RoleFields("kitchen_status", "kitchen_user_id", "kitchen"),
    ActorRole.AGENT: RoleFields("agent_status", "agent_user_id", "delivery agent"),
}

Precondition = Callable[[Request], Optional[str]]
PlanBuilder = Callable[[Request], TransitionPlan]


@dataclass(slots=True)
class Attempt:
    """Who reported what, and where."""

    actor_user_id: str
    status: RequestStatus
    geo: Optional[GeoPoint]
    is_proceed_next: bool
    reason: Optional[str] = None
    reported_at: Optional[datetime] = None


def _no_precondition(request: Request) -> Optional[str]:
    return None


class StateMachine:
    def __init__(
        self,
        store: RequestStore,
        directory: DirectoryStore,
        *,
        max_attempts: int | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.max_attempts = max_attempts or settings.transition_max_attempts

    def _record(self, request_id: str, attempt: Attempt, message: Optional[str], total_distance_km=None) -> StatusUpdate:
        lat, lon = attempt.geo if attempt.geo else (None, None)
        return self.store.append_status_update(
            StatusUpdate(
                request_id=request_id,
                actor_user_id=attempt.actor_user_id,
                status=attempt.status,
                latitude=lat,
                longitude=lon,
                is_proceed_next=attempt.is_proceed_next,
                reason=attempt.reason,
                message=message,
                total_distance_km=total_distance_km,
                reported_at=attempt.reported_at,
            )
        )

    def apply_guarded_transition(
        self,
        request_id: str,
        attempt: Attempt,
        precondition: Precondition,
        build_plan: PlanBuilder,
        *,
        success_message: str,
        ledger_message: Optional[str] = None,
    ) -> TransitionResult:
        for attempt_number in range(1, self.max_attempts + 1):
            current = self.store.get_request(request_id)
            if current is None:
                logger.warning(f"Transition to {attempt.status.value} for unknown request {request_id}")
                return TransitionResult(False, REQUEST_NOT_FOUND)

            rejection = precondition(current)
            if rejection:
                row = self._record(request_id, attempt, rejection)
                logger.info(
                    f"Rejected {attempt.status.value} on {request_id} by {attempt.actor_user_id}: {rejection}"
                )
                return TransitionResult(False, rejection, request=current, status_update=row)

            plan = build_plan(current)
            updated = self.store.compare_and_patch(request_id, current.version, plan.patch)
            if updated is not None:
                row = self._record(request_id, attempt, ledger_message, plan.total_distance_km)
                logger.info(
                    f"{request_id}: {current.request_status.value} -> {updated.request_status.value} "
                    f"by {attempt.actor_user_id}"
                )
                return TransitionResult(True, success_message, request=updated, status_update=row)

            logger.info(
                f"{request_id} changed during transition, re-evaluating "
                f"(attempt {attempt_number}/{self.max_attempts})"
            )

        row = self._record(request_id, attempt, CONCURRENT_UPDATE)
        return TransitionResult(False, CONCURRENT_UPDATE, request=self.store.get_request(request_id), status_update=row)

    # Role reports -------------------------------------------------------

    def _report_guard(self, role: ActorRole, actor_user_id: str) -> Precondition:
        role_fields = ROLE_FIELDS[role]

        def guard(request: Request) -> Optional[str]:
            if request.request_status is RequestStatus.SUBMITTED or request.is_terminal:
                return f"Request already {request.request_status.value}"
            owner = getattr(request, role_fields.user_field)
            if owner and owner != actor_user_id:
                return f"Request already assigned to another {role_fields.label}"
            return None

        return guard

    def _role_patch(self, role: ActorRole, attempt: Attempt) -> dict[str, Any]:
        role_fields = ROLE_FIELDS[role]
        return {
            role_fields.status_field: attempt.status,
            role_fields.user_field: attempt.actor_user_id,
            "request_status": attempt.status,
            "reason": attempt.reason,
        }

    def _kitchen_plan(self, attempt: Attempt) -> PlanBuilder:
        def build(request: Request) -> TransitionPlan:
            patch = self._role_patch(ActorRole.KITCHEN, attempt)
            if attempt.geo:
                patch["src_latitude"], patch["src_longitude"] = attempt.geo
            kitchen = self.directory.get_kitchen(attempt.actor_user_id)
            if kitchen:
                patch["src_address"] = kitchen.address
                patch["src_contact_name"] = kitchen.manager
                patch["src_contact_number"] = kitchen.manager_mobile
            return TransitionPlan(patch)

        return build

    def _kitchen_point(self, request: Request) -> Optional[GeoPoint]:
        if request.src_latitude is not None and request.src_longitude is not None:
            return request.src_latitude, request.src_longitude
        if request.kitchen_user_id:
            kitchen = self.directory.get_kitchen(request.kitchen_user_id)
            if kitchen and kitchen.has_coordinates:
                return kitchen.latitude, kitchen.longitude
        return None

    def _agent_plan(self, attempt: Attempt) -> PlanBuilder:
        def build(request: Request) -> TransitionPlan:
            patch = self._role_patch(ActorRole.AGENT, attempt)
            total_distance = None
            if attempt.status is RequestStatus.ASSIGNED:
                agent = self.directory.get_agent(attempt.actor_user_id)
                if agent:
                    patch["assign_refiller_name"] = agent.name
                    patch["assign_refiller_contact_number"] = agent.mobile
                kitchen_point = self._kitchen_point(request)
                if attempt.geo and kitchen_point and request.dst_latitude is not None and request.dst_longitude is not None:
                    total_distance = trip_distance_km(
                        attempt.geo, kitchen_point, (request.dst_latitude, request.dst_longitude)
                    )
            return TransitionPlan(patch, total_distance_km=total_distance)

        return build

    def kitchen_report(
        self,
        request_id: str,
        actor_user_id: str,
        new_status: RequestStatus,
        geo: Optional[GeoPoint],
        reason: Optional[str] = None,
        *,
        is_proceed_next: bool = True,
        reported_at: Optional[datetime] = None,
    ) -> TransitionResult:
        attempt = Attempt(actor_user_id, new_status, geo, is_proceed_next, reason, reported_at)
        return self.apply_guarded_transition(
            request_id,
            attempt,
            self._report_guard(ActorRole.KITCHEN, actor_user_id),
            self._kitchen_plan(attempt),
            success_message=f"{new_status.value} status updated",
        )

    def agent_report(
        self,
        request_id: str,
        actor_user_id: str,
        new_status: RequestStatus,
        geo: Optional[GeoPoint],
        reason: Optional[str] = None,
        *,
        is_proceed_next: bool = True,
        reported_at: Optional[datetime] = None,
    ) -> TransitionResult:
        attempt = Attempt(actor_user_id, new_status, geo, is_proceed_next, reason, reported_at)
        return self.apply_guarded_transition(
            request_id,
            attempt,
            self._report_guard(ActorRole.AGENT, actor_user_id),
            self._agent_plan(attempt),
            success_message=f"{new_status.value} status updated",
        )

    # Status-only operations ----------------------------------------------

    def generic_status_set(
        self,
        request_id: str,
        actor_user_id: str,
        new_status: RequestStatus,
        geo: Optional[GeoPoint],
        reason: Optional[str] = None,
        *,
        is_proceed_next: bool = True,
        reported_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """Unconditional status overwrite."""
        attempt = Attempt(actor_user_id, new_status, geo, is_proceed_next, reason, reported_at)
        return self.apply_guarded_transition(
            request_id,
            attempt,
            _no_precondition,
            lambda request: TransitionPlan({"request_status": new_status}),
            success_message=f"{new_status.value} status updated",
        )

    def finalize(
        self,
        request_id: str,
        actor_user_id: str,
        geo: Optional[GeoPoint],
        is_proceed_next: bool,
        reason: Optional[str] = None,
        *,
        reported_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """Complete or cancel a request that has been through kitchen submission."""
        new_status = RequestStatus.COMPLETED if is_proceed_next else RequestStatus.CANCELLED
        attempt = Attempt(actor_user_id, new_status, geo, is_proceed_next, reason, reported_at)

        def guard(request: Request) -> Optional[str]:
            if request.request_status not in (RequestStatus.SUBMITTED, RequestStatus.NOT_SUBMITTED):
                return STATUS_MISMATCH
            return None

        return self.apply_guarded_transition(
            request_id,
            attempt,
            guard,
            lambda request: TransitionPlan(
                {"request_status": new_status, "reason": None if is_proceed_next else reason}
            ),
            success_message=f"Request {new_status.value.lower()} successfully",
        )

    def submission_report(
        self,
        request_id: str,
        actor_user_id: str,
        geo: Optional[GeoPoint],
        is_proceed_next: bool,
        reason: Optional[str] = None,
        *,
        reported_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """Kitchen reports whether the refilled supply was submitted."""
        if not is_proceed_next and not (reason and reason.strip()):
            raise MissingReason("not submitting")

        new_status = RequestStatus.SUBMITTED if is_proceed_next else RequestStatus.NOT_SUBMITTED
        message = "submitted successfully" if is_proceed_next else f"not submitted: {reason}"
        attempt = Attempt(actor_user_id, new_status, geo, is_proceed_next, reason, reported_at)

        def guard(request: Request) -> Optional[str]:
            if request.is_terminal:
                return f"Request already {request.request_status.value}"
            return None

        return self.apply_guarded_transition(
            request_id,
            attempt,
            guard,
            lambda request: TransitionPlan({"request_status": new_status}),
            success_message=f"Request {message}",
            ledger_message=message,
        )

    # Kitchen hand-offs -----------------------------------------------------

    def mark_order_ready(
        self,
        request_id: str,
        actor_user_id: str,
        geo: Optional[GeoPoint],
        *,
        tea_type: Optional[str] = None,
        quantity: Optional[int] = None,
        reason: Optional[str] = None,
        radii_km: Optional[Sequence[float]] = None,
        reported_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """Kitchen marks the order ready; online agents around it become the candidates.

        The search is anchored on the reported position, else the kitchen's
        registered location. Finding no agent does not block the transition.
        """
        radii = tuple(radii_km or settings.agent_search_radii_km)
        attempt = Attempt(actor_user_id, RequestStatus.ORDER_READY, geo, True, reason, reported_at)
        kitchen_plan = self._kitchen_plan(attempt)
        candidates: list[str] = []

        def build(request: Request) -> TransitionPlan:
            plan = kitchen_plan(request)
            anchor = geo
            if anchor is None:
                kitchen = self.directory.get_kitchen(actor_user_id)
                if kitchen and kitchen.has_coordinates:
                    anchor = (kitchen.latitude, kitchen.longitude)
            matches: list[Match] = []
            if anchor:
                matches, _ = find_agents_within(self.directory.list_online_agents(), anchor[0], anchor[1], radii)
            candidates[:] = [match.user_id for match in matches]
            plan.patch.update(candidate_agent_ids=list(candidates), tea_type=tea_type, quantity=quantity)
            return plan

        result = self.apply_guarded_transition(
            request_id,
            attempt,
            self._report_guard(ActorRole.KITCHEN, actor_user_id),
            build,
            success_message="Order Ready status updated",
            ledger_message=ORDER_READY_FOR_PICKUP,
        )
        if result.success:
            if not candidates:
                logger.warning(f"No delivery agent near kitchen {actor_user_id} for {request_id}")
            result.recipients = list(candidates)
        return result

    def _open_offers(self, request_id: str) -> set[str]:
        offered, declined = set(), set()
        for row in self.store.list_status_updates(request_id):
            if row.message == KITCHEN_OFFERED:
                offered.add(row.actor_user_id)
            elif row.message == KITCHEN_DECLINED:
                declined.add(row.actor_user_id)
        return offered - declined

    def decline_and_reassign(
        self,
        request_id: str,
        actor_user_id: str,
        geo: Optional[GeoPoint],
        reason: Optional[str] = None,
        *,
        radii_km: Optional[Sequence[float]] = None,
        reported_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """Kitchen turns down a pending request and it is offered to other kitchens.

        Kitchens are searched around the machine at expanding radii, skipping every
        user already on the request's ledger. Each kitchen found gets a ``Pending``
        ledger row and the request is left unowned so the first of them to report
        takes it. The decline is recorded even when no kitchen is found.
        """
        radii = tuple(radii_km or settings.kitchen_search_radii_km)
        attempt = Attempt(actor_user_id, RequestStatus.PENDING, geo, False, reason, reported_at)
        offers: list[Match[Kitchen]] = []

        def guard(request: Request) -> Optional[str]:
            if request.request_status is not RequestStatus.PENDING:
                return STATUS_MISMATCH
            if request.kitchen_user_id:
                if request.kitchen_user_id != actor_user_id:
                    return "Request already assigned to another kitchen"
            elif actor_user_id not in self._open_offers(request.request_id):
                return "Request was not offered to this kitchen"
            if request.dst_latitude is None or request.dst_longitude is None:
                return "Request has no machine coordinates"
            return None

        def build(request: Request) -> TransitionPlan:
            seen = {row.actor_user_id for row in self.store.list_status_updates(request.request_id)}
            seen.add(actor_user_id)
            matches, _ = find_kitchens_within(
                self.directory.list_online_kitchens(),
                request.dst_latitude,
                request.dst_longitude,
                radii,
                exclude=seen,
            )
            offers[:] = matches
            return TransitionPlan(
                {
                    "kitchen_user_id": None,
                    "kitchen_status": None,
                    "reason": reason,
                    "status_message": None if matches else NO_KITCHEN_AVAILABLE,
                }
            )

        result = self.apply_guarded_transition(
            request_id,
            attempt,
            guard,
            build,
            success_message="Request declined and reassigned to new kitchens",
            ledger_message=KITCHEN_DECLINED,
        )
        if not result.success:
            return result
        if not offers:
            logger.warning(f"{request_id} declined by {actor_user_id}; no other kitchen within {max(radii):g}km")
            return TransitionResult(
                False, NO_KITCHEN_AVAILABLE, request=result.request, status_update=result.status_update
            )

        for match in offers:
            kitchen = match.entity
            self.store.append_status_update(
                StatusUpdate(
                    request_id=request_id,
                    actor_user_id=kitchen.user_id,
                    status=RequestStatus.PENDING,
                    latitude=kitchen.latitude,
                    longitude=kitchen.longitude,
                    is_proceed_next=False,
                    message=KITCHEN_OFFERED,
                )
            )
        result.recipients = [match.user_id for match in offers]
        logger.info(f"{request_id} declined by {actor_user_id}; offered to {', '.join(result.recipients)}")
        return result

    # Reads -----------------------------------------------------------------

    def list_ledger(self, request_id: str) -> list[StatusUpdate]:
        if self.store.get_request(request_id) is None:
            raise RequestNotFound(request_id)
        return self.store.list_status_updates(request_id)
