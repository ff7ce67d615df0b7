"""Request lifecycle endpoints used by the kitchen and delivery agent apps."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ...exceptions import MissingReason, RequestNotFound
from ...persistence.requests import RequestStore
from ...schemas.dispatch import NotificationOutcomeModel
from ...schemas.requests import (
    BroadcastResponse,
    DecisionReport,
    DeclineReport,
    LedgerResponse,
    OrderReadyReport,
    RequestModel,
    StatusReport,
    StatusUpdateModel,
    TransitionResponse,
)
from ...services.notifications.notifier import StatusNotifier
from ...services.state_machine import REQUEST_NOT_FOUND, StateMachine, TransitionResult
from ..dependencies import get_notifier, get_request_store, get_state_machine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])


def _respond(
    result: TransitionResult,
    response: Response,
    notifier: StatusNotifier,
    actor_user_id: str,
) -> TransitionResponse:
    notification = None
    if result.success and result.request is not None:
        # Push failures never undo the transition
        outcome = notifier.notify_counterpart(result.request, actor_user_id, result.request.request_status)
        if outcome is not None:
            notification = NotificationOutcomeModel.model_validate(asdict(outcome))
    elif result.message == REQUEST_NOT_FOUND:
        response.status_code = status.HTTP_404_NOT_FOUND
    else:
        response.status_code = status.HTTP_409_CONFLICT

    return TransitionResponse(
        success=result.success,
        message=result.message,
        request=RequestModel.from_domain(result.request) if result.request else None,
        status_update=StatusUpdateModel.from_domain(result.status_update) if result.status_update else None,
        notification=notification,
    )


def _broadcast(result: TransitionResult, response: Response, notifier: StatusNotifier) -> BroadcastResponse:
    notifications = []
    if result.success and result.request is not None:
        outcomes = notifier.broadcast(result.recipients, result.request.request_id, result.request.request_status)
        notifications = [NotificationOutcomeModel.model_validate(asdict(outcome)) for outcome in outcomes]
    elif result.message == REQUEST_NOT_FOUND:
        response.status_code = status.HTTP_404_NOT_FOUND
    else:
        response.status_code = status.HTTP_409_CONFLICT

    return BroadcastResponse(
        success=result.success,
        message=result.message,
        request=RequestModel.from_domain(result.request) if result.request else None,
        status_update=StatusUpdateModel.from_domain(result.status_update) if result.status_update else None,
        notifications=notifications,
    )


def _run(operation: Callable[[], TransitionResult], request_id: str) -> TransitionResult:
    try:
        return operation()
    except MissingReason as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error updating request {request_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update request: {str(exc)}",
        ) from exc


@router.get("/{request_id}", response_model=RequestModel, status_code=status.HTTP_200_OK)
def get_request(request_id: str, store: RequestStore = Depends(get_request_store)) -> RequestModel:
    request = store.get_request(request_id)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Request '{request_id}' not found")
    return RequestModel.from_domain(request)


@router.get("/{request_id}/ledger", response_model=LedgerResponse, status_code=status.HTTP_200_OK)
def get_ledger(request_id: str, machine: StateMachine = Depends(get_state_machine)) -> LedgerResponse:
    try:
        rows = machine.list_ledger(request_id)
    except RequestNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return LedgerResponse(request_id=request_id, items=[StatusUpdateModel.from_domain(row) for row in rows])


@router.post("/kitchen-report", response_model=TransitionResponse)
def kitchen_report(
    payload: StatusReport,
    response: Response,
    machine: StateMachine = Depends(get_state_machine),
    notifier: StatusNotifier = Depends(get_notifier),
) -> TransitionResponse:
    result = _run(
        lambda: machine.kitchen_report(
            payload.request_id,
            payload.user_id,
            payload.status,
            payload.geo,
            payload.reason,
            is_proceed_next=payload.is_proceed_next,
            reported_at=payload.timestamp,
        ),
        payload.request_id,
    )
    return _respond(result, response, notifier, payload.user_id)


@router.post("/agent-report", response_model=TransitionResponse)
def agent_report(
    payload: StatusReport,
    response: Response,
    machine: StateMachine = Depends(get_state_machine),
    notifier: StatusNotifier = Depends(get_notifier),
) -> TransitionResponse:
    result = _run(
        lambda: machine.agent_report(
            payload.request_id,
            payload.user_id,
            payload.status,
            payload.geo,
            payload.reason,
            is_proceed_next=payload.is_proceed_next,
            reported_at=payload.timestamp,
        ),
        payload.request_id,
    )
    return _respond(result, response, notifier, payload.user_id)


@router.post("/status", response_model=TransitionResponse)
def set_status(
    payload: StatusReport,
    response: Response,
    machine: StateMachine = Depends(get_state_machine),
    notifier: StatusNotifier = Depends(get_notifier),
) -> TransitionResponse:
    """Unconditional status overwrite."""
    result = _run(
        lambda: machine.generic_status_set(
            payload.request_id,
            payload.user_id,
            payload.status,
            payload.geo,
            payload.reason,
            is_proceed_next=payload.is_proceed_next,
            reported_at=payload.timestamp,
        ),
        payload.request_id,
    )
    return _respond(result, response, notifier, payload.user_id)


@router.post("/complete-or-cancel", response_model=TransitionResponse)
def complete_or_cancel(
    payload: DecisionReport,
    response: Response,
    machine: StateMachine = Depends(get_state_machine),
    notifier: StatusNotifier = Depends(get_notifier),
) -> TransitionResponse:
    result = _run(
        lambda: machine.finalize(
            payload.request_id,
            payload.user_id,
            payload.geo,
            payload.is_proceed_next,
            payload.reason,
            reported_at=payload.timestamp,
        ),
        payload.request_id,
    )
    return _respond(result, response, notifier, payload.user_id)


@router.post("/submission", response_model=TransitionResponse)
def submission(
    payload: DecisionReport,
    response: Response,
    machine: StateMachine = Depends(get_state_machine),
    notifier: StatusNotifier = Depends(get_notifier),
) -> TransitionResponse:
    result = _run(
        lambda: machine.submission_report(
            payload.request_id,
            payload.user_id,
            payload.geo,
            payload.is_proceed_next,
            payload.reason,
            reported_at=payload.timestamp,
        ),
        payload.request_id,
    )
    return _respond(result, response, notifier, payload.user_id)


@router.post("/order-ready", response_model=BroadcastResponse)
def order_ready(
    payload: OrderReadyReport,
    response: Response,
    machine: StateMachine = Depends(get_state_machine),
    notifier: StatusNotifier = Depends(get_notifier),
) -> BroadcastResponse:
    """Mark the order ready and alert the delivery agents around the kitchen."""
    result = _run(
        lambda: machine.mark_order_ready(
            payload.request_id,
            payload.user_id,
            payload.geo,
            tea_type=payload.tea_type,
            quantity=payload.quantity,
            reason=payload.reason,
            reported_at=payload.timestamp,
        ),
        payload.request_id,
    )
    return _broadcast(result, response, notifier)


@router.post("/decline-kitchen", response_model=BroadcastResponse)
def decline_kitchen(
    payload: DeclineReport,
    response: Response,
    machine: StateMachine = Depends(get_state_machine),
    notifier: StatusNotifier = Depends(get_notifier),
) -> BroadcastResponse:
    """Decline as the kitchen and offer the request to the next kitchens around the machine."""
    result = _run(
        lambda: machine.decline_and_reassign(
            payload.request_id,
            payload.user_id,
            payload.geo,
            payload.reason,
            reported_at=payload.timestamp,
        ),
        payload.request_id,
    )
    return _broadcast(result, response, notifier)
