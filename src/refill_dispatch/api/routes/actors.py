"""Per-actor request listings for the kitchen and delivery agent apps."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ...models.domain import ActorRole
from ...persistence.requests import RequestStore
from ...schemas.actors import ActorHistoryResponse, ActorRequestsResponse, HistoryEntryModel
from ...schemas.requests import RequestModel, StatusUpdateModel
from ...services.history import active_requests, actor_history
from ..dependencies import get_request_store

router = APIRouter(prefix="/actors", tags=["actors"])


@router.get("/{user_id}/requests", response_model=ActorRequestsResponse, status_code=status.HTTP_200_OK)
def list_active_requests(
    user_id: str,
    role: ActorRole = Query(..., description="Whether user_id is a kitchen or a delivery agent"),
    store: RequestStore = Depends(get_request_store),
) -> ActorRequestsResponse:
    requests = active_requests(store, role, user_id)
    return ActorRequestsResponse(
        user_id=user_id,
        role=role,
        items=[RequestModel.from_domain(request) for request in requests],
    )


@router.get("/{user_id}/history", response_model=ActorHistoryResponse, status_code=status.HTTP_200_OK)
def list_history(user_id: str, store: RequestStore = Depends(get_request_store)) -> ActorHistoryResponse:
    entries = actor_history(store, user_id)
    return ActorHistoryResponse(
        user_id=user_id,
        items=[
            HistoryEntryModel(
                request=RequestModel.from_domain(entry.request),
                status_update=StatusUpdateModel.from_domain(entry.status_update),
            )
            for entry in entries
        ],
    )
