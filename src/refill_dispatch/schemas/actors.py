"""Per-actor request listings."""

from __future__ import annotations

from typing import List

from ..models.domain import ActorRole
from .base import CamelModel
from .requests import RequestModel, StatusUpdateModel


class ActorRequestsResponse(CamelModel):
    user_id: str
    role: ActorRole
    items: List[RequestModel]


class HistoryEntryModel(CamelModel):
    request: RequestModel
    status_update: StatusUpdateModel


class ActorHistoryResponse(CamelModel):
    user_id: str
    items: List[HistoryEntryModel]
