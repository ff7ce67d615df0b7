"""Active and historical requests as seen by a kitchen or delivery agent."""

from __future__ import annotations

from dataclasses import dataclass

from ..models.domain import ActorRole, Request, StatusUpdate
from ..persistence.requests import RequestStore


@dataclass(slots=True)
class HistoryEntry:
    request: Request
    status_update: StatusUpdate


def active_requests(store: RequestStore, role: ActorRole, user_id: str) -> list[Request]:
    """Non-terminal requests the actor holds or, for agents, is a candidate for. Newest first."""
    requests = store.list_active_requests_for_actor(role, user_id)
    return sorted(requests, key=lambda request: request.created_at, reverse=True)


def actor_history(store: RequestStore, user_id: str) -> list[HistoryEntry]:
    """Requests the actor closed, with the ledger row that closed them. Newest first.

    Rejected attempts are logged with the status that was asked for, so a row
    only counts when the request actually ended in that status.
    """
    entries: dict[str, HistoryEntry] = {}
    for row in store.list_status_updates_for_actor(user_id):
        if not row.status.is_terminal:
            continue
        request = store.get_request(row.request_id)
        if request is None or request.request_status is not row.status:
            continue
        # Ledger rows arrive oldest first; the last terminal row wins
        entries[row.request_id] = HistoryEntry(request=request, status_update=row)
    return sorted(entries.values(), key=lambda entry: entry.status_update.timestamp, reverse=True)
