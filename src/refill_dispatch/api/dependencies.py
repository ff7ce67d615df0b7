"""Dependency providers for the route handlers.

Stores and the push gateway are built once per process. Tests replace them
through ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from ..config import settings
from ..data.directory import DirectoryStore, InMemoryDirectory, SupabaseDirectory
from ..db.supabase import get_supabase_client
from ..persistence.requests import InMemoryRequestStore, RequestStore, SupabaseRequestStore
from ..services.dispatch.service import DispatchEngine
from ..services.dispatch.sweep import DispatchSweep
from ..services.notifications.gateway import NotificationGateway, PushClient
from ..services.notifications.notifier import StatusNotifier
from ..services.state_machine import StateMachine

logger = logging.getLogger(__name__)


@lru_cache()
def get_directory() -> DirectoryStore:
    client = get_supabase_client()
    if client is None:
        logger.warning("Supabase not configured; using an empty in-memory directory")
        return InMemoryDirectory()
    return SupabaseDirectory(client)


@lru_cache()
def get_request_store() -> RequestStore:
    client = get_supabase_client()
    if client is None:
        logger.warning("Supabase not configured; requests are kept in process memory")
        return InMemoryRequestStore()
    return SupabaseRequestStore(client)


@lru_cache()
def get_gateway() -> Optional[NotificationGateway]:
    if not settings.push_configured:
        logger.warning("Push provider not configured (missing project id or access token)")
        return None
    return PushClient()


def get_notifier(
    directory: DirectoryStore = Depends(get_directory),
    gateway: Optional[NotificationGateway] = Depends(get_gateway),
) -> StatusNotifier:
    return StatusNotifier(directory, gateway)


def get_state_machine(
    store: RequestStore = Depends(get_request_store),
    directory: DirectoryStore = Depends(get_directory),
) -> StateMachine:
    return StateMachine(store, directory)


def get_dispatch_engine(
    directory: DirectoryStore = Depends(get_directory),
    store: RequestStore = Depends(get_request_store),
    notifier: StatusNotifier = Depends(get_notifier),
) -> DispatchEngine:
    return DispatchEngine(directory, store, notifier)


def get_dispatch_sweep(
    directory: DirectoryStore = Depends(get_directory),
    store: RequestStore = Depends(get_request_store),
    notifier: StatusNotifier = Depends(get_notifier),
) -> DispatchSweep:
    return DispatchSweep(directory, store, notifier)
