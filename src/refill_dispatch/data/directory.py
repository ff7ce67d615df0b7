"""Read-only access to the machine, kitchen and delivery agent registries.

The registries are owned by other services; the dispatch engine only reads them.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from ..models.domain import ONLINE, DeliveryAgent, Kitchen, Machine
from ..services.geospatial import parse_coordinate

logger = logging.getLogger(__name__)


class DirectoryStore(ABC):
    """Contract for registry lookups used by matching and dispatch."""

    @abstractmethod
    def get_machine(self, machine_id: str) -> Optional[Machine]:
        raise NotImplementedError

    @abstractmethod
    def list_active_machines(self) -> list[Machine]:
        raise NotImplementedError

    @abstractmethod
    def list_online_kitchens(self) -> list[Kitchen]:
        raise NotImplementedError

    @abstractmethod
    def list_online_agents(self) -> list[DeliveryAgent]:
        raise NotImplementedError

    @abstractmethod
    def get_kitchen(self, user_id: str) -> Optional[Kitchen]:
        raise NotImplementedError

    @abstractmethod
    def get_agent(self, user_id: str) -> Optional[DeliveryAgent]:
        raise NotImplementedError

    @abstractmethod
    def get_device_token(self, user_id: str) -> Optional[str]:
        raise NotImplementedError


class InMemoryDirectory(DirectoryStore):
    """Directory snapshot held in process memory, in registry order."""

    def __init__(
        self,
        machines: Iterable[Machine] = (),
        kitchens: Iterable[Kitchen] = (),
        agents: Iterable[DeliveryAgent] = (),
        device_tokens: dict[str, str] | None = None,
    ) -> None:
        self.machines = list(machines)
        self.kitchens = list(kitchens)
        self.agents = list(agents)
        self.device_tokens = dict(device_tokens or {})

    def get_machine(self, machine_id: str) -> Optional[Machine]:
        return next((machine for machine in self.machines if machine.machine_id == machine_id), None)

    def list_active_machines(self) -> list[Machine]:
        return [machine for machine in self.machines if machine.is_online]

    def list_online_kitchens(self) -> list[Kitchen]:
        return [kitchen for kitchen in self.kitchens if kitchen.is_online]

    def list_online_agents(self) -> list[DeliveryAgent]:
        return [agent for agent in self.agents if agent.is_online]

    def get_kitchen(self, user_id: str) -> Optional[Kitchen]:
        return next((kitchen for kitchen in self.kitchens if kitchen.user_id == user_id), None)

    def get_agent(self, user_id: str) -> Optional[DeliveryAgent]:
        return next((agent for agent in self.agents if agent.user_id == user_id), None)

    def get_device_token(self, user_id: str) -> Optional[str]:
        return self.device_tokens.get(user_id)


def _machine_from_row(row: dict[str, Any]) -> Machine:
    address = row.get("address") or {}
    return Machine(
        machine_id=str(row["id"]),
        latitude=row.get("gis_latitude"),
        longitude=row.get("gis_longitude"),
        supply_level=parse_coordinate(row.get("canister_level")),
        status=str(row.get("status") or ONLINE),
        name=row.get("name"),
        address={str(key): str(value) for key, value in address.items()} if isinstance(address, dict) else {},
    )


def _kitchen_from_row(row: dict[str, Any]) -> Kitchen:
    return Kitchen(
        user_id=str(row["user_id"]),
        latitude=float(row["latitude"]),
        longitude=float(row["longitude"]),
        status=str(row.get("status") or ""),
        name=row.get("name"),
        address=row.get("address"),
        manager=row.get("manager"),
        manager_mobile=row.get("manager_mobile"),
    )


def _agent_from_row(row: dict[str, Any]) -> DeliveryAgent:
    return DeliveryAgent(
        user_id=str(row["user_id"]),
        status=str(row.get("status") or ""),
        latitude=parse_coordinate(row.get("latitude")),
        longitude=parse_coordinate(row.get("longitude")),
        name=row.get("name"),
        mobile=row.get("mobile"),
    )


def _parse_rows(rows: Iterable[dict[str, Any]], parser, table: str) -> list:
    parsed = []
    for row in rows:
        try:
            parsed.append(parser(row))
        except (KeyError, ValueError, TypeError) as e:
            # Skip invalid rows but continue processing
            logger.warning(f"Skipping invalid {table} row: {e}")
    return parsed


class SupabaseDirectory(DirectoryStore):
    """Directory backed by the registry tables in Supabase."""

    def __init__(self, client) -> None:
        self.client = client

    def _select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        query = self.client.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        response = query.execute()
        return response.data or []

    def get_machine(self, machine_id: str) -> Optional[Machine]:
        rows = _parse_rows(self._select("machines", id=machine_id), _machine_from_row, "machines")
        return rows[0] if rows else None

    def list_active_machines(self) -> list[Machine]:
        return _parse_rows(self._select("machines", status=ONLINE), _machine_from_row, "machines")

    def list_online_kitchens(self) -> list[Kitchen]:
        return _parse_rows(self._select("kitchens", status=ONLINE), _kitchen_from_row, "kitchens")

    def list_online_agents(self) -> list[DeliveryAgent]:
        return _parse_rows(self._select("delivery_agents", status=ONLINE), _agent_from_row, "delivery_agents")

    def get_kitchen(self, user_id: str) -> Optional[Kitchen]:
        rows = _parse_rows(self._select("kitchens", user_id=user_id), _kitchen_from_row, "kitchens")
        return rows[0] if rows else None

    def get_agent(self, user_id: str) -> Optional[DeliveryAgent]:
        rows = _parse_rows(self._select("delivery_agents", user_id=user_id), _agent_from_row, "delivery_agents")
        return rows[0] if rows else None

    def get_device_token(self, user_id: str) -> Optional[str]:
        rows = self._select("app_users", user_id=user_id)
        if not rows:
            return None
        token = rows[0].get("fcm_token")
        return str(token) if token else None
