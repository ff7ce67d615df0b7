from __future__ import annotations

import pytest

from src.refill_dispatch.data.directory import InMemoryDirectory
from src.refill_dispatch.models.domain import OFFLINE, ONLINE, DeliveryAgent, Kitchen, Machine
from src.refill_dispatch.persistence.requests import InMemoryRequestStore
from src.refill_dispatch.services.notifications.gateway import DeliveryResult, NotificationGateway
from src.refill_dispatch.services.notifications.notifier import StatusNotifier


def _device_token(user_id: str) -> str:
    """A well-formed push token, long enough to pass validation."""
    return f"{user_id}:" + "A1b2_C3-d4" * 16


class RecordingGateway(NotificationGateway):
    def __init__(self, failures: dict[str, DeliveryResult] | None = None, raise_for: set[str] | None = None):
        self.sent: list[dict] = []
        self.failures = failures or {}
        self.raise_for = raise_for or set()

    def send(self, device_token, title, body, payload):
        self.sent.append({"token": device_token, "title": title, "body": body, "payload": payload})
        if device_token in self.raise_for:
            raise RuntimeError("gateway exploded")
        return self.failures.get(device_token, DeliveryResult(True, "Notification sent successfully"))

    def recipients(self) -> list[str]:
        return [sent["token"].split(":", 1)[0] for sent in self.sent]


@pytest.fixture
def machine() -> Machine:
    return Machine(
        machine_id="M1",
        latitude="12.90",
        longitude="77.60",
        supply_level=15.0,
        name="Tower A Lobby",
        address={"building": "Tower A", "floor": "Ground", "area": "Koramangala", "state": "Karnataka"},
    )


@pytest.fixture
def kitchens() -> list[Kitchen]:
    return [
        Kitchen(
            user_id="K1",
            latitude=12.95,
            longitude=77.62,
            status=ONLINE,
            name="Central Kitchen",
            address="12 Residency Road",
            manager="Asha",
            manager_mobile="9000000001",
        ),
        Kitchen(user_id="K2", latitude=12.90, longitude=77.601, status=OFFLINE, name="Closed Kitchen"),
    ]


@pytest.fixture
def agents() -> list[DeliveryAgent]:
    return [
        DeliveryAgent(user_id="A1", status=ONLINE, latitude=12.959, longitude=77.62, name="Ravi", mobile="9000000002"),
        DeliveryAgent(user_id="A2", status=OFFLINE, latitude=12.95, longitude=77.62, name="Off Duty"),
    ]


@pytest.fixture
def directory(machine, kitchens, agents) -> InMemoryDirectory:
    users = ["K1", "K2", "A1", "A2"]
    return InMemoryDirectory(
        machines=[machine],
        kitchens=kitchens,
        agents=agents,
        device_tokens={user_id: _device_token(user_id) for user_id in users},
    )


@pytest.fixture
def store() -> InMemoryRequestStore:
    return InMemoryRequestStore()


@pytest.fixture
def device_token():
    return _device_token


@pytest.fixture
def make_gateway():
    """Builds a recording gateway with scripted failures."""
    return RecordingGateway


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def notifier(directory, gateway) -> StatusNotifier:
    return StatusNotifier(directory, gateway)
