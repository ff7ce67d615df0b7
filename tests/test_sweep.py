from src.refill_dispatch.data.directory import InMemoryDirectory
from src.refill_dispatch.models.domain import OFFLINE, ONLINE, DeliveryAgent, Kitchen, Machine, RequestStatus
from src.refill_dispatch.services.dispatch.sweep import DispatchSweep
from src.refill_dispatch.services.notifications.gateway import DeliveryResult
from src.refill_dispatch.services.notifications.notifier import StatusNotifier


def _machines() -> list[Machine]:
    return [
        Machine(machine_id="M1", latitude="12.90", longitude="77.60"),
        Machine(machine_id="M2", latitude="12.93", longitude="77.61"),
        Machine(machine_id="M3", latitude="12.97", longitude="77.64"),
        Machine(machine_id="M-off", latitude="12.97", longitude="77.64", status=OFFLINE),
    ]


def _kitchen() -> Kitchen:
    return Kitchen(user_id="K1", latitude=12.95, longitude=77.62, status=ONLINE, name="Central Kitchen")


def _sweep(directory, store, gateway) -> DispatchSweep:
    return DispatchSweep(
        directory,
        store,
        StatusNotifier(directory, gateway),
        radii_km=(3.0, 5.0, 10.0),
        max_workers=3,
        notification_workers=2,
    )


def _directory(agents, device_token, machines=None) -> InMemoryDirectory:
    machines = machines if machines is not None else _machines()
    users = ["K1"] + [agent.user_id for agent in agents]
    return InMemoryDirectory(
        machines=machines,
        kitchens=[_kitchen()],
        agents=agents,
        device_tokens={user_id: device_token(user_id) for user_id in users},
    )


def test_sweep_uses_fallback_agent_without_coordinates(store, device_token, gateway):
    directory = _directory([DeliveryAgent(user_id="A9", status=ONLINE)], device_token)

    summary = _sweep(directory, store, gateway).run()

    assert summary.total_machines == 3
    assert summary.successful_machines == 3
    assert summary.search_distance_breakdown == {}
    assert sorted(gateway.recipients()) == ["A9", "A9", "A9"]
    assert all(n.distance_km is None for n in store.agent_notifications.values())
    for result in summary.results:
        request = store.get_request(result.request_id)
        assert request.request_status is RequestStatus.ORDER_READY
        assert request.candidate_agent_ids == ["A9"]
        assert result.nearby_agent_ids == ["A9"]


def test_sweep_notifies_every_agent_in_the_smallest_radius(store, device_token, gateway):
    agents = [
        DeliveryAgent(user_id="A1", status=ONLINE, latitude=12.959, longitude=77.62),
        DeliveryAgent(user_id="A2", status=ONLINE, latitude=12.951, longitude=77.621),
        DeliveryAgent(user_id="A-far", status=ONLINE, latitude=12.986, longitude=77.62),
    ]
    directory = _directory(agents, device_token, machines=_machines()[:1])

    summary = _sweep(directory, store, gateway).run()

    result = summary.results[0]
    assert result.success is True
    assert result.search_distance_km == 3.0
    assert result.nearby_agent_ids == ["A2", "A1"]
    assert summary.search_distance_breakdown == {"3km": 1}
    assert sorted(gateway.recipients()) == ["A1", "A2"]
    assert all(sent["payload"]["type"] == "notify_new_order" for sent in gateway.sent)
    assert summary.total_notifications == summary.successful_notifications == 2

    ledger = store.list_status_updates(result.request_id)
    assert [row.status for row in ledger] == [RequestStatus.ORDER_READY]


def test_agent_failures_are_isolated_and_invalid_tokens_reported(store, device_token, make_gateway):
    agents = [
        DeliveryAgent(user_id="A1", status=ONLINE, latitude=12.959, longitude=77.62),
        DeliveryAgent(user_id="A2", status=ONLINE, latitude=12.951, longitude=77.621),
        DeliveryAgent(user_id="A3", status=ONLINE, latitude=12.955, longitude=77.62),
    ]
    directory = _directory(agents, device_token, machines=_machines()[:2])
    gateway = make_gateway(
        failures={device_token("A1"): DeliveryResult(False, "Device token not registered", should_remove_token=True)},
        raise_for={device_token("A2")},
    )

    summary = _sweep(directory, store, gateway).run()

    assert summary.successful_machines == 2
    assert summary.total_notifications == 6
    assert summary.successful_notifications == 2
    assert summary.failed_notifications == 4
    assert summary.tokens_to_remove == ["A1"]
    assert summary.message.endswith("Notifications: 2/6 sent successfully.")


def test_machine_failures_are_isolated(store, device_token, gateway):
    machines = _machines()[:2] + [Machine(machine_id="M-bad", latitude="??", longitude="77.6")]
    agents = [DeliveryAgent(user_id="A1", status=ONLINE, latitude=12.959, longitude=77.62)]
    directory = _directory(agents, device_token, machines=machines)

    summary = _sweep(directory, store, gateway).run()

    assert summary.total_machines == 3
    assert summary.successful_machines == 2
    assert summary.failed_machines == 1
    failed = next(result for result in summary.results if not result.success)
    assert failed.machine_id == "M-bad"
    assert "Invalid coordinates" in failed.message
    assert store.list_requests_for_machine("M-bad") == []


def test_machine_without_agents_in_range_fails_without_request(store, device_token, gateway):
    agents = [DeliveryAgent(user_id="A-far", status=ONLINE, latitude=13.40, longitude=77.62)]
    directory = _directory(agents, device_token, machines=_machines()[:1])

    summary = _sweep(directory, store, gateway).run()

    assert summary.failed_machines == 1
    assert summary.results[0].message == "No delivery agents found within 10km"
    assert store.list_requests_for_machine("M1") == []


def test_sweep_with_no_machines(store, device_token, gateway):
    summary = _sweep(_directory([], device_token, machines=[]), store, gateway).run()

    assert summary.total_machines == 0
    assert summary.results == []
