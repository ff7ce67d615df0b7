from src.refill_dispatch.models.domain import OFFLINE, ONLINE, DeliveryAgent, Kitchen
from src.refill_dispatch.services.geospatial import distance_km
from src.refill_dispatch.services.matching import (
    find_agents_within,
    find_kitchens_within,
    find_nearest_agent,
    find_nearest_kitchen,
    nearest_online,
)

ANCHOR = (12.90, 77.60)


def _kitchen(user_id: str, lat: float, lon: float, status: str = ONLINE) -> Kitchen:
    return Kitchen(user_id=user_id, latitude=lat, longitude=lon, status=status)


def _agent(user_id: str, lat=None, lon=None, status: str = ONLINE) -> DeliveryAgent:
    return DeliveryAgent(user_id=user_id, status=status, latitude=lat, longitude=lon)


def test_nearest_online_never_returns_offline_entity():
    kitchens = [_kitchen("closest-but-offline", 12.90, 77.601, OFFLINE), _kitchen("K1", 12.95, 77.62)]

    result = nearest_online(kitchens, *ANCHOR)

    assert result.user_id == "K1"


def test_nearest_online_picks_minimum_distance():
    kitchens = [_kitchen("far", 13.20, 77.90), _kitchen("near", 12.91, 77.61), _kitchen("mid", 12.95, 77.62)]

    match = find_nearest_kitchen(kitchens, *ANCHOR)

    assert match.user_id == "near"
    for kitchen in kitchens:
        assert match.distance_km <= distance_km(*ANCHOR, kitchen.latitude, kitchen.longitude)


def test_ties_keep_registry_order():
    kitchens = [_kitchen("first", 12.95, 77.62), _kitchen("second", 12.95, 77.62)]

    assert nearest_online(kitchens, *ANCHOR).user_id == "first"
    assert nearest_online(list(reversed(kitchens)), *ANCHOR).user_id == "second"


def test_no_online_entity_returns_none():
    assert find_nearest_kitchen([_kitchen("K1", 12.95, 77.62, OFFLINE)], *ANCHOR) is None
    assert find_nearest_agent([], *ANCHOR) is None


def test_agents_without_coordinates_are_skipped_when_others_have_them():
    agents = [_agent("no-position"), _agent("A1", 12.96, 77.63)]

    match = find_nearest_agent(agents, *ANCHOR)

    assert match.user_id == "A1"
    assert match.distance_km is not None


def test_agent_fallback_to_first_online_without_coordinates():
    agents = [_agent("offline", 12.9, 77.6, OFFLINE), _agent("A7"), _agent("A8")]

    match = find_nearest_agent(agents, *ANCHOR)

    assert match.user_id == "A7"
    assert match.distance_km is None


def test_kitchens_do_not_use_the_fallback():
    kitchen = Kitchen(user_id="K9", latitude=None, longitude=None, status=ONLINE)

    assert find_nearest_kitchen([kitchen], *ANCHOR) is None


def test_find_agents_within_uses_smallest_radius_that_yields_agents():
    kitchen = (12.95, 77.62)
    agents = [_agent("A-4km", 12.986, 77.62), _agent("A-50km", 13.40, 77.62), _agent("A-1km", 12.959, 77.62)]

    matches, radius = find_agents_within(agents, *kitchen, radii_km=(3.0, 5.0, 10.0))

    assert radius == 3.0
    assert [match.user_id for match in matches] == ["A-1km"]

    matches, radius = find_agents_within(agents[:2], *kitchen, radii_km=(3.0, 5.0, 10.0))
    assert radius == 5.0
    assert [match.user_id for match in matches] == ["A-4km"]


def test_find_agents_within_returns_nothing_beyond_last_radius():
    matches, radius = find_agents_within([_agent("A-50km", 13.40, 77.62)], 12.95, 77.62, radii_km=(3.0, 5.0))

    assert matches == []
    assert radius is None


def test_find_agents_within_falls_back_when_no_agent_has_coordinates():
    matches, radius = find_agents_within([_agent("A7"), _agent("A8")], 12.95, 77.62, radii_km=(3.0,))

    assert [match.user_id for match in matches] == ["A7"]
    assert matches[0].distance_km is None
    assert radius is None


def test_find_kitchens_within_skips_excluded_and_expands_radius():
    kitchens = [
        _kitchen("declined", 12.905, 77.60),
        _kitchen("offline", 12.901, 77.60, OFFLINE),
        _kitchen("near", 12.91, 77.60),
        _kitchen("mid", 12.925, 77.60),
    ]
    radii = (2.0, 3.0, 4.0, 5.0)

    first, first_radius = find_kitchens_within(kitchens, *ANCHOR, radii, exclude={"declined"})
    second, second_radius = find_kitchens_within(kitchens, *ANCHOR, radii, exclude={"declined", "near"})
    none, none_radius = find_kitchens_within(kitchens, *ANCHOR, radii, exclude={"declined", "near", "mid"})

    assert [match.user_id for match in first] == ["near"]
    assert first_radius == 2.0
    assert [match.user_id for match in second] == ["mid"]
    assert second_radius == 3.0
    assert (none, none_radius) == ([], None)
