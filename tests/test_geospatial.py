import math

import pytest

from src.refill_dispatch.exceptions import InvalidCoordinates
from src.refill_dispatch.services.geospatial import (
    distance_km,
    haversine_km,
    parse_coordinate,
    parse_point,
    trip_distance_km,
)


def test_distance_is_symmetric_and_zero_on_same_point():
    a = (12.90, 77.60)
    b = (12.95, 77.62)

    assert distance_km(*a, *b) == distance_km(*b, *a)
    assert distance_km(*a, *a) == 0


def test_distance_between_machine_and_kitchen():
    # 0.05 deg of latitude and 0.02 deg of longitude around 12.9N
    assert distance_km(12.90, 77.60, 12.95, 77.62) == pytest.approx(5.97, abs=0.02)


def test_distance_is_rounded_to_two_decimals():
    raw = haversine_km(21.5, 39.2, 21.55, 39.25)
    assert distance_km(21.5, 39.2, 21.55, 39.25) == round(raw, 2)
    assert raw != round(raw, 2)


def test_nan_input_propagates():
    assert math.isnan(distance_km(float("nan"), 77.6, 12.95, 77.62))


def test_trip_distance_includes_return_to_kitchen():
    agent = (12.96, 77.63)
    kitchen = (12.95, 77.62)
    destination = (12.90, 77.60)

    expected = round(
        distance_km(*agent, *kitchen) + distance_km(*kitchen, *destination) + distance_km(*destination, *kitchen),
        2,
    )
    assert trip_distance_km(agent, kitchen, destination) == expected
    assert trip_distance_km(agent, kitchen, destination) > 2 * distance_km(*kitchen, *destination)


@pytest.mark.parametrize(
    "value, expected",
    [("12.90", 12.9), (" 77.6 ", 77.6), (12, 12.0), ("north", None), ("", None), (None, None), (True, None), ("nan", None)],
)
def test_parse_coordinate(value, expected):
    assert parse_coordinate(value) == expected


def test_parse_point_accepts_numeric_strings():
    assert parse_point("M1", "12.90", "77.60") == (12.9, 77.6)


@pytest.mark.parametrize("lat, lon", [("abc", "77.6"), ("12.9", None), ("91", "77.6"), ("12.9", "-181")])
def test_parse_point_rejects_invalid_coordinates(lat, lon):
    with pytest.raises(InvalidCoordinates) as exc:
        parse_point("M1", lat, lon)
    assert exc.value.entity_id == "M1"
