import pytest
from pydantic import ValidationError

from src.refill_dispatch.config import Settings


def test_radii_are_parsed_and_sorted():
    config = Settings(agent_search_radii_km="10,3,5", kitchen_search_radii_km="[4, 2]")

    assert config.agent_search_radii_km == (3.0, 5.0, 10.0)
    assert config.kitchen_search_radii_km == (2.0, 4.0)


def test_default_kitchen_radii():
    assert Settings().kitchen_search_radii_km == (2.0, 3.0, 4.0, 5.0)


@pytest.mark.parametrize("radii", ["", [], ()])
def test_empty_radii_are_rejected(radii):
    with pytest.raises(ValidationError, match="at least one radius"):
        Settings(agent_search_radii_km=radii)


def test_empty_radii_from_environment_are_rejected(monkeypatch):
    monkeypatch.setenv("REFILL_AGENT_SEARCH_RADII_KM", "[]")

    with pytest.raises(ValidationError):
        Settings()


def test_non_positive_radii_are_rejected():
    with pytest.raises(ValidationError, match="positive"):
        Settings(kitchen_search_radii_km=[0, 2])
