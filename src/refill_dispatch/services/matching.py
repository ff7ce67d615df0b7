"""Nearest-entity selection over the kitchen and delivery agent registries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Collection, Generic, Iterable, Optional, Sequence, TypeVar, Union

from ..models.domain import DeliveryAgent, Kitchen
from .geospatial import distance_km

logger = logging.getLogger(__name__)

Entity = TypeVar("Entity", bound=Union[Kitchen, DeliveryAgent])


@dataclass(slots=True)
class Match(Generic[Entity]):
    entity: Entity
    distance_km: Optional[float]

    @property
    def user_id(self) -> str:
        return self.entity.user_id


def _online(registry: Iterable[Entity]) -> list[Entity]:
    return [entity for entity in registry if entity.is_online]


def _ranked(entities: Sequence[Entity], anchor_lat: float, anchor_lon: float) -> list[Match[Entity]]:
    # sorted() is stable: equal distances keep registry order
    matches = [
        Match(entity=entity, distance_km=distance_km(anchor_lat, anchor_lon, entity.latitude, entity.longitude))
        for entity in entities
        if entity.has_coordinates
    ]
    return sorted(matches, key=lambda match: match.distance_km)


def nearest_online_match(
    registry: Iterable[Entity],
    anchor_lat: float,
    anchor_lon: float,
    *,
    fallback_to_first: bool = False,
) -> Optional[Match[Entity]]:
    """Return the closest online entity with its distance from the anchor.

    With ``fallback_to_first`` set and no online entity carrying coordinates, the
    first online entity in registry order is returned with no distance.
    """
    online = _online(registry)
    if not online:
        return None

    ranked = _ranked(online, anchor_lat, anchor_lon)
    if ranked:
        return ranked[0]

    if fallback_to_first:
        logger.info(f"No online entity has coordinates; falling back to '{online[0].user_id}'")
        return Match(entity=online[0], distance_km=None)
    return None


def nearest_online(
    registry: Iterable[Entity],
    anchor_lat: float,
    anchor_lon: float,
    *,
    fallback_to_first: bool = False,
) -> Optional[Entity]:
    match = nearest_online_match(registry, anchor_lat, anchor_lon, fallback_to_first=fallback_to_first)
    return match.entity if match else None


def find_nearest_kitchen(kitchens: Iterable[Kitchen], lat: float, lon: float) -> Optional[Match[Kitchen]]:
    return nearest_online_match(kitchens, lat, lon)


def find_nearest_agent(agents: Iterable[DeliveryAgent], lat: float, lon: float) -> Optional[Match[DeliveryAgent]]:
    return nearest_online_match(agents, lat, lon, fallback_to_first=True)


def find_agents_within(
    agents: Iterable[DeliveryAgent],
    lat: float,
    lon: float,
    radii_km: Sequence[float],
) -> tuple[list[Match[DeliveryAgent]], Optional[float]]:
    """Collect online agents inside the smallest radius that yields any.

    Returns the matches ordered by distance and the radius used. When no online
    agent has coordinates the first online agent is returned alone with no radius.
    """
    online = _online(agents)
    if not online:
        return [], None

    ranked = _ranked(online, lat, lon)
    if not ranked:
        logger.info(f"No online agent has coordinates; falling back to '{online[0].user_id}'")
        return [Match(entity=online[0], distance_km=None)], None

    return _within_smallest_radius(ranked, radii_km)


def _within_smallest_radius(
    ranked: Sequence[Match[Entity]], radii_km: Sequence[float]
) -> tuple[list[Match[Entity]], Optional[float]]:
    for radius in radii_km:
        within = [match for match in ranked if match.distance_km <= radius]
        if within:
            return within, radius
    return [], None


def find_kitchens_within(
    kitchens: Iterable[Kitchen],
    lat: float,
    lon: float,
    radii_km: Sequence[float],
    exclude: Collection[str] = (),
) -> tuple[list[Match[Kitchen]], Optional[float]]:
    """Online kitchens inside the smallest radius that yields any, skipping ``exclude``."""
    candidates = [kitchen for kitchen in _online(kitchens) if kitchen.user_id not in exclude]
    return _within_smallest_radius(_ranked(candidates, lat, lon), radii_km)
