# darkstore-sim/darkstore_sim/demand.py
"""
Demand profiles and order-location sampling.

Two builtin profiles need no zone data:
- default_uniform: orders spread over a disk around the hub
- default_focused: same disk, smaller radius

Custom profiles are lists of zones (uniform, hotspot, sector, route), each
active during a time window and weighted by its mean order rate. A location
that cannot be resolved yields None, which callers treat as "no order this tick".
"""

from __future__ import annotations

import json
import logging
import math
import random
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Type, Union

from . import config, utils
from .city import CITY_POLYGON, SECTORS
from .config import SimulationParameters
from .models import (
    DemandProfile,
    HotspotZone,
    Location,
    RouteZone,
    SectorZone,
    UniformZone,
    Zone,
)

logger = logging.getLogger(__name__)

ProfileRef = Union[str, DemandProfile, None]


def sample_order_location(
    profile: ProfileRef,
    sim_time: float,
    hub: Location,
    params: SimulationParameters,
    rng: random.Random,
    polygon: utils.Polygon = CITY_POLYGON,
    sectors: Mapping[str, Location] = SECTORS,
) -> Optional[Location]:
    """
    Pick a delivery location for a new order.

    Args:
        profile: Builtin profile id or a custom DemandProfile
        sim_time: Current simulated minute (selects active zones)
        hub: Dark store location
        params: Supplies the builtin profile radii
        rng: Random generator of the calling world

    Returns:
        (lat, lng) location, or None when nothing is resolvable
    """
    if isinstance(profile, DemandProfile):
        zone = select_zone(active_zones(profile.zones, sim_time), rng)
        if zone is None:
            logger.debug(f"[T:{sim_time}] No active zone in profile '{profile.name}'")
            return None
        return sample_zone_location(zone, hub, rng, polygon, sectors)

    if profile == "default_uniform":
        location = _sample_disk(hub, params.uniform_order_radius_km,
                                config.DEFAULT_UNIFORM_MAX_TRIES, polygon, rng)
        if location is not None:
            return location
        fallback = utils.sample_uniform_in_polygon(1, polygon, rng)
        return fallback[0] if fallback else hub

    if profile == "default_focused":
        location = _sample_disk(hub, params.focused_order_radius_km,
                                config.DEFAULT_FOCUSED_MAX_TRIES, polygon, rng)
        return location if location is not None else hub

    logger.debug(f"Unresolvable demand profile {profile!r}")
    return None


def _sample_disk(
    center: Location,
    radius_km: float,
    max_tries: int,
    polygon: utils.Polygon,
    rng: random.Random,
) -> Optional[Location]:
    """Area-uniform polar sampling in a disk, retried against the polygon."""
    radius_deg = radius_km / config.KM_PER_DEGREE
    for _ in range(max_tries):
        angle = rng.random() * 2 * math.pi
        distance = math.sqrt(rng.random()) * radius_deg
        candidate = (center[0] + distance * math.sin(angle),
                     center[1] + distance * math.cos(angle))
        if utils.location_in_polygon(candidate, polygon):
            return candidate
    return None


def active_zones(zones: Iterable[Zone], sim_time: float) -> List[Zone]:
    """Zones whose validity window contains sim_time."""
    return [zone for zone in zones if zone.is_active(sim_time)]


def zone_weight(zone: Zone) -> float:
    """Mean order rate, or 1 when both rate bounds are zero."""
    if zone.min_orders == 0 and zone.max_orders == 0:
        return 1.0
    return zone.mean_rate


def select_zone(zones: Sequence[Zone], rng: random.Random) -> Optional[Zone]:
    """Weighted random choice of one zone, None for an empty list."""
    if not zones:
        return None
    weights = [max(zone_weight(z), 0.0) for z in zones]
    if sum(weights) <= 0:
        return rng.choice(list(zones))
    return rng.choices(list(zones), weights=weights, k=1)[0]


def sample_zone_location(
    zone: Zone,
    hub: Location,
    rng: random.Random,
    polygon: utils.Polygon = CITY_POLYGON,
    sectors: Mapping[str, Location] = SECTORS,
) -> Optional[Location]:
    """
    Sample a location according to the zone's variant.

    Returns None for malformed zones (no known sector, unknown variant).
    """
    if isinstance(zone, UniformZone):
        points = utils.sample_uniform_in_polygon(1, polygon, rng)
        return points[0] if points else hub

    if isinstance(zone, HotspotZone):
        sigma = zone.spread_km / config.KM_PER_DEGREE
        points = utils.sample_gaussian_in_polygon(zone.center, sigma, 1, polygon, rng)
        return points[0] if points else zone.center

    if isinstance(zone, SectorZone):
        known = [name for name in zone.sectors if name in sectors]
        if not known:
            logger.warning(f"Sector zone references no known sector: {zone.sectors}")
            return None
        center = sectors[rng.choice(known)]
        points = utils.sample_gaussian_in_polygon(center, config.SECTOR_SPREAD_DEG, 1, polygon, rng)
        return points[0] if points else center

    if isinstance(zone, RouteZone):
        location = _sample_route_corridor(zone, polygon, rng)
        if location is not None:
            return location
        points = utils.sample_uniform_in_polygon(1, polygon, rng)
        return points[0] if points else hub

    logger.warning(f"Unsupported zone type {zone.kind!r}")
    return None


def _sample_route_corridor(
    zone: RouteZone,
    polygon: utils.Polygon,
    rng: random.Random,
) -> Optional[Location]:
    if not zone.points:
        return None
    spread = zone.spread_km / config.KM_PER_DEGREE
    lats = [p[0] for p in zone.points]
    lngs = [p[1] for p in zone.points]
    min_lat, max_lat = min(lats) - spread, max(lats) + spread
    min_lng, max_lng = min(lngs) - spread, max(lngs) + spread
    for _ in range(config.ROUTE_ZONE_MAX_TRIES):
        candidate = (rng.uniform(min_lat, max_lat), rng.uniform(min_lng, max_lng))
        if utils.location_in_polygon(candidate, polygon):
            return candidate
    return None


def zone_order_probability(zone: Zone, minutes: float = 1.0) -> float:
    """Chance that a zone emits an order during `minutes`, from its hourly mean rate."""
    return min(1.0, max(0.0, zone.mean_rate / 60 * minutes))


def resolve_profile(profile_id: str, profiles: Iterable[DemandProfile] = ()) -> ProfileRef:
    """
    Map a profile identifier to a builtin id or a custom DemandProfile.

    Accepts 'default_uniform', 'default_focused', 'custom_<name>' or a bare
    profile name. Unknown identifiers resolve to None.
    """
    if profile_id in config.BUILTIN_PROFILES:
        return profile_id
    name = profile_id
    if name.startswith(config.CUSTOM_PROFILE_PREFIX):
        name = name[len(config.CUSTOM_PROFILE_PREFIX):]
    for profile in profiles:
        if profile.name == name or profile.name == profile_id:
            return profile
    logger.warning(f"Demand profile '{profile_id}' not found")
    return None


# =============================================================================
# PROFILE PARSING
# =============================================================================

def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _parse_end_time(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, str) and value.lower() in ("", "inf", "infinity"):
        return None
    number = float(value)
    return None if math.isinf(number) else number


ZONE_TYPES: Dict[str, Type[Zone]] = {
    zone_cls.kind: zone_cls for zone_cls in (UniformZone, HotspotZone, SectorZone, RouteZone)
}


def zone_from_dict(data: Mapping[str, Any]) -> Zone:
    """
    Build a zone from a dict with camelCase or snake_case keys.

    Raises:
        ValueError: For non-object entries, unknown zone types or malformed values
    """
    if not isinstance(data, Mapping):
        raise ValueError(f"Zone must be an object, got {type(data).__name__}")

    zone_type = str(_pick(data, "type", "kind", default="")).lower()
    zone_cls = ZONE_TYPES.get(zone_type)
    if zone_cls is None:
        raise ValueError(f"Unknown zone type '{zone_type}'")

    try:
        common: Dict[str, Any] = {
            "min_orders": float(_pick(data, "minOrders", "min_orders", default=0)),
            "max_orders": float(_pick(data, "maxOrders", "max_orders", default=0)),
            "start_time": float(_pick(data, "startTime", "start_time", default=0)),
            "end_time": _parse_end_time(_pick(data, "endTime", "end_time")),
        }

        if zone_cls is HotspotZone:
            center = _pick(data, "center")
            if center is None:
                center = (_pick(data, "centerLat", "center_lat"), _pick(data, "centerLng", "center_lng"))
            return HotspotZone(
                center=(float(center[0]), float(center[1])),
                spread_km=float(_pick(data, "spreadKm", "spread_km",
                                      default=config.DEFAULT_HOTSPOT_SPREAD_KM)),
                **common,
            )
        if zone_cls is SectorZone:
            names = _pick(data, "selectedSectors", "sectors", default=[])
            return SectorZone(sectors=[str(n) for n in names], **common)
        if zone_cls is RouteZone:
            points = _pick(data, "routePoints", "points", default=[])
            return RouteZone(
                points=[(float(p[0]), float(p[1])) for p in points],
                spread_km=float(_pick(data, "routeSpreadKm", "spread_km",
                                      default=config.DEFAULT_ROUTE_SPREAD_KM)),
                **common,
            )
        return zone_cls(**common)
    except (TypeError, IndexError) as e:
        raise ValueError(f"Malformed {zone_type} zone: {e}")


def profile_from_dict(data: Mapping[str, Any]) -> DemandProfile:
    """Build a DemandProfile from {'name': ..., 'zones': [...]}."""
    if not isinstance(data, Mapping):
        raise ValueError(f"Demand profile must be an object, got {type(data).__name__}")
    name = data.get("name")
    if not name:
        raise ValueError("Demand profile needs a name")
    zones = data.get("zones", [])
    if not isinstance(zones, list):
        raise ValueError(f"Zones of demand profile '{name}' must be a list")
    return DemandProfile(name=str(name), zones=[zone_from_dict(z) for z in zones])


def parse_profiles(data: Any) -> List[DemandProfile]:
    """
    Build demand profiles from decoded JSON.

    Accepts either a list of profiles or {"profiles": [...]}.

    Raises:
        ValueError: If the content is not a valid profile list
    """
    if isinstance(data, dict):
        data = data.get("profiles", [])
    if not isinstance(data, list):
        raise ValueError("Expected a list of profiles")
    return [profile_from_dict(p) for p in data]


def load_profiles(path: str) -> List[DemandProfile]:
    """
    Load custom demand profiles from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the content is not a valid profile list
    """
    with open(path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid profile file {path}: {e}")

    try:
        profiles = parse_profiles(data)
    except ValueError as e:
        raise ValueError(f"Invalid profile file {path}: {e}")
    logger.info(f"Loaded {len(profiles)} demand profiles from {path}")
    return profiles
