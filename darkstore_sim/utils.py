# darkstore-sim/darkstore_sim/utils.py
"""
Geometry utilities for the dark-store delivery simulation.

Provides geographic distance, point-in-polygon tests, random point sampling
inside the city boundary and waypoint generation for agent routes.
All functions are pure apart from the random generator they are given.

Conventions: locations are (lat, lng); polygon vertices are (lng, lat).
"""

from __future__ import annotations

import logging
import math
import random
from typing import List, Optional, Sequence, Tuple

from . import config

logger = logging.getLogger(__name__)

Location = Tuple[float, float]
Polygon = Sequence[Tuple[float, float]]


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula to compute the distance between two GPS coordinates.
    This accounts for Earth's curvature, making it accurate for last-mile distances.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in kilometers between the two points

    Example:
        >>> haversine_distance(30.7333, 76.7794, 30.7433, 76.7794)
        1.112  # ~1.1 km, one hundredth of a degree of latitude
    """
    lon1, lat1, lon2, lat2 = map(math.radians, [lon1, lat1, lon2, lat2])

    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    c = 2 * math.asin(math.sqrt(a))

    # Radius of Earth in kilometers
    r = 6371
    return c * r


def get_distance(a: Location, b: Location) -> float:
    """Distance in km between two (lat, lng) locations."""
    return haversine_distance(a[0], a[1], b[0], b[1])


def point_in_polygon(point: Tuple[float, float], polygon: Polygon) -> bool:
    """
    Ray-casting test of a (lng, lat) point against a closed (lng, lat) ring.

    Works for any simple polygon; the ring may or may not repeat its first
    vertex at the end.
    """
    x, y = point
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def location_in_polygon(location: Location, polygon: Polygon) -> bool:
    """point_in_polygon for a (lat, lng) location."""
    return point_in_polygon((location[1], location[0]), polygon)


def polygon_bounds(polygon: Polygon) -> Tuple[float, float, float, float]:
    """Returns (min_lat, min_lng, max_lat, max_lng) of a (lng, lat) ring."""
    lngs = [p[0] for p in polygon]
    lats = [p[1] for p in polygon]
    return min(lats), min(lngs), max(lats), max(lngs)


def sample_uniform_in_polygon(
    n: int,
    polygon: Polygon,
    rng: Optional[random.Random] = None,
) -> List[Location]:
    """
    Draw up to n locations uniformly inside a polygon by rejection sampling.

    Candidates are drawn from the bounding box and kept if they fall inside
    the ring. The attempt budget is n * SAMPLING_ATTEMPTS_PER_POINT; on
    exhaustion fewer than n locations are returned.

    Args:
        n: Number of locations wanted
        polygon: (lng, lat) ring
        rng: Random generator (module-level random when omitted)

    Returns:
        List of (lat, lng) locations, possibly shorter than n
    """
    rng = rng or random.Random()
    if n <= 0 or len(polygon) < 3:
        return []

    min_lat, min_lng, max_lat, max_lng = polygon_bounds(polygon)
    points: List[Location] = []
    attempts = 0
    budget = n * config.SAMPLING_ATTEMPTS_PER_POINT
    while len(points) < n and attempts < budget:
        attempts += 1
        lat = rng.uniform(min_lat, max_lat)
        lng = rng.uniform(min_lng, max_lng)
        if point_in_polygon((lng, lat), polygon):
            points.append((lat, lng))

    if len(points) < n:
        logger.debug(f"Uniform sampling returned {len(points)}/{n} points after {attempts} attempts")
    return points


def _box_muller(rng: random.Random) -> Tuple[float, float]:
    """Two independent standard normal deviates."""
    u1 = rng.random()
    while u1 <= 0.0:
        u1 = rng.random()
    u2 = rng.random()
    radius = math.sqrt(-2.0 * math.log(u1))
    return radius * math.cos(2 * math.pi * u2), radius * math.sin(2 * math.pi * u2)


def sample_gaussian_in_polygon(
    center: Location,
    sigma_deg: float,
    n: int,
    polygon: Polygon,
    rng: Optional[random.Random] = None,
) -> List[Location]:
    """
    Draw up to n locations normally distributed around center, inside polygon.

    Offsets come from the Box-Muller transform scaled by sigma_deg. Samples
    outside the polygon are rejected; the attempt budget matches
    sample_uniform_in_polygon.
    """
    rng = rng or random.Random()
    if n <= 0 or len(polygon) < 3:
        return []

    points: List[Location] = []
    attempts = 0
    budget = n * config.SAMPLING_ATTEMPTS_PER_POINT
    while len(points) < n and attempts < budget:
        attempts += 1
        z_lat, z_lng = _box_muller(rng)
        lat = center[0] + z_lat * sigma_deg
        lng = center[1] + z_lng * sigma_deg
        if point_in_polygon((lng, lat), polygon):
            points.append((lat, lng))
    return points


def interpolate(start: Location, end: Location, fraction: float) -> Location:
    """Linear interpolation between two locations."""
    return (
        start[0] + (end[0] - start[0]) * fraction,
        start[1] + (end[1] - start[1]) * fraction,
    )


def jitter_location(location: Location, max_offset_deg: float, rng: random.Random) -> Location:
    """Offset a location by up to max_offset_deg on each axis."""
    return (
        location[0] + rng.uniform(-max_offset_deg, max_offset_deg),
        location[1] + rng.uniform(-max_offset_deg, max_offset_deg),
    )


def generate_waypoints(
    start: Location,
    end: Location,
    count: int,
    rng: Optional[random.Random] = None,
) -> List[Location]:
    """
    Interior waypoints between start and end with a little random jitter.

    Waypoint i of count sits at fraction i / (count + 1) of the leg, offset by
    at most min(MAX_WAYPOINT_OFFSET_DEG, WAYPOINT_OFFSET_PER_KM_DEG * leg_km)
    degrees on each axis.

    Returns:
        List of (lat, lng) waypoints; empty for count == 0 or legs under 0.2 km
    """
    if count <= 0:
        return []
    leg_km = get_distance(start, end)
    if leg_km < config.MIN_WAYPOINT_LEG_KM:
        return []

    rng = rng or random.Random()
    max_offset = min(config.MAX_WAYPOINT_OFFSET_DEG, leg_km * config.WAYPOINT_OFFSET_PER_KM_DEG)
    return [
        jitter_location(interpolate(start, end, i / (count + 1)), max_offset, rng)
        for i in range(1, count + 1)
    ]


def build_route(
    start: Location,
    end: Location,
    waypoints: int,
    rng: Optional[random.Random] = None,
) -> List[Location]:
    """Full polyline start -> waypoints -> end."""
    return [start, *generate_waypoints(start, end, waypoints, rng), end]


def format_time_duration(minutes: float) -> str:
    """
    Format a duration in minutes as a human-readable string.

    Args:
        minutes: Duration in minutes

    Returns:
        Formatted string like "1h 23m" or "45m"
    """
    if minutes < 60:
        return f"{minutes:.0f}m"
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    return f"{hours}h {mins}m"
