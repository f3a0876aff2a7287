# darkstore-sim/darkstore_sim/config.py
"""
Configuration parameters for the dark-store delivery simulation.

This module centralizes all tunable parameters, making it easy to:
- Adjust simulation behavior (tick length, traffic, order rates)
- Tune the fatigue model applied to delivery agents
- Configure the thresholds used by the workforce optimizer

Run-time settings that the user can change between runs live in
SimulationParameters; module-level constants are fixed model properties.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Final, Tuple

logger = logging.getLogger(__name__)

# =============================================================================
# SIMULATION CLOCK
# =============================================================================

MINUTES_PER_TICK: Final[int] = 1
"""Simulated minutes advanced by every tick of either driver."""

CHART_HISTORY_LENGTH: Final[int] = 100
"""Rolling window of (time, pending, active) samples kept for charts."""

# =============================================================================
# TRAFFIC
# =============================================================================

DYNAMIC_TRAFFIC_UPDATE_INTERVAL: Final[int] = 15
"""Minutes between resamples of the synthetic traffic factor."""

DYNAMIC_TRAFFIC_LEVELS: Final[Tuple[float, ...]] = (0.7, 0.8, 0.9, 1.0, 1.1, 1.2, 1.3)
"""
Candidate traffic multipliers applied to agent speed.
Values below 1.0 slow agents down (congestion), above 1.0 speed them up.
"""

# =============================================================================
# FATIGUE MODEL
# =============================================================================

FATIGUE_CONSECUTIVE_DELIVERIES_THRESHOLD: Final[int] = 5
"""Deliveries without rest after which an agent starts to tire."""

FATIGUE_CONTINUOUSLY_ACTIVE_THRESHOLD_MIN: Final[float] = 90.0
"""Minutes of uninterrupted activity after which an agent starts to tire."""

FATIGUE_REDUCTION_STEP: Final[float] = 0.1
"""Speed factor lost per fatigue sampling interval while tired."""

MIN_FATIGUE_FACTOR: Final[float] = 0.6
"""Floor of the fatigue factor. A tired agent never drops below 60% speed."""

FATIGUE_RECOVERY_IDLE_TIME_MIN: Final[float] = 20.0
"""Idle minutes an agent needs before recovering speed."""

FATIGUE_RECOVERY_STEP: Final[float] = 0.05
"""Speed factor regained per recovery check."""

FATIGUE_UPDATE_INTERVAL: Final[int] = 5
"""Minutes between fatigue evaluations for busy agents."""

# =============================================================================
# MOVEMENT AND ROUTING
# =============================================================================

DEGENERATE_LEG_KM: Final[float] = 0.001
"""Legs shorter than this (1 m) complete instantly."""

MIN_WAYPOINT_LEG_KM: Final[float] = 0.2
"""Legs shorter than this are never split into waypoints."""

MAX_WAYPOINT_OFFSET_DEG: Final[float] = 0.005
"""Upper bound of the random jitter applied to interior waypoints."""

WAYPOINT_OFFSET_PER_KM_DEG: Final[float] = 0.0001
"""Waypoint jitter grows with leg length up to MAX_WAYPOINT_OFFSET_DEG."""

KM_PER_DEGREE: Final[float] = 111.0
"""Rough conversion used to turn radii in km into degree offsets."""

# =============================================================================
# ORDER GENERATION
# =============================================================================

SAMPLING_ATTEMPTS_PER_POINT: Final[int] = 500
"""Rejection-sampling budget per requested point."""

DEFAULT_UNIFORM_MAX_TRIES: Final[int] = 200
DEFAULT_FOCUSED_MAX_TRIES: Final[int] = 100
ROUTE_ZONE_MAX_TRIES: Final[int] = 50

SECTOR_SPREAD_DEG: Final[float] = 0.005
"""Gaussian spread of orders around a named sector's centroid."""

DEFAULT_HOTSPOT_SPREAD_KM: Final[float] = 1.0
DEFAULT_ROUTE_SPREAD_KM: Final[float] = 0.5

ORDER_FREQUENCY_LEVELS: Final[Dict[int, float]] = {
    1: 0.15,
    2: 0.25,
    3: 0.40,
    4: 0.55,
    5: 0.70,
}
"""Per-minute order probability for the 1 (very low) .. 5 (very high) frequency levels."""

BUILTIN_PROFILES: Final[Tuple[str, ...]] = ("default_uniform", "default_focused")
"""Demand profiles that need no zone definitions."""

CUSTOM_PROFILE_PREFIX: Final[str] = "custom_"

# =============================================================================
# WORKFORCE OPTIMIZATION
# =============================================================================

MIN_DELIVERY_COMPLETION_RATE: Final[float] = 0.80
"""Delivered / generated ratio a fleet size must reach to qualify."""

TARGET_SLA_PERCENTAGE: Final[float] = 75.0
"""Share of orders (in percent) that must be delivered within the target time."""

IDEAL_AGENT_UTILIZATION_MIN: Final[float] = 60.0
IDEAL_AGENT_UTILIZATION_MAX: Final[float] = 90.0

COST_PER_ORDER_TOLERANCE: Final[float] = 0.10
"""Fleet sizes within 10% of the cheapest cost per order are considered equivalent."""

UTILIZATION_TIE_TOLERANCE: Final[float] = 1.0
"""Utilization differences up to this many points count as a tie."""

MAX_AGENTS_TO_TEST: Final[int] = 50
"""Hard upper bound of the fleet-size sweep."""


# =============================================================================
# RUN-TIME PARAMETERS
# =============================================================================

_NON_NEGATIVE = ("handling_time_min", "agent_cost_per_hour", "cost_per_km",
                 "fixed_cost_per_delivery", "spawn_jitter_deg")
_POSITIVE = ("agent_min_speed_kmph", "agent_max_speed_kmph", "uniform_order_radius_km",
             "focused_order_radius_km", "base_traffic_factor")


@dataclass
class SimulationParameters:
    """
    Flat configuration snapshot read by both simulation drivers.

    Attributes:
        num_agents: Fleet size spawned on reset
        agent_min_speed_kmph/agent_max_speed_kmph: Range of agent base speeds
        handling_time_min: Minutes spent picking and packing at the hub
        order_generation_profile: 'default_uniform', 'default_focused' or 'custom_<name>'
        uniform_order_radius_km: Disk radius of the default uniform profile
        focused_order_radius_km: Disk radius of the default focused profile
        route_waypoints: Interior waypoints per leg in interactive mode
        base_traffic_factor: Manual traffic multiplier
        enable_dynamic_traffic: Resample the traffic factor periodically
        order_generation_probability: Chance of one new order per minute
        agent_cost_per_hour/cost_per_km/fixed_cost_per_delivery: Cost model
        spawn_jitter_deg: Max offset of freshly spawned agents from the hub
        enable_fatigue: Apply the fatigue model
    """
    num_agents: int = 5
    agent_min_speed_kmph: float = 20.0
    agent_max_speed_kmph: float = 30.0
    handling_time_min: float = 5.0
    order_generation_profile: str = "default_uniform"
    uniform_order_radius_km: float = 5.0
    focused_order_radius_km: float = 3.0
    route_waypoints: int = 1
    base_traffic_factor: float = 1.0
    enable_dynamic_traffic: bool = False
    order_generation_probability: float = 0.40
    agent_cost_per_hour: float = 150.0
    cost_per_km: float = 5.0
    fixed_cost_per_delivery: float = 10.0
    spawn_jitter_deg: float = 0.001
    enable_fatigue: bool = True

    def set_parameter(self, key: str, value: Any) -> bool:
        """
        Update one parameter after validating it.

        Unknown keys and invalid values are rejected with a warning and the
        previous value is kept.

        Returns:
            True if the value was applied
        """
        known = {f.name: f for f in fields(self)}
        if key not in known:
            logger.warning(f"Rejected unknown simulation parameter '{key}'")
            return False

        current = getattr(self, key)
        try:
            coerced = _coerce(value, current)
        except (TypeError, ValueError):
            logger.warning(f"Rejected non-numeric value {value!r} for '{key}'")
            return False

        if not _in_range(key, coerced):
            logger.warning(f"Rejected out-of-range value {value!r} for '{key}'")
            return False

        setattr(self, key, coerced)
        return True

    def get_parameter(self, key: str) -> Any:
        """Return a parameter value, or None for unknown keys."""
        if key not in {f.name for f in fields(self)}:
            logger.warning(f"Unknown simulation parameter '{key}'")
            return None
        return getattr(self, key)

    def set_order_frequency(self, level: int) -> bool:
        """Apply one of the ORDER_FREQUENCY_LEVELS presets."""
        if level not in ORDER_FREQUENCY_LEVELS:
            logger.warning(f"Unknown order frequency level {level}")
            return False
        self.order_generation_probability = ORDER_FREQUENCY_LEVELS[level]
        return True

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _coerce(value: Any, current: Any) -> Any:
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise ValueError(value)
    if isinstance(current, str):
        if not isinstance(value, str):
            raise TypeError(value)
        return value
    if isinstance(value, bool):
        raise TypeError(value)
    if isinstance(current, int):
        number = float(value)
        if not number.is_integer():
            raise ValueError(value)
        return int(number)
    number = float(value)
    if number != number or number in (float("inf"), float("-inf")):
        raise ValueError(value)
    return number


def _in_range(key: str, value: Any) -> bool:
    if key == "num_agents":
        return value >= 1
    if key == "route_waypoints":
        return value >= 0
    if key == "order_generation_probability":
        return 0.0 <= value <= 1.0
    if key in _POSITIVE:
        return value > 0
    if key in _NON_NEGATIVE:
        return value >= 0
    if key == "order_generation_profile":
        return bool(value)
    return True
