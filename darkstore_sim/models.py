# darkstore-sim/darkstore_sim/models.py
"""
Core domain models for the dark-store delivery simulation.

This module defines the fundamental data structures used throughout the simulation:
- Order: A customer order routed through the hub to its delivery location
- Agent: A delivery rider with speed, fatigue, route and time accumulators
- Zone variants and DemandProfile: Where and how fast orders appear
- RunStatistics: Raw counters and sums from which all KPIs are derived
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Tuple

Location = Tuple[float, float]


class OrderStatus(Enum):
    """Lifecycle states for an order. Orders only ever move forward."""
    PENDING = "pending"
    ASSIGNED = "assigned_to_agent_going_to_store"
    AT_STORE = "at_store_with_agent"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"


ORDER_STATUS_SEQUENCE: Tuple[OrderStatus, ...] = tuple(OrderStatus)


class AgentStatus(Enum):
    """
    States of a delivery agent.

    - AVAILABLE: Idle and eligible for dispatch
    - TO_STORE: Riding to the hub to pick up an order
    - AT_STORE: Handling (picking/packing) at the hub
    - TO_CUSTOMER: Riding from the hub to the customer
    """
    AVAILABLE = "available"
    TO_STORE = "to_store"
    AT_STORE = "at_store"
    TO_CUSTOMER = "to_customer"


@dataclass
class Order:
    """
    A delivery order from the hub to a customer.

    Attributes:
        order_id: Unique identifier within a run
        lat/lng: Delivery location
        time_placed: Simulated minute the order was generated
        status: Current lifecycle state
        assigned_agent_id: Agent the order was dispatched to (set once)
        assignment_time: When dispatch happened
        wait_time: assignment_time - time_placed
        eta_minutes: ETA estimated at dispatch
        delivery_time: Exact simulated time of hand-over
        delivery_duration: delivery_time - time_placed
        status_history: (time, status) pairs, starting with PENDING
    """
    order_id: int
    lat: float
    lng: float
    time_placed: float
    status: OrderStatus = OrderStatus.PENDING

    assigned_agent_id: Optional[int] = None
    assignment_time: Optional[float] = None
    wait_time: Optional[float] = None
    eta_minutes: Optional[float] = None
    delivery_time: Optional[float] = None
    delivery_duration: Optional[float] = None
    status_history: List[Tuple[float, OrderStatus]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.status_history:
            self.status_history.append((self.time_placed, self.status))

    @property
    def location(self) -> Location:
        """Returns the delivery location as a (lat, lng) tuple."""
        return (self.lat, self.lng)

    def advance_to(self, status: OrderStatus, at_time: float) -> None:
        """
        Move the order to the next lifecycle state.

        Raises:
            ValueError: If status is not the immediate successor of the current one
        """
        index = ORDER_STATUS_SEQUENCE.index(self.status)
        if index + 1 >= len(ORDER_STATUS_SEQUENCE) or ORDER_STATUS_SEQUENCE[index + 1] is not status:
            raise ValueError(
                f"Illegal transition for order {self.order_id}: "
                f"{self.status.value} -> {status.value}"
            )
        self.status = status
        self.status_history.append((at_time, status))

    def __repr__(self) -> str:
        return f"Order({self.order_id}, {self.status.value})"


@dataclass
class Agent:
    """
    A delivery agent (rider) working out of the hub.

    Attributes:
        agent_id: Unique identifier, stable for the run
        lat/lng: Current position (updated while moving)
        base_speed_kmph: Fixed at creation
        fatigue_factor: Speed multiplier in [MIN_FATIGUE_FACTOR, 1.0]

    Dynamic State:
        status: AVAILABLE, TO_STORE, AT_STORE or TO_CUSTOMER
        assigned_order_id: Order currently owned by the agent
        route_path: Waypoints of the current leg sequence
        current_leg_index/leg_progress: Position along route_path
        current_order_eta: ETA given at dispatch
        time_spent_at_store: Handling progress of the current pickup

    Fatigue bookkeeping:
        consecutive_deliveries_since_rest, time_continuously_active,
        time_became_available_at

    Accumulators (minutes unless noted):
        total_time, busy_time, time_spent_idle, time_spent_traveling,
        time_spent_handling, distance_traveled_km, deliveries_made
    """
    agent_id: int
    lat: float
    lng: float
    base_speed_kmph: float
    fatigue_factor: float = 1.0

    status: AgentStatus = AgentStatus.AVAILABLE
    assigned_order_id: Optional[int] = None
    route_path: List[Location] = field(default_factory=list)
    current_leg_index: int = 0
    leg_progress: float = 0.0
    current_order_eta: Optional[float] = None
    time_spent_at_store: float = 0.0

    consecutive_deliveries_since_rest: int = 0
    time_continuously_active: float = 0.0
    time_became_available_at: float = 0.0

    total_time: float = 0.0
    busy_time: float = 0.0
    time_spent_idle: float = 0.0
    time_spent_traveling: float = 0.0
    time_spent_handling: float = 0.0
    distance_traveled_km: float = 0.0
    deliveries_made: int = 0

    @property
    def location(self) -> Location:
        """Returns the current location as a (lat, lng) tuple."""
        return (self.lat, self.lng)

    @location.setter
    def location(self, value: Location) -> None:
        self.lat, self.lng = value

    @property
    def effective_speed_kmph(self) -> float:
        """Base speed scaled by fatigue. Always recomputed."""
        return self.base_speed_kmph * self.fatigue_factor

    @property
    def is_available(self) -> bool:
        return self.status is AgentStatus.AVAILABLE

    def release(self, at_time: float) -> None:
        """Return the agent to the AVAILABLE pool with an empty route."""
        self.status = AgentStatus.AVAILABLE
        self.assigned_order_id = None
        self.route_path = []
        self.current_leg_index = 0
        self.leg_progress = 0.0
        self.current_order_eta = None
        self.time_spent_at_store = 0.0
        self.time_continuously_active = 0.0
        self.time_became_available_at = at_time

    def __repr__(self) -> str:
        return f"Agent({self.agent_id}, {self.status.value}, order={self.assigned_order_id})"


# =============================================================================
# DEMAND ZONES
# =============================================================================

@dataclass
class Zone:
    """
    Base of the zone variants making up a demand profile.

    Attributes:
        min_orders/max_orders: Order-rate bounds (orders per hour)
        start_time: First simulated minute the zone is active
        end_time: Last active minute, None for unbounded
    """
    kind: ClassVar[str] = "zone"

    min_orders: float = 0.0
    max_orders: float = 0.0
    start_time: float = 0.0
    end_time: Optional[float] = None

    def is_active(self, sim_time: float) -> bool:
        if sim_time < self.start_time:
            return False
        return self.end_time is None or sim_time <= self.end_time

    @property
    def mean_rate(self) -> float:
        return (self.min_orders + self.max_orders) / 2


@dataclass
class UniformZone(Zone):
    """Orders anywhere inside the city boundary."""
    kind: ClassVar[str] = "uniform"


@dataclass
class HotspotZone(Zone):
    """Orders clustered around a center point."""
    kind: ClassVar[str] = "hotspot"

    center: Location = (0.0, 0.0)
    spread_km: float = 1.0


@dataclass
class SectorZone(Zone):
    """Orders around the centroids of named city sectors."""
    kind: ClassVar[str] = "sector"

    sectors: List[str] = field(default_factory=list)


@dataclass
class RouteZone(Zone):
    """Orders along a corridor described by a polyline."""
    kind: ClassVar[str] = "route"

    points: List[Location] = field(default_factory=list)
    spread_km: float = 0.5


@dataclass
class DemandProfile:
    """A named, ordered list of zones."""
    name: str
    zones: List[Zone] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"DemandProfile({self.name}, zones={len(self.zones)})"


# =============================================================================
# STATISTICS
# =============================================================================

@dataclass
class RunStatistics:
    """
    Raw counters of a simulation run.

    Derived metrics (averages, utilization, costs) are computed by the
    functions in kpis.py and never stored here.
    """
    total_orders_generated: int = 0
    total_orders_delivered: int = 0
    total_orders_abandoned: int = 0
    sum_delivery_times: float = 0.0
    delivery_times: List[float] = field(default_factory=list)
    sum_order_wait_times: float = 0.0
    count_assigned_orders: int = 0
    total_agent_active_time: float = 0.0
    total_distance_km: float = 0.0

    def record_assignment(self, wait_time: float) -> None:
        self.sum_order_wait_times += wait_time
        self.count_assigned_orders += 1

    def record_delivery(self, duration: float) -> None:
        self.total_orders_delivered += 1
        self.sum_delivery_times += duration
        self.delivery_times.append(duration)
