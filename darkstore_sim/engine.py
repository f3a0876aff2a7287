# darkstore-sim/darkstore_sim/engine.py
"""
Simulation core shared by the interactive and the batch driver.

SimulationWorld owns every piece of mutable state of one run: agents, the
active order set, the full order log, statistics, clock, traffic factor and
the random generator. The phase functions below advance a world by one
simulated minute:

1. Advance the clock and (optionally) resample traffic
2. Generate orders (policy supplied by the driver)
3. Move agents along their routes, handle pickups and deliveries
4. Dispatch pending orders
5. Prune delivered orders and record chart history

Each agent gets a time budget of one minute per tick. Finishing a leg,
a pickup or a delivery part-way through the tick carries the unused budget
into the next step, so event timestamps are exact rather than rounded up to
the next tick.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Mapping, Optional, Tuple

from . import config, utils
from .city import CITY_POLYGON, DEFAULT_HUB, SECTORS
from .config import SimulationParameters
from .demand import ProfileRef, sample_order_location
from .dispatch import assign_pending_orders
from .fatigue import update_fatigue
from .models import Agent, AgentStatus, Location, Order, OrderStatus, RunStatistics

logger = logging.getLogger(__name__)

_TIME_EPSILON = 1e-9


@dataclass
class TickResult:
    """What happened during one tick."""
    time: int
    generated: List[Order] = field(default_factory=list)
    assigned: List[Order] = field(default_factory=list)
    delivered: List[Order] = field(default_factory=list)


class SimulationWorld:
    """
    All state of a single simulation run.

    Attributes:
        params: Parameter snapshot of the run
        hub: Dark store location
        rng: Random generator used for every stochastic decision
        route_waypoints: Interior waypoints per leg (0 for direct legs)
        current_time: Simulated minutes since start
        traffic_factor: Traffic multiplier currently in effect
        agents: Fleet, in id order
        orders: Active (not yet delivered) orders by id, in creation order
        order_log: Every order ever created in this run
        stats: Raw run statistics
        history: Rolling (time, pending, active agents) samples
    """

    def __init__(
        self,
        params: SimulationParameters,
        hub: Location = DEFAULT_HUB,
        rng: Optional[random.Random] = None,
        route_waypoints: Optional[int] = None,
        polygon: utils.Polygon = CITY_POLYGON,
        sectors: Mapping[str, Location] = SECTORS,
    ) -> None:
        self.params = params
        self.hub = hub
        self.rng = rng or random.Random()
        self.route_waypoints = params.route_waypoints if route_waypoints is None else route_waypoints
        self.polygon = polygon
        self.sectors = sectors

        self.current_time: int = 0
        self.traffic_factor: float = params.base_traffic_factor
        self.agents: List[Agent] = []
        self.orders: Dict[int, Order] = {}
        self.order_log: List[Order] = []
        self.stats = RunStatistics()
        self.history: Deque[Dict[str, int]] = deque(maxlen=config.CHART_HISTORY_LENGTH)

        self._next_agent_id = 1
        self._next_order_id = 0

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def spawn_agent(self, jitter_deg: float = 0.0) -> Agent:
        """Create an agent at the hub (optionally jittered) with a random base speed."""
        low = self.params.agent_min_speed_kmph
        high = self.params.agent_max_speed_kmph
        speed = low + self.rng.random() * (high - low) if high >= low else low

        location = self.hub
        if jitter_deg > 0:
            location = utils.jitter_location(self.hub, jitter_deg, self.rng)

        agent = Agent(
            agent_id=self._next_agent_id,
            lat=location[0],
            lng=location[1],
            base_speed_kmph=speed,
        )
        self._next_agent_id += 1
        self.agents.append(agent)
        return agent

    def spawn_agents(self, count: int, jitter_deg: float = 0.0) -> List[Agent]:
        return [self.spawn_agent(jitter_deg) for _ in range(count)]

    def add_order(self, location: Location) -> Order:
        """Register a new pending order placed now."""
        order = Order(
            order_id=self._next_order_id,
            lat=location[0],
            lng=location[1],
            time_placed=self.current_time,
        )
        self._next_order_id += 1
        self.orders[order.order_id] = order
        self.order_log.append(order)
        self.stats.total_orders_generated += 1
        logger.debug(f"[T:{self.current_time}] Order {order.order_id} placed at "
                     f"({order.lat:.4f}, {order.lng:.4f})")
        return order

    def generate_order(self, profile: ProfileRef) -> Optional[Order]:
        """
        Sample a location from a demand profile and place an order there.

        Returns None, leaving the generated counter untouched, when the
        profile yields no location.
        """
        location = sample_order_location(
            profile, self.current_time, self.hub, self.params, self.rng,
            self.polygon, self.sectors,
        )
        if location is None:
            return None
        return self.add_order(location)

    def pending_orders(self) -> List[Order]:
        return [o for o in self.orders.values() if o.status is OrderStatus.PENDING]

    def active_agent_count(self) -> int:
        return sum(1 for a in self.agents if not a.is_available)

    def is_drained(self) -> bool:
        """True when no order is waiting or in flight."""
        return not self.orders


# =============================================================================
# TICK PHASES
# =============================================================================

def update_traffic(world: SimulationWorld) -> None:
    """Apply the manual traffic factor, or resample the dynamic one on schedule."""
    if not world.params.enable_dynamic_traffic:
        world.traffic_factor = world.params.base_traffic_factor
        return

    t = world.current_time
    if t == 1 or t % config.DYNAMIC_TRAFFIC_UPDATE_INTERVAL == 0:
        world.traffic_factor = world.rng.choice(config.DYNAMIC_TRAFFIC_LEVELS)
        logger.debug(f"[T:{t}] Traffic factor now {world.traffic_factor:.1f}")


def move_agents(world: SimulationWorld) -> List[Order]:
    """Advance every agent by one tick. Returns the orders delivered."""
    delivered: List[Order] = []
    for agent in world.agents:
        order = advance_agent(world, agent)
        if order is not None:
            delivered.append(order)
    return delivered


def advance_agent(world: SimulationWorld, agent: Agent) -> Optional[Order]:
    """
    Spend one minute of an agent's time.

    Updates time accumulators and fatigue, then consumes the minute on travel
    and handling, possibly crossing several legs or state changes.

    Returns:
        The order delivered during this tick, if any
    """
    now = world.current_time
    tick_start = now - config.MINUTES_PER_TICK

    agent.total_time += config.MINUTES_PER_TICK
    if agent.is_available:
        agent.time_spent_idle += config.MINUTES_PER_TICK
    else:
        agent.busy_time += config.MINUTES_PER_TICK
        agent.time_continuously_active += config.MINUTES_PER_TICK
        world.stats.total_agent_active_time += config.MINUTES_PER_TICK

    if world.params.enable_fatigue:
        update_fatigue(agent, now)

    if agent.is_available:
        return None

    order = world.orders.get(agent.assigned_order_id)
    if order is None:
        _recover_orphan(world, agent, f"assigned order {agent.assigned_order_id} not found")
        return None

    elapsed = 0.0
    while elapsed < config.MINUTES_PER_TICK - _TIME_EPSILON and not agent.is_available:
        budget = config.MINUTES_PER_TICK - elapsed

        if agent.status is AgentStatus.AT_STORE:
            elapsed += _handle_at_store(world, agent, order, budget, tick_start + elapsed)
            continue

        if not _route_is_valid(agent):
            _recover_orphan(world, agent, "malformed route", abandoned=order)
            return None

        used, leg_done = _travel_leg(world, agent, budget)
        elapsed += used
        if not leg_done:
            break

        if agent.current_leg_index >= len(agent.route_path) - 1:
            if agent.status is AgentStatus.TO_STORE:
                _arrive_at_store(agent, order, tick_start + elapsed)
            else:
                _complete_delivery(world, agent, order, tick_start + elapsed)
                return order

    return None


def _route_is_valid(agent: Agent) -> bool:
    return len(agent.route_path) >= 2 and 0 <= agent.current_leg_index < len(agent.route_path) - 1


def _travel_leg(world: SimulationWorld, agent: Agent, budget: float) -> Tuple[float, bool]:
    """
    Move along the current leg for at most `budget` minutes.

    Returns:
        (minutes used, whether the leg was completed)
    """
    start = agent.route_path[agent.current_leg_index]
    end = agent.route_path[agent.current_leg_index + 1]
    leg_km = utils.get_distance(start, end)

    if leg_km < config.DEGENERATE_LEG_KM:
        _finish_leg(agent, end)
        return 0.0, True

    km_per_minute = agent.effective_speed_kmph * world.traffic_factor / 60
    if km_per_minute <= 0:
        logger.warning(f"Agent {agent.agent_id} cannot move (speed {km_per_minute})")
        return budget, False

    remaining_km = leg_km * (1.0 - agent.leg_progress)
    reachable_km = km_per_minute * budget

    if reachable_km >= remaining_km:
        used = remaining_km / km_per_minute
        _add_distance(world, agent, remaining_km)
        agent.time_spent_traveling += used
        _finish_leg(agent, end)
        return used, True

    _add_distance(world, agent, reachable_km)
    agent.time_spent_traveling += budget
    agent.leg_progress = min(agent.leg_progress + reachable_km / leg_km, 1.0 - _TIME_EPSILON)
    agent.location = utils.interpolate(start, end, agent.leg_progress)
    return budget, False


def _finish_leg(agent: Agent, end: Location) -> None:
    agent.location = end
    agent.current_leg_index += 1
    agent.leg_progress = 0.0


def _add_distance(world: SimulationWorld, agent: Agent, km: float) -> None:
    agent.distance_traveled_km += km
    world.stats.total_distance_km += km


def _arrive_at_store(agent: Agent, order: Order, at_time: float) -> None:
    agent.status = AgentStatus.AT_STORE
    agent.time_spent_at_store = 0.0
    order.advance_to(OrderStatus.AT_STORE, at_time)
    logger.debug(f"[T:{at_time:.2f}] Agent {agent.agent_id} at store for order {order.order_id}")


def _handle_at_store(
    world: SimulationWorld,
    agent: Agent,
    order: Order,
    budget: float,
    at_time: float,
) -> float:
    """Consume handling time; depart to the customer once handling is done."""
    needed = max(world.params.handling_time_min - agent.time_spent_at_store, 0.0)
    used = min(budget, needed)
    agent.time_spent_at_store += used
    agent.time_spent_handling += used

    if agent.time_spent_at_store >= world.params.handling_time_min - _TIME_EPSILON:
        agent.status = AgentStatus.TO_CUSTOMER
        agent.route_path = utils.build_route(world.hub, order.location, world.route_waypoints, world.rng)
        agent.current_leg_index = 0
        agent.leg_progress = 0.0
        order.advance_to(OrderStatus.OUT_FOR_DELIVERY, at_time + used)
        logger.debug(f"[T:{at_time + used:.2f}] Agent {agent.agent_id} departs with order {order.order_id}")
    return used


def _complete_delivery(world: SimulationWorld, agent: Agent, order: Order, at_time: float) -> None:
    order.advance_to(OrderStatus.DELIVERED, at_time)
    order.delivery_time = at_time
    order.delivery_duration = at_time - order.time_placed
    world.stats.record_delivery(order.delivery_duration)

    agent.deliveries_made += 1
    agent.consecutive_deliveries_since_rest += 1
    agent.release(at_time)
    if world.params.enable_fatigue:
        update_fatigue(agent, world.current_time, force=True)

    logger.debug(f"[T:{at_time:.2f}] Order {order.order_id} delivered by Agent {agent.agent_id} "
                 f"in {order.delivery_duration:.1f} min")


def _recover_orphan(
    world: SimulationWorld,
    agent: Agent,
    reason: str,
    abandoned: Optional[Order] = None,
) -> None:
    """
    Put an agent with inconsistent state back into the available pool.

    An order the agent was carrying can no longer progress: it leaves the
    active set and is counted as abandoned.
    It stays in order_log with its last reached status.
    """
    logger.warning(f"[T:{world.current_time}] Agent {agent.agent_id} reset to available: {reason}")
    agent.release(world.current_time)
    agent.consecutive_deliveries_since_rest = 0

    if abandoned is not None:
        world.orders.pop(abandoned.order_id, None)
        world.stats.total_orders_abandoned += 1
        logger.warning(f"[T:{world.current_time}] Order {abandoned.order_id} abandoned "
                       f"in status {abandoned.status.value}")


def prune_delivered(world: SimulationWorld) -> int:
    """Drop delivered orders from the active set; they stay in order_log."""
    delivered_ids = [oid for oid, o in world.orders.items() if o.status is OrderStatus.DELIVERED]
    for oid in delivered_ids:
        del world.orders[oid]
    return len(delivered_ids)


def record_history(world: SimulationWorld) -> None:
    world.history.append({
        "time": world.current_time,
        "pending": len(world.pending_orders()),
        "active_agents": world.active_agent_count(),
    })


OrderGenerator = Callable[[SimulationWorld], List[Order]]


def step(world: SimulationWorld, generate_orders: OrderGenerator) -> TickResult:
    """
    Advance a world by one simulated minute.

    Args:
        world: World to mutate
        generate_orders: Driver-specific arrival policy, called once per tick

    Returns:
        TickResult with the orders generated, assigned and delivered
    """
    world.current_time += config.MINUTES_PER_TICK
    update_traffic(world)

    result = TickResult(time=world.current_time)
    result.generated = generate_orders(world)
    result.delivered = move_agents(world)
    result.assigned = assign_pending_orders(world)
    prune_delivered(world)
    record_history(world)
    return result


def probabilistic_arrivals(profile: ProfileRef) -> OrderGenerator:
    """At most one order per tick, with the run's order_generation_probability."""
    def generate(world: SimulationWorld) -> List[Order]:
        if world.rng.random() >= world.params.order_generation_probability:
            return []
        order = world.generate_order(profile)
        return [order] if order is not None else []
    return generate
