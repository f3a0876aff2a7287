# darkstore-sim/darkstore_sim/dispatch.py
"""
Dispatch engine for the dark-store delivery simulation.

Every delivery is routed through the hub: the agent rides to the store,
picks the order during the handling time, then rides to the customer.
The ETA of a candidate agent is therefore always a two-leg estimate.

Pending orders are dispatched in creation order to the available agent with
the smallest ETA. Ties keep the first agent in fleet order (lowest id).
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from . import utils
from .models import Agent, AgentStatus, Location, Order, OrderStatus

if TYPE_CHECKING:
    from .engine import SimulationWorld

logger = logging.getLogger(__name__)


def travel_minutes(distance_km: float, speed_kmph: float, traffic_factor: float) -> float:
    """
    Minutes needed to cover a distance.

    Args:
        distance_km: Distance in kilometers
        speed_kmph: Effective agent speed
        traffic_factor: Multiplier on speed (below 1 = congestion)

    Returns:
        Travel time in minutes, infinity for non-positive speeds
    """
    speed = speed_kmph * traffic_factor
    if speed <= 0:
        return float("inf")
    return distance_km / speed * 60


def estimate_eta(
    agent: Agent,
    order_location: Location,
    hub: Location,
    traffic_factor: float,
    handling_time: float,
) -> float:
    """
    Estimated minutes from assignment to delivery for one agent.

    ETA = (d(agent, hub) + d(hub, order)) / (effective speed * traffic) * 60 + handling
    """
    to_hub = utils.get_distance(agent.location, hub)
    to_customer = utils.get_distance(hub, order_location)
    return travel_minutes(to_hub + to_customer, agent.effective_speed_kmph, traffic_factor) + handling_time


def select_agent(
    order_location: Location,
    agents: Iterable[Agent],
    hub: Location,
    traffic_factor: float,
    handling_time: float,
) -> Tuple[Optional[Agent], float]:
    """
    Find the available agent with the lowest ETA.

    Returns:
        (agent, eta) or (None, inf) when nobody is available
    """
    best_agent: Optional[Agent] = None
    best_eta = math.inf
    for agent in agents:
        if not agent.is_available:
            continue
        eta = estimate_eta(agent, order_location, hub, traffic_factor, handling_time)
        if eta < best_eta:
            best_agent, best_eta = agent, eta
    return best_agent, best_eta


def assign_order(world: SimulationWorld, order: Order, agent: Agent, eta: float) -> None:
    """Bind an order to an agent and send the agent to the hub."""
    now = world.current_time

    order.advance_to(OrderStatus.ASSIGNED, now)
    order.assigned_agent_id = agent.agent_id
    order.assignment_time = now
    order.eta_minutes = eta
    order.wait_time = now - order.time_placed
    world.stats.record_assignment(order.wait_time)

    agent.status = AgentStatus.TO_STORE
    agent.assigned_order_id = order.order_id
    agent.current_order_eta = eta
    agent.time_continuously_active = 0.0
    agent.time_spent_at_store = 0.0
    agent.route_path = utils.build_route(agent.location, world.hub, world.route_waypoints, world.rng)
    agent.current_leg_index = 0
    agent.leg_progress = 0.0

    logger.debug(
        f"[T:{now}] Order {order.order_id} -> Agent {agent.agent_id} "
        f"(ETA {eta:.1f} min, waited {order.wait_time:.1f} min)"
    )


def assign_pending_orders(world: SimulationWorld) -> List[Order]:
    """
    Dispatch every pending order that has an available agent.

    Orders without an available agent stay pending and are retried on the
    next tick.

    Returns:
        Orders assigned during this call, in creation order
    """
    assigned: List[Order] = []
    handling_time = world.params.handling_time_min

    for order in world.pending_orders():
        agent, eta = select_agent(order.location, world.agents, world.hub,
                                  world.traffic_factor, handling_time)
        if agent is None:
            break
        assign_order(world, order, agent, eta)
        assigned.append(order)

    return assigned
