# darkstore-sim/darkstore_sim/simulation.py
"""
Interactive simulation driver.

Keeps one long-lived SimulationWorld and advances it one simulated minute per
external tick (a UI timer, a CLI loop, a Streamlit rerun). The driver is a
small state machine:

    IDLE --start()--> RUNNING --pause()--> PAUSED --start()--> RUNNING
      ^                                                          |
      +------------------------- reset() ------------------------+

Pausing preserves the world for resumption; reset() rebuilds it from the
current parameters. After every tick registered listeners receive a snapshot
of the world (agents, orders, routes, chart history) for rendering.
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import kpis
from .city import DEFAULT_HUB
from .config import SimulationParameters
from .demand import ProfileRef, resolve_profile
from .engine import SimulationWorld, TickResult, probabilistic_arrivals, step
from .models import DemandProfile, Location

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[Dict[str, Any]], None]


class SimulationStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class InteractiveSimulation:
    """
    Step-wise dark-store simulation with start/pause/reset controls.

    Attributes:
        params: Live parameters; changes apply on the next reset (fleet size,
            speeds) or on the next tick (probabilities, traffic, profile)
        hub: Dark store location
        profiles: Custom demand profiles available to 'custom_<name>' ids
        world: Current world
        status: IDLE, RUNNING or PAUSED
    """

    def __init__(
        self,
        params: Optional[SimulationParameters] = None,
        hub: Location = DEFAULT_HUB,
        profiles: Iterable[DemandProfile] = (),
        seed: Optional[int] = None,
    ) -> None:
        self.params = params or SimulationParameters()
        self.hub = hub
        self.profiles: List[DemandProfile] = list(profiles)
        self.seed = seed
        self.status = SimulationStatus.IDLE

        self._listeners: List[SnapshotListener] = []
        self._in_tick = False
        self._profile: ProfileRef = None
        self.world = self._build_world()

    # -------------------------------------------------------------------------
    # Controls
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Stop the run and rebuild the world from the current parameters."""
        if self._in_tick:
            raise RuntimeError("Cannot reset the simulation while a tick is executing")
        self.status = SimulationStatus.IDLE
        self.world = self._build_world()
        logger.info(f"Simulation reset with {len(self.world.agents)} agents")

    def start(self) -> None:
        """Start a fresh run, or resume a paused one."""
        if self.status is SimulationStatus.RUNNING:
            return
        if self.world.current_time == 0:
            self.reset()
        self.status = SimulationStatus.RUNNING
        logger.info(f"Simulation running at T={self.world.current_time}")

    def pause(self) -> bool:
        """Pause a running simulation. Returns False if it was not running."""
        if self.status is not SimulationStatus.RUNNING:
            return False
        self.status = SimulationStatus.PAUSED
        logger.info(f"Simulation paused at T={self.world.current_time}")
        return True

    def tick(self) -> Optional[TickResult]:
        """
        Advance one simulated minute if running.

        Returns:
            TickResult, or None when the simulation is not running

        Raises:
            RuntimeError: If called from inside another tick (e.g. a listener)
        """
        if self._in_tick:
            raise RuntimeError("Simulation tick is not reentrant")
        if self.status is not SimulationStatus.RUNNING:
            return None

        self._in_tick = True
        try:
            result = step(self.world, probabilistic_arrivals(self._profile))
            if self._listeners:
                snapshot = self.snapshot()
                for listener in self._listeners:
                    listener(snapshot)
        finally:
            self._in_tick = False
        return result

    def run(self, minutes: int, verbose: bool = False) -> Dict[str, Any]:
        """
        Run (or continue) the simulation for a number of minutes.

        Args:
            minutes: Simulated minutes to advance
            verbose: Print progress every 10 minutes and on deliveries

        Returns:
            get_results() after the last tick
        """
        if verbose:
            print(f"======== Simulating {minutes} min with {self.params.num_agents} agents ========")

        self.start()
        for _ in range(minutes):
            result = self.tick()
            if result is None:
                break
            if verbose and (result.delivered or result.time % 10 == 0):
                print(f"[T:{result.time:4d}] "
                      f"Generated: {len(result.generated)}, "
                      f"Assigned: {len(result.assigned)}, "
                      f"Delivered: {len(result.delivered)}, "
                      f"Pending: {len(self.world.pending_orders())}")

        if verbose:
            print("Simulation complete. Calculating results...")
        return self.get_results()

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def set_parameter(self, key: str, value: Any) -> bool:
        """Validate and apply one parameter (see SimulationParameters.set_parameter)."""
        applied = self.params.set_parameter(key, value)
        if applied and key == "order_generation_profile":
            self._profile = self._resolve_profile()
        return applied

    def get_parameter(self, key: str) -> Any:
        return self.params.get_parameter(key)

    def set_demand_profiles(self, profiles: Iterable[DemandProfile]) -> None:
        """Replace the custom profiles offered by the profile store."""
        self.profiles = list(profiles)
        self._profile = self._resolve_profile()

    def add_listener(self, listener: SnapshotListener) -> None:
        """Register a callback receiving snapshot() after every tick."""
        self._listeners.append(listener)

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def current_time(self) -> int:
        return self.world.current_time

    def snapshot(self) -> Dict[str, Any]:
        """
        Read-only view of the world for map and chart renderers.

        Returns:
            Dict with time, status, traffic, hub, agents, orders, routes and
            chart history (parallel lists of time, pending and active agents)
        """
        world = self.world
        now = world.current_time

        agents = []
        for agent in world.agents:
            eta_remaining = None
            order = world.orders.get(agent.assigned_order_id) if agent.assigned_order_id is not None else None
            if order is not None and agent.current_order_eta is not None:
                eta_remaining = max(0.0, agent.current_order_eta - (now - order.assignment_time))
            agents.append({
                "id": agent.agent_id,
                "lat": agent.lat,
                "lng": agent.lng,
                "status": agent.status.value,
                "assigned_order_id": agent.assigned_order_id,
                "eta_remaining_min": eta_remaining,
                "fatigue_factor": agent.fatigue_factor,
                "deliveries_made": agent.deliveries_made,
            })

        return {
            "time": now,
            "status": self.status.value,
            "traffic_factor": world.traffic_factor,
            "hub": {"lat": world.hub[0], "lng": world.hub[1]},
            "agents": agents,
            "orders": [
                {"id": o.order_id, "lat": o.lat, "lng": o.lng, "status": o.status.value}
                for o in world.orders.values()
            ],
            "routes": {
                a.agent_id: [list(p) for p in a.route_path]
                for a in world.agents if a.route_path
            },
            "history": self.chart_series(),
        }

    def chart_series(self) -> Dict[str, List[int]]:
        history = list(self.world.history)
        return {
            "time": [h["time"] for h in history],
            "pending": [h["pending"] for h in history],
            "active_agents": [h["active_agents"] for h in history],
        }

    def get_results(self) -> Dict[str, Any]:
        """
        Parameters plus derived statistics at this point in time.

        Has no side effects; calling it twice in a row returns equal results.
        """
        world = self.world
        return {
            "simulation_time": world.current_time,
            "parameters": self.params.as_dict(),
            "statistics": kpis.summarize(world.stats, world.agents, self.params),
            "agents": kpis.agent_performance(world.agents),
            "delivered_orders": kpis.delivered_order_rows(world.order_log),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _resolve_profile(self) -> ProfileRef:
        return resolve_profile(self.params.order_generation_profile, self.profiles)

    def _build_world(self) -> SimulationWorld:
        rng = random.Random(self.seed) if self.seed is not None else random.Random()
        world = SimulationWorld(self.params, hub=self.hub, rng=rng)
        world.spawn_agents(self.params.num_agents, jitter_deg=self.params.spawn_jitter_deg)
        self._profile = self._resolve_profile()
        return world
