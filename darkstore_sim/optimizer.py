# darkstore-sim/darkstore_sim/optimizer.py
"""
Workforce optimization: how many agents should the dark store run?

For every fleet size in a range the optimizer runs several independent,
non-interactive simulations on fresh worlds (same physics as the interactive
driver, but with direct two-point legs), pools their statistics and finally
picks a recommended fleet size with a tiered rule:

1. Keep fleet sizes delivering >= 80% of orders with >= 75% within target time;
   relax to the completion filter alone, then to every fleet size.
2. Keep the ones within 10% of the cheapest cost per order.
3. Prefer utilization inside 60-90% (higher first, then fewer agents);
   otherwise take the cheapest and flag it as under- or over-utilized.
"""

from __future__ import annotations

import logging
import math
import random
from concurrent.futures import Future, ProcessPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from . import config, kpis
from .city import DEFAULT_HUB
from .config import SimulationParameters
from .demand import ProfileRef, active_zones, resolve_profile, sample_zone_location, zone_order_probability
from .engine import OrderGenerator, SimulationWorld, step
from .models import DemandProfile, Location, Order, RunStatistics

logger = logging.getLogger(__name__)


@dataclass
class OptimizationConfig:
    """
    Settings of a workforce sweep.

    Attributes:
        min_agents/max_agents: Inclusive fleet-size range (max clamped to 50)
        runs_per_agent_count: Repetitions averaged per fleet size
        target_delivery_time_min: Per-order SLA target
        max_sim_time_min: Time cap of every run
        target_orders_per_run: Order budget of the builtin profiles
        order_radius_km: Disk radius of the builtin profiles
        demand_profile: 'default_uniform', 'default_focused' or a custom profile id
        seed: Base seed for reproducible sweeps
    """
    min_agents: int = 1
    max_agents: int = 10
    runs_per_agent_count: int = 3
    target_delivery_time_min: float = 30.0
    max_sim_time_min: int = 180
    target_orders_per_run: int = 20
    order_radius_km: float = 5.0
    demand_profile: str = "default_uniform"
    seed: Optional[int] = None

    def validate(self) -> "OptimizationConfig":
        """
        Check and normalize the settings.

        Raises:
            ValueError: For a fleet size below 1, no repetitions or
                non-positive time settings
        """
        if self.min_agents < 1:
            raise ValueError("min_agents must be at least 1")
        if self.runs_per_agent_count < 1:
            raise ValueError("runs_per_agent_count must be at least 1")
        if self.max_sim_time_min <= 0 or self.target_delivery_time_min <= 0:
            raise ValueError("Time settings must be positive")
        if self.target_orders_per_run < 0 or self.order_radius_km <= 0:
            raise ValueError("Order settings must be positive")
        if self.min_agents > config.MAX_AGENTS_TO_TEST:
            raise ValueError(f"min_agents cannot exceed {config.MAX_AGENTS_TO_TEST}")

        clamped = min(max(self.max_agents, self.min_agents), config.MAX_AGENTS_TO_TEST)
        if clamped != self.max_agents:
            logger.warning(f"max_agents {self.max_agents} adjusted to {clamped}")
            self.max_agents = clamped
        return self

    @property
    def fleet_sizes(self) -> List[int]:
        return list(range(self.min_agents, self.max_agents + 1))


@dataclass
class RunOutcome:
    """Raw result of one (fleet size, repetition) run."""
    agents: int
    stats: RunStatistics
    busy_time: float
    total_time: float
    sim_minutes: int


@dataclass
class FleetSizeResult:
    """
    Metrics of one fleet size, aggregated over its repetitions.

    Counts and costs are per-run averages; delivery-time figures are pooled
    over every individual delivery of every repetition.
    """
    agents: int
    runs: int = 0
    avg_orders_generated: float = 0.0
    avg_orders_delivered: float = 0.0
    avg_undelivered_orders: float = 0.0
    delivery_completion_rate: Optional[float] = None
    avg_delivery_time_min: Optional[float] = None
    min_delivery_time_min: Optional[float] = None
    max_delivery_time_min: Optional[float] = None
    std_dev_delivery_time_min: Optional[float] = None
    percent_within_target: Optional[float] = None
    avg_agent_utilization_pct: Optional[float] = None
    avg_order_wait_time_min: Optional[float] = None
    labor_cost: float = 0.0
    travel_cost: float = 0.0
    fixed_delivery_cost: float = 0.0
    total_operational_cost: float = 0.0
    avg_cost_per_order: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SelectionTier(Enum):
    """Which filter the recommendation was drawn from."""
    COMPLETION_AND_SLA = "completion_and_sla"
    COMPLETION_ONLY = "completion_only"
    UNCONSTRAINED = "unconstrained"
    NO_RESULTS = "no_results"


@dataclass
class Recommendation:
    result: Optional[FleetSizeResult]
    tier: SelectionTier
    reason: str
    utilization_note: Optional[str] = None

    @property
    def agents(self) -> Optional[int]:
        return self.result.agents if self.result else None


@dataclass
class OptimizationResult:
    config: OptimizationConfig
    results: List[FleetSizeResult] = field(default_factory=list)
    recommendation: Optional[Recommendation] = None
    aborted: bool = False


# =============================================================================
# SINGLE RUN
# =============================================================================

def batch_arrivals(profile: ProfileRef, opt_config: OptimizationConfig) -> OrderGenerator:
    """
    Order arrivals of a batch run.

    Builtin profiles: one order per minute with probability
    target / max_sim_time, until target orders exist (a soft cap).
    Custom profiles: every active zone emits independently with its hourly
    mean rate / 60.
    """
    if isinstance(profile, DemandProfile):
        def generate(world: SimulationWorld) -> List[Order]:
            created = []
            for zone in active_zones(profile.zones, world.current_time):
                if world.rng.random() >= zone_order_probability(zone):
                    continue
                location = sample_zone_location(zone, world.hub, world.rng, world.polygon, world.sectors)
                if location is not None:
                    created.append(world.add_order(location))
            return created
        return generate

    target = opt_config.target_orders_per_run
    probability = target / opt_config.max_sim_time_min

    def generate(world: SimulationWorld) -> List[Order]:
        if world.stats.total_orders_generated >= target or world.rng.random() >= probability:
            return []
        order = world.generate_order(profile)
        return [order] if order is not None else []
    return generate


def _run_complete(world: SimulationWorld, profile: ProfileRef, opt_config: OptimizationConfig) -> bool:
    generated = world.stats.total_orders_generated
    if generated == 0 or not world.is_drained():
        return False
    return isinstance(profile, DemandProfile) or generated >= opt_config.target_orders_per_run


def simulate_fleet(
    agents: int,
    opt_config: OptimizationConfig,
    params: SimulationParameters,
    profile: ProfileRef,
    hub: Location = DEFAULT_HUB,
    seed: Optional[int] = None,
) -> RunOutcome:
    """
    One batch run with a fixed fleet size on a fresh world.

    Agents start exactly at the hub. The run ends at max_sim_time_min or as
    soon as every order is delivered and the generation target is met.
    """
    run_params = replace(
        params,
        num_agents=agents,
        uniform_order_radius_km=opt_config.order_radius_km,
        focused_order_radius_km=opt_config.order_radius_km,
        spawn_jitter_deg=0.0,
    )
    world = SimulationWorld(run_params, hub=hub, rng=random.Random(seed), route_waypoints=0)
    world.spawn_agents(agents)

    generate = batch_arrivals(profile, opt_config)
    while world.current_time < opt_config.max_sim_time_min:
        step(world, generate)
        if _run_complete(world, profile, opt_config):
            break

    return RunOutcome(
        agents=agents,
        stats=world.stats,
        busy_time=sum(a.busy_time for a in world.agents),
        total_time=sum(a.total_time for a in world.agents),
        sim_minutes=world.current_time,
    )


# =============================================================================
# AGGREGATION
# =============================================================================

def aggregate_runs(
    agents: int,
    runs: Sequence[RunOutcome],
    target_delivery_time: float,
    params: SimulationParameters,
) -> FleetSizeResult:
    """Combine the repetitions of one fleet size into a FleetSizeResult."""
    count = len(runs)
    if count == 0:
        return FleetSizeResult(agents=agents)

    generated = sum(r.stats.total_orders_generated for r in runs)
    delivered = sum(r.stats.total_orders_delivered for r in runs)
    pooled = [t for r in runs for t in r.stats.delivery_times]
    wait_sum = sum(r.stats.sum_order_wait_times for r in runs)
    assigned = sum(r.stats.count_assigned_orders for r in runs)
    active_time = sum(r.stats.total_agent_active_time for r in runs)
    distance = sum(r.stats.total_distance_km for r in runs)

    avg_generated = generated / count
    avg_delivered = delivered / count
    costs = kpis.cost_breakdown(active_time / count, distance / count, avg_delivered, params)

    return FleetSizeResult(
        agents=agents,
        runs=count,
        avg_orders_generated=avg_generated,
        avg_orders_delivered=avg_delivered,
        avg_undelivered_orders=avg_generated - avg_delivered,
        delivery_completion_rate=kpis.safe_ratio(avg_delivered, avg_generated),
        avg_delivery_time_min=kpis.safe_ratio(sum(pooled), len(pooled)),
        min_delivery_time_min=min(pooled) if pooled else None,
        max_delivery_time_min=max(pooled) if pooled else None,
        std_dev_delivery_time_min=kpis.std_dev(pooled),
        percent_within_target=kpis.percent_within_target(pooled, target_delivery_time),
        avg_agent_utilization_pct=kpis.utilization_from_totals(
            sum(r.busy_time for r in runs), sum(r.total_time for r in runs)),
        avg_order_wait_time_min=kpis.safe_ratio(wait_sum, assigned),
        labor_cost=costs["labor_cost"],
        travel_cost=costs["travel_cost"],
        fixed_delivery_cost=costs["fixed_delivery_cost"],
        total_operational_cost=costs["total_operational_cost"],
        avg_cost_per_order=costs["avg_cost_per_order"],
    )


# =============================================================================
# RECOMMENDATION
# =============================================================================

def _cost_key(result: FleetSizeResult) -> float:
    return math.inf if result.avg_cost_per_order is None else result.avg_cost_per_order


def _compare_utilization(a: FleetSizeResult, b: FleetSizeResult) -> int:
    """Higher utilization first; within the tie tolerance, fewer agents first."""
    util_a = a.avg_agent_utilization_pct or 0.0
    util_b = b.avg_agent_utilization_pct or 0.0
    if abs(util_a - util_b) > config.UTILIZATION_TIE_TOLERANCE:
        return -1 if util_a > util_b else 1
    return a.agents - b.agents


def _in_ideal_band(result: FleetSizeResult) -> bool:
    util = result.avg_agent_utilization_pct
    return util is not None and config.IDEAL_AGENT_UTILIZATION_MIN <= util <= config.IDEAL_AGENT_UTILIZATION_MAX


def _utilization_note(result: FleetSizeResult) -> str:
    util = result.avg_agent_utilization_pct
    if util is None:
        return "utilization unknown"
    if util < config.IDEAL_AGENT_UTILIZATION_MIN:
        return f"under-utilized ({util:.1f}% < {config.IDEAL_AGENT_UTILIZATION_MIN:.0f}%)"
    if util > config.IDEAL_AGENT_UTILIZATION_MAX:
        return f"over-utilized ({util:.1f}% > {config.IDEAL_AGENT_UTILIZATION_MAX:.0f}%)"
    return f"utilization {util:.1f}% within the ideal band"


def select_recommendation(results: Sequence[FleetSizeResult]) -> Recommendation:
    """
    Pick the recommended fleet size from aggregated results.

    Returns:
        Recommendation; its result is None only when results is empty
    """
    if not results:
        return Recommendation(None, SelectionTier.NO_RESULTS, "No fleet sizes were evaluated.")

    completing = [
        r for r in results
        if r.delivery_completion_rate is not None
        and r.delivery_completion_rate >= config.MIN_DELIVERY_COMPLETION_RATE
    ]
    meeting_sla = [
        r for r in completing
        if r.percent_within_target is not None and r.percent_within_target >= config.TARGET_SLA_PERCENTAGE
    ]

    if meeting_sla:
        tier, candidates = SelectionTier.COMPLETION_AND_SLA, meeting_sla
        basis = (f"delivered >= {config.MIN_DELIVERY_COMPLETION_RATE:.0%} of orders with "
                 f">= {config.TARGET_SLA_PERCENTAGE:.0f}% within target time")
    elif completing:
        tier, candidates = SelectionTier.COMPLETION_ONLY, completing
        basis = (f"no fleet size met the {config.TARGET_SLA_PERCENTAGE:.0f}% on-time target; "
                 f"chosen among those delivering >= {config.MIN_DELIVERY_COMPLETION_RATE:.0%} of orders")
    else:
        tier, candidates = SelectionTier.UNCONSTRAINED, list(results)
        basis = (f"no fleet size delivered {config.MIN_DELIVERY_COMPLETION_RATE:.0%} of orders; "
                 f"chosen among all fleet sizes, treat with caution")

    ranked = sorted(candidates, key=_cost_key)
    lowest = _cost_key(ranked[0])
    band = [r for r in ranked if _cost_key(r) <= lowest * (1 + config.COST_PER_ORDER_TOLERANCE)]

    ideal = [r for r in band if _in_ideal_band(r)]
    if ideal:
        best = sorted(ideal, key=cmp_to_key(_compare_utilization))[0]
    else:
        best = band[0]

    note = _utilization_note(best)
    cost = "n/a" if best.avg_cost_per_order is None else f"{best.avg_cost_per_order:.2f}"
    reason = (f"{best.agents} agents: {basis}; cost per order {cost} "
              f"(within {config.COST_PER_ORDER_TOLERANCE:.0%} of cheapest); {note}.")
    return Recommendation(best, tier, reason, utilization_note=note)


# =============================================================================
# SWEEP
# =============================================================================

def _unit_seed(base_seed: Optional[int], agents: int, run: int) -> Optional[int]:
    if base_seed is None:
        return None
    return base_seed * 1_000_003 + agents * 1_009 + run


class WorkforceOptimizer:
    """
    Fleet-size sweep over independent simulation runs.

    Example:
        >>> optimizer = WorkforceOptimizer(OptimizationConfig(min_agents=2, max_agents=6, seed=7))
        >>> outcome = optimizer.run()
        >>> outcome.recommendation.agents
    """

    def __init__(
        self,
        opt_config: Optional[OptimizationConfig] = None,
        params: Optional[SimulationParameters] = None,
        hub: Location = DEFAULT_HUB,
        profiles: Iterable[DemandProfile] = (),
    ) -> None:
        self.config = (opt_config or OptimizationConfig()).validate()
        self.params = params or SimulationParameters()
        self.hub = hub
        self.profile = resolve_profile(self.config.demand_profile, profiles)
        if self.profile is None:
            raise ValueError(f"Unknown demand profile '{self.config.demand_profile}'")

    def run(
        self,
        progress: Optional[Callable[[FleetSizeResult], None]] = None,
        should_abort: Optional[Callable[[], bool]] = None,
        max_workers: int = 1,
    ) -> OptimizationResult:
        """
        Run the sweep.

        Args:
            progress: Called after each fleet size with its aggregated result
            should_abort: Polled before every run (before every fleet size when
                parallel); True stops the sweep, discarding the unfinished fleet size
                when serial
            max_workers: Worker processes for independent runs (1 = serial)

        Returns:
            OptimizationResult with per-fleet-size results and the recommendation
        """
        logger.info(
            f"Workforce sweep: agents {self.config.min_agents}-{self.config.max_agents}, "
            f"{self.config.runs_per_agent_count} runs each, profile '{self.config.demand_profile}'"
        )
        if max_workers > 1:
            results, aborted = self._run_parallel(progress, should_abort, max_workers)
        else:
            results, aborted = self._run_serial(progress, should_abort)

        outcome = OptimizationResult(config=self.config, results=results, aborted=aborted)
        outcome.recommendation = select_recommendation(results)
        if aborted:
            logger.info(f"Workforce sweep aborted after {len(results)} fleet sizes")
        logger.info(f"Recommendation: {outcome.recommendation.reason}")
        return outcome

    def _aggregate(self, agents: int, runs: Sequence[RunOutcome]) -> FleetSizeResult:
        result = aggregate_runs(agents, runs, self.config.target_delivery_time_min, self.params)
        logger.info(
            f"{agents} agents: delivered {result.avg_orders_delivered:.1f}/{result.avg_orders_generated:.1f}, "
            f"utilization {result.avg_agent_utilization_pct or 0:.1f}%"
        )
        return result

    def _run_serial(self, progress, should_abort):
        results: List[FleetSizeResult] = []
        for agents in self.config.fleet_sizes:
            runs: List[RunOutcome] = []
            for run in range(self.config.runs_per_agent_count):
                if should_abort is not None and should_abort():
                    return results, True
                runs.append(simulate_fleet(
                    agents, self.config, self.params, self.profile, self.hub,
                    seed=_unit_seed(self.config.seed, agents, run),
                ))
            result = self._aggregate(agents, runs)
            results.append(result)
            if progress is not None:
                progress(result)
        return results, False

    def _run_parallel(self, progress, should_abort, max_workers):
        """
        Run the repetitions of one fleet size concurrently, one fleet size at a time.

        should_abort is polled before each fleet size is submitted. Nothing is in
        flight when an abort is honoured: the fleet size already submitted completes
        and is kept.
        """
        results: List[FleetSizeResult] = []
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            for agents in self.config.fleet_sizes:
                if should_abort is not None and should_abort():
                    return results, True
                futures: List[Future] = [
                    executor.submit(
                        simulate_fleet, agents, self.config, self.params, self.profile, self.hub,
                        seed=_unit_seed(self.config.seed, agents, run),
                    )
                    for run in range(self.config.runs_per_agent_count)
                ]
                runs = [f.result() for f in futures]
                result = self._aggregate(agents, runs)
                results.append(result)
                if progress is not None:
                    progress(result)
        return results, False
