import pytest

from darkstore_sim.config import SimulationParameters
from darkstore_sim.models import DemandProfile, HotspotZone, RunStatistics
from darkstore_sim.city import DEFAULT_HUB
from darkstore_sim.optimizer import (
    FleetSizeResult,
    OptimizationConfig,
    RunOutcome,
    SelectionTier,
    WorkforceOptimizer,
    aggregate_runs,
    select_recommendation,
    simulate_fleet,
)


def fleet(agents, completion, on_time, cost, util):
    return FleetSizeResult(
        agents=agents,
        runs=1,
        delivery_completion_rate=completion,
        percent_within_target=on_time,
        avg_cost_per_order=cost,
        avg_agent_utilization_pct=util,
    )


def test_prefers_ideal_utilization_within_cost_band():
    results = [
        fleet(3, 0.90, 90.0, 10.0, 95.0),
        fleet(4, 0.95, 92.0, 10.5, 75.0),
    ]
    recommendation = select_recommendation(results)
    assert recommendation.agents == 4
    assert recommendation.tier is SelectionTier.COMPLETION_AND_SLA


def test_cost_band_excludes_expensive_fleets():
    results = [
        fleet(3, 0.90, 90.0, 10.0, 95.0),
        fleet(4, 0.95, 92.0, 12.0, 75.0),
    ]
    recommendation = select_recommendation(results)
    assert recommendation.agents == 3
    assert "over-utilized" in recommendation.utilization_note


def test_cheapest_flagged_under_utilized():
    results = [
        fleet(8, 1.0, 100.0, 20.0, 30.0),
        fleet(9, 1.0, 100.0, 21.0, 25.0),
    ]
    recommendation = select_recommendation(results)
    assert recommendation.agents == 8
    assert "under-utilized" in recommendation.utilization_note


def test_utilization_tie_prefers_fewer_agents():
    results = [
        fleet(5, 1.0, 95.0, 10.0, 80.5),
        fleet(6, 1.0, 95.0, 10.2, 80.0),
        fleet(7, 1.0, 95.0, 10.4, 70.0),
    ]
    assert select_recommendation(results).agents == 5

    results[1].avg_agent_utilization_pct = 85.0
    assert select_recommendation(results).agents == 6


def test_sla_threshold_is_a_percentage():
    results = [
        fleet(2, 0.90, 74.9, 10.0, 70.0),
        fleet(3, 0.90, 75.0, 11.0, 65.0),
    ]
    recommendation = select_recommendation(results)
    assert recommendation.agents == 3
    assert recommendation.tier is SelectionTier.COMPLETION_AND_SLA


def test_fallback_tiers():
    no_sla = [fleet(2, 0.9, 50.0, 10.0, 70.0), fleet(3, 0.95, 60.0, 12.0, 70.0)]
    assert select_recommendation(no_sla).tier is SelectionTier.COMPLETION_ONLY

    incomplete = [fleet(1, 0.4, 10.0, 30.0, 99.0), fleet(2, 0.6, 20.0, 25.0, 95.0)]
    recommendation = select_recommendation(incomplete)
    assert recommendation.tier is SelectionTier.UNCONSTRAINED
    assert recommendation.agents == 2

    empty = select_recommendation([])
    assert empty.tier is SelectionTier.NO_RESULTS
    assert empty.result is None


def test_fleet_without_deliveries_never_cheapest():
    results = [fleet(1, 0.0, None, None, 100.0), fleet(2, 0.5, 10.0, 40.0, 90.0)]
    assert select_recommendation(results).agents == 2


def outcome(agents, times, generated, busy, total):
    stats = RunStatistics(total_orders_generated=generated)
    for t in times:
        stats.record_assignment(1.0)
        stats.record_delivery(t)
    return RunOutcome(agents=agents, stats=stats, busy_time=busy, total_time=total, sim_minutes=60)


def test_aggregate_pools_delivery_times():
    runs = [outcome(2, [10.0, 20.0], 2, 30, 120), outcome(2, [30.0], 2, 90, 120)]
    result = aggregate_runs(2, runs, 25.0, SimulationParameters())

    assert result.runs == 2
    assert result.avg_orders_generated == 2.0
    assert result.avg_orders_delivered == 1.5
    assert result.avg_undelivered_orders == 0.5
    assert result.delivery_completion_rate == pytest.approx(0.75)
    assert result.avg_delivery_time_min == pytest.approx(20.0)
    assert result.min_delivery_time_min == 10.0
    assert result.max_delivery_time_min == 30.0
    assert result.percent_within_target == pytest.approx(200 / 3)
    assert result.avg_agent_utilization_pct == pytest.approx(50.0)
    assert result.avg_order_wait_time_min == pytest.approx(1.0)


def test_aggregate_without_runs():
    result = aggregate_runs(4, [], 30.0, SimulationParameters())
    assert result.runs == 0
    assert result.avg_cost_per_order is None


def test_config_validation():
    with pytest.raises(ValueError):
        OptimizationConfig(min_agents=0).validate()
    with pytest.raises(ValueError):
        OptimizationConfig(runs_per_agent_count=0).validate()
    with pytest.raises(ValueError):
        OptimizationConfig(max_sim_time_min=0).validate()

    assert OptimizationConfig(max_agents=80).validate().max_agents == 50
    assert OptimizationConfig(min_agents=4, max_agents=2).validate().fleet_sizes == [4]


def test_unknown_profile_rejected():
    with pytest.raises(ValueError):
        WorkforceOptimizer(OptimizationConfig(demand_profile="custom_missing"))


def test_builtin_profile_order_cap():
    opt_config = OptimizationConfig(target_orders_per_run=5, max_sim_time_min=100)
    run = simulate_fleet(3, opt_config, SimulationParameters(), "default_uniform", seed=1)
    assert run.stats.total_orders_generated <= 5
    assert run.sim_minutes <= 100
    assert run.busy_time <= run.total_time == 3 * run.sim_minutes


def test_custom_profile_run():
    profile = DemandProfile("hub", [HotspotZone(min_orders=60, max_orders=60, center=DEFAULT_HUB)])
    opt_config = OptimizationConfig(max_sim_time_min=30, demand_profile="custom_hub")
    run = simulate_fleet(4, opt_config, SimulationParameters(), profile, seed=2)
    assert run.stats.total_orders_generated == 30
    assert run.sim_minutes == 30


def test_seeded_sweep_is_reproducible():
    opt_config = dict(min_agents=1, max_agents=3, runs_per_agent_count=2,
                      max_sim_time_min=120, target_orders_per_run=10, seed=3)
    seen = []

    first = WorkforceOptimizer(OptimizationConfig(**opt_config)).run(progress=seen.append)
    second = WorkforceOptimizer(OptimizationConfig(**opt_config)).run()

    assert [r.agents for r in first.results] == [1, 2, 3]
    assert [r.agents for r in seen] == [1, 2, 3]
    assert [r.to_dict() for r in first.results] == [r.to_dict() for r in second.results]
    assert first.recommendation.agents == second.recommendation.agents
    assert first.recommendation.agents in (1, 2, 3)
    assert not first.aborted


def test_abort_discards_incomplete_fleet_size():
    calls = []

    def should_abort():
        calls.append(1)
        return len(calls) > 2

    optimizer = WorkforceOptimizer(OptimizationConfig(min_agents=1, max_agents=4, runs_per_agent_count=2,
                                                      max_sim_time_min=60, seed=1))
    outcome = optimizer.run(should_abort=should_abort)

    assert outcome.aborted
    assert [r.agents for r in outcome.results] == [1]
    assert outcome.recommendation.agents == 1


def test_parallel_sweep_matches_serial():
    opt_config = dict(min_agents=1, max_agents=2, runs_per_agent_count=2,
                      max_sim_time_min=60, target_orders_per_run=6, seed=5)
    serial = WorkforceOptimizer(OptimizationConfig(**opt_config)).run()
    parallel = WorkforceOptimizer(OptimizationConfig(**opt_config)).run(max_workers=2)

    assert not parallel.aborted
    assert [r.to_dict() for r in parallel.results] == [r.to_dict() for r in serial.results]


def test_parallel_abort_stops_before_next_fleet_size():
    calls = []

    def should_abort():
        calls.append(1)
        return len(calls) > 1

    optimizer = WorkforceOptimizer(OptimizationConfig(min_agents=1, max_agents=4, runs_per_agent_count=2,
                                                      max_sim_time_min=60, seed=1))
    outcome = optimizer.run(should_abort=should_abort, max_workers=2)

    assert outcome.aborted
    assert len(calls) == 2
    assert [r.agents for r in outcome.results] == [1]
