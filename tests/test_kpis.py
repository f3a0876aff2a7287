import pytest

from darkstore_sim import kpis
from darkstore_sim.config import SimulationParameters
from darkstore_sim.models import Agent, RunStatistics


def make_agent(agent_id, busy, total):
    return Agent(agent_id=agent_id, lat=30.73, lng=76.78, base_speed_kmph=25.0,
                 busy_time=busy, total_time=total)


def test_utilization_weights_agent_minutes():
    agents = [make_agent(1, 10, 10), make_agent(2, 0, 90)]
    assert kpis.utilization_pct(agents) == pytest.approx(10.0)

    per_agent_mean = (100.0 + 0.0) / 2
    assert kpis.utilization_pct(agents) != pytest.approx(per_agent_mean)


def test_utilization_equals_mean_for_equal_totals():
    agents = [make_agent(1, 30, 60), make_agent(2, 60, 60)]
    assert kpis.utilization_pct(agents) == pytest.approx(75.0)


def test_utilization_undefined_without_time():
    assert kpis.utilization_pct([]) is None


def test_std_dev_needs_two_samples():
    assert kpis.std_dev([]) is None
    assert kpis.std_dev([12.0]) is None
    assert kpis.std_dev([10.0, 20.0]) == pytest.approx(7.0710678)


def test_percent_within_target():
    assert kpis.percent_within_target([10, 20, 30, 40], 30) == 75.0
    assert kpis.percent_within_target([], 30) is None


def test_cost_breakdown():
    costs = kpis.cost_breakdown(120, 10, 4, SimulationParameters())
    assert costs["labor_cost"] == pytest.approx(300.0)
    assert costs["travel_cost"] == pytest.approx(50.0)
    assert costs["fixed_delivery_cost"] == pytest.approx(40.0)
    assert costs["total_operational_cost"] == pytest.approx(390.0)
    assert costs["avg_cost_per_order"] == pytest.approx(97.5)


def test_cost_per_order_undefined_without_deliveries():
    assert kpis.cost_breakdown(60, 5, 0, SimulationParameters())["avg_cost_per_order"] is None


def test_summarize_empty_run():
    summary = kpis.summarize(RunStatistics(), [], SimulationParameters())
    assert summary["total_orders_generated"] == 0
    assert summary["avg_delivery_time_min"] is None
    assert summary["avg_order_wait_time_min"] is None
    assert summary["delivery_completion_pct"] is None
    assert summary["total_operational_cost"] == 0


def test_summarize_counts():
    stats = RunStatistics(total_orders_generated=4)
    stats.record_assignment(2.0)
    stats.record_assignment(4.0)
    stats.record_delivery(20.0)
    stats.record_delivery(30.0)

    summary = kpis.summarize(stats, [make_agent(1, 40, 60)], SimulationParameters())
    assert summary["total_orders_delivered"] == 2
    assert summary["orders_in_progress"] == 2
    assert summary["delivery_completion_pct"] == pytest.approx(50.0)
    assert summary["avg_delivery_time_min"] == pytest.approx(25.0)
    assert summary["min_delivery_time_min"] == 20.0
    assert summary["max_delivery_time_min"] == 30.0
    assert summary["avg_order_wait_time_min"] == pytest.approx(3.0)


def test_abandoned_orders_not_in_progress():
    stats = RunStatistics(total_orders_generated=3, total_orders_abandoned=1)
    stats.record_delivery(15.0)
    summary = kpis.summarize(stats, [], SimulationParameters())
    assert summary["total_orders_abandoned"] == 1
    assert summary["orders_in_progress"] == 1
