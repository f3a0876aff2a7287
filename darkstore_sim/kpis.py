# darkstore-sim/darkstore_sim/kpis.py
"""
Derived metrics and cost model.

Everything here is a pure function of RunStatistics, the agents and the
SimulationParameters. Undefined metrics (nothing delivered, fewer than two
samples for a standard deviation) are reported as None.
"""

from __future__ import annotations

import statistics
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .config import SimulationParameters
from .models import Agent, Order, OrderStatus, RunStatistics


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    if not denominator:
        return None
    return numerator / denominator


def avg_delivery_time(stats: RunStatistics) -> Optional[float]:
    return safe_ratio(stats.sum_delivery_times, stats.total_orders_delivered)


def std_dev(values: Sequence[float]) -> Optional[float]:
    """Sample standard deviation (n - 1), None for fewer than two values."""
    if len(values) < 2:
        return None
    return statistics.stdev(values)


def avg_order_wait_time(stats: RunStatistics) -> Optional[float]:
    return safe_ratio(stats.sum_order_wait_times, stats.count_assigned_orders)


def utilization_pct(agents: Iterable[Agent]) -> Optional[float]:
    """
    Fleet utilization as sum(busy time) / sum(total time) * 100.

    This weights every agent-minute equally; it is not the mean of per-agent
    percentages.
    """
    busy = 0.0
    total = 0.0
    for agent in agents:
        busy += agent.busy_time
        total += agent.total_time
    return utilization_from_totals(busy, total)


def utilization_from_totals(busy_time: float, total_time: float) -> Optional[float]:
    ratio = safe_ratio(busy_time, total_time)
    return None if ratio is None else ratio * 100


def percent_within_target(delivery_times: Sequence[float], target_minutes: float) -> Optional[float]:
    """Share of deliveries (in percent) that took at most target_minutes."""
    if not delivery_times:
        return None
    within = sum(1 for t in delivery_times if t <= target_minutes)
    return within / len(delivery_times) * 100


def cost_breakdown(
    active_time_min: float,
    distance_km: float,
    deliveries: float,
    params: SimulationParameters,
) -> Dict[str, Optional[float]]:
    """
    Operational costs of a run.

    Args:
        active_time_min: Agent-minutes spent busy
        distance_km: Distance covered by all agents
        deliveries: Orders delivered
        params: Supplies the unit costs

    Returns:
        Dict with labor, travel, fixed, total and per-order cost
    """
    labor = active_time_min / 60 * params.agent_cost_per_hour
    travel = distance_km * params.cost_per_km
    fixed = deliveries * params.fixed_cost_per_delivery
    total = labor + travel + fixed
    return {
        "labor_cost": labor,
        "travel_cost": travel,
        "fixed_delivery_cost": fixed,
        "total_operational_cost": total,
        "avg_cost_per_order": safe_ratio(total, deliveries),
    }


def summarize(
    stats: RunStatistics,
    agents: Sequence[Agent],
    params: SimulationParameters,
) -> Dict[str, Any]:
    """
    Flat KPI dictionary for a run.

    Returns:
        Counts, timing, utilization and cost metrics keyed by snake_case names
    """
    times = stats.delivery_times
    summary: Dict[str, Any] = {
        "total_orders_generated": stats.total_orders_generated,
        "total_orders_delivered": stats.total_orders_delivered,
        "total_orders_abandoned": stats.total_orders_abandoned,
        "orders_in_progress": (stats.total_orders_generated - stats.total_orders_delivered
                               - stats.total_orders_abandoned),
        "delivery_completion_pct": None,
        "avg_delivery_time_min": avg_delivery_time(stats),
        "min_delivery_time_min": min(times) if times else None,
        "max_delivery_time_min": max(times) if times else None,
        "std_dev_delivery_time_min": std_dev(times),
        "avg_order_wait_time_min": avg_order_wait_time(stats),
        "avg_agent_utilization_pct": utilization_pct(agents),
        "total_agent_active_time_min": stats.total_agent_active_time,
        "total_agent_travel_time_min": sum(a.time_spent_traveling for a in agents),
        "total_agent_handling_time_min": sum(a.time_spent_handling for a in agents),
        "total_distance_km": stats.total_distance_km,
    }
    completion = safe_ratio(stats.total_orders_delivered, stats.total_orders_generated)
    if completion is not None:
        summary["delivery_completion_pct"] = completion * 100

    summary.update(cost_breakdown(
        stats.total_agent_active_time,
        stats.total_distance_km,
        stats.total_orders_delivered,
        params,
    ))
    return summary


def agent_performance(agents: Iterable[Agent]) -> List[Dict[str, Any]]:
    """Per-agent rows for tables and exports."""
    rows = []
    for agent in agents:
        util = utilization_from_totals(agent.busy_time, agent.total_time)
        rows.append({
            "agent_id": agent.agent_id,
            "status": agent.status.value,
            "base_speed_kmph": agent.base_speed_kmph,
            "fatigue_factor": agent.fatigue_factor,
            "deliveries_made": agent.deliveries_made,
            "distance_traveled_km": agent.distance_traveled_km,
            "total_time_min": agent.total_time,
            "busy_time_min": agent.busy_time,
            "idle_time_min": agent.time_spent_idle,
            "travel_time_min": agent.time_spent_traveling,
            "handling_time_min": agent.time_spent_handling,
            "utilization_pct": util,
        })
    return rows


def delivered_order_rows(orders: Iterable[Order]) -> List[Dict[str, Any]]:
    """Delivered orders with their timings, e.g. for delivery-time heatmaps."""
    return [
        {
            "order_id": o.order_id,
            "lat": o.lat,
            "lng": o.lng,
            "agent_id": o.assigned_agent_id,
            "time_placed": o.time_placed,
            "wait_time_min": o.wait_time,
            "eta_min": o.eta_minutes,
            "delivery_time": o.delivery_time,
            "delivery_duration_min": o.delivery_duration,
        }
        for o in orders
        if o.status is OrderStatus.DELIVERED
    ]
