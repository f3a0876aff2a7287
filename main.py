#!/usr/bin/env python3
# darkstore-sim/main.py
"""
Command-Line Interface for the dark-store delivery simulation.

Runs the interactive simulation headless for a fixed number of minutes, or
sweeps fleet sizes to recommend a workforce, without the dashboard.

Usage:
    python main.py simulate                          # 120 min, defaults
    python main.py simulate --minutes 240 --agents 8 # Longer, bigger fleet
    python main.py --profiles-file profiles.json simulate --profile custom_lunch
    python main.py optimize --min-agents 2 --max-agents 8 --runs 5
    python main.py --seed 42 optimize --workers 4    # Parallel, reproducible

Exit Codes:
    0: Success
    1: Input error (bad arguments, unreadable profile file)
    2: Simulation error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional

# Ensure the package is importable when run from a checkout
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from darkstore_sim import config
from darkstore_sim.city import CITY_NAME
from darkstore_sim.config import SimulationParameters
from darkstore_sim.demand import load_profiles
from darkstore_sim.models import DemandProfile
from darkstore_sim.optimizer import FleetSizeResult, OptimizationConfig, WorkforceOptimizer
from darkstore_sim.simulation import InteractiveSimulation
from darkstore_sim.utils import format_time_duration


def print_header(subtitle: str) -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  DARK STORE SIM - Quick-Commerce Delivery Simulation")
    print(f"  {CITY_NAME} | {subtitle}")
    print("=" * 60 + "\n")


def _fmt(value: Any, suffix: str = "", digits: int = 2) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, float):
        return f"{value:.{digits}f}{suffix}"
    return f"{value}{suffix}"


def print_results_table(stats: Dict[str, Any]) -> None:
    """
    Print the KPI table of a simulation run.

    Args:
        stats: The "statistics" dict of InteractiveSimulation.get_results()
    """
    rows = [
        ("Orders Generated", _fmt(stats["total_orders_generated"])),
        ("Orders Delivered", _fmt(stats["total_orders_delivered"])),
        ("Orders In Progress", _fmt(stats["orders_in_progress"])),
        ("Orders Abandoned", _fmt(stats["total_orders_abandoned"])),
        ("Avg Delivery Time", _fmt(stats["avg_delivery_time_min"], " min")),
        ("Min / Max Delivery Time", f"{_fmt(stats['min_delivery_time_min'])} / "
                                    f"{_fmt(stats['max_delivery_time_min'])} min"),
        ("Std Dev Delivery Time", _fmt(stats["std_dev_delivery_time_min"], " min")),
        ("Avg Order Wait", _fmt(stats["avg_order_wait_time_min"], " min")),
        ("Agent Utilization", _fmt(stats["avg_agent_utilization_pct"], "%")),
        ("Distance Traveled", _fmt(stats["total_distance_km"], " km")),
        ("Labor Cost", _fmt(stats["labor_cost"])),
        ("Travel Cost", _fmt(stats["travel_cost"])),
        ("Fixed Delivery Cost", _fmt(stats["fixed_delivery_cost"])),
        ("Total Operational Cost", _fmt(stats["total_operational_cost"])),
        ("Cost per Order", _fmt(stats["avg_cost_per_order"])),
    ]

    print("\n" + "=" * 60)
    print("  SIMULATION RESULTS")
    print("=" * 60 + "\n")
    print(f"| {'Metric':<27} | {'Value':^24} |")
    print("|" + "-" * 29 + "|" + "-" * 26 + "|")
    for metric, value in rows:
        print(f"| {metric:<27} | {value:^24} |")
    print("\n" + "=" * 60 + "\n")


def print_sweep_table(results: List[FleetSizeResult], recommended: Optional[int]) -> None:
    """Print one row per evaluated fleet size, marking the recommendation."""
    header = (f"| {'Agents':^7} | {'Delivered':^11} | {'Avg Time':^9} | {'On Time':^8} | "
              f"{'Util':^7} | {'Cost/Order':^10} |")
    print(header)
    print("|" + "|".join("-" * len(col) for col in header.strip("|").split("|")) + "|")
    for r in results:
        marker = "*" if r.agents == recommended else " "
        delivered = f"{r.avg_orders_delivered:.1f}/{r.avg_orders_generated:.1f}"
        print(f"| {marker}{r.agents:^6} | {delivered:^11} | "
              f"{_fmt(r.avg_delivery_time_min, '', 1):^9} | "
              f"{_fmt(r.percent_within_target, '%', 0):^8} | "
              f"{_fmt(r.avg_agent_utilization_pct, '%', 0):^7} | "
              f"{_fmt(r.avg_cost_per_order):^10} |")


def load_profiles_safe(path: Optional[str]) -> Optional[List[DemandProfile]]:
    """
    Load custom demand profiles with graceful error handling.

    Returns:
        List of profiles (empty when no file was given) or None on error
    """
    if not path:
        return []
    try:
        return load_profiles(path)
    except FileNotFoundError:
        print(f"ERROR: Profile file not found: {path}")
    except ValueError as e:
        print(f"ERROR: {e}")
    return None


def run_simulate(args: argparse.Namespace, profiles: List[DemandProfile]) -> int:
    params = SimulationParameters()
    overrides = {
        "num_agents": args.agents,
        "order_generation_profile": args.profile,
        "handling_time_min": args.handling_time,
        "base_traffic_factor": args.traffic,
        "enable_dynamic_traffic": args.dynamic_traffic,
        "route_waypoints": args.waypoints,
    }
    for key, value in overrides.items():
        if value is not None and not params.set_parameter(key, value):
            print(f"ERROR: Invalid value for {key}: {value}")
            return 1
    if args.frequency is not None and not params.set_order_frequency(args.frequency):
        print(f"ERROR: Order frequency must be one of {sorted(config.ORDER_FREQUENCY_LEVELS)}")
        return 1

    print_header(f"Interactive run: {args.minutes} min, {params.num_agents} agents")
    try:
        sim = InteractiveSimulation(params, profiles=profiles, seed=args.seed)
        results = sim.run(args.minutes, verbose=args.verbose)
    except Exception as e:
        print(f"ERROR: Simulation failed: {e}")
        import traceback
        traceback.print_exc()
        return 2

    print(f"Simulated time: {format_time_duration(results['simulation_time'])}")
    print_results_table(results["statistics"])
    return 0


def run_optimize(args: argparse.Namespace, profiles: List[DemandProfile]) -> int:
    try:
        opt_config = OptimizationConfig(
            min_agents=args.min_agents,
            max_agents=args.max_agents,
            runs_per_agent_count=args.runs,
            target_delivery_time_min=args.target_time,
            max_sim_time_min=args.max_time,
            target_orders_per_run=args.target_orders,
            order_radius_km=args.radius,
            demand_profile=args.profile or "default_uniform",
            seed=args.seed,
        )
        optimizer = WorkforceOptimizer(opt_config, profiles=profiles)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    print_header(f"Workforce sweep: {opt_config.min_agents}-{opt_config.max_agents} agents, "
                 f"{opt_config.runs_per_agent_count} runs each")

    def report(result: FleetSizeResult) -> None:
        print(f"  ...{result.agents} agents done")

    try:
        outcome = optimizer.run(progress=report if args.verbose else None, max_workers=args.workers)
    except Exception as e:
        print(f"ERROR: Optimization failed: {e}")
        import traceback
        traceback.print_exc()
        return 2

    recommendation = outcome.recommendation
    print()
    print_sweep_table(outcome.results, recommendation.agents if recommendation else None)
    print("\n" + "=" * 60)
    if recommendation is not None and recommendation.result is not None:
        print(f"  Recommended fleet size: {recommendation.agents} agents")
        print(f"  {recommendation.reason}")
    else:
        print("  No qualifying configuration found.")
    print("=" * 60 + "\n")
    return 0


def main() -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Dark-store quick-commerce delivery simulation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py simulate --minutes 180 --agents 6
  python main.py simulate --profile default_focused --frequency 4
  python main.py optimize --min-agents 2 --max-agents 10 --runs 3
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show detailed progress")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for reproducible runs")
    parser.add_argument("--profiles-file", type=str, default=None,
                        help="JSON file with custom demand profiles")

    sub = parser.add_subparsers(dest="command")

    sim = sub.add_parser("simulate", help="Run the step-wise simulation headless")
    sim.add_argument("--minutes", "-m", type=int, default=120, help="Simulated minutes (default: 120)")
    sim.add_argument("--agents", "-a", type=int, default=None, help="Fleet size")
    sim.add_argument("--profile", "-p", type=str, default=None,
                     help="default_uniform, default_focused or custom_<name>")
    sim.add_argument("--frequency", "-f", type=int, default=None,
                     help="Order frequency level 1 (very low) to 5 (very high)")
    sim.add_argument("--handling-time", type=float, default=None, help="Handling minutes at the store")
    sim.add_argument("--traffic", type=float, default=None, help="Manual traffic factor")
    sim.add_argument("--dynamic-traffic", action="store_true", default=None,
                     help="Resample traffic every 15 minutes")
    sim.add_argument("--waypoints", type=int, default=None, help="Waypoints per route leg")

    opt = sub.add_parser("optimize", help="Recommend a fleet size")
    opt.add_argument("--min-agents", type=int, default=1)
    opt.add_argument("--max-agents", type=int, default=10)
    opt.add_argument("--runs", type=int, default=3, help="Runs per fleet size")
    opt.add_argument("--target-time", type=float, default=30.0, help="Target delivery minutes")
    opt.add_argument("--max-time", type=int, default=180, help="Simulated minutes per run")
    opt.add_argument("--target-orders", type=int, default=20,
                     help="Orders per run for the builtin profiles")
    opt.add_argument("--radius", type=float, default=5.0, help="Order radius in km")
    opt.add_argument("--profile", "-p", type=str, default=None)
    opt.add_argument("--workers", type=int, default=1, help="Worker processes")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 1

    profiles = load_profiles_safe(args.profiles_file)
    if profiles is None:
        return 1

    if args.command == "simulate":
        return run_simulate(args, profiles)
    return run_optimize(args, profiles)


if __name__ == "__main__":
    sys.exit(main())
