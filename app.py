"""
Dark Store Sim - Operations Dashboard
=====================================

Streamlit front end for the dark-store delivery simulation.

Features:
- Live simulation with start / pause / reset and a pydeck map
- Pending-order and active-agent charts
- KPI and cost cards, per-agent table
- Workforce optimization sweep with a recommended fleet size

Run:
    streamlit run app.py
"""

import json
import os
import sys
import time
from typing import Any, Dict, List, Optional

import pandas as pd
import pydeck as pdk
import streamlit as st

# Ensure the package is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from darkstore_sim import config
from darkstore_sim.city import CITY_POLYGON, DEFAULT_HUB
from darkstore_sim.config import SimulationParameters
from darkstore_sim.demand import parse_profiles
from darkstore_sim.models import DemandProfile
from darkstore_sim.optimizer import OptimizationConfig, WorkforceOptimizer
from darkstore_sim.simulation import InteractiveSimulation, SimulationStatus

# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Dark Store Sim",
    page_icon="🛵",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .main .block-container {
        padding-top: 2rem;
        padding-bottom: 2rem;
    }
    .section-header {
        font-size: 1.4rem;
        font-weight: 700;
        margin: 1.5rem 0 0.75rem 0;
        padding-bottom: 0.4rem;
        border-bottom: 3px solid #667eea;
    }
</style>
""", unsafe_allow_html=True)

AGENT_COLORS: Dict[str, List[int]] = {
    "available": [100, 116, 139],
    "to_store": [59, 130, 246],
    "at_store": [168, 85, 247],
    "to_customer": [16, 185, 129],
}

ORDER_COLORS: Dict[str, List[int]] = {
    "pending": [251, 191, 36],
    "assigned_to_agent_going_to_store": [59, 130, 246],
    "at_store_with_agent": [168, 85, 247],
    "out_for_delivery": [16, 185, 129],
}

SECONDS_PER_TICK = 0.5


# =============================================================================
# SESSION STATE
# =============================================================================

def get_simulation() -> InteractiveSimulation:
    """Return the session's simulation, creating it on first use."""
    if "simulation" not in st.session_state:
        st.session_state.simulation = InteractiveSimulation(SimulationParameters())
    return st.session_state.simulation


def get_profiles() -> List[DemandProfile]:
    return st.session_state.get("profiles", [])


# =============================================================================
# MAP VISUALIZATION
# =============================================================================

def build_map(snapshot: Dict[str, Any]) -> pdk.Deck:
    """
    Build a pydeck map of the city boundary, hub, agents, orders and routes.

    Args:
        snapshot: InteractiveSimulation.snapshot()
    """
    boundary = pdk.Layer(
        "PolygonLayer",
        [{"polygon": [list(p) for p in CITY_POLYGON]}],
        get_polygon="polygon",
        get_fill_color=[102, 126, 234, 20],
        get_line_color=[102, 126, 234],
        line_width_min_pixels=1,
    )

    hub = snapshot["hub"]
    hub_layer = pdk.Layer(
        "ScatterplotLayer",
        [{"position": [hub["lng"], hub["lat"]], "label": "Dark store"}],
        get_position="position",
        get_fill_color=[239, 68, 68],
        get_radius=180,
        pickable=True,
    )

    routes = pdk.Layer(
        "PathLayer",
        [
            {"path": [[p[1], p[0]] for p in path], "label": f"Agent {agent_id}"}
            for agent_id, path in snapshot["routes"].items()
        ],
        get_path="path",
        get_color=[59, 130, 246, 140],
        width_min_pixels=2,
    )

    orders = pdk.Layer(
        "ScatterplotLayer",
        [
            {
                "position": [o["lng"], o["lat"]],
                "color": ORDER_COLORS.get(o["status"], [148, 163, 184]),
                "label": f"Order {o['id']} · {o['status']}",
            }
            for o in snapshot["orders"]
        ],
        get_position="position",
        get_fill_color="color",
        get_radius=70,
        opacity=0.7,
        pickable=True,
    )

    agents = pdk.Layer(
        "ScatterplotLayer",
        [
            {
                "position": [a["lng"], a["lat"]],
                "color": AGENT_COLORS.get(a["status"], [148, 163, 184]),
                "label": f"Agent {a['id']} · {a['status']}"
                         + (f" · ETA {a['eta_remaining_min']:.0f}m" if a["eta_remaining_min"] is not None else ""),
            }
            for a in snapshot["agents"]
        ],
        get_position="position",
        get_fill_color="color",
        get_radius=110,
        stroked=True,
        pickable=True,
        line_width_min_pixels=1,
    )

    view_state = pdk.ViewState(latitude=hub["lat"], longitude=hub["lng"], zoom=12)
    return pdk.Deck(
        layers=[boundary, routes, orders, hub_layer, agents],
        initial_view_state=view_state,
        tooltip={"text": "{label}"},
    )


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar(sim: InteractiveSimulation) -> None:
    """Render parameter controls. Changes go through the validated setters."""
    st.sidebar.markdown("## 🎛️ Configuration")
    st.sidebar.markdown("---")
    params = sim.params

    st.sidebar.markdown("### 🛵 Fleet")
    values: Dict[str, Any] = {
        "num_agents": st.sidebar.number_input("Agents", 1, 50, params.num_agents),
        "agent_min_speed_kmph": st.sidebar.slider("Min speed (km/h)", 5.0, 60.0,
                                                  float(params.agent_min_speed_kmph)),
        "agent_max_speed_kmph": st.sidebar.slider("Max speed (km/h)", 5.0, 60.0,
                                                  float(params.agent_max_speed_kmph)),
        "handling_time_min": st.sidebar.slider("Handling time (min)", 0.0, 20.0,
                                               float(params.handling_time_min)),
    }

    st.sidebar.markdown("### 📦 Demand")
    profile_ids = list(config.BUILTIN_PROFILES) + [
        f"{config.CUSTOM_PROFILE_PREFIX}{p.name}" for p in get_profiles()
    ]
    current = params.order_generation_profile
    values["order_generation_profile"] = st.sidebar.selectbox(
        "Demand profile", profile_ids,
        index=profile_ids.index(current) if current in profile_ids else 0,
    )
    frequency = st.sidebar.select_slider(
        "Order frequency", options=sorted(config.ORDER_FREQUENCY_LEVELS), value=3,
        help="1 = very low, 5 = very high",
    )
    uploaded = st.sidebar.file_uploader("Custom profiles (JSON)", type="json")
    if uploaded is not None and st.session_state.get("profiles_file_id") != uploaded.file_id:
        st.session_state.profiles_file_id = uploaded.file_id
        try:
            st.session_state.profiles = parse_profiles(json.loads(uploaded.getvalue()))
            sim.set_demand_profiles(st.session_state.profiles)
        except ValueError as e:
            st.sidebar.error(f"Invalid profile file: {e}")

    st.sidebar.markdown("### 🚦 Traffic")
    values["enable_dynamic_traffic"] = st.sidebar.checkbox("Dynamic traffic", params.enable_dynamic_traffic)
    values["base_traffic_factor"] = st.sidebar.slider("Manual traffic factor", 0.5, 1.5,
                                                      float(params.base_traffic_factor), 0.1)

    st.sidebar.markdown("### 💰 Costs")
    values["agent_cost_per_hour"] = st.sidebar.number_input("Agent cost / hour", 0.0, 10000.0,
                                                           float(params.agent_cost_per_hour))
    values["cost_per_km"] = st.sidebar.number_input("Cost / km", 0.0, 1000.0, float(params.cost_per_km))
    values["fixed_cost_per_delivery"] = st.sidebar.number_input("Fixed cost / delivery", 0.0, 1000.0,
                                                               float(params.fixed_cost_per_delivery))

    for key, value in values.items():
        if sim.get_parameter(key) != value and not sim.set_parameter(key, value):
            st.sidebar.warning(f"Ignored invalid value for {key}")
    if config.ORDER_FREQUENCY_LEVELS[frequency] != params.order_generation_probability:
        params.set_order_frequency(frequency)

    st.sidebar.markdown("---")
    st.sidebar.info("Fleet size and speeds apply on the next reset.")


# =============================================================================
# LIVE SIMULATION
# =============================================================================

def render_kpis(stats: Dict[str, Any]) -> None:
    def fmt(value: Optional[float], suffix: str = "") -> str:
        return "N/A" if value is None else f"{value:.1f}{suffix}"

    col1, col2, col3, col4, col5 = st.columns(5)
    col1.metric("Delivered", f"{stats['total_orders_delivered']}/{stats['total_orders_generated']}")
    col2.metric("Avg delivery", fmt(stats["avg_delivery_time_min"], " min"))
    col3.metric("Avg wait", fmt(stats["avg_order_wait_time_min"], " min"))
    col4.metric("Utilization", fmt(stats["avg_agent_utilization_pct"], "%"))
    col5.metric("Cost / order", fmt(stats["avg_cost_per_order"]))


def render_live_tab(sim: InteractiveSimulation) -> None:
    col1, col2, col3, col4, col5 = st.columns(5)
    if col1.button("▶️ Start", use_container_width=True):
        sim.start()
    if col2.button("⏸️ Pause", use_container_width=True):
        sim.pause()
    if col3.button("🔄 Reset", use_container_width=True):
        sim.reset()
    if col4.button("+1 min", use_container_width=True):
        _step_once(sim)
    if col5.button("+10 min", use_container_width=True):
        for _ in range(10):
            _step_once(sim)

    snapshot = sim.snapshot()
    st.markdown(
        f"**Time:** T+{snapshot['time']} min · **Status:** {snapshot['status']} · "
        f"**Traffic:** x{snapshot['traffic_factor']:.1f}"
    )

    results = sim.get_results()
    render_kpis(results["statistics"])

    map_col, chart_col = st.columns([3, 2])
    with map_col:
        st.pydeck_chart(build_map(snapshot))
    with chart_col:
        history = pd.DataFrame(snapshot["history"])
        if not history.empty:
            st.line_chart(history.set_index("time")[["pending", "active_agents"]])
        else:
            st.info("Start the simulation to see order and agent activity.")

    st.markdown('<div class="section-header">Agents</div>', unsafe_allow_html=True)
    st.dataframe(pd.DataFrame(results["agents"]), use_container_width=True, hide_index=True)

    delivered = pd.DataFrame(results["delivered_orders"])
    if not delivered.empty:
        st.markdown('<div class="section-header">Delivered Orders</div>', unsafe_allow_html=True)
        st.dataframe(delivered, use_container_width=True, hide_index=True)

    if sim.status is SimulationStatus.RUNNING:
        time.sleep(SECONDS_PER_TICK)
        sim.tick()
        st.rerun()


def _step_once(sim: InteractiveSimulation) -> None:
    """Advance exactly one minute, leaving the simulation paused."""
    sim.start()
    sim.tick()
    sim.pause()


# =============================================================================
# WORKFORCE OPTIMIZATION
# =============================================================================

def render_optimization_tab(sim: InteractiveSimulation) -> None:
    st.markdown('<div class="section-header">Workforce Optimization</div>', unsafe_allow_html=True)

    col1, col2, col3 = st.columns(3)
    with col1:
        min_agents = st.number_input("Min agents", 1, config.MAX_AGENTS_TO_TEST, 1)
        max_agents = st.number_input("Max agents", 1, config.MAX_AGENTS_TO_TEST, 10)
        runs = st.number_input("Runs per fleet size", 1, 20, 3)
    with col2:
        target_time = st.number_input("Target delivery time (min)", 5.0, 120.0, 30.0)
        max_time = st.number_input("Simulated minutes per run", 30, 1440, 180)
        target_orders = st.number_input("Orders per run (builtin profiles)", 1, 1000, 20)
    with col3:
        radius = st.number_input("Order radius (km)", 0.5, 20.0, 5.0)
        profile_ids = list(config.BUILTIN_PROFILES) + [
            f"{config.CUSTOM_PROFILE_PREFIX}{p.name}" for p in get_profiles()
        ]
        profile = st.selectbox("Demand profile", profile_ids, key="opt_profile")
        seed = st.number_input("Seed (0 = random)", 0, 1_000_000, 0)

    if not st.button("🚀 Run Optimization", use_container_width=True):
        return

    try:
        optimizer = WorkforceOptimizer(
            OptimizationConfig(
                min_agents=int(min_agents),
                max_agents=int(max_agents),
                runs_per_agent_count=int(runs),
                target_delivery_time_min=float(target_time),
                max_sim_time_min=int(max_time),
                target_orders_per_run=int(target_orders),
                order_radius_km=float(radius),
                demand_profile=profile,
                seed=int(seed) or None,
            ),
            params=sim.params,
            hub=DEFAULT_HUB,
            profiles=get_profiles(),
        )
    except ValueError as e:
        st.error(str(e))
        return

    progress_bar = st.progress(0.0)
    total = len(optimizer.config.fleet_sizes)
    done: List[int] = []

    def on_progress(result) -> None:
        done.append(result.agents)
        progress_bar.progress(len(done) / total, text=f"{result.agents} agents evaluated")

    with st.spinner("Running fleet-size sweep..."):
        outcome = optimizer.run(progress=on_progress)

    table = pd.DataFrame([r.to_dict() for r in outcome.results])
    if table.empty:
        st.warning("No fleet sizes were evaluated.")
        return

    recommendation = outcome.recommendation
    if recommendation is not None and recommendation.result is not None:
        st.success(f"Recommended fleet size: **{recommendation.agents} agents**")
        st.caption(recommendation.reason)
    else:
        st.error("No qualifying configuration found.")

    st.dataframe(table.set_index("agents"), use_container_width=True)
    st.line_chart(table.set_index("agents")[["avg_delivery_time_min", "avg_agent_utilization_pct"]])
    st.bar_chart(table.set_index("agents")[["avg_cost_per_order"]])


# =============================================================================
# MAIN
# =============================================================================

def main():
    st.title("🛵 Dark Store Delivery Simulator")
    st.caption("Quick-commerce last-mile simulation: dispatch, fatigue, traffic and costs")

    sim = get_simulation()
    render_sidebar(sim)

    live_tab, opt_tab = st.tabs(["Live Simulation", "Workforce Optimization"])
    with opt_tab:
        render_optimization_tab(sim)
    with live_tab:
        render_live_tab(sim)


if __name__ == "__main__":
    main()
