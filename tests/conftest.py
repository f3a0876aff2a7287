import os
import random
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from darkstore_sim.city import DEFAULT_HUB
from darkstore_sim.config import SimulationParameters
from darkstore_sim.engine import SimulationWorld

SQUARE = [(76.70, 30.70), (76.80, 30.70), (76.80, 30.80), (76.70, 30.80), (76.70, 30.70)]
"""Axis-aligned test ring in (lng, lat) order."""


def no_arrivals(world):
    return []


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def params():
    """Deterministic parameters: fixed 30 km/h speed, no jitter, direct legs."""
    return SimulationParameters(
        num_agents=1,
        agent_min_speed_kmph=30.0,
        agent_max_speed_kmph=30.0,
        handling_time_min=5.0,
        route_waypoints=0,
        spawn_jitter_deg=0.0,
    )


@pytest.fixture
def make_world(params):
    def _make(agents=1, seed=42, **overrides):
        run_params = SimulationParameters(**{**params.as_dict(), **overrides})
        world = SimulationWorld(run_params, hub=DEFAULT_HUB, rng=random.Random(seed))
        world.spawn_agents(agents)
        return world
    return _make
