import pytest

from darkstore_sim.config import SimulationParameters
from darkstore_sim.engine import TickResult
from darkstore_sim.models import DemandProfile, UniformZone
from darkstore_sim.simulation import InteractiveSimulation, SimulationStatus


@pytest.fixture
def sim():
    return InteractiveSimulation(SimulationParameters(num_agents=3), seed=11)


def test_starts_idle_and_ignores_ticks(sim):
    assert sim.status is SimulationStatus.IDLE
    assert sim.tick() is None
    assert sim.current_time == 0
    assert len(sim.world.agents) == 3


def test_start_pause_resume(sim):
    sim.start()
    assert sim.status is SimulationStatus.RUNNING
    result = sim.tick()
    assert isinstance(result, TickResult)
    assert result.time == 1

    assert sim.pause()
    assert sim.tick() is None
    assert sim.current_time == 1
    assert not sim.pause()

    sim.start()
    sim.tick()
    assert sim.current_time == 2


def test_reset_while_running(sim):
    sim.run(60)
    assert sim.world.stats.total_orders_generated > 0

    sim.set_parameter("num_agents", 6)
    sim.reset()

    assert sim.status is SimulationStatus.IDLE
    assert sim.current_time == 0
    assert len(sim.world.agents) == 6
    assert sim.world.orders == {}
    stats = sim.get_results()["statistics"]
    assert stats["total_orders_generated"] == 0
    assert stats["total_orders_delivered"] == 0
    assert stats["total_distance_km"] == 0


def test_tick_is_not_reentrant(sim):
    sim.add_listener(lambda snapshot: sim.tick())
    sim.start()
    with pytest.raises(RuntimeError):
        sim.tick()


def test_reset_rejected_during_tick(sim):
    sim.add_listener(lambda snapshot: sim.reset())
    sim.start()
    with pytest.raises(RuntimeError):
        sim.tick()


def test_listener_receives_snapshot(sim):
    seen = []
    sim.add_listener(seen.append)
    sim.run(3)
    assert [s["time"] for s in seen] == [1, 2, 3]
    assert {"agents", "orders", "routes", "history", "hub"} <= set(seen[-1])


def test_set_parameter_validation(sim):
    assert not sim.set_parameter("warp_speed", 9)
    assert not sim.set_parameter("order_generation_probability", 1.5)
    assert not sim.set_parameter("num_agents", 0)
    assert not sim.set_parameter("handling_time_min", "abc")
    assert not sim.set_parameter("cost_per_km", -1)
    assert sim.get_parameter("handling_time_min") == 5.0

    assert sim.set_parameter("handling_time_min", "7.5")
    assert sim.get_parameter("handling_time_min") == 7.5
    assert sim.get_parameter("warp_speed") is None


def test_order_frequency_levels():
    params = SimulationParameters()
    assert params.set_order_frequency(5)
    assert params.order_generation_probability == 0.70
    assert not params.set_order_frequency(9)


def test_get_results_is_pure(sim):
    sim.run(40)
    assert sim.get_results() == sim.get_results()
    assert sim.current_time == 40


def test_seeded_runs_are_reproducible():
    first = InteractiveSimulation(SimulationParameters(num_agents=2), seed=5).run(90)
    second = InteractiveSimulation(SimulationParameters(num_agents=2), seed=5).run(90)
    assert first["statistics"] == second["statistics"]


def test_chart_history_capped(sim):
    sim.run(150)
    history = sim.snapshot()["history"]
    assert len(history["time"]) == 100
    assert history["time"][-1] == 150


def test_custom_profile_selection():
    profile = DemandProfile("everywhere", [UniformZone(min_orders=30, max_orders=30)])
    sim = InteractiveSimulation(SimulationParameters(order_generation_probability=1.0),
                                profiles=[profile], seed=3)
    assert sim.set_parameter("order_generation_profile", "custom_everywhere")
    sim.run(10)
    assert sim.world.stats.total_orders_generated == 10


def test_unknown_profile_generates_nothing(sim):
    sim.set_parameter("order_generation_profile", "custom_missing")
    sim.set_parameter("order_generation_probability", 1.0)
    sim.run(10)
    assert sim.world.stats.total_orders_generated == 0
