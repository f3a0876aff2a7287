import pytest

from darkstore_sim import dispatch
from darkstore_sim.models import AgentStatus, OrderStatus


def test_travel_minutes():
    assert dispatch.travel_minutes(5, 20, 1.0) + 5 == pytest.approx(20.0)
    assert dispatch.travel_minutes(5, 20, 0.5) == pytest.approx(30.0)
    assert dispatch.travel_minutes(5, 0, 1.0) == float("inf")


def test_eta_is_two_leg_estimate(make_world):
    world = make_world()
    agent = world.agents[0]
    agent.location = (world.hub[0] + 0.01, world.hub[1])
    target = (world.hub[0] - 0.01, world.hub[1])

    eta = dispatch.estimate_eta(agent, target, world.hub, 1.0, 5.0)
    d = 2 * 1.11195
    assert eta == pytest.approx(d / 30 * 60 + 5, rel=1e-3)


def test_eta_scales_with_fatigue(make_world):
    world = make_world()
    agent = world.agents[0]
    target = (world.hub[0] + 0.02, world.hub[1])
    fresh = dispatch.estimate_eta(agent, target, world.hub, 1.0, 0.0)
    agent.fatigue_factor = 0.5
    assert dispatch.estimate_eta(agent, target, world.hub, 1.0, 0.0) == pytest.approx(fresh * 2)


def test_equal_eta_picks_lowest_id(make_world):
    world = make_world(agents=3)
    order = world.add_order((world.hub[0] + 0.01, world.hub[1]))
    agent, _ = dispatch.select_agent(order.location, world.agents, world.hub, 1.0, 5.0)
    assert agent.agent_id == 1


def test_nearest_agent_wins(make_world):
    world = make_world(agents=2)
    world.agents[0].location = (world.hub[0] + 0.05, world.hub[1])
    order = world.add_order((world.hub[0] + 0.01, world.hub[1]))
    agent, _ = dispatch.select_agent(order.location, world.agents, world.hub, 1.0, 5.0)
    assert agent.agent_id == 2


def test_assignment_side_effects(make_world):
    world = make_world()
    order = world.add_order((world.hub[0] + 0.01, world.hub[1]))
    world.current_time = 3

    assigned = dispatch.assign_pending_orders(world)

    agent = world.agents[0]
    assert assigned == [order]
    assert order.status is OrderStatus.ASSIGNED
    assert order.assigned_agent_id == agent.agent_id
    assert order.assignment_time == 3
    assert order.wait_time == 3
    assert order.eta_minutes == pytest.approx(dispatch.estimate_eta(agent, order.location, world.hub, 1.0, 5.0))
    assert agent.status is AgentStatus.TO_STORE
    assert agent.assigned_order_id == order.order_id
    assert agent.route_path[0] == agent.location and agent.route_path[-1] == world.hub
    assert world.stats.count_assigned_orders == 1
    assert world.stats.sum_order_wait_times == 3


def test_orders_without_agent_stay_pending(make_world):
    world = make_world(agents=1)
    first = world.add_order((world.hub[0] + 0.01, world.hub[1]))
    second = world.add_order((world.hub[0] + 0.02, world.hub[1]))

    assert dispatch.assign_pending_orders(world) == [first]
    assert second.status is OrderStatus.PENDING
    assert dispatch.assign_pending_orders(world) == []
    assert world.pending_orders() == [second]
