from __future__ import annotations

import random

import pytest
from pygame.math import Vector2

from aviary.sim.core.agent import Repulsor
from aviary.sim.core.config import MAX_FORCE, BEHAVIOR_ORDER, Behavior, BehaviorSettings, SteeringConfig
from aviary.sim.core.spatial_grid import BruteForceIndex, NeighborBuffers
from aviary.sim.systems import steering


def _index(items) -> BruteForceIndex:
    index = BruteForceIndex()
    index.rebuild(items)
    return index


def _only(behavior: Behavior) -> SteeringConfig:
    config = SteeringConfig()
    for other in BEHAVIOR_ORDER:
        if other is not behavior:
            config.settings(other).enabled = False
    return config


class RecordingIndex(BruteForceIndex):
    def __init__(self) -> None:
        super().__init__()
        self.radii: list[float] = []

    def collect(self, position, radius, out) -> None:
        self.radii.append(radius)
        super().collect(position, radius, out)


@pytest.fixture
def crowd(make_agent):
    rng = random.Random(5)
    agents = [
        make_agent(rng.uniform(-40, 40), rng.uniform(-40, 40), rng.uniform(-2, 2), rng.uniform(-2, 2))
        for _ in range(40)
    ]
    repulsors = [Repulsor(id=i, position=Vector2(rng.uniform(-40, 40), rng.uniform(-40, 40))) for i in range(4)]
    return agents, repulsors


def test_each_behavior_force_is_bounded(crowd):
    agents, repulsors = crowd
    agent_index = _index(agents)
    repulsor_index = _index(repulsors)
    buffers = NeighborBuffers()

    for agent in agents:
        for behavior in BEHAVIOR_ORDER:
            force = steering.behavior_force(behavior, agent, agent_index, repulsor_index, buffers)
            assert force.length() <= MAX_FORCE + 1e-12


def test_isolated_agent_gets_no_acceleration(make_agent):
    agent = make_agent(0.0, 0.0, 1.0, 0.0)
    far = make_agent(200.0, 0.0, -1.0, 0.0)
    agents = _index([agent, far])
    repulsors = _index([Repulsor(id=0, position=Vector2(0.0, 60.0))])
    buffers = NeighborBuffers()

    assert steering.alignment(agent, agents, buffers) == Vector2()
    assert steering.cohesion(agent, agents, buffers) == Vector2()
    assert steering.repulsion(agent, repulsors, buffers) == Vector2()
    acceleration = steering.compute_acceleration(agent, agents, repulsors, SteeringConfig(), buffers)
    assert acceleration.x == 0.0 and acceleration.y == 0.0


def test_separation_ignores_self_and_coincident_agents(make_agent):
    agent = make_agent(3.0, 4.0, 1.0, 0.0)
    twin = make_agent(3.0, 4.0, 0.0, 1.0)
    buffers = NeighborBuffers()

    alone = steering.separation(agent, _index([agent]), buffers)
    assert alone.x == 0.0 and alone.y == 0.0

    stacked = steering.separation(agent, _index([agent, twin]), buffers)
    assert stacked.x == 0.0 and stacked.y == 0.0


def test_separation_steers_away_from_close_neighbor(make_agent):
    agent = make_agent(0.0, 0.0, 0.0, 1.0)
    neighbor = make_agent(0.0, 10.0)
    force = steering.separation(agent, _index([agent, neighbor]), NeighborBuffers())

    assert force.y < 0.0
    assert force.length() == pytest.approx(MAX_FORCE)


def test_separation_radius_is_exclusive(make_agent):
    agent = make_agent(0.0, 0.0, 1.0, 0.0)
    edge = make_agent(25.0, 0.0)
    force = steering.separation(agent, _index([agent, edge]), NeighborBuffers())

    assert force == Vector2()


def test_repulsion_points_away_from_repulsor(make_agent):
    agent = make_agent(0.0, 0.0, 1.0, 0.0)
    repulsors = _index([Repulsor(id=0, position=Vector2(10.0, 0.0))])
    config = _only(Behavior.REPULSION)

    acceleration = steering.compute_acceleration(agent, _index([agent]), repulsors, config, NeighborBuffers())

    assert acceleration.x < 0.0
    assert acceleration.y == pytest.approx(0.0)


def test_cohesion_with_centroid_on_agent_is_zero(make_agent):
    agent = make_agent(0.0, 0.0, 1.0, 0.0)
    left = make_agent(-10.0, 0.0)
    right = make_agent(10.0, 0.0)
    force = steering.cohesion(agent, _index([agent, left, right]), NeighborBuffers())

    assert force.x == 0.0 and force.y == 0.0


def test_cohesion_with_centroid_within_rounding_of_agent_is_zero(make_agent):
    # The centroid is 1e-7 away: far below any meaningful direction.
    agent = make_agent(1e-7, 0.0, 1.0, 0.0)
    left = make_agent(-10.0, 0.0)
    right = make_agent(10.0, 0.0)
    force = steering.cohesion(agent, _index([agent, left, right]), NeighborBuffers())

    assert force.x == 0.0 and force.y == 0.0


def test_disabling_a_behavior_removes_exactly_its_contribution(crowd):
    agents, repulsors = crowd
    agent_index = _index(agents)
    repulsor_index = _index(repulsors)
    buffers = NeighborBuffers()

    for behavior in BEHAVIOR_ORDER:
        without = SteeringConfig()
        without.toggle(behavior)
        only = _only(behavior)
        for agent in agents:
            full = steering.compute_acceleration(agent, agent_index, repulsor_index, SteeringConfig(), buffers)
            rest = steering.compute_acceleration(agent, agent_index, repulsor_index, without, buffers)
            single = steering.compute_acceleration(agent, agent_index, repulsor_index, only, buffers)
            assert full.x - single.x == pytest.approx(rest.x, abs=1e-12)
            assert full.y - single.y == pytest.approx(rest.y, abs=1e-12)


def test_weights_scale_clamped_forces(make_agent):
    agent = make_agent(0.0, 0.0, 0.0, 1.0)
    neighbor = make_agent(0.0, 10.0)
    agents = _index([agent, neighbor])
    repulsors = _index([])
    buffers = NeighborBuffers()
    config = _only(Behavior.SEPARATION)
    config.separation.weight = 4.0

    acceleration = steering.compute_acceleration(agent, agents, repulsors, config, buffers)

    # Clamp first, weight second: the weighted result may exceed MAX_FORCE.
    assert acceleration.length() == pytest.approx(4.0 * MAX_FORCE)


@pytest.mark.parametrize("settings", [BehaviorSettings(enabled=False, weight=1.0), BehaviorSettings(weight=0.0), BehaviorSettings(weight=-2.0)])
def test_inactive_behavior_skips_neighbor_scan(make_agent, settings):
    agent = make_agent(0.0, 0.0, 1.0, 0.0)
    agents = RecordingIndex()
    agents.rebuild([agent, make_agent(5.0, 0.0)])
    repulsors = _index([])
    config = SteeringConfig(separation=settings)

    steering.compute_acceleration(agent, agents, repulsors, config, NeighborBuffers())

    assert 25.0 not in agents.radii
    assert agents.radii == [50.0, 50.0]


def test_inactive_behaviors_contribute_zero(make_agent):
    agent = make_agent(0.0, 0.0, 1.0, 0.0)
    agents = RecordingIndex()
    agents.rebuild([agent, make_agent(5.0, 0.0, 0.0, 1.0)])
    config = SteeringConfig()
    for behavior in BEHAVIOR_ORDER:
        config.settings(behavior).enabled = False

    acceleration = steering.compute_acceleration(agent, agents, _index([]), config, NeighborBuffers())

    assert acceleration.x == 0.0 and acceleration.y == 0.0
    assert agents.radii == []
