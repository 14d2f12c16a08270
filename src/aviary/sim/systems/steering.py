from __future__ import annotations

from pygame.math import Vector2

from ..core.agent import Agent
from ..core.config import (
    MAX_FORCE,
    MAX_SPEED,
    NEIGHBOR_RADIUS,
    REPULSION_RADIUS,
    SEPARATION_RADIUS,
    Behavior,
    SteeringConfig,
)
from ..core.spatial_grid import NeighborBuffers, NeighborIndex
from ..utils.math2d import _clamp_length_xy_f, _is_zero_xy_f, _with_magnitude_xy_f


def _steer(desired_x: float, desired_y: float, velocity: Vector2) -> Vector2:
    """Reynolds steering: desired direction at full speed, minus velocity, limited to MAX_FORCE."""
    if _is_zero_xy_f(desired_x, desired_y):
        return Vector2()
    desired_x, desired_y = _with_magnitude_xy_f(desired_x, desired_y, MAX_SPEED)
    steer_x, steer_y = _clamp_length_xy_f(desired_x - velocity.x, desired_y - velocity.y, MAX_FORCE)
    return Vector2(steer_x, steer_y)


def separation(agent: Agent, agents: NeighborIndex, buffers: NeighborBuffers) -> Vector2:
    agents.collect(agent.position, SEPARATION_RADIUS, buffers)
    count = len(buffers.items)
    if count == 0:
        return Vector2()
    steer_x = 0.0
    steer_y = 0.0
    # Unit vector away from the neighbor divided by distance: -offset / dist^2.
    for offset, dist_sq in zip(buffers.offsets, buffers.dist_sq):
        steer_x -= offset.x / dist_sq
        steer_y -= offset.y / dist_sq
    return _steer(steer_x / count, steer_y / count, agent.velocity)


def alignment(agent: Agent, agents: NeighborIndex, buffers: NeighborBuffers) -> Vector2:
    agents.collect(agent.position, NEIGHBOR_RADIUS, buffers)
    count = len(buffers.items)
    if count == 0:
        return Vector2()
    sum_x = 0.0
    sum_y = 0.0
    for other in buffers.items:
        sum_x += other.velocity.x
        sum_y += other.velocity.y
    return _steer(sum_x / count, sum_y / count, agent.velocity)


def cohesion(agent: Agent, agents: NeighborIndex, buffers: NeighborBuffers) -> Vector2:
    agents.collect(agent.position, NEIGHBOR_RADIUS, buffers)
    count = len(buffers.items)
    if count == 0:
        return Vector2()
    sum_x = 0.0
    sum_y = 0.0
    for other in buffers.items:
        sum_x += other.position.x
        sum_y += other.position.y
    return _steer(sum_x / count - agent.position.x, sum_y / count - agent.position.y, agent.velocity)


def repulsion(agent: Agent, repulsors: NeighborIndex, buffers: NeighborBuffers) -> Vector2:
    repulsors.collect(agent.position, REPULSION_RADIUS, buffers)
    count = len(buffers.items)
    if count == 0:
        return Vector2()
    sum_x = 0.0
    sum_y = 0.0
    for repulsor in buffers.items:
        sum_x += repulsor.position.x
        sum_y += repulsor.position.y
    return _steer(agent.position.x - sum_x / count, agent.position.y - sum_y / count, agent.velocity)


def behavior_force(
    behavior: Behavior,
    agent: Agent,
    agents: NeighborIndex,
    repulsors: NeighborIndex,
    buffers: NeighborBuffers,
) -> Vector2:
    """Unweighted steering force of a single behavior; magnitude never exceeds MAX_FORCE."""
    if behavior is Behavior.SEPARATION:
        return separation(agent, agents, buffers)
    if behavior is Behavior.ALIGNMENT:
        return alignment(agent, agents, buffers)
    if behavior is Behavior.COHESION:
        return cohesion(agent, agents, buffers)
    return repulsion(agent, repulsors, buffers)


def compute_acceleration(
    agent: Agent,
    agents: NeighborIndex,
    repulsors: NeighborIndex,
    steering: SteeringConfig,
    buffers: NeighborBuffers,
) -> Vector2:
    """Weighted sum of the active behaviors for one agent.

    Inactive behaviors (disabled or weight <= 0) are skipped before their neighbor
    scan runs. Each force is clamped to MAX_FORCE before it is weighted.
    """
    accel_x = 0.0
    accel_y = 0.0
    for behavior, weight in steering.active_weights():
        force = behavior_force(behavior, agent, agents, repulsors, buffers)
        accel_x += force.x * weight
        accel_y += force.y * weight
    return Vector2(accel_x, accel_y)
