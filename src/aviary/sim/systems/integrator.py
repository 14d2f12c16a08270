from __future__ import annotations

from pygame.math import Vector2

from ..core.agent import Agent
from ..core.config import MAX_SPEED, WorldBounds
from ..utils.math2d import _clamp_length_xy_f, _heading_from_velocity


def wrap_axis(value: float, limit: float) -> float:
    """Toroidal wrap on one axis: leaving past +/-limit re-enters exactly at the opposite limit."""
    if value < -limit:
        return limit
    if value > limit:
        return -limit
    return value


def wrap_position(x: float, y: float, bounds: WorldBounds) -> tuple[float, float]:
    return wrap_axis(x, bounds.max_x), wrap_axis(y, bounds.max_y)


def integrate(agent: Agent, acceleration: Vector2, bounds: WorldBounds) -> None:
    """Advance one agent by a unit step; no dt scaling."""
    vel_x, vel_y = _clamp_length_xy_f(
        agent.velocity.x + acceleration.x,
        agent.velocity.y + acceleration.y,
        MAX_SPEED,
    )
    agent.velocity.update(vel_x, vel_y)
    pos_x, pos_y = wrap_position(agent.position.x + vel_x, agent.position.y + vel_y, bounds)
    agent.position.update(pos_x, pos_y)
    if agent.velocity.length_squared() > 1e-8:
        agent.heading = _heading_from_velocity(agent.velocity)
