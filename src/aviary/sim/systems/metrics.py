from __future__ import annotations

import math
from typing import Sequence

from ..core.agent import Agent
from ..types.metrics import TickMetrics


def average_speed(agents: Sequence[Agent]) -> float:
    if not agents:
        return 0.0
    return sum(math.hypot(agent.velocity.x, agent.velocity.y) for agent in agents) / len(agents)


def create_metrics(
    tick: int,
    agents: Sequence[Agent],
    repulsor_count: int,
    neighbors_found: int,
    active_behaviors: int,
    duration_ms: float,
) -> TickMetrics:
    return TickMetrics(
        tick=tick,
        population=len(agents),
        repulsors=repulsor_count,
        neighbors_found=neighbors_found,
        average_speed=average_speed(agents),
        active_behaviors=active_behaviors,
        tick_duration_ms=duration_ms,
    )
