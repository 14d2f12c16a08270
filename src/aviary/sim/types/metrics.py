from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    repulsors: int
    neighbors_found: int
    average_speed: float
    active_behaviors: int
    tick_duration_ms: float = 0.0
