from __future__ import annotations

from dataclasses import dataclass

from pygame.math import Vector2


@dataclass(slots=True)
class Agent:
    id: int
    position: Vector2
    velocity: Vector2
    heading: float = 0.0


@dataclass(slots=True)
class Repulsor:
    id: int
    position: Vector2
