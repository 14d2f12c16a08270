from __future__ import annotations

import math
import random

from pygame.math import Vector2


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_angle(self) -> float:
        return self._random.uniform(0.0, 2.0 * math.pi)

    def next_unit_circle(self) -> Vector2:
        angle = self.next_angle()
        return Vector2(math.cos(angle), math.sin(angle))
