from __future__ import annotations

import math

from pygame.math import Vector2


# Squared lengths below this count as zero; their direction is rounding noise.
ZERO_LENGTH_SQ = 1e-10


def _is_zero_xy_f(x: float, y: float) -> bool:
    return x * x + y * y < ZERO_LENGTH_SQ


def _with_magnitude_xy_f(x: float, y: float, magnitude: float) -> tuple[float, float]:
    """Rescale (x, y) to the given length; a (near) zero vector becomes exactly zero."""
    magnitude_sq = x * x + y * y
    if magnitude_sq < ZERO_LENGTH_SQ:
        return 0.0, 0.0
    scale = magnitude / math.sqrt(magnitude_sq)
    return x * scale, y * scale


def _clamp_length_xy_f(x: float, y: float, max_length: float) -> tuple[float, float]:
    if max_length <= 0.0:
        return 0.0, 0.0
    magnitude_sq = x * x + y * y
    max_sq = max_length * max_length
    if magnitude_sq <= max_sq:
        return x, y
    inv = max_length / math.sqrt(magnitude_sq)
    return x * inv, y * inv


def _heading_from_velocity(vector: Vector2) -> float:
    if vector.length_squared() < 1e-12:
        return 0.0
    return math.atan2(vector.y, vector.x)
