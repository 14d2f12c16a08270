from __future__ import annotations

import math
from typing import Dict, Iterable, List, Protocol, Tuple, Union

from pygame.math import Vector2


class Positioned(Protocol):
    position: Vector2


class NeighborBuffers:
    """Reusable output buffers for neighbor queries.

    After ``collect`` the three lists are parallel: the neighbor, its offset from
    the query position and the squared distance. ``found`` accumulates the total
    number of neighbors returned since the last ``reset_found``.
    """

    __slots__ = ("items", "offsets", "dist_sq", "found")

    def __init__(self) -> None:
        self.items: List[Positioned] = []
        self.offsets: List[Vector2] = []
        self.dist_sq: List[float] = []
        self.found = 0

    def reset_found(self) -> None:
        self.found = 0

    def _begin(self) -> None:
        self.items.clear()
        self.dist_sq.clear()

    def _append(self, item: Positioned, offset_x: float, offset_y: float, dist_sq: float) -> None:
        count = len(self.items)
        self.items.append(item)
        if count < len(self.offsets):
            self.offsets[count].update(offset_x, offset_y)
        else:
            self.offsets.append(Vector2(offset_x, offset_y))
        self.dist_sq.append(dist_sq)

    def _finish(self) -> None:
        count = len(self.items)
        del self.offsets[count:]
        self.found += count


class BruteForceIndex:
    """Scans every item; the reference neighbor enumeration."""

    def __init__(self) -> None:
        self._items: List[Positioned] = []

    def rebuild(self, items: Iterable[Positioned]) -> None:
        self._items = list(items)

    def clear(self) -> None:
        self._items = []

    def collect(self, position: Vector2, radius: float, out: NeighborBuffers) -> None:
        out._begin()
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y
        for item in self._items:
            pos = item.position
            offset_x = pos.x - pos_x
            offset_y = pos.y - pos_y
            dist_sq = offset_x * offset_x + offset_y * offset_y
            if 0.0 < dist_sq < radius_sq:
                out._append(item, offset_x, offset_y, dist_sq)
        out._finish()


class SpatialGrid:
    """Uniform bucket grid keyed by (floor(x / cell), floor(y / cell)).

    Returns the same neighbors as BruteForceIndex for any radius, in the same
    (insertion) order, so float sums over the results are bit-identical.
    """

    def __init__(self, cell_size: float) -> None:
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List[Tuple[int, Positioned]]] = {}
        self._active_keys: List[Tuple[int, int]] = []
        self._inserted = 0

    def build_neighbor_cell_offsets(self, radius: float) -> List[Tuple[int, int]]:
        cell_range = int(math.ceil(radius / self._cell_size))
        return [(dx, dy) for dx in range(-cell_range, cell_range + 1) for dy in range(-cell_range, cell_range + 1)]

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()
        self._inserted = 0

    def rebuild(self, items: Iterable[Positioned]) -> None:
        self.clear()
        for item in items:
            self.insert(item)

    def insert(self, item: Positioned) -> None:
        key = self._cell_key(item.position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared by the last rebuild; mark it active again.
            self._active_keys.append(key)
        bucket.append((self._inserted, item))
        self._inserted += 1

    def collect(self, position: Vector2, radius: float, out: NeighborBuffers) -> None:
        out._begin()
        base_key = self._cell_key(position)
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y
        cells = self._cells
        matches: List[Tuple[int, Positioned, float, float, float]] = []

        for dx, dy in self.build_neighbor_cell_offsets(radius):
            bucket = cells.get((base_key[0] + dx, base_key[1] + dy))
            if not bucket:
                continue
            for order, item in bucket:
                pos = item.position
                offset_x = pos.x - pos_x
                offset_y = pos.y - pos_y
                dist_sq = offset_x * offset_x + offset_y * offset_y
                if 0.0 < dist_sq < radius_sq:
                    matches.append((order, item, offset_x, offset_y, dist_sq))

        matches.sort(key=lambda match: match[0])
        for _, item, offset_x, offset_y, dist_sq in matches:
            out._append(item, offset_x, offset_y, dist_sq)
        out._finish()

    def _cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))


NeighborIndex = Union[BruteForceIndex, SpatialGrid]


def create_neighbor_index(kind: str, cell_size: float) -> NeighborIndex:
    if kind == "brute_force":
        return BruteForceIndex()
    if kind == "grid":
        return SpatialGrid(cell_size)
    raise ValueError(f"Unknown neighbor index: {kind}")
