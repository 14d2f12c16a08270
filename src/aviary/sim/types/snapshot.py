from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: TickMetrics
    agents: List[Dict[str, Any]]
    repulsors: List[Dict[str, Any]]
    world: "SnapshotWorld"
    behaviors: Dict[str, Dict[str, Any]]
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotWorld:
    width: float
    height: float
    agent_radius: float


@dataclass(slots=True)
class SnapshotMetadata:
    seed: int
    neighbor_index: str
    frame_interval: float
    config_version: str
