from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, Tuple

import yaml

MAX_SPEED = 2.0
MAX_FORCE = 0.03
SEPARATION_RADIUS = 25.0
NEIGHBOR_RADIUS = 50.0
REPULSION_RADIUS = 50.0
DEFAULT_INITIAL_POPULATION = 150

NEIGHBOR_INDEX_KINDS = ("brute_force", "grid")


class Behavior(str, Enum):
    SEPARATION = "separation"
    ALIGNMENT = "alignment"
    COHESION = "cohesion"
    REPULSION = "repulsion"

    @classmethod
    def parse(cls, value: "Behavior | str") -> "Behavior":
        if isinstance(value, Behavior):
            return value
        try:
            return cls(str(value).lower().strip())
        except ValueError:
            raise ValueError(f"Unknown behavior: {value}") from None


# Combination order; keeps the weighted sum deterministic.
BEHAVIOR_ORDER: Tuple[Behavior, ...] = (
    Behavior.SEPARATION,
    Behavior.ALIGNMENT,
    Behavior.COHESION,
    Behavior.REPULSION,
)


@dataclass
class BehaviorSettings:
    enabled: bool = True
    weight: float = 1.0

    @property
    def active(self) -> bool:
        return self.enabled and self.weight > 0.0


@dataclass
class SteeringConfig:
    separation: BehaviorSettings = field(default_factory=lambda: BehaviorSettings(weight=1.5))
    alignment: BehaviorSettings = field(default_factory=BehaviorSettings)
    cohesion: BehaviorSettings = field(default_factory=BehaviorSettings)
    repulsion: BehaviorSettings = field(default_factory=lambda: BehaviorSettings(weight=1.5))

    def settings(self, behavior: Behavior | str) -> BehaviorSettings:
        return getattr(self, Behavior.parse(behavior).value)

    def toggle(self, behavior: Behavior | str) -> bool:
        settings = self.settings(behavior)
        settings.enabled = not settings.enabled
        return settings.enabled

    def active_weights(self) -> Iterator[Tuple[Behavior, float]]:
        """Yield (behavior, weight) for every behavior that contributes, in combination order."""
        for behavior in BEHAVIOR_ORDER:
            settings = self.settings(behavior)
            if settings.active:
                yield behavior, settings.weight

    def as_dict(self) -> dict[str, dict[str, float | bool]]:
        return {
            behavior.value: {"enabled": self.settings(behavior).enabled, "weight": self.settings(behavior).weight}
            for behavior in BEHAVIOR_ORDER
        }


@dataclass(frozen=True)
class WorldBounds:
    width: float
    height: float
    margin: float

    @property
    def max_x(self) -> float:
        return self.width / 2.0 + self.margin

    @property
    def max_y(self) -> float:
        return self.height / 2.0 + self.margin


@dataclass
class SimulationConfig:
    width: float = 800.0
    height: float = 600.0
    agent_radius: float = 4.0
    initial_population: int = DEFAULT_INITIAL_POPULATION
    spawn_origin: tuple[float, float] = (0.0, 0.0)
    seed: int = 42
    neighbor_index: str = "brute_force"
    cell_size: float = NEIGHBOR_RADIUS
    frame_interval: float = 1.0 / 60.0
    config_version: str = "v1"
    steering: SteeringConfig = field(default_factory=SteeringConfig)

    @property
    def bounds(self) -> WorldBounds:
        return WorldBounds(width=self.width, height=self.height, margin=self.agent_radius)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


def load_config(raw: dict) -> SimulationConfig:
    def _settings(name: str, default: BehaviorSettings) -> BehaviorSettings:
        values = steering_raw.get(name, {}) or {}
        return BehaviorSettings(
            enabled=bool(values.get("enabled", default.enabled)),
            weight=float(values.get("weight", default.weight)),
        )

    steering_raw = raw.get("steering", {}) or {}
    unknown = set(steering_raw) - {behavior.value for behavior in BEHAVIOR_ORDER}
    if unknown:
        raise ValueError(f"Unknown behavior(s) in steering config: {', '.join(sorted(unknown))}")
    defaults = SteeringConfig()
    steering = SteeringConfig(
        separation=_settings("separation", defaults.separation),
        alignment=_settings("alignment", defaults.alignment),
        cohesion=_settings("cohesion", defaults.cohesion),
        repulsion=_settings("repulsion", defaults.repulsion),
    )

    sim_values = {k: v for k, v in raw.items() if k != "steering"}
    if "spawn_origin" in sim_values:
        origin = sim_values["spawn_origin"]
        if not isinstance(origin, (tuple, list)) or len(origin) != 2:
            raise ValueError(f"spawn_origin must be a pair, got {origin!r}")
        sim_values["spawn_origin"] = (float(origin[0]), float(origin[1]))
    index_kind = sim_values.get("neighbor_index", "brute_force")
    if index_kind not in NEIGHBOR_INDEX_KINDS:
        raise ValueError(f"Unknown neighbor index: {index_kind}")
    return SimulationConfig(steering=steering, **sim_values)
