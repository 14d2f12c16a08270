from __future__ import annotations

import copy
import logging
from time import perf_counter
from typing import Any, Dict, List

from pygame.math import Vector2

from .agent import Agent, Repulsor
from .config import NEIGHBOR_RADIUS, Behavior, SimulationConfig, SteeringConfig, WorldBounds
from .rng import DeterministicRng
from .spatial_grid import BruteForceIndex, NeighborBuffers, create_neighbor_index
from ..systems import integrator, metrics as metrics_system, steering
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWorld
from ..utils.math2d import _heading_from_velocity

logger = logging.getLogger(__name__)


class World:
    """Agent store and simulation controller for one flock.

    Owns agents, repulsors and the steering configuration. Commands mutate the
    store between ticks; ``step`` advances every agent by one simultaneous update.
    """

    def __init__(self, config: SimulationConfig):
        self._config = config
        self._bounds = config.bounds
        self._steering = copy.deepcopy(config.steering)
        self._rng = DeterministicRng(config.seed)
        self._agent_index = create_neighbor_index(config.neighbor_index, config.cell_size)
        self._repulsor_index = BruteForceIndex()
        self._buffers = NeighborBuffers()
        self._agents: List[Agent] = []
        self._repulsors: List[Repulsor] = []
        self._accelerations: List[Vector2] = []
        self._next_id = 0
        self._next_repulsor_id = 0
        self._tick = 0
        self._metrics: TickMetrics | None = None
        self._bootstrap_population()

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def repulsors(self) -> List[Repulsor]:
        return self._repulsors

    @property
    def steering(self) -> SteeringConfig:
        return self._steering

    @property
    def bounds(self) -> WorldBounds:
        return self._bounds

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def reset(self) -> None:
        """Discard every agent and repulsor and respawn the initial population.

        The steering configuration (toggles and weights) is kept as is.
        """
        self._agents.clear()
        self._repulsors.clear()
        self._accelerations.clear()
        self._agent_index.clear()
        self._repulsor_index.clear()
        self._rng.reset()
        self._next_id = 0
        self._next_repulsor_id = 0
        self._tick = 0
        self._metrics = None
        self._bootstrap_population()
        logger.debug("World reset to %d agents", len(self._agents))

    def spawn_agent(self, position: Vector2 | tuple[float, float]) -> Agent:
        x, y = position
        velocity = self._rng.next_unit_circle()
        agent = Agent(
            id=self._next_id,
            position=Vector2(x, y),
            velocity=velocity,
            heading=_heading_from_velocity(velocity),
        )
        self._agents.append(agent)
        self._next_id += 1
        return agent

    def spawn_repulsor(self, position: Vector2 | tuple[float, float]) -> Repulsor:
        x, y = position
        repulsor = Repulsor(id=self._next_repulsor_id, position=Vector2(x, y))
        self._repulsors.append(repulsor)
        self._next_repulsor_id += 1
        logger.debug("Spawned repulsor %d at (%.1f, %.1f)", repulsor.id, x, y)
        return repulsor

    def toggle(self, behavior: Behavior | str) -> bool:
        enabled = self._steering.toggle(behavior)
        logger.debug("Behavior %s %s", Behavior.parse(behavior).value, "enabled" if enabled else "disabled")
        return enabled

    def set_weight(self, behavior: Behavior | str, weight: float) -> None:
        self._steering.settings(behavior).weight = float(weight)

    def step(self) -> TickMetrics:
        """Advance the whole population by one tick.

        Accelerations are computed for every agent against the pre-tick state and
        buffered; integration only starts once the buffer is complete.
        """
        start = perf_counter()
        agents = self._agents
        self._agent_index.rebuild(agents)
        self._repulsor_index.rebuild(self._repulsors)
        buffers = self._buffers
        buffers.reset_found()

        accelerations = self._accelerations
        accelerations.clear()
        for agent in agents:
            accelerations.append(
                steering.compute_acceleration(
                    agent, self._agent_index, self._repulsor_index, self._steering, buffers
                )
            )

        for agent, acceleration in zip(agents, accelerations):
            integrator.integrate(agent, acceleration, self._bounds)

        self._tick += 1
        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(
            self._tick,
            agents,
            len(self._repulsors),
            buffers.found,
            sum(1 for _ in self._steering.active_weights()),
            elapsed_ms,
        )
        self._metrics = metrics
        return metrics

    def neighbor_count(self, agent: Agent, radius: float = NEIGHBOR_RADIUS) -> int:
        """Agents strictly within ``radius`` of ``agent``, the agent itself included."""
        radius_sq = radius * radius
        pos = agent.position
        count = 0
        for other in self._agents:
            offset_x = other.position.x - pos.x
            offset_y = other.position.y - pos.y
            if offset_x * offset_x + offset_y * offset_y < radius_sq:
                count += 1
        return count

    def snapshot(self, include_density: bool = False) -> Snapshot:
        metrics = self._metrics if self._metrics is not None else self._snapshot_metrics_from_state()
        agents_payload = [self._agent_snapshot(agent, include_density) for agent in self._agents]
        repulsors_payload = [
            {"id": repulsor.id, "x": repulsor.position.x, "y": repulsor.position.y}
            for repulsor in self._repulsors
        ]
        return Snapshot(
            tick=self._tick,
            metrics=metrics,
            agents=agents_payload,
            repulsors=repulsors_payload,
            world=SnapshotWorld(
                width=self._bounds.width,
                height=self._bounds.height,
                agent_radius=self._bounds.margin,
            ),
            behaviors=self._steering.as_dict(),
            metadata=SnapshotMetadata(
                seed=self._config.seed,
                neighbor_index=self._config.neighbor_index,
                frame_interval=self._config.frame_interval,
                config_version=self._config.config_version,
            ),
        )

    def _bootstrap_population(self) -> None:
        origin = self._config.spawn_origin
        for _ in range(self._config.initial_population):
            self.spawn_agent(origin)

    def _agent_snapshot(self, agent: Agent, include_density: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": agent.id,
            "x": agent.position.x,
            "y": agent.position.y,
            "vx": agent.velocity.x,
            "vy": agent.velocity.y,
            "speed": agent.velocity.length(),
            "heading": agent.heading,
        }
        if include_density:
            payload["neighbors"] = self.neighbor_count(agent)
        return payload

    def _snapshot_metrics_from_state(self) -> TickMetrics:
        return metrics_system.create_metrics(
            self._tick,
            self._agents,
            len(self._repulsors),
            0,
            sum(1 for _ in self._steering.active_weights()),
            0.0,
        )
