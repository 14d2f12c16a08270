from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional, Sequence

from ..sim.core.config import SimulationConfig
from ..sim.core.world import World
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

_BASIC_HEADER = [
    "tick",
    "population",
    "repulsors",
    "neighbors_found",
    "avg_speed",
    "tick_ms",
]

_DETAILED_HEADER = [
    "tick",
    "population",
    "repulsors",
    "neighbors_found",
    "avg_speed",
    "tick_ms",
    "active_behaviors",
    "neighbors_found_per_agent",
    "tick_ms_per_agent",
    "max_speed",
    "centroid_x",
    "centroid_y",
    "polarization",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.repulsors,
        metrics.neighbors_found,
        f"{metrics.average_speed:.4f}",
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(world: World, metrics: TickMetrics, tick_ms: float) -> list[object]:
    population = metrics.population
    if population <= 0:
        neighbors_found_per_agent = 0.0
        tick_ms_per_agent = 0.0
        max_speed = 0.0
        centroid_x = 0.0
        centroid_y = 0.0
        polarization = 0.0
    else:
        neighbors_found_per_agent = metrics.neighbors_found / population
        tick_ms_per_agent = tick_ms / population
        max_speed = 0.0
        sum_x = 0.0
        sum_y = 0.0
        heading_x = 0.0
        heading_y = 0.0
        for agent in world.agents:
            velocity = agent.velocity
            speed = math.hypot(velocity.x, velocity.y)
            if speed > max_speed:
                max_speed = speed
            if speed > 1e-9:
                heading_x += velocity.x / speed
                heading_y += velocity.y / speed
            sum_x += agent.position.x
            sum_y += agent.position.y
        centroid_x = sum_x / population
        centroid_y = sum_y / population
        # 1.0 when every agent heads the same way, ~0.0 for random headings.
        polarization = math.hypot(heading_x, heading_y) / population

    return [
        metrics.tick,
        population,
        metrics.repulsors,
        metrics.neighbors_found,
        f"{metrics.average_speed:.4f}",
        f"{tick_ms:.3f}",
        metrics.active_behaviors,
        f"{neighbors_found_per_agent:.4f}",
        f"{tick_ms_per_agent:.4f}",
        f"{max_speed:.4f}",
        f"{centroid_x:.4f}",
        f"{centroid_y:.4f}",
        f"{polarization:.4f}",
    ]


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0}
    return {
        "min": float(min(values)),
        "max": float(max(values)),
        "avg": float(sum(values) / len(values)),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    config_path: Optional[Path] = None,
    repulsors: Sequence[tuple[float, float]] = (),
) -> World:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    world = World(config)
    for position in repulsors:
        world.spawn_repulsor(position)

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    speed_series: list[float] = []
    neighbors_found_series: list[float] = []

    try:
        for _ in range(steps):
            metrics = world.step()
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            tick_ms_series.append(tick_ms)
            speed_series.append(metrics.average_speed)
            neighbors_found_series.append(float(metrics.neighbors_found))
            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(world, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()

    logger.info(
        "Ran %d steps with %d agents (avg tick %.3f ms)",
        steps,
        len(world.agents),
        _summary_stats(tick_ms_series)["avg"],
    )

    if summary_path:
        summary = {
            "steps": steps,
            "seed": config.seed,
            "population": len(world.agents),
            "repulsors": len(world.repulsors),
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "neighbor_index": config.neighbor_index,
            "behaviors": world.steering.as_dict(),
            "tick_ms": _summary_stats(tick_ms_series),
            "average_speed": _summary_stats(speed_series),
            "neighbors_found": _summary_stats(neighbors_found_series),
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return world


def _parse_point(value: str) -> tuple[float, float]:
    try:
        x, y = (float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y but got {value!r}") from None
    return x, y


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Headless flocking simulation")
    parser.add_argument("--steps", type=int, default=1000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--repulsor",
        type=_parse_point,
        action="append",
        default=[],
        metavar="X,Y",
        help="Place a repulsor before the first tick (repeatable).",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        config_path=args.config,
        repulsors=args.repulsor,
    )


if __name__ == "__main__":
    main()
