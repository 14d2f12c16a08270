import sys
from pathlib import Path

import pytest
from pygame.math import Vector2

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from aviary.sim.core.agent import Agent  # noqa: E402
from aviary.sim.core.config import SimulationConfig  # noqa: E402


@pytest.fixture
def make_agent():
    counter = iter(range(10_000))

    def _make(x: float, y: float, vx: float = 0.0, vy: float = 0.0) -> Agent:
        return Agent(id=next(counter), position=Vector2(x, y), velocity=Vector2(vx, vy))

    return _make


@pytest.fixture
def empty_config() -> SimulationConfig:
    return SimulationConfig(initial_population=0, seed=11)


@pytest.fixture
def repo_root() -> Path:
    return ROOT
