"""Shared fixtures for the plotpipe test-suite."""

from typing import List

import pytest

from plotpipe.config import CanvasConfig, MachineConfig, PipelineConfig
from plotpipe.geometry import Box, GeometryModel, Line


def square_lines(size: float, x: float = 0.0, y: float = 0.0) -> List[Line]:
    """Counter-clockwise square with its lower left corner at ``(x, y)``."""
    a, b, c, d = (x, y), (x + size, y), (x + size, y + size), (x, y + size)
    return [Line(a, b), Line(b, c), Line(c, d), Line(d, a)]


@pytest.fixture
def bounds() -> Box:
    return Box(0.0, 0.0, 100.0, 100.0)


@pytest.fixture
def unit_square() -> GeometryModel:
    return GeometryModel().add_paths(square_lines(1.0))


@pytest.fixture
def canvas() -> CanvasConfig:
    return CanvasConfig(width=100.0, height=100.0)


@pytest.fixture
def machine() -> MachineConfig:
    return MachineConfig()


@pytest.fixture
def make_config():
    """Build a :class:`PipelineConfig` from plain step dictionaries."""

    def build(steps, width: float = 100.0, height: float = 100.0, **extra) -> PipelineConfig:
        data = {"canvas": {"width": width, "height": height}, "steps": steps}
        data.update(extra)
        return PipelineConfig.from_dict(data)

    return build
