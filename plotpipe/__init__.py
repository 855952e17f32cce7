"""Top-level package for the plotpipe toolkit.

This package builds pen plotter drawings from procedural pipelines: pattern
generators seed a geometry tree, modifiers reshape it, and the finished
model is written as an SVG preview or as G-code for the machine.
"""

from .config import MachineConfig, PipelineConfig, PipelineStep, load_config
from .errors import ConfigError, GeneratorError, PlotPipeError, ToolpathError
from .geometry import Arc, Box, Circle, GeometryModel, Line, XY, to_absolute
from .pipeline import StepDiagnostic, run_pipeline
from .rendering import render_svg
from .toolpath import emit_toolpath

__version__ = "0.3.0"

__all__ = [
    "Arc",
    "Box",
    "Circle",
    "ConfigError",
    "GeneratorError",
    "GeometryModel",
    "Line",
    "MachineConfig",
    "PipelineConfig",
    "PipelineStep",
    "PlotPipeError",
    "StepDiagnostic",
    "ToolpathError",
    "XY",
    "emit_toolpath",
    "load_config",
    "render_svg",
    "run_pipeline",
    "to_absolute",
]
