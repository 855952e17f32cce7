"""Exception hierarchy shared by the pipeline components."""

from __future__ import annotations


class PlotPipeError(Exception):
    """Base class for every error raised on purpose by plotpipe."""


class ConfigError(PlotPipeError):
    """Raised for unknown tools, unreadable configuration or out-of-range parameters."""


class GeneratorError(PlotPipeError):
    """Raised when a generator would produce non-finite geometry."""


class ToolpathError(PlotPipeError):
    """Raised when motion output cannot be produced for a machine configuration."""


__all__ = ["PlotPipeError", "ConfigError", "GeneratorError", "ToolpathError"]
