"""Scalar mask fields sampled by the mask-driven modifiers.

A mask maps an absolute point to a weight in ``[0, 1]``.  Masks are built
from :class:`~plotpipe.config.MaskConfig` entries against the draw-area
bounds; several entries multiply together.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from .config import MaskConfig, as_float
from .errors import ConfigError
from .geometry import Box
from .noise import NOISE_TYPES, NoiseParams, NoisePatterns

MaskFn = Callable[[float, float], float]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _radial(params: Mapping[str, Any], bounds: Box, seed: Optional[int]) -> MaskFn:
    center = params.get("center") or [params.get("centerX", 0.5), params.get("centerY", 0.5)]
    if not isinstance(center, (list, tuple)) or len(center) != 2:
        raise ConfigError(f"radial mask: center must be a list of two numbers, got {center!r}")
    cx = bounds.x + as_float(center[0], "radial.center") * bounds.width
    cy = bounds.y + as_float(center[1], "radial.center") * bounds.height
    radius = as_float(params.get("radius", 0.5), "radial.radius") * min(bounds.width, bounds.height)
    smooth = params.get("falloff", "linear") == "smooth"
    if radius <= 0:
        raise ConfigError(f"radial mask: radius must be positive, got {radius}")

    def fn(x: float, y: float) -> float:
        v = _clamp(1.0 - math.hypot(x - cx, y - cy) / radius)
        return v * v * (3.0 - 2.0 * v) if smooth else v

    return fn


def _linear(params: Mapping[str, Any], bounds: Box, seed: Optional[int]) -> MaskFn:
    angle = math.radians(as_float(params.get("angle", 0.0), "linear.angle"))
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    cx, cy = bounds.center
    extent = math.hypot(bounds.width, bounds.height) / 2.0 or 1.0

    def fn(x: float, y: float) -> float:
        proj = (x - cx) * cos_a + (y - cy) * sin_a
        return _clamp(proj / extent * 0.5 + 0.5)

    return fn


def _border(params: Mapping[str, Any], bounds: Box, seed: Optional[int]) -> MaskFn:
    default = as_float(params.get("size", 0.1), "border.size")
    top, right, bottom, left = (
        as_float(params.get(side, default), f"border.{side}") for side in ("top", "right", "bottom", "left")
    )
    ramps = [
        (left * bounds.width, lambda x, y: x - bounds.x),
        (right * bounds.width, lambda x, y: bounds.xmax - x),
        (bottom * bounds.height, lambda x, y: y - bounds.y),
        (top * bounds.height, lambda x, y: bounds.ymax - y),
    ]
    active = [(width, dist) for width, dist in ramps if width > 0]

    def fn(x: float, y: float) -> float:
        value = 1.0
        for width, dist in active:
            value = min(value, _clamp(dist(x, y) / width))
        return value

    return fn


def _waves(params: Mapping[str, Any], bounds: Box, seed: Optional[int]) -> MaskFn:
    frequency = as_float(params.get("frequency", 5.0), "waves.frequency")
    angle = math.radians(as_float(params.get("angle", 0.0), "waves.angle"))
    phase = as_float(params.get("phase", 0.0), "waves.phase")
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    span = max(bounds.width, bounds.height) or 1.0

    def fn(x: float, y: float) -> float:
        proj = ((x - bounds.x) * cos_a + (y - bounds.y) * sin_a) / span
        return 0.5 + 0.5 * math.sin(2.0 * math.pi * frequency * proj + phase)

    return fn


def _checker(params: Mapping[str, Any], bounds: Box, seed: Optional[int]) -> MaskFn:
    size = as_float(params.get("size", 20.0), "checker.size")
    if size <= 0:
        raise ConfigError(f"checker mask: size must be positive, got {size}")

    def fn(x: float, y: float) -> float:
        cell = math.floor((x - bounds.x) / size) + math.floor((y - bounds.y) / size)
        return 1.0 if cell % 2 == 0 else 0.0

    return fn


def _noise(kind: str) -> Callable[[Mapping[str, Any], Box, Optional[int]], MaskFn]:
    def build(params: Mapping[str, Any], bounds: Box, seed: Optional[int]) -> MaskFn:
        own_seed = params.get("seed")
        patterns = NoisePatterns(seed if own_seed is None else int(as_float(own_seed, f"{kind}.seed")))
        noise_params = NoiseParams.from_params(params)

        def fn(x: float, y: float) -> float:
            return patterns.get(kind, x, y, noise_params)

        return fn

    return build


MASK_TYPES: Dict[str, Callable[[Mapping[str, Any], Box, Optional[int]], MaskFn]] = {
    "radial": _radial,
    "linear": _linear,
    "border": _border,
    "waves": _waves,
    "checker": _checker,
}
MASK_TYPES.update({kind: _noise(kind) for kind in NOISE_TYPES})


class MaskField:
    """Callable weight field ``(x, y) -> [0, 1]`` in absolute coordinates."""

    def __init__(self, fn: MaskFn) -> None:
        self._fn = fn

    def __call__(self, x: float, y: float) -> float:
        return _clamp(self._fn(x, y))

    @classmethod
    def constant(cls, value: float = 1.0) -> "MaskField":
        value = _clamp(value)
        return cls(lambda x, y: value)

    @classmethod
    def from_config(cls, config: MaskConfig, bounds: Box, seed: Optional[int] = None) -> "MaskField":
        builder = MASK_TYPES.get(config.type)
        if builder is None:
            raise ConfigError(f"Unknown mask type: {config.type!r}")
        base = builder(config.params, bounds, seed)
        contrast, brightness = config.contrast, config.brightness
        threshold, invert = config.threshold, config.invert

        def fn(x: float, y: float) -> float:
            v = base(x, y)
            if contrast != 1.0 or brightness != 0.0:
                v = _clamp((v - 0.5) * contrast + 0.5 + brightness)
            if threshold is not None:
                v = 1.0 if v >= threshold else 0.0
            return 1.0 - v if invert else v

        return cls(fn)

    @classmethod
    def from_configs(
        cls,
        configs: Union[MaskConfig, Sequence[MaskConfig], None],
        bounds: Box,
        seed: Optional[int] = None,
    ) -> Optional["MaskField"]:
        """Combine several masks by multiplication; ``None`` when there are none."""
        if configs is None:
            return None
        if isinstance(configs, MaskConfig):
            configs = [configs]
        fields = [cls.from_config(config, bounds, seed) for config in configs]
        if not fields:
            return None
        if len(fields) == 1:
            return fields[0]

        def product(x: float, y: float) -> float:
            value = 1.0
            for field_fn in fields:
                value *= field_fn(x, y)
            return value

        return cls(product)


__all__ = ["MaskFn", "MaskField", "MASK_TYPES"]
