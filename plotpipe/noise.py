"""Seeded noise families used by masks, warps and the flow-field generator."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from opensimplex import OpenSimplex

from .errors import ConfigError

NOISE_TYPES = ("simplex", "perlin", "noise", "fbm", "turbulence", "marble", "cells")


def seeded_random(seed: Optional[int]) -> random.Random:
    """Deterministic RNG; a missing seed means seed 0, never wall-clock time."""
    return random.Random(0 if seed is None else int(seed))


@dataclass
class NoiseParams:
    scale: float = 0.05
    octaves: int = 4
    persistence: float = 0.5
    lacunarity: float = 2.0
    distortion: float = 10.0

    @classmethod
    def from_params(cls, params: Mapping[str, Any], scale_key: str = "scale", default_scale: float = 0.05) -> "NoiseParams":
        try:
            return cls(
                scale=float(params.get(scale_key, default_scale)),
                octaves=max(1, int(params.get("octaves", 4))),
                persistence=float(params.get("persistence", 0.5)),
                lacunarity=float(params.get("lacunarity", 2.0)),
                distortion=float(params.get("distortion", 10.0)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"noise parameters: {exc}") from exc


class NoisePatterns:
    """2D noise functions sharing one seeded simplex generator."""

    def __init__(self, seed: Optional[int] = 0) -> None:
        self.seed = 0 if seed is None else int(seed)
        self._simplex = OpenSimplex(seed=self.seed)

    def simplex(self, x: float, y: float, scale: float = 0.05) -> float:
        """Raw simplex noise in ``[-1, 1]``."""
        return self._simplex.noise2(x * scale, y * scale)

    def fbm(self, x: float, y: float, params: NoiseParams) -> float:
        """Fractal Brownian motion, roughly in ``[-1, 1]``."""
        total, frequency, amplitude, norm = 0.0, params.scale, 1.0, 0.0
        for _ in range(params.octaves):
            total += self._simplex.noise2(x * frequency, y * frequency) * amplitude
            norm += amplitude
            amplitude *= params.persistence
            frequency *= params.lacunarity
        return total / norm if norm else 0.0

    def turbulence(self, x: float, y: float, params: NoiseParams) -> float:
        """Sum of absolute octaves, in ``[0, 1]``."""
        total, frequency, amplitude, norm = 0.0, params.scale, 1.0, 0.0
        for _ in range(params.octaves):
            total += abs(self._simplex.noise2(x * frequency, y * frequency)) * amplitude
            norm += amplitude
            amplitude *= params.persistence
            frequency *= params.lacunarity
        return total / norm if norm else 0.0

    def marble(self, x: float, y: float, params: NoiseParams) -> float:
        turb = self.turbulence(
            x,
            y,
            NoiseParams(params.scale * 3, params.octaves, params.persistence, params.lacunarity, params.distortion),
        )
        return (math.sin(x * params.scale + turb * params.distortion) + 1.0) / 2.0

    def cells(self, x: float, y: float, scale: float) -> float:
        """Distance to the nearest jittered grid point, clamped to ``[0, 1]``."""
        s = scale * 0.5
        px, py = x * s, y * s
        xi, yi = math.floor(px), math.floor(py)
        best = 1.0
        for oy in (-1, 0, 1):
            for ox in (-1, 0, 1):
                nx, ny = xi + ox, yi + oy
                fx = nx + self._hash(nx, ny)
                fy = ny + self._hash(ny, nx + 1000)
                best = min(best, math.hypot(px - fx, py - fy))
        return min(1.0, best)

    def _hash(self, x: float, y: float) -> float:
        n = math.sin(x * 12.9898 + y * 78.233 + self.seed * 0.618) * 43758.5453123
        return n - math.floor(n)

    def get(self, kind: str, x: float, y: float, params: NoiseParams) -> float:
        """Normalised noise value in ``[0, 1]`` for the named family."""
        if kind in ("simplex", "perlin", "noise"):
            value = (self.simplex(x, y, params.scale) + 1.0) / 2.0
        elif kind == "fbm":
            value = (self.fbm(x, y, params) + 1.0) / 2.0
        elif kind == "turbulence":
            value = self.turbulence(x, y, params)
        elif kind == "marble":
            value = self.marble(x, y, params)
        elif kind == "cells":
            value = self.cells(x, y, params.scale)
        else:
            raise ConfigError(f"Unknown noise type: {kind!r}")
        return max(0.0, min(1.0, value))


__all__ = ["NOISE_TYPES", "NoiseParams", "NoisePatterns", "seeded_random"]
