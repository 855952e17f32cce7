"""Modifiers: steps that transform the accumulated model.

A modifier is ``fn(model, params, ctx) -> Optional[GeometryModel]``.  A
returned model replaces the accumulated one; ``None`` means the model was
changed in place.  :class:`StepContext` carries everything else a modifier
may need (draw-area bounds, seed, mask, nested steps).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import PipelineStep, as_bool, as_float
from .errors import ConfigError
from .filling import FillParams, apply_filling
from .geometry import (
    XY,
    Arc,
    Box,
    Circle,
    GeometryModel,
    Line,
    Path,
    Transform,
    _split_long,
    clip_path,
    flatten_path,
    path_length,
    path_midpoint,
    polyline_to_lines,
    transform_model,
)
from .masks import MaskField
from .noise import NoiseParams, NoisePatterns, seeded_random

logger = logging.getLogger(__name__)

NestedRunner = Callable[[GeometryModel, List[PipelineStep], int], GeometryModel]


@dataclass
class StepContext:
    bounds: Box
    seed: int = 0
    mask: Optional[MaskField] = None
    nested: List[PipelineStep] = field(default_factory=list)
    run_nested: Optional[NestedRunner] = None

    def weight(self, x: float, y: float) -> float:
        return 1.0 if self.mask is None else self.mask(x, y)


ModifierFn = Callable[[GeometryModel, Mapping[str, Any], StepContext], Optional[GeometryModel]]

MODIFIERS: Dict[str, ModifierFn] = {}


def register(*names: str) -> Callable[[ModifierFn], ModifierFn]:
    def deco(fn: ModifierFn) -> ModifierFn:
        for name in names:
            MODIFIERS[name] = fn
        return fn

    return deco


def is_modifier(tool: str) -> bool:
    return tool in MODIFIERS


def apply_modifier(tool: str, model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> GeometryModel:
    fn = MODIFIERS.get(tool)
    if fn is None:
        raise ConfigError(f"Unknown modifier: {tool!r}")
    result = fn(model, params, ctx)
    return model if result is None else result


def _num(params: Mapping[str, Any], key: str, default: float) -> float:
    value = params.get(key)
    return default if value is None else as_float(value, key)


def _replace_paths(model: GeometryModel, fn: Callable[[str, Path, XY], List[Path]]) -> None:
    """Rebuild every node's paths; ``fn`` gets the owning node's absolute offset.

    A path mapped to one piece keeps its key, several pieces get ``<key>_<i>``.
    """
    for _, node, here in model.iter_models():
        paths: Dict[str, Path] = {}
        for key, path in node.paths.items():
            pieces = fn(key, path, here)
            if len(pieces) == 1:
                paths[key] = pieces[0]
            else:
                for i, piece in enumerate(pieces):
                    new_key = f"{key}_{i}"
                    while new_key in paths or new_key in node.paths:
                        new_key += "_"
                    paths[new_key] = piece
        node.paths = paths


def _has_curves(model: GeometryModel) -> bool:
    return any(isinstance(item.path, (Arc, Circle)) for item in model.walk())


def _flatten_curves(model: GeometryModel, detail: float = 0.5) -> None:
    def flatten(key: str, path: Path, here: XY) -> List[Path]:
        if isinstance(path, Line):
            return [path]
        return list(polyline_to_lines(flatten_path(path, detail)))

    _replace_paths(model, flatten)


def _displace(model: GeometryModel, fn: Callable[[float, float], XY]) -> None:
    """Move every line endpoint to ``fn`` of its absolute position."""
    if _has_curves(model):
        _flatten_curves(model)

    def move(key: str, path: Path, here: XY) -> List[Path]:
        if not isinstance(path, Line):
            raise TypeError(f"Unsupported path: {type(path)!r}")
        ax, ay = fn(path.start[0] + here[0], path.start[1] + here[1])
        bx, by = fn(path.end[0] + here[0], path.end[1] + here[1])
        return [Line((ax - here[0], ay - here[1]), (bx - here[0], by - here[1]))]

    _replace_paths(model, move)


# ---------------------------------------------------------------------------
# Affine
# ---------------------------------------------------------------------------


@register("move")
def move(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    transform_model(model, Transform.translation(_num(params, "x", 0.0), _num(params, "y", 0.0)))


@register("rotate")
def rotate(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    angle = _num(params, "rotation", _num(params, "angle", 0.0))
    transform_model(model, Transform.rotation(angle, ctx.bounds.center))


@register("mirror")
def mirror(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    axis = params.get("axis", "x")
    if axis not in ("x", "y"):
        raise ConfigError(f"mirror: axis must be 'x' or 'y', got {axis!r}")
    pivot = ctx.bounds.center
    if as_bool(params.get("center", False)):
        ext = model.extents()
        if ext is not None:
            pivot = ext.center
    transform_model(model, Transform.mirror(axis == "x", axis == "y", pivot))


@register("scale")
def scale(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    uniform = _num(params, "scale", 1.0)
    sx = _num(params, "x", uniform)
    sy = _num(params, "y", uniform)
    if sx == 0 or sy == 0:
        raise ConfigError(f"scale: factors must be non-zero, got {sx} x {sy}")
    transform_model(model, Transform.scaling(sx, sy, ctx.bounds.center))


@register("array")
def array(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> GeometryModel:
    count = int(_num(params, "count", 2))
    if count < 1:
        raise ConfigError(f"array: count must be at least 1, got {count}")
    dx, dy = _num(params, "x", 10.0), _num(params, "y", 0.0)
    result = GeometryModel()
    for i in range(count):
        result.models[f"array_{i}"] = model.clone().move(dx * i, dy * i)
    return result


# ---------------------------------------------------------------------------
# Topological
# ---------------------------------------------------------------------------


@register("clip")
def clip(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    margin = _num(params, "margin", 0.0)
    top = _num(params, "top", margin)
    right = _num(params, "right", margin)
    bottom = _num(params, "bottom", margin)
    left = _num(params, "left", margin)
    b = ctx.bounds
    area = Box(b.x + left, b.y + bottom, b.width - left - right, b.height - top - bottom)
    if area.width < 0 or area.height < 0:
        raise ConfigError("clip: margins are larger than the draw area")

    def cut(key: str, path: Path, here: XY) -> List[Path]:
        return clip_path(path, area.translated(-here[0], -here[1]))

    _replace_paths(model, cut)


@register("resample")
def resample(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    detail = _num(params, "detail", _num(params, "res", 1.0))
    if detail <= 0:
        raise ConfigError(f"resample: detail must be positive, got {detail}")
    split_lines = as_bool(params.get("lines", True))

    def split(key: str, path: Path, here: XY) -> List[Path]:
        if isinstance(path, Line):
            if not split_lines or path_length(path) <= detail:
                return [path]
            return list(polyline_to_lines(_split_long([path.start, path.end], detail)))
        return list(polyline_to_lines(flatten_path(path, detail)))

    before = model.path_count()
    _replace_paths(model, split)
    logger.debug("Resample: %d paths -> %d at detail=%s", before, model.path_count(), detail)


@register("simplify")
def simplify(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    tolerance = _num(params, "tolerance", 0.5)
    for _, node, _ in model.iter_models():
        node.paths = {
            key: path
            for key, path in node.paths.items()
            if not (isinstance(path, Line) and path_length(path) < tolerance)
        }


# ---------------------------------------------------------------------------
# Mask driven
# ---------------------------------------------------------------------------


@register("trim")
def trim(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    """Drop paths where the mask is weak.

    In random mode a path survives with probability
    ``mask + (threshold - 0.5)``; otherwise it survives when
    ``mask >= threshold``.
    """
    threshold = _num(params, "threshold", 0.5)
    randomized = as_bool(params.get("random", True))
    rng = seeded_random(ctx.seed)
    removed = 0
    for item in list(model.walk()):
        x, y = path_midpoint(item.absolute)
        value = ctx.weight(x, y)
        keep = rng.random() <= value + (threshold - 0.5) if randomized else value >= threshold
        if not keep:
            del item.model.paths[item.key]
            removed += 1
    logger.debug("Trim removed %d paths", removed)


_NOISE_WARPS = ("noise", "simplex", "perlin", "turbulence", "marble", "cells", "fbm")


def _warp_function(params: Mapping[str, Any], ctx: StepContext) -> Callable[[float, float], XY]:
    kind = params.get("type", "bulge")
    strength = _num(params, "strength", 10.0)
    cx, cy = ctx.bounds.center
    max_dist = math.hypot(ctx.bounds.width / 2.0, ctx.bounds.height / 2.0) or 1.0

    if kind in _NOISE_WARPS:
        noise_kind = "simplex" if kind == "noise" else kind
        patterns = NoisePatterns(ctx.seed)
        noise_params = NoiseParams(
            scale=_num(params, "frequency", _num(params, "scale", 0.05)),
            octaves=max(1, int(_num(params, "octaves", 1))),
            persistence=_num(params, "persistence", 0.5),
            lacunarity=_num(params, "lacunarity", 2.0),
            distortion=_num(params, "distortion", 10.0),
        )
        ox, oy = _num(params, "offsetX", 0.0), _num(params, "offsetY", 0.0)

        def noise_warp(x: float, y: float) -> XY:
            nx = patterns.get(noise_kind, x + ox, y + oy, noise_params)
            ny = patterns.get(noise_kind, x + ox + 1000.0, y + oy + 1000.0, noise_params)
            return ((nx - 0.5) * strength, (ny - 0.5) * strength)

        return noise_warp

    if kind == "bulge":
        def bulge(x: float, y: float) -> XY:
            dx, dy = x - cx, y - cy
            dist = math.hypot(dx, dy)
            factor = (1.0 - dist / max_dist) * strength
            return (dx / (dist or 1.0) * factor, dy / (dist or 1.0) * factor)

        return bulge

    if kind == "pinch":
        def pinch(x: float, y: float) -> XY:
            dx, dy = x - cx, y - cy
            factor = math.exp(-math.hypot(dx, dy) * 0.01) * (strength / 10.0)
            return (-dx * factor, -dy * factor)

        return pinch

    if kind == "twist":
        def twist(x: float, y: float) -> XY:
            dx, dy = x - cx, y - cy
            angle = math.hypot(dx, dy) / max_dist * math.radians(strength)
            cos_a, sin_a = math.cos(angle), math.sin(angle)
            return (dx * cos_a - dy * sin_a - dx, dx * sin_a + dy * cos_a - dy)

        return twist

    if kind == "wave":
        freq = _num(params, "frequency", 0.05)
        vertical = as_bool(params.get("vertical", False))

        def wave(x: float, y: float) -> XY:
            dx = math.sin(y * freq * 2.0 * math.pi) * strength
            dy = math.sin(x * freq * 2.0 * math.pi) * strength if vertical else 0.0
            return (dx, dy)

        return wave

    raise ConfigError(f"warp: unknown type {kind!r}")


@register("warp")
def warp(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    shift = _warp_function(params, ctx)

    def displaced(x: float, y: float) -> XY:
        weight = ctx.weight(x, y)
        dx, dy = shift(x, y)
        return (x + dx * weight, y + dy * weight)

    _displace(model, displaced)


@register("noise")
def noise(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    """Multi-octave simplex displacement along ``axis`` (``x``, ``y`` or ``both``)."""
    frequency = _num(params, "scale", 0.05)
    magnitude = _num(params, "magnitude", 5.0)
    axis = params.get("axis") or "both"
    if axis not in ("x", "y", "both"):
        raise ConfigError(f"noise: axis must be 'x', 'y' or 'both', got {axis!r}")
    octaves = max(1, int(_num(params, "octaves", 1)))
    persistence = _num(params, "persistence", 0.5)
    lacunarity = _num(params, "lacunarity", 2.0)
    gen_x = NoisePatterns(ctx.seed)
    gen_y = NoisePatterns(ctx.seed + 1000)

    def displaced(x: float, y: float) -> XY:
        nx = ny = norm = 0.0
        amplitude, f = 1.0, frequency
        for _ in range(octaves):
            nx += gen_x.simplex(x, y, f) * amplitude
            ny += gen_y.simplex(x + 100.0 / f, y + 100.0 / f, f) * amplitude if f else 0.0
            norm += amplitude
            amplitude *= persistence
            f *= lacunarity
        weight = ctx.weight(x, y)
        dx = nx / norm * magnitude * weight if axis in ("x", "both") else 0.0
        dy = ny / norm * magnitude * weight if axis in ("y", "both") else 0.0
        return (x + dx, y + dy)

    _displace(model, displaced)


# ---------------------------------------------------------------------------
# Fill
# ---------------------------------------------------------------------------


@register("fill", "hatch-fill")
def fill(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
    fill_params = FillParams(
        angle=_num(params, "angle", 0.0),
        spacing=_num(params, "spacing", 1.0),
        offset=_num(params, "offset", 0.0),
        tolerance=_num(params, "tolerance", 0.05),
    )
    count = apply_filling(model, fill_params)
    logger.info("Fill added %d hatch lines", count)


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def _layering(prefix: str) -> ModifierFn:
    def apply(model: GeometryModel, params: Mapping[str, Any], ctx: StepContext) -> None:
        copy = model.clone()
        if ctx.nested and ctx.run_nested is not None:
            copy = ctx.run_nested(copy, ctx.nested, ctx.seed)
        # the copy was processed as a root; re-express its origin under ``model``
        copy.origin = (copy.origin[0] - model.origin[0], copy.origin[1] - model.origin[1])
        if params.get("stroke") is not None:
            copy.stroke = str(params["stroke"])
        if params.get("strokeWidth") is not None:
            copy.stroke_width = as_float(params["strokeWidth"], "strokeWidth")
        layer_id = params.get("id")
        if layer_id is not None and str(layer_id) not in model.models:
            model.models[str(layer_id)] = copy
        else:
            model.add_model(copy, prefix=prefix)

    return apply


register("duplicate")(_layering("duplicate"))
register("layer")(_layering("layer"))
register("clone")(_layering("clone"))


__all__ = ["MODIFIERS", "ModifierFn", "StepContext", "apply_modifier", "is_modifier", "register"]
