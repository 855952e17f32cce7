"""Procedural pattern generators.

Each generator is a pure function ``(params, seed, bounds) -> GeometryModel``.
``bounds`` is the draw area in the pipeline's local frame.  Identical inputs
give bit-identical coordinates; randomness only ever comes from ``seed``.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from .config import as_bool, as_float
from .errors import ConfigError, GeneratorError
from .geometry import (
    XY,
    Box,
    Circle,
    GeometryModel,
    Line,
    Transform,
    clip_curve,
    clip_line,
    polar,
    transform_model,
)
from .noise import NoiseParams, NoisePatterns, seeded_random

logger = logging.getLogger(__name__)

GeneratorFn = Callable[[Mapping[str, Any], int, Box], GeometryModel]

GENERATORS: Dict[str, GeneratorFn] = {}


def register(*names: str) -> Callable[[GeneratorFn], GeneratorFn]:
    def deco(fn: GeneratorFn) -> GeneratorFn:
        for name in names:
            GENERATORS[name] = fn
        return fn

    return deco


def is_generator(tool: str) -> bool:
    return tool in GENERATORS


def generate(tool: str, params: Mapping[str, Any], seed: Optional[int], bounds: Box) -> GeometryModel:
    """Run the generator named ``tool`` and validate its output."""
    fn = GENERATORS.get(tool)
    if fn is None:
        raise ConfigError(f"Unknown generator: {tool!r}")
    if not (bounds.width > 0 and bounds.height > 0):
        raise GeneratorError(f"{tool}: draw area is empty ({bounds.width} x {bounds.height})")
    try:
        model = fn(params, 0 if seed is None else int(seed), bounds)
    except (ZeroDivisionError, OverflowError) as exc:
        raise GeneratorError(f"{tool}: {exc}") from exc
    if not model.is_finite():
        raise GeneratorError(f"{tool}: produced non-finite coordinates")
    logger.debug("Generator %s produced %d paths", tool, model.path_count())
    return model


# ---------------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------------


def _num(params: Mapping[str, Any], key: str, default: float, *, minimum: Optional[float] = None,
         positive: bool = False) -> float:
    value = params.get(key)
    number = default if value is None else as_float(value, key)
    if positive and number <= 0:
        raise ConfigError(f"{key} must be positive, got {number}")
    if minimum is not None and number < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {number}")
    return number


def _count(params: Mapping[str, Any], key: str, default: int, *, fallback: Optional[str] = None) -> int:
    value = params.get(key)
    if value is None and fallback is not None:
        value = params.get(fallback)
    number = default if value is None else as_float(value, key)
    count = int(math.floor(number))
    if count < 1:
        raise ConfigError(f"{key} must be at least 1, got {value!r}")
    return count


def _fraction_point(params: Mapping[str, Any], bounds: Box) -> XY:
    return (
        bounds.x + _num(params, "centerX", 0.5) * bounds.width,
        bounds.y + _num(params, "centerY", 0.5) * bounds.height,
    )


def _parallel_lines(bounds: Box, angle_deg: float, spacing: float) -> Iterator[Tuple[XY, XY]]:
    """Lines at ``angle_deg`` every ``spacing`` mm covering ``bounds``, clipped to it."""
    cx, cy = bounds.center
    a = math.radians(angle_deg)
    dx, dy = math.cos(a), math.sin(a)
    px, py = -dy, dx
    reach = math.hypot(bounds.width, bounds.height) / 2.0
    n = int(math.ceil(reach / spacing))
    for i in range(-n, n + 1):
        ox, oy = cx + px * i * spacing, cy + py * i * spacing
        clipped = clip_line((ox - dx * reach, oy - dy * reach), (ox + dx * reach, oy + dy * reach), bounds)
        if clipped is not None and clipped[0] != clipped[1]:
            yield clipped


# ---------------------------------------------------------------------------
# Line patterns
# ---------------------------------------------------------------------------


@register("stripes")
def stripes(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    count = _count(params, "lines", 50)
    model = GeometryModel()
    step = bounds.height / count
    for i in range(count + 1):
        y = bounds.y + i * step
        model.paths[f"s_{i}"] = Line((bounds.x, y), (bounds.xmax, y))
    return model


@register("vertical-stripes")
def vertical_stripes(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    count = _count(params, "lines", 50)
    model = GeometryModel()
    step = bounds.width / count
    for i in range(count + 1):
        x = bounds.x + i * step
        model.paths[f"v_{i}"] = Line((x, bounds.y), (x, bounds.ymax))
    return model


@register("grid")
def grid(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    """Rectangular grid.

    With ``cells`` (the default) every cell is its own closed child model
    ``cell_<col>_<row>`` whose origin is the cell corner, so later steps such
    as ``fill`` see one loop per cell.  Otherwise the grid is made of shared
    ``h_<i>`` and ``v_<i>`` lines.
    """
    spacing = params.get("spacing")
    if spacing is not None:
        size = _num(params, "spacing", 10.0, positive=True)
        cols = max(1, int(math.floor(bounds.width / size + 1e-9)))
        rows = max(1, int(math.floor(bounds.height / size + 1e-9)))
        sx = sy = size
    else:
        cols = _count(params, "linesX", 20, fallback="lines")
        rows = _count(params, "linesY", 20, fallback="lines")
        sx, sy = bounds.width / cols, bounds.height / rows

    model = GeometryModel()
    if as_bool(params.get("cells", True)):
        for row in range(rows):
            for col in range(cols):
                cell = GeometryModel(origin=(bounds.x + col * sx, bounds.y + row * sy))
                cell.paths["bottom"] = Line((0.0, 0.0), (sx, 0.0))
                cell.paths["right"] = Line((sx, 0.0), (sx, sy))
                cell.paths["top"] = Line((sx, sy), (0.0, sy))
                cell.paths["left"] = Line((0.0, sy), (0.0, 0.0))
                model.models[f"cell_{col}_{row}"] = cell
        return model

    width, height = cols * sx, rows * sy
    for i in range(rows + 1):
        y = bounds.y + i * sy
        model.paths[f"h_{i}"] = Line((bounds.x, y), (bounds.x + width, y))
    for i in range(cols + 1):
        x = bounds.x + i * sx
        model.paths[f"v_{i}"] = Line((x, bounds.y), (x, bounds.y + height))
    return model


@register("radial")
def radial(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    count = _count(params, "count", 36)
    cx, cy = _fraction_point(params, bounds)
    scale = min(bounds.width, bounds.height) / 2.0
    inner = _num(params, "innerRadius", 0.0, minimum=0.0) * scale
    outer = _num(params, "outerRadius", 1.0, minimum=0.0) * scale
    model = GeometryModel()
    for i in range(count):
        angle = 360.0 * i / count
        model.paths[f"r_{i}"] = Line(polar((cx, cy), inner, angle), polar((cx, cy), outer, angle))
    return model


@register("waves")
def waves(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    count = _count(params, "lines", 30)
    amplitude = _num(params, "amplitude", bounds.height / (count * 4))
    frequency = _num(params, "frequency", 3.0)
    phase = _num(params, "phase", 0.0) * 2.0 * math.pi
    segments = _count(params, "segments", 50)
    step_y = bounds.height / count
    seg_w = bounds.width / segments
    model = GeometryModel()

    def y_at(base: float, x: float) -> float:
        return base + math.sin(x / bounds.width * frequency * 2.0 * math.pi + phase) * amplitude

    for row in range(count + 1):
        base = bounds.y + row * step_y
        for seg in range(segments):
            x1, x2 = seg * seg_w, (seg + 1) * seg_w
            model.paths[f"w_{row}_{seg}"] = Line(
                (bounds.x + x1, y_at(base, x1)), (bounds.x + x2, y_at(base, x2))
            )
    return model


@register("hatching")
def hatching(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    count = _count(params, "lines", 30)
    angle = _num(params, "angle", 45.0)
    spacing = math.hypot(bounds.width, bounds.height) / count
    model = GeometryModel()
    for i, (a, b) in enumerate(_parallel_lines(bounds, angle, spacing)):
        model.paths[f"h_{i}"] = Line(a, b)
    if as_bool(params.get("bidirectional", False)):
        for i, (a, b) in enumerate(_parallel_lines(bounds, -angle, spacing)):
            model.paths[f"hb_{i}"] = Line(a, b)
    return model


@register("isometric")
def isometric(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    size = _num(params, "size", 20.0, positive=True)
    spacing = size * math.sqrt(3.0) / 2.0
    model = GeometryModel()
    for angle in (0.0, 60.0, 120.0):
        for i, (a, b) in enumerate(_parallel_lines(bounds, angle, spacing)):
            model.paths[f"i{int(angle)}_{i}"] = Line(a, b)
    return model


# ---------------------------------------------------------------------------
# Curves
# ---------------------------------------------------------------------------


@register("concentric")
def concentric(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    count = _count(params, "count", 20)
    cx, cy = _fraction_point(params, bounds)
    reach_x = max(cx - bounds.x, bounds.xmax - cx)
    reach_y = max(cy - bounds.y, bounds.ymax - cy)
    max_radius = math.hypot(reach_x, reach_y)
    min_radius = _num(params, "minRadius", 0.0, minimum=0.0)
    model = GeometryModel()
    if min_radius >= max_radius:
        return model
    step = (max_radius - min_radius) / count
    check_bounds = as_bool(params.get("checkBounds", True))
    for i in range(1, count + 1):
        circle = Circle((cx, cy), min_radius + i * step)
        if not check_bounds:
            model.paths[f"c_{i}"] = circle
            continue
        for k, piece in enumerate(clip_curve(circle, bounds)):
            model.paths[f"c_{i}_{k}"] = piece
    return model


@register("spiral")
def spiral(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    turns = _num(params, "turns", 10.0, positive=True)
    per_turn = _count(params, "pointsPerTurn", 36)
    cx, cy = _fraction_point(params, bounds)
    max_radius = min(bounds.width, bounds.height) / 2.0
    start_radius = _num(params, "startRadius", 0.0, minimum=0.0)
    direction = 1.0 if params.get("direction") == "ccw" else -1.0
    total = max(1, int(round(turns * per_turn)))
    radius_step = (max_radius - start_radius) / total
    angle_step = 360.0 / per_turn * direction

    model = GeometryModel()
    prev = (cx + start_radius, cy)
    for i in range(1, total + 1):
        point = polar((cx, cy), start_radius + i * radius_step, i * angle_step)
        model.paths[f"sp_{i}"] = Line(prev, point)
        prev = point
    return model


@register("phyllotaxis")
def phyllotaxis(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    """Sunflower-seed arrangement; ``size`` 0 draws dots as zero-length lines."""
    count = _count(params, "count", 500)
    spacing = _num(params, "spacing", 5.0, positive=True)
    divergence = _num(params, "flower", 137.5)
    size = _num(params, "size", 0.0, minimum=0.0)
    center = bounds.center
    model = GeometryModel()
    for i in range(count):
        p = polar(center, spacing * math.sqrt(i), i * divergence)
        if not bounds.contains(p):
            continue
        model.paths[f"ph_{i}"] = Circle(p, size) if size > 0 else Line(p, p)
    return model


@register("superformula")
def superformula(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    radius = _num(params, "radius", 50.0, positive=True)
    m = _num(params, "m", 6.0)
    n1 = _num(params, "n1", 1.0)
    n2 = _num(params, "n2", 1.0)
    n3 = _num(params, "n3", 1.0)
    a = _num(params, "a", 1.0)
    b = _num(params, "b", 1.0)
    if a == 0 or b == 0:
        raise ConfigError("superformula: a and b must be non-zero")
    count = _count(params, "count", 1)
    scale_step = _num(params, "scaleStep", 0.9)
    rotate_step = _num(params, "rotateStep", 0.0)
    morph_step = _num(params, "morphStep", 0.0)
    segments = _count(params, "segments", 360)
    cx, cy = bounds.center

    model = GeometryModel()
    for c in range(count):
        shape_n1 = n1 + morph_step * c
        if shape_n1 == 0:
            raise GeneratorError(f"superformula: n1 reaches zero on copy {c}")
        size = radius * scale_step ** c
        rotation = rotate_step * c
        pts: List[XY] = []
        for k in range(segments):
            phi = 2.0 * math.pi * k / segments
            t = m * phi / 4.0
            total = abs(math.cos(t) / a) ** n2 + abs(math.sin(t) / b) ** n3
            if total == 0:
                raise GeneratorError("superformula: radius diverges")
            r = total ** (-1.0 / shape_n1)
            if not math.isfinite(r):
                raise GeneratorError("superformula: radius is not finite")
            pts.append(polar((cx, cy), size * r, math.degrees(phi) + rotation))
        for k in range(segments):
            model.paths[f"sf_{c}_{k}"] = Line(pts[k], pts[(k + 1) % segments])
    return model


# ---------------------------------------------------------------------------
# Tilings and fields
# ---------------------------------------------------------------------------


def _gilbert(x: int, y: int, ax: int, ay: int, bx: int, by: int) -> Iterator[Tuple[int, int]]:
    """Generalised Hilbert curve filling the rectangle spanned by ``a`` and ``b``."""
    w = abs(ax + ay)
    h = abs(bx + by)
    dax, day = (ax > 0) - (ax < 0), (ay > 0) - (ay < 0)
    dbx, dby = (bx > 0) - (bx < 0), (by > 0) - (by < 0)

    if h == 1:
        for _ in range(w):
            yield x, y
            x, y = x + dax, y + day
        return
    if w == 1:
        for _ in range(h):
            yield x, y
            x, y = x + dbx, y + dby
        return

    ax2, ay2 = ax // 2, ay // 2
    bx2, by2 = bx // 2, by // 2
    w2 = abs(ax2 + ay2)
    h2 = abs(bx2 + by2)

    if 2 * w > 3 * h:
        if w2 % 2 and w > 2:
            ax2, ay2 = ax2 + dax, ay2 + day
        yield from _gilbert(x, y, ax2, ay2, bx, by)
        yield from _gilbert(x + ax2, y + ay2, ax - ax2, ay - ay2, bx, by)
    else:
        if h2 % 2 and h > 2:
            bx2, by2 = bx2 + dbx, by2 + dby
        yield from _gilbert(x, y, bx2, by2, ax2, ay2)
        yield from _gilbert(x + bx2, y + by2, ax, ay, bx - bx2, by - by2)
        yield from _gilbert(
            x + (ax - dax) + (bx2 - dbx),
            y + (ay - day) + (by2 - dby),
            -bx2,
            -by2,
            -(ax - ax2),
            -(ay - ay2),
        )


@register("hilbert", "gilbert")
def hilbert(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    size = _num(params, "scale", 10.0, positive=True)
    cols = int(bounds.width // size)
    rows = int(bounds.height // size)
    model = GeometryModel()
    if cols < 1 or rows < 1:
        return model
    cells = _gilbert(0, 0, cols, 0, 0, rows) if cols >= rows else _gilbert(0, 0, 0, rows, cols, 0)
    ox = bounds.x + (bounds.width - cols * size) / 2.0
    oy = bounds.y + (bounds.height - rows * size) / 2.0
    pts = [(ox + (i + 0.5) * size, oy + (j + 0.5) * size) for i, j in cells]
    for k, (a, b) in enumerate(zip(pts, pts[1:])):
        model.paths[f"hc_{k}"] = Line(a, b)
    return model


@register("honeycomb")
def honeycomb(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    """Flat-topped hexagons, each a closed child model centred on its origin."""
    radius = _num(params, "radius", 10.0, positive=True)
    gap = _num(params, "gap", 0.0, minimum=0.0)
    rotation = _num(params, "rotation", 0.0)
    step_x = 1.5 * radius + gap * math.sqrt(3.0) / 2.0
    step_y = math.sqrt(3.0) * radius + gap
    corners = [polar((0.0, 0.0), radius, rotation + 60.0 * k) for k in range(6)]

    model = GeometryModel()
    col = 0
    while col * step_x <= bounds.width + 1e-9:
        row = 0
        shift = step_y / 2.0 if col % 2 else 0.0
        while row * step_y + shift <= bounds.height + 1e-9:
            hexagon = GeometryModel(origin=(bounds.x + col * step_x, bounds.y + row * step_y + shift))
            for k in range(6):
                hexagon.paths[f"e_{k}"] = Line(corners[k], corners[(k + 1) % 6])
            model.models[f"hex_{col}_{row}"] = hexagon
            row += 1
        col += 1
    return model


def _marching_squares(values: List[List[float]], level: float, x0: float, y0: float,
                      step: float) -> Iterator[Tuple[XY, XY]]:
    rows = len(values) - 1
    cols = len(values[0]) - 1

    def cross(p: XY, q: XY, vp: float, vq: float) -> XY:
        t = (level - vp) / (vq - vp)
        return (p[0] + (q[0] - p[0]) * t, p[1] + (q[1] - p[1]) * t)

    for j in range(rows):
        for i in range(cols):
            v = (values[j][i], values[j][i + 1], values[j + 1][i + 1], values[j + 1][i])
            p = (
                (x0 + i * step, y0 + j * step),
                (x0 + (i + 1) * step, y0 + j * step),
                (x0 + (i + 1) * step, y0 + (j + 1) * step),
                (x0 + i * step, y0 + (j + 1) * step),
            )
            above = [val > level for val in v]
            hits: Dict[int, XY] = {}
            for e in range(4):
                a, b = e, (e + 1) % 4
                if above[a] != above[b]:
                    hits[e] = cross(p[a], p[b], v[a], v[b])
            if len(hits) == 2:
                first, second = hits.values()
                yield first, second
            elif len(hits) == 4:
                center_above = sum(v) / 4.0 > level
                if center_above == above[0]:
                    yield hits[0], hits[1]
                    yield hits[2], hits[3]
                else:
                    yield hits[3], hits[0]
                    yield hits[1], hits[2]


@register("gyroid")
def gyroid(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    """Contour of a planar gyroid slice at ``threshold``."""
    scale = _num(params, "scale", 1.0, positive=True)
    z = _num(params, "z", 0.0)
    level = _num(params, "threshold", 0.1)
    step = _num(params, "resolution", 2.0, positive=True)
    k = scale * 2.0 * math.pi / 50.0
    cols = max(1, int(math.ceil(bounds.width / step)))
    rows = max(1, int(math.ceil(bounds.height / step)))
    sin_z, cos_z = math.sin(z), math.cos(z)

    values = []
    for j in range(rows + 1):
        y = j * step * k
        values.append(
            [
                math.sin(i * step * k) * math.cos(y) + math.sin(y) * cos_z + sin_z * math.cos(i * step * k)
                for i in range(cols + 1)
            ]
        )
    model = GeometryModel()
    for n, (a, b) in enumerate(_marching_squares(values, level, bounds.x, bounds.y, step)):
        clipped = clip_line(a, b, bounds)
        if clipped is not None:
            model.paths[f"g_{n}"] = Line(*clipped)
    return model


@register("flow-field")
def flow_field(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    count = _count(params, "count", 500)
    steps = _count(params, "steps", 500)
    step_size = _num(params, "stepSize", 1.0, positive=True)
    noise_scale = _num(params, "noiseScale", 0.002, positive=True)
    distortion = _num(params, "distortion", 1.0)
    rng = seeded_random(seed)
    noise = NoisePatterns(seed)
    noise_params = NoiseParams(scale=noise_scale)

    model = GeometryModel()
    for i in range(count):
        x = bounds.x + rng.random() * bounds.width
        y = bounds.y + rng.random() * bounds.height
        for k in range(steps):
            angle = noise.get("simplex", x, y, noise_params) * 2.0 * math.pi * distortion
            nx, ny = x + math.cos(angle) * step_size, y + math.sin(angle) * step_size
            if not bounds.contains((nx, ny)):
                break
            model.paths[f"f_{i}_{k}"] = Line((x, y), (nx, ny))
            x, y = nx, ny
    return model


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


@register("svg")
def svg(params: Mapping[str, Any], seed: int, bounds: Box) -> GeometryModel:
    from .svg_loader import load_svg_model

    path = params.get("file") or params.get("path")
    if not path:
        raise ConfigError("svg: a 'file' parameter is required")
    model = load_svg_model(path, tolerance=_num(params, "tolerance", 0.5, positive=True))
    if not as_bool(params.get("fit", True)):
        return model
    ext = model.extents()
    if ext is None:
        return model
    span = max(ext.width, ext.height)
    factor = min(bounds.width, bounds.height) / span if span > 0 else 1.0
    cx, cy = ext.center
    bx, by = bounds.center
    return transform_model(
        model,
        Transform.translation(-cx, -cy).then(Transform.scaling(factor)).then(Transform.translation(bx, by)),
    )


__all__ = ["GENERATORS", "GeneratorFn", "generate", "is_generator", "register"]
