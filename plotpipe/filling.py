"""Parallel hatch filling of closed chains."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List

from .chains import DEFAULT_TOLERANCE, Chain, find_chains
from .errors import ConfigError
from .geometry import XY, GeometryModel, Line, Transform, to_local

logger = logging.getLogger(__name__)

MIN_SPACING = 0.1


@dataclass
class FillParams:
    """Hatch settings: angle in degrees, spacing and offset in mm."""

    angle: float = 0.0
    spacing: float = 1.0
    offset: float = 0.0
    tolerance: float = DEFAULT_TOLERANCE
    max_chord: float = 0.5

    def __post_init__(self) -> None:
        if not self.spacing > 0:
            raise ConfigError(f"fill spacing must be positive, got {self.spacing}")
        if self.spacing < MIN_SPACING:
            logger.debug("Fill spacing %.3f clamped to %.1f", self.spacing, MIN_SPACING)
            self.spacing = MIN_SPACING


def _signed_area(pts: List[XY]) -> float:
    return 0.5 * sum(a[0] * b[1] - b[0] * a[1] for a, b in zip(pts, pts[1:] + pts[:1]))


def fill_polygon(polygon: List[XY], params: FillParams) -> List[Line]:
    """Hatch segments inside ``polygon`` (even-odd rule).

    Scanlines sit at ``k * spacing + offset`` measured perpendicular to the
    hatch direction; scanlines touching the polygon's extreme extent are
    skipped, so hatching never traces a boundary edge.
    """
    distinct: List[XY] = []
    for p in polygon:
        if not distinct or math.hypot(p[0] - distinct[-1][0], p[1] - distinct[-1][1]) > 1e-9:
            distinct.append(p)
    if len(distinct) > 1 and math.hypot(distinct[0][0] - distinct[-1][0], distinct[0][1] - distinct[-1][1]) <= 1e-9:
        distinct.pop()
    if len(distinct) < 3 or abs(_signed_area(distinct)) < 1e-12:
        return []

    to_scan = Transform.rotation(-params.angle)
    from_scan = Transform.rotation(params.angle)
    pts = [to_scan.apply(x, y) for x, y in distinct]
    edges = list(zip(pts, pts[1:] + pts[:1]))
    ys = [p[1] for p in pts]
    ymin, ymax = min(ys), max(ys)
    eps = 1e-9

    segments: List[Line] = []
    k = math.ceil((ymin - params.offset) / params.spacing)
    y = k * params.spacing + params.offset
    while y < ymax - eps:
        if y > ymin + eps:
            xs = []
            for (x0, y0), (x1, y1) in edges:
                if (y0 <= y < y1) or (y1 <= y < y0):
                    xs.append(x0 + (y - y0) * (x1 - x0) / (y1 - y0))
            xs.sort()
            for xa, xb in zip(xs[0::2], xs[1::2]):
                if xb - xa > eps:
                    segments.append(Line(from_scan.apply(xa, y), from_scan.apply(xb, y)))
        k += 1
        y = k * params.spacing + params.offset
    return segments


def fill_loop(chain: Chain, params: FillParams) -> List[Line]:
    """Hatch a closed chain; open chains yield nothing."""
    if not chain.closed:
        return []
    return fill_polygon(chain.polygon(params.max_chord), params)


def apply_filling(model: GeometryModel, params: FillParams) -> int:
    """Add a ``fill_<n>`` child holding hatch lines to every node with loops.

    Each node is filled from the closed chains among its own paths, and the
    hatch is stored in that node's local frame.  Returns the number of hatch
    lines added.
    """
    targets = [
        (node, here)
        for route, node, here in model.iter_models()
        if not any(key.startswith("fill_") for key in route)
    ]
    total = 0
    for node, here in targets:
        parent = (here[0] - node.origin[0], here[1] - node.origin[1])
        lines: List[Line] = []
        for chain in find_chains(node, params.tolerance, parent, shallow=True):
            lines.extend(fill_loop(chain, params))
        if not lines:
            continue
        fill = GeometryModel()
        for i, line in enumerate(lines):
            fill.paths[f"h_{i}"] = to_local(line, here)
        node.add_model(fill, prefix="fill")
        total += len(lines)
    logger.debug("apply_filling: %d hatch lines in %d nodes", total, len(targets))
    return total


__all__ = ["FillParams", "MIN_SPACING", "fill_polygon", "fill_loop", "apply_filling"]
