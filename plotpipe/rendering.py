"""SVG preview of a :class:`GeometryModel`.

Every model node becomes a ``<g>`` translated by its origin, so the document
keeps the tree's local frames.  The root group flips the Y axis: models are
Cartesian (Y up) while SVG user space points down.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import quoteattr

from .config import CanvasConfig
from .geometry import Arc, Circle, GeometryModel, Line, Path, arc_sweep, is_full_turn, path_endpoints

logger = logging.getLogger(__name__)

DEFAULT_STROKE = "#000"
DEFAULT_STROKE_WIDTH = 0.25
FILL_STROKE = "#888"
FILL_STROKE_WIDTH = 0.08


def _n(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def _path_element(path: Path) -> str:
    if isinstance(path, Line):
        (x1, y1), (x2, y2) = path.start, path.end
        return f'<line x1="{_n(x1)}" y1="{_n(y1)}" x2="{_n(x2)}" y2="{_n(y2)}"/>'
    if isinstance(path, Circle) or (isinstance(path, Arc) and is_full_turn(path)):
        cx, cy = path.center
        return f'<circle cx="{_n(cx)}" cy="{_n(cy)}" r="{_n(path.radius)}"/>'
    if isinstance(path, Arc):
        (sx, sy), (ex, ey) = path_endpoints(path)
        large = 1 if arc_sweep(path) > 180.0 else 0
        r = _n(path.radius)
        return f'<path d="M {_n(sx)} {_n(sy)} A {r} {r} 0 {large} 1 {_n(ex)} {_n(ey)}"/>'
    raise TypeError(f"Unsupported path: {type(path)!r}")


def _render_model(model: GeometryModel, key: Optional[str], out: List[str], depth: int) -> None:
    if not model.visible:
        return
    attrs = []
    if key is not None:
        attrs.append(f"id={quoteattr(key)}")
    if model.origin != (0.0, 0.0):
        attrs.append(f'transform="translate({_n(model.origin[0])} {_n(model.origin[1])})"')
    if key is not None and key.startswith("fill_"):
        attrs.append(f'stroke="{FILL_STROKE}" stroke-width="{FILL_STROKE_WIDTH}"')
    else:
        if model.stroke:
            attrs.append(f"stroke={quoteattr(model.stroke)}")
        if model.stroke_width is not None:
            attrs.append(f'stroke-width="{_n(model.stroke_width)}"')
    indent = "  " * depth
    out.append(f"{indent}<g{''.join(' ' + a for a in attrs)}>")
    for path in model.paths.values():
        out.append(f"{indent}  {_path_element(path)}")
    for child_key, child in model.models.items():
        _render_model(child, child_key, out, depth + 1)
    out.append(f"{indent}</g>")


def render_svg(model: GeometryModel, canvas: Optional[CanvasConfig] = None) -> str:
    """Return an SVG document (millimetre units) drawing ``model`` on ``canvas``."""
    canvas = canvas or CanvasConfig()
    w, h = _n(canvas.width), _n(canvas.height)
    out = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{w}mm" height="{h}mm" viewBox="0 0 {w} {h}">',
        f'  <g transform="matrix(1 0 0 -1 0 {h})" fill="none" stroke="{DEFAULT_STROKE}" '
        f'stroke-width="{DEFAULT_STROKE_WIDTH}" stroke-linecap="round">',
    ]
    _render_model(model, None, out, 2)
    out.append("  </g>")
    out.append("</svg>")
    logger.debug("render_svg: %d elements", len(out))
    return "\n".join(out) + "\n"


def model_stats(model: GeometryModel) -> Dict[str, Any]:
    """Summary used by the command line report."""
    ext = model.extents()
    return {
        "paths": model.path_count(),
        "models": sum(1 for _ in model.iter_models()),
        "length_mm": round(model.total_length(), 3),
        "extents": None if ext is None else (round(ext.x, 3), round(ext.y, 3), round(ext.width, 3), round(ext.height, 3)),
    }


__all__ = ["render_svg", "model_stats"]
