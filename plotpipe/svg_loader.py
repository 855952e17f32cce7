"""Import stroked SVG artwork as plotpipe geometry."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple, Union
from xml.parsers.expat import ExpatError

from svgpathtools import Path as SVGPathObject, svg2paths2

from .errors import ConfigError
from .geometry import GeometryModel, Line, XY


@dataclass
class SVGShape:
    """Single drawable item extracted from the SVG."""

    path: SVGPathObject
    color: str
    stroke_width: float = 1.0

    def bounds(self) -> Tuple[float, float, float, float]:
        xmin, xmax, ymin, ymax = self.path.bbox()
        return float(xmin), float(xmax), float(ymin), float(ymax)


@dataclass
class SVGDocument:
    """Representation of an SVG document as a collection of shapes grouped by color."""

    shapes: List[SVGShape] = field(default_factory=list)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SVGDocument":
        try:
            paths, attributes, _ = svg2paths2(str(path))
        except (OSError, ValueError, ExpatError) as exc:
            raise ConfigError(f"{path}: cannot read SVG ({exc})") from exc
        shapes = []
        for path_obj, attr in zip(paths, attributes):
            if len(path_obj) == 0:
                continue
            color = attr.get("stroke") or attr.get("fill") or "#000000"
            try:
                width = float(attr.get("stroke-width", "1"))
            except ValueError:
                width = 1.0
            shapes.append(SVGShape(path=path_obj, color=color, stroke_width=width))
        return cls(shapes=shapes)

    def bounds(self) -> Tuple[float, float, float, float]:
        if not self.shapes:
            return (0.0, 0.0, 0.0, 0.0)
        xmin, xmax, ymin, ymax = self.shapes[0].bounds()
        for shape in self.shapes[1:]:
            sx0, sx1, sy0, sy1 = shape.bounds()
            xmin = min(xmin, sx0)
            xmax = max(xmax, sx1)
            ymin = min(ymin, sy0)
            ymax = max(ymax, sy1)
        return xmin, xmax, ymin, ymax

    def group_by_color(self) -> Dict[str, List[SVGShape]]:
        groups: Dict[str, List[SVGShape]] = {}
        for shape in self.shapes:
            groups.setdefault(shape.color, []).append(shape)
        return groups

    def to_model(self, tolerance: float = 0.5) -> GeometryModel:
        """Sample every shape into lines, one child model per stroke color.

        Each child carries the widest stroke width among its shapes.

        SVG's Y axis points down, so points are mirrored about the document's
        vertical centre into the Cartesian frame used everywhere else.
        """
        _, _, ymin, ymax = self.bounds()
        model = GeometryModel()
        for n, (color, shapes) in enumerate(self.group_by_color().items()):
            group = GeometryModel(stroke=color, stroke_width=max(s.stroke_width for s in shapes))
            for i, shape in enumerate(shapes):
                pts = [(x, ymin + ymax - y) for x, y in sample_path(shape.path, tolerance)]
                for k, (a, b) in enumerate(zip(pts, pts[1:])):
                    group.paths[f"s{i}_{k}"] = Line(a, b)
            model.models[f"color_{n}"] = group
        return model


def sample_path(path: SVGPathObject, tolerance: float = 0.5) -> List[XY]:
    """Convert an svgpathtools Path into a list of coordinate tuples."""

    length = max(path.length(), tolerance)
    steps = max(int(length / max(tolerance, 1e-3)), 1)
    points: List[XY] = []
    for i in range(steps + 1):
        t = i / steps
        point = path.point(t)
        points.append((float(point.real), float(point.imag)))
    return points


def load_svg_model(path: Union[str, Path], tolerance: float = 0.5) -> GeometryModel:
    return SVGDocument.from_file(path).to_model(tolerance)


__all__ = ["SVGShape", "SVGDocument", "sample_path", "load_svg_model"]
