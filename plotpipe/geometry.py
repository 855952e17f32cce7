"""Geometry primitives and the hierarchical model used by plotpipe.

Paths are small immutable values (:class:`Line`, :class:`Arc` and
:class:`Circle`).  They live inside a tree of :class:`GeometryModel` nodes.
Every node stores its paths and the origins of its children in its own local
frame: the absolute position of a point is its local coordinates plus the
origin of the owning model and of every ancestor up to the root.
:func:`to_absolute` is the one place where that sum is applied to a path.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union
import math
import copy

XY = Tuple[float, float]

EPS = 1e-9


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Line:
    """Straight segment between two points."""

    start: XY
    end: XY


@dataclass(frozen=True)
class Arc:
    """Counter-clockwise arc from ``start_angle`` to ``end_angle``.

    Angles are in degrees.  An arc whose end angle equals its start angle
    (modulo 360) is read as a full turn.
    """

    center: XY
    radius: float
    start_angle: float
    end_angle: float


@dataclass(frozen=True)
class Circle:
    center: XY
    radius: float


Path = Union[Line, Arc, Circle]


@dataclass(frozen=True)
class Box:
    """Axis aligned rectangle given by its lower left corner and size."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, xmin: float, ymin: float, xmax: float, ymax: float) -> "Box":
        return cls(xmin, ymin, xmax - xmin, ymax - ymin)

    @property
    def xmax(self) -> float:
        return self.x + self.width

    @property
    def ymax(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> XY:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def contains(self, p: XY, tol: float = EPS) -> bool:
        return (
            self.x - tol <= p[0] <= self.xmax + tol
            and self.y - tol <= p[1] <= self.ymax + tol
        )

    def union(self, other: "Box") -> "Box":
        return Box.from_corners(
            min(self.x, other.x),
            min(self.y, other.y),
            max(self.xmax, other.xmax),
            max(self.ymax, other.ymax),
        )

    def translated(self, dx: float, dy: float) -> "Box":
        return Box(self.x + dx, self.y + dy, self.width, self.height)


def _unsupported(path: object) -> TypeError:
    return TypeError(f"Unsupported path: {type(path)!r}")


def distance(a: XY, b: XY) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def polar(center: XY, radius: float, angle_deg: float) -> XY:
    a = math.radians(angle_deg)
    return (center[0] + radius * math.cos(a), center[1] + radius * math.sin(a))


def arc_sweep(arc: Arc) -> float:
    """Counter-clockwise span of ``arc`` in degrees, in ``(0, 360]``."""
    sweep = (arc.end_angle - arc.start_angle) % 360.0
    if sweep < EPS or 360.0 - sweep < EPS:
        return 360.0
    return sweep


def is_full_turn(path: Path) -> bool:
    if isinstance(path, Circle):
        return True
    if isinstance(path, Arc):
        return arc_sweep(path) >= 360.0
    return False


# ---------------------------------------------------------------------------
# Path queries
# ---------------------------------------------------------------------------


def path_endpoints(path: Path) -> Tuple[XY, XY]:
    if isinstance(path, Line):
        return path.start, path.end
    if isinstance(path, Arc):
        start = polar(path.center, path.radius, path.start_angle)
        if arc_sweep(path) >= 360.0:
            return start, start
        return start, polar(path.center, path.radius, path.end_angle)
    if isinstance(path, Circle):
        p = (path.center[0] + path.radius, path.center[1])
        return p, p
    raise _unsupported(path)


def path_length(path: Path) -> float:
    if isinstance(path, Line):
        return distance(path.start, path.end)
    if isinstance(path, Arc):
        return math.radians(arc_sweep(path)) * path.radius
    if isinstance(path, Circle):
        return 2.0 * math.pi * path.radius
    raise _unsupported(path)


def path_extents(path: Path) -> Box:
    if isinstance(path, Line):
        (x0, y0), (x1, y1) = path.start, path.end
        return Box.from_corners(min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))
    if isinstance(path, Circle):
        cx, cy = path.center
        r = path.radius
        return Box.from_corners(cx - r, cy - r, cx + r, cy + r)
    if isinstance(path, Arc):
        sweep = arc_sweep(path)
        pts = list(path_endpoints(path))
        for quadrant in (0.0, 90.0, 180.0, 270.0):
            if (quadrant - path.start_angle) % 360.0 <= sweep:
                pts.append(polar(path.center, path.radius, quadrant))
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        return Box.from_corners(min(xs), min(ys), max(xs), max(ys))
    raise _unsupported(path)


def path_midpoint(path: Path) -> XY:
    if isinstance(path, Line):
        return ((path.start[0] + path.end[0]) / 2.0, (path.start[1] + path.end[1]) / 2.0)
    if isinstance(path, Arc):
        return polar(path.center, path.radius, path.start_angle + arc_sweep(path) / 2.0)
    if isinstance(path, Circle):
        return path.center
    raise _unsupported(path)


def path_is_finite(path: Path) -> bool:
    if isinstance(path, Line):
        values: Iterable[float] = (*path.start, *path.end)
    elif isinstance(path, Arc):
        values = (*path.center, path.radius, path.start_angle, path.end_angle)
    elif isinstance(path, Circle):
        values = (*path.center, path.radius)
    else:
        raise _unsupported(path)
    return all(math.isfinite(v) for v in values)


def translate_path(path: Path, dx: float, dy: float) -> Path:
    if isinstance(path, Line):
        return Line(
            (path.start[0] + dx, path.start[1] + dy),
            (path.end[0] + dx, path.end[1] + dy),
        )
    if isinstance(path, Arc):
        return Arc((path.center[0] + dx, path.center[1] + dy), path.radius, path.start_angle, path.end_angle)
    if isinstance(path, Circle):
        return Circle((path.center[0] + dx, path.center[1] + dy), path.radius)
    raise _unsupported(path)


def to_absolute(path: Path, offset: XY) -> Path:
    """Map ``path`` from a model's local frame into absolute coordinates.

    ``offset`` is the absolute offset of the model that owns the path, i.e.
    the sum of its own origin and the origins of all its ancestors.
    """
    if offset[0] == 0.0 and offset[1] == 0.0:
        return path
    return translate_path(path, offset[0], offset[1])


def to_local(path: Path, offset: XY) -> Path:
    """Inverse of :func:`to_absolute`."""
    if offset[0] == 0.0 and offset[1] == 0.0:
        return path
    return translate_path(path, -offset[0], -offset[1])


def flatten_path(path: Path, max_chord: float) -> List[XY]:
    """Approximate ``path`` by points no further than ``max_chord`` apart.

    Lines are returned as their two endpoints.  Curves are traversed
    counter-clockwise; a closed curve repeats its first point at the end.
    """
    if isinstance(path, Line):
        return [path.start, path.end]
    if isinstance(path, (Arc, Circle)):
        if isinstance(path, Circle):
            start, sweep = 0.0, 360.0
        else:
            start, sweep = path.start_angle, arc_sweep(path)
        length = math.radians(sweep) * path.radius
        n = max(1, int(math.ceil(length / max(max_chord, 1e-6) - EPS)))
        if sweep >= 360.0:
            n = max(3, n)
        pts = [polar(path.center, path.radius, start + sweep * k / n) for k in range(n + 1)]
        if sweep >= 360.0:
            pts[-1] = pts[0]
        return pts
    raise _unsupported(path)


def polyline_to_lines(pts: List[XY]) -> List[Line]:
    return [Line(a, b) for a, b in zip(pts, pts[1:])]


# ---------------------------------------------------------------------------
# Affine transforms
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transform:
    """2D affine transform ``x' = a*x + c*y + e``, ``y' = b*x + d*y + f``."""

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    e: float = 0.0
    f: float = 0.0

    @classmethod
    def translation(cls, dx: float, dy: float) -> "Transform":
        return cls(e=dx, f=dy)

    @classmethod
    def rotation(cls, angle_deg: float, pivot: XY = (0.0, 0.0)) -> "Transform":
        t = math.radians(angle_deg)
        cos_t, sin_t = math.cos(t), math.sin(t)
        return cls._about(cls(cos_t, sin_t, -sin_t, cos_t), pivot)

    @classmethod
    def scaling(cls, sx: float, sy: Optional[float] = None, pivot: XY = (0.0, 0.0)) -> "Transform":
        return cls._about(cls(sx, 0.0, 0.0, sx if sy is None else sy), pivot)

    @classmethod
    def mirror(cls, flip_x: bool, flip_y: bool, pivot: XY = (0.0, 0.0)) -> "Transform":
        return cls._about(cls(-1.0 if flip_x else 1.0, 0.0, 0.0, -1.0 if flip_y else 1.0), pivot)

    @classmethod
    def _about(cls, linear: "Transform", pivot: XY) -> "Transform":
        px, py = pivot
        return cls.translation(-px, -py).then(linear).then(cls.translation(px, py))

    def then(self, other: "Transform") -> "Transform":
        """Transform that applies ``self`` first and ``other`` second."""
        return Transform(
            other.a * self.a + other.c * self.b,
            other.b * self.a + other.d * self.b,
            other.a * self.c + other.c * self.d,
            other.b * self.c + other.d * self.d,
            other.a * self.e + other.c * self.f + other.e,
            other.b * self.e + other.d * self.f + other.f,
        )

    def apply(self, x: float, y: float) -> XY:
        return (self.a * x + self.c * y + self.e, self.b * x + self.d * y + self.f)

    @property
    def linear(self) -> "Transform":
        return Transform(self.a, self.b, self.c, self.d)

    @property
    def determinant(self) -> float:
        return self.a * self.d - self.b * self.c

    def is_similarity(self, tol: float = 1e-9) -> bool:
        n1 = self.a * self.a + self.b * self.b
        n2 = self.c * self.c + self.d * self.d
        scale = max(n1, n2, tol)
        return abs(self.a * self.c + self.b * self.d) <= tol * scale and abs(n1 - n2) <= tol * scale


def transform_path(path: Path, transform: Transform, max_chord: float = 0.5) -> List[Path]:
    """Apply ``transform`` to ``path``.

    Curves stay curves under similarity transforms.  Any other transform
    flattens them into lines first, so the result may hold several paths.
    """
    if isinstance(path, Line):
        return [Line(transform.apply(*path.start), transform.apply(*path.end))]
    if isinstance(path, (Arc, Circle)):
        if not transform.is_similarity():
            pts = [transform.apply(x, y) for x, y in flatten_path(path, max_chord)]
            return list(polyline_to_lines(pts))
        center = transform.apply(*path.center)
        radius = path.radius * math.sqrt(abs(transform.determinant))
        if isinstance(path, Circle):
            return [Circle(center, radius)]
        theta = math.degrees(math.atan2(transform.b, transform.a))
        if transform.determinant < 0:
            return [Arc(center, radius, theta - path.end_angle, theta - path.start_angle)]
        return [Arc(center, radius, path.start_angle + theta, path.end_angle + theta)]
    raise _unsupported(path)


# ---------------------------------------------------------------------------
# Clipping
# ---------------------------------------------------------------------------


def clip_line(start: XY, end: XY, box: Box) -> Optional[Tuple[XY, XY]]:
    """Liang-Barsky clipping of a segment against ``box``."""
    x0, y0 = start
    dx, dy = end[0] - x0, end[1] - y0
    t0, t1 = 0.0, 1.0
    for p, q in (
        (-dx, x0 - box.x),
        (dx, box.xmax - x0),
        (-dy, y0 - box.y),
        (dy, box.ymax - y0),
    ):
        if abs(p) < EPS:
            if q < -EPS:
                return None
            continue
        r = q / p
        if p < 0:
            if r > t1:
                return None
            t0 = max(t0, r)
        else:
            if r < t0:
                return None
            t1 = min(t1, r)
    a = start if t0 == 0.0 else (x0 + t0 * dx, y0 + t0 * dy)
    b = end if t1 == 1.0 else (x0 + t1 * dx, y0 + t1 * dy)
    return a, b


def _circle_box_angles(center: XY, radius: float, box: Box) -> List[float]:
    cx, cy = center
    angles: List[float] = []
    for x in (box.x, box.xmax):
        dx = x - cx
        if abs(dx) <= radius:
            h = math.sqrt(max(0.0, radius * radius - dx * dx))
            for y in (cy - h, cy + h):
                if box.y - EPS <= y <= box.ymax + EPS:
                    angles.append(math.degrees(math.atan2(y - cy, dx)) % 360.0)
    for y in (box.y, box.ymax):
        dy = y - cy
        if abs(dy) <= radius:
            h = math.sqrt(max(0.0, radius * radius - dy * dy))
            for x in (cx - h, cx + h):
                if box.x - EPS <= x <= box.xmax + EPS:
                    angles.append(math.degrees(math.atan2(dy, x - cx)) % 360.0)
    return angles


def clip_curve(path: Union[Arc, Circle], box: Box) -> List[Path]:
    """Split a curve at the boundary of ``box`` keeping the pieces inside."""
    if isinstance(path, Circle):
        start, sweep = 0.0, 360.0
    else:
        start, sweep = path.start_angle, arc_sweep(path)
    cuts = sorted(
        t
        for t in ((a - start) % 360.0 for a in _circle_box_angles(path.center, path.radius, box))
        if EPS < t < sweep - EPS
    )
    bounds = [0.0] + cuts + [sweep]
    kept: List[List[float]] = []
    for t0, t1 in zip(bounds, bounds[1:]):
        if t1 - t0 < EPS:
            continue
        if not box.contains(polar(path.center, path.radius, start + (t0 + t1) / 2.0)):
            continue
        if kept and abs(kept[-1][1] - t0) < EPS:
            kept[-1][1] = t1
        else:
            kept.append([t0, t1])
    if not kept:
        return []
    if len(kept) == 1 and kept[0][0] <= EPS and kept[0][1] >= sweep - EPS:
        return [path]
    if sweep >= 360.0 and len(kept) > 1 and kept[0][0] <= EPS and kept[-1][1] >= sweep - EPS:
        first = kept.pop(0)
        kept[-1][1] = first[1] + 360.0
    return [Arc(path.center, path.radius, start + t0, start + t1) for t0, t1 in kept]


def clip_path(path: Path, box: Box) -> List[Path]:
    if isinstance(path, Line):
        clipped = clip_line(path.start, path.end, box)
        if clipped is None:
            return []
        if clipped == (path.start, path.end):
            return [path]
        return [Line(*clipped)]
    if isinstance(path, (Arc, Circle)):
        return clip_curve(path, box)
    raise _unsupported(path)


# ---------------------------------------------------------------------------
# Model tree
# ---------------------------------------------------------------------------


def _unique_key(mapping: Dict[str, object], prefix: str) -> str:
    n = len(mapping)
    key = f"{prefix}_{n}"
    while key in mapping:
        n += 1
        key = f"{prefix}_{n}"
    return key


@dataclass
class WalkedPath:
    """A path seen during a traversal, together with where it lives."""

    key: str
    path: Path
    route: Tuple[str, ...]
    offset: XY
    model: "GeometryModel"

    @property
    def absolute(self) -> Path:
        return to_absolute(self.path, self.offset)


@dataclass
class GeometryModel:
    """Tree node holding paths and child models in a local frame."""

    origin: XY = (0.0, 0.0)
    paths: Dict[str, Path] = field(default_factory=dict)
    models: Dict[str, "GeometryModel"] = field(default_factory=dict)
    stroke: Optional[str] = None
    stroke_width: Optional[float] = None
    visible: bool = True

    # ---------------------------- creation helpers ----------------------------
    def clone(self) -> "GeometryModel":
        return copy.deepcopy(self)

    def add_path(self, path: Path, prefix: str = "p") -> str:
        key = _unique_key(self.paths, prefix)  # type: ignore[arg-type]
        self.paths[key] = path
        return key

    def add_paths(self, paths: Iterable[Path], prefix: str = "p") -> "GeometryModel":
        for path in paths:
            self.add_path(path, prefix)
        return self

    def add_model(self, model: "GeometryModel", prefix: str = "m") -> str:
        """Attach ``model`` as ``<prefix>_<n>``, counting only siblings with that prefix."""
        n = sum(1 for k in self.models if k.startswith(f"{prefix}_"))
        key = f"{prefix}_{n}"
        while key in self.models:
            n += 1
            key = f"{prefix}_{n}"
        self.models[key] = model
        return key

    # ------------------------------- traversal -------------------------------
    def iter_models(
        self,
        offset: XY = (0.0, 0.0),
        route: Tuple[str, ...] = (),
        *,
        include_hidden: bool = True,
    ) -> Iterator[Tuple[Tuple[str, ...], "GeometryModel", XY]]:
        """Yield ``(route, model, absolute_offset)`` depth first, parents first.

        ``offset`` is the absolute offset of this model's parent.
        """
        if not include_hidden and not self.visible:
            return
        here = (offset[0] + self.origin[0], offset[1] + self.origin[1])
        yield route, self, here
        for key, child in list(self.models.items()):
            yield from child.iter_models(here, route + (key,), include_hidden=include_hidden)

    def walk(self, offset: XY = (0.0, 0.0), *, include_hidden: bool = True) -> Iterator[WalkedPath]:
        """Yield every path: own paths in insertion order, then each child."""
        for route, model, here in self.iter_models(offset, include_hidden=include_hidden):
            for key, path in list(model.paths.items()):
                yield WalkedPath(key=key, path=path, route=route, offset=here, model=model)

    # ----------------------------- high level info ---------------------------
    def path_count(self) -> int:
        return sum(1 for _ in self.walk())

    def total_length(self) -> float:
        return sum(path_length(item.path) for item in self.walk())

    def is_empty(self) -> bool:
        return self.path_count() == 0

    def is_finite(self) -> bool:
        for _, model, here in self.iter_models():
            if not (math.isfinite(here[0]) and math.isfinite(here[1])):
                return False
            if not all(path_is_finite(p) for p in model.paths.values()):
                return False
        return True

    def extents(self) -> Optional[Box]:
        """Absolute bounding box of every path, or ``None`` for an empty tree."""
        box: Optional[Box] = None
        for item in self.walk():
            ext = path_extents(item.path).translated(*item.offset)
            box = ext if box is None else box.union(ext)
        return box

    # ------------------------------ mutations --------------------------------
    def move(self, dx: float, dy: float) -> "GeometryModel":
        self.origin = (self.origin[0] + dx, self.origin[1] + dy)
        return self

    def originate(self) -> "GeometryModel":
        """Bake every origin into the paths, leaving all origins at zero."""
        self._originate((0.0, 0.0))
        return self

    def _originate(self, offset: XY) -> None:
        here = (offset[0] + self.origin[0], offset[1] + self.origin[1])
        self.paths = {key: to_absolute(path, here) for key, path in self.paths.items()}
        self.origin = (0.0, 0.0)
        for child in self.models.values():
            child._originate(here)

    def merge(self, other: "GeometryModel", prefix: str = "merged") -> "GeometryModel":
        """Absorb ``other`` into this tree with both trees' origins baked."""
        self.originate()
        other.originate()
        for key, path in other.paths.items():
            self.paths[key if key not in self.paths else _unique_key(self.paths, f"{prefix}_{key}")] = path  # type: ignore[arg-type]
        for key, child in other.models.items():
            self.models[key if key not in self.models else _unique_key(self.models, f"{prefix}_{key}")] = child  # type: ignore[arg-type]
        return self


def transform_model(model: GeometryModel, transform: Transform) -> GeometryModel:
    """Apply ``transform`` to the absolute geometry of ``model`` in place.

    The root origin receives the full transform; paths and child origins,
    being relative offsets, only receive its linear part.
    """
    model.origin = transform.apply(*model.origin)
    _transform_contents(model, transform.linear)
    return model


def _transform_contents(model: GeometryModel, linear: Transform) -> None:
    paths: Dict[str, Path] = {}
    for key, path in model.paths.items():
        pieces = transform_path(path, linear)
        if len(pieces) == 1:
            paths[key] = pieces[0]
        else:
            for i, piece in enumerate(pieces):
                new_key = f"{key}_{i}"
                while new_key in paths or new_key in model.paths:
                    new_key += "_"
                paths[new_key] = piece
    model.paths = paths
    for child in model.models.values():
        child.origin = linear.apply(*child.origin)
        _transform_contents(child, linear)


# ---------------------------------------------------------------------------
# Polyline utilities
# ---------------------------------------------------------------------------


def _rdp(pts: List[XY], eps: float) -> List[XY]:
    if len(pts) <= 2:
        return pts[:]
    stack = [(0, len(pts) - 1)]
    keep = [False] * len(pts)
    keep[0] = keep[-1] = True
    while stack:
        i0, i1 = stack.pop()
        a, b = pts[i0], pts[i1]
        max_d = -1.0
        idx = None
        for i in range(i0 + 1, i1):
            ax, ay = a
            bx, by = b
            px, py = pts[i]
            dx, dy = bx - ax, by - ay
            if dx == 0 and dy == 0:
                d = math.hypot(px - ax, py - ay)
            else:
                t = ((px - ax) * dx + (py - ay) * dy) / (dx * dx + dy * dy)
                t = max(0.0, min(1.0, t))
                cx, cy = ax + t * dx, ay + t * dy
                d = math.hypot(px - cx, py - cy)
            if d > max_d:
                max_d, idx = d, i
        if max_d > eps and idx is not None:
            keep[idx] = True
            stack.append((i0, idx))
            stack.append((idx, i1))
    return [p for p, k in zip(pts, keep) if k]


def _split_long(pts: List[XY], max_seg: float) -> List[XY]:
    if not pts:
        return pts
    out = [pts[0]]
    for a, b in zip(pts, pts[1:]):
        ax, ay = a
        bx, by = b
        dx, dy = bx - ax, by - ay
        L = math.hypot(dx, dy)
        if L <= max_seg + EPS or max_seg <= 0:
            out.append(b)
            continue
        n = max(1, int(math.ceil(L / max_seg - EPS)))
        for k in range(1, n):
            t = k / n
            out.append((ax + t * dx, ay + t * dy))
        out.append(b)
    return out


__all__ = [
    "XY",
    "EPS",
    "Line",
    "Arc",
    "Circle",
    "Path",
    "Box",
    "Transform",
    "GeometryModel",
    "WalkedPath",
    "distance",
    "polar",
    "arc_sweep",
    "is_full_turn",
    "path_endpoints",
    "path_length",
    "path_extents",
    "path_midpoint",
    "path_is_finite",
    "translate_path",
    "to_absolute",
    "to_local",
    "flatten_path",
    "polyline_to_lines",
    "transform_path",
    "transform_model",
    "clip_line",
    "clip_curve",
    "clip_path",
]
