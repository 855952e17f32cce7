"""G-code generation for a finished :class:`GeometryModel`.

The model is first turned into *runs*: stretches drawn with the pen down,
each a start point followed by line and arc moves in absolute canvas
coordinates.  Runs are then written through a post-processor, which only
decides the wording of the instructions.  Axis inversion, swapping and the
origin offset are applied last, right before formatting.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type

from .chains import Chain, find_chains
from .config import MachineConfig
from .errors import ToolpathError
from .geometry import (
    XY,
    Arc,
    Circle,
    GeometryModel,
    Line,
    Path,
    _rdp,
    distance,
    flatten_path,
    path_endpoints,
)

logger = logging.getLogger(__name__)

MAX_ARC_RADIUS = 1e4


@dataclass
class Move:
    """A pen-down move from the previous point to ``end``."""

    kind: str
    end: XY
    center: Optional[XY] = None
    ccw: bool = True


@dataclass
class Run:
    start: XY
    moves: List[Move] = field(default_factory=list)
    closed: bool = False

    @property
    def end(self) -> XY:
        return self.moves[-1].end if self.moves else self.start

    def points(self) -> List[XY]:
        return [self.start] + [m.end for m in self.moves]

    def reversed(self) -> "Run":
        pts = self.points()
        moves = [
            Move(m.kind, pts[i], m.center, not m.ccw if m.kind == "arc" else m.ccw)
            for i, m in reversed(list(enumerate(self.moves)))
        ]
        return Run(pts[-1], moves, self.closed)

    def extend(self, other: "Run") -> None:
        if distance(self.end, other.start) > 1e-9:
            self.moves.append(Move("line", other.start))
        self.moves.extend(other.moves)
        self.closed = False


# ---------------------------------------------------------------------------
# Arc fitting
# ---------------------------------------------------------------------------


def _circumcenter(a: XY, b: XY, c: XY) -> Optional[XY]:
    d = 2.0 * (a[0] * (b[1] - c[1]) + b[0] * (c[1] - a[1]) + c[0] * (a[1] - b[1]))
    if abs(d) < 1e-12:
        return None
    a2 = a[0] * a[0] + a[1] * a[1]
    b2 = b[0] * b[0] + b[1] * b[1]
    c2 = c[0] * c[0] + c[1] * c[1]
    ux = (a2 * (b[1] - c[1]) + b2 * (c[1] - a[1]) + c2 * (a[1] - b[1])) / d
    uy = (a2 * (c[0] - b[0]) + b2 * (a[0] - c[0]) + c2 * (b[0] - a[0])) / d
    return (ux, uy)


def _cross(o: XY, a: XY, b: XY) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def _fit_arc(pts: List[XY], tolerance: float) -> Optional[Tuple[XY, bool]]:
    """Return ``(center, ccw)`` if all of ``pts`` lie on one arc, else None."""
    if len(pts) < 3:
        return None
    a, b, c = pts[0], pts[len(pts) // 2], pts[-1]
    center = _circumcenter(a, b, c)
    if center is None:
        return None
    # slide the center onto the bisector of the chord so both ends share a radius
    mx, my = (a[0] + c[0]) / 2.0, (a[1] + c[1]) / 2.0
    chord = distance(a, c)
    if chord > 1e-9:
        nx, ny = -(c[1] - a[1]) / chord, (c[0] - a[0]) / chord
        t = (center[0] - mx) * nx + (center[1] - my) * ny
        center = (mx + t * nx, my + t * ny)
    radius = distance(center, a)
    if radius > MAX_ARC_RADIUS or radius < 1e-9:
        return None

    ccw = _cross(a, b, c) > 0
    sign = 1.0 if ccw else -1.0
    swept = 0.0
    for i, p in enumerate(pts):
        if abs(distance(center, p) - radius) > tolerance:
            return None
        if i == 0:
            continue
        q = pts[i - 1]
        mid = ((p[0] + q[0]) / 2.0, (p[1] + q[1]) / 2.0)
        if abs(distance(center, mid) - radius) > tolerance:
            return None
        if i >= 2 and _cross(pts[i - 2], q, p) * sign < -1e-12:
            return None
        a0 = math.atan2(q[1] - center[1], q[0] - center[0])
        a1 = math.atan2(p[1] - center[1], p[0] - center[0])
        step = ((a1 - a0) * sign) % (2.0 * math.pi)
        if step > math.pi:
            return None
        swept += step
    if math.degrees(swept) >= 359.0:
        return None
    return center, ccw


def fit_arcs(points: List[XY], tolerance: float) -> List[Move]:
    """Moves drawing the polyline ``points``, merging arc-shaped stretches.

    The first point is the current position and is not part of the result.
    Stretches are grown greedily: an arc is kept for as long as every point
    stays within ``tolerance`` of it.
    """
    moves: List[Move] = []
    i = 0
    while i < len(points) - 1:
        best: Optional[Tuple[int, XY, bool]] = None
        j = i + 2
        while j < len(points):
            fit = _fit_arc(points[i:j + 1], tolerance)
            if fit is None:
                break
            best = (j, fit[0], fit[1])
            j += 1
        if best is None:
            moves.append(Move("line", points[i + 1]))
            i += 1
        else:
            j, center, ccw = best
            moves.append(Move("arc", points[j], center, ccw))
            i = j
    return moves


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def _curve_moves(path: Path, reversed_: bool, machine: MachineConfig) -> List[Move]:
    if isinstance(path, Line):
        return [Move("line", path.start if reversed_ else path.end)]
    if isinstance(path, (Arc, Circle)):
        start, end = path_endpoints(path)
        if machine.use_arcs:
            return [Move("arc", start if reversed_ else end, path.center, not reversed_)]
        pts = flatten_path(path, machine.arc_resolution)
        if reversed_:
            pts = pts[::-1]
        return [Move("line", p) for p in pts[1:]]
    raise TypeError(f"Unsupported path: {type(path)!r}")


def _path_run(path: Path, machine: MachineConfig) -> Run:
    start, end = path_endpoints(path)
    closed = isinstance(path, Circle) or (not isinstance(path, Line) and distance(start, end) < 1e-9)
    return Run(start, _curve_moves(path, False, machine), closed)


def _chain_run(chain: Chain, machine: MachineConfig) -> Run:
    run = Run(chain.start, closed=chain.closed)
    for link in chain.links:
        if distance(run.end, link.start) > 1e-9:
            run.moves.append(Move("line", link.start))
        run.moves.extend(_curve_moves(link.path, link.reversed, machine))
    return run


def _refine(run: Run, machine: MachineConfig) -> Run:
    """Simplify and arc-fit every stretch of consecutive line moves."""
    if machine.simplify_tolerance <= 0 and not machine.use_arcs:
        return run
    out: List[Move] = []
    stretch: List[XY] = [run.start]

    def flush() -> None:
        if len(stretch) < 2:
            return
        pts = stretch
        if machine.simplify_tolerance > 0:
            pts = _rdp(pts, machine.simplify_tolerance)
        if machine.use_arcs:
            out.extend(fit_arcs(pts, machine.arc_tolerance))
        else:
            out.extend(Move("line", p) for p in pts[1:])

    for move in run.moves:
        if move.kind == "line":
            stretch.append(move.end)
            continue
        flush()
        out.append(move)
        stretch = [move.end]
    flush()
    return Run(run.start, out, run.closed)


def _travel(runs: List[Run], start_xy: XY = (0.0, 0.0)) -> float:
    total, cur = 0.0, start_xy
    for run in runs:
        total += distance(cur, run.start)
        cur = run.end
    return total


def optimize_order(runs: List[Run], start_xy: XY = (0.0, 0.0)) -> List[Run]:
    """Greedy nearest-neighbour ordering; open runs may be drawn backwards."""
    remaining = list(runs)
    ordered: List[Run] = []
    cur = start_xy
    while remaining:
        best_i, best_cost, best_rev = 0, float("inf"), False
        for i, run in enumerate(remaining):
            d_fwd = distance(cur, run.start)
            d_rev = float("inf") if run.closed else distance(cur, run.end)
            cost, rev = (d_fwd, False) if d_fwd <= d_rev else (d_rev, True)
            if cost < best_cost:
                best_i, best_cost, best_rev = i, cost, rev
        run = remaining.pop(best_i)
        if best_rev:
            run = run.reversed()
        ordered.append(run)
        cur = run.end
    return ordered


def join_runs(runs: List[Run], tolerance: float) -> List[Run]:
    """Bridge gaps no longer than ``tolerance`` with a draw move."""
    joined: List[Run] = []
    for run in runs:
        if joined and distance(joined[-1].end, run.start) <= tolerance:
            joined[-1].extend(run)
        else:
            joined.append(Run(run.start, list(run.moves), run.closed))
    return joined


def plan_runs(model: GeometryModel, machine: MachineConfig) -> List[Run]:
    """Pen-down runs for ``model`` in absolute coordinates, in drawing order."""
    if not machine.optimize_paths:
        runs = [_path_run(item.absolute, machine) for item in model.walk(include_hidden=False)]
    else:
        chains = find_chains(model, include_hidden=False)
        runs = [_chain_run(chain, machine) for chain in chains]
        before = _travel(runs)
        runs = optimize_order(runs)
        after = _travel(runs)
        gain = max(0.0, before - after)
        pct = (gain / before * 100.0) if before > 0 else 0.0
        logger.info(
            "Optimize order: nn, travel %.2f -> %.2f mm, saved %.2f mm (%.1f percent).", before, after, gain, pct
        )
        lifts_before = len(runs)
        runs = join_runs(runs, machine.join_tolerance)
        logger.info(
            "Combine endpoints: pen lifts %d -> %d (saved %d), join_tol=%s mm.",
            lifts_before,
            len(runs),
            lifts_before - len(runs),
            machine.join_tolerance,
        )
    return [_refine(run, machine) for run in runs]


# ---------------------------------------------------------------------------
# Post-processors
# ---------------------------------------------------------------------------


def _trim_zero(text: str) -> str:
    if text.startswith("-") and float(text) == 0.0:
        return text[1:]
    return text


class PostProcessor:
    """Plain Z-axis pen lift G-code understood by most controllers."""

    name = "standard"
    precision = 3

    def __init__(self, machine: MachineConfig) -> None:
        self.machine = machine

    def num(self, value: float) -> str:
        return _trim_zero(f"{value:.{self.precision}f}")

    def short(self, value: float) -> str:
        return _trim_zero(f"{value:g}")

    def xy(self, x: float, y: float) -> str:
        return f"X{self.num(x)} Y{self.num(y)}"

    def header(self) -> List[str]:
        m = self.machine
        return ["G21", "G90", f"G0 Z{self.short(m.z_safe)} F{self.short(m.feed_rate)}"]

    def footer(self) -> List[str]:
        lines = [f"G0 Z{self.short(self.machine.z_safe)}"]
        if self.machine.return_home:
            lines.append("G0 X0 Y0")
        lines.append("M2")
        return lines

    def rapid(self, x: float, y: float) -> str:
        return f"G0 {self.xy(x, y)}"

    def pen_down(self) -> List[str]:
        m = self.machine
        return [f"G1 Z{self.short(m.z_down)} F{self.short(m.plunge_rate)}"]

    def pen_up(self) -> List[str]:
        return [f"G0 Z{self.short(self.machine.z_up)}"]

    def dwell(self) -> List[str]:
        return [f"G4 P{self.machine.dwell_time / 1000.0:.3f}"]

    def feed(self, first: bool) -> str:
        return f" F{self.short(self.machine.feed_rate)}" if first else ""

    def draw(self, x: float, y: float, first: bool) -> str:
        return f"G1 {self.xy(x, y)}{self.feed(first)}"

    def arc(self, x: float, y: float, i: float, j: float, ccw: bool, first: bool) -> str:
        code = "G3" if ccw else "G2"
        return f"{code} {self.xy(x, y)} I{self.num(i)} J{self.num(j)}{self.feed(first)}"


class LinuxCNCPostProcessor(PostProcessor):
    name = "linuxcnc"
    precision = 4

    def header(self) -> List[str]:
        m = self.machine
        return [
            "%",
            "G17 G21 G90 G64 P0.1",
            f"G0 Z{self.short(m.z_safe)}",
            "M3 S1000",
            f"F{self.short(m.feed_rate)}",
        ]

    def footer(self) -> List[str]:
        lines = [f"G0 Z{self.short(self.machine.z_safe)}"]
        if self.machine.return_home:
            lines.append("G0 X0 Y0")
        return lines + ["M5", "M30", "%"]


class RepRapPostProcessor(PostProcessor):
    name = "reprap"
    precision = 2

    def header(self) -> List[str]:
        return ["G21", "G90", "M107", f"G0 Z{self.short(self.machine.z_safe)} F3000"]

    def footer(self) -> List[str]:
        return [f"G0 Z{self.short(self.machine.z_safe)}", "G28 X0 Y0", "M84"]

    def dwell(self) -> List[str]:
        return [f"G4 P{int(round(self.machine.dwell_time))}"]


class GrblPostProcessor(PostProcessor):
    """GRBL with a servo pen lift driven by ``M3 S<pwm>``."""

    name = "grbl"

    def header(self) -> List[str]:
        return ["G21", "G90", f"M3 S{self.machine.servo.to_pwm(1.0)}"]

    def footer(self) -> List[str]:
        lines = [f"M3 S{self.machine.servo.to_pwm(1.0)}"]
        if self.machine.return_home:
            lines.append(f"G0 X0 Y0 F{self.short(self.machine.travel_rate)}")
        return lines + ["M5", "M2"]

    def rapid(self, x: float, y: float) -> str:
        return f"G0 {self.xy(x, y)} F{self.short(self.machine.travel_rate)}"

    def pen_down(self) -> List[str]:
        return [f"M3 S{self.machine.servo.to_pwm(0.0)}"]

    def pen_up(self) -> List[str]:
        return [f"M3 S{self.machine.servo.to_pwm(1.0)}"]

    def feed(self, first: bool) -> str:
        return f" F{self.short(self.machine.feed_rate)}"


POST_PROCESSORS: Dict[str, Type[PostProcessor]] = {
    cls.name: cls for cls in (PostProcessor, LinuxCNCPostProcessor, RepRapPostProcessor, GrblPostProcessor)
}


def get_post_processor(machine: MachineConfig) -> PostProcessor:
    try:
        cls = POST_PROCESSORS[machine.post_processor.lower()]
    except KeyError:
        known = ", ".join(sorted(POST_PROCESSORS))
        raise ToolpathError(f"Unknown post-processor {machine.post_processor!r} (known: {known})") from None
    return cls(machine)


# ---------------------------------------------------------------------------
# Emission
# ---------------------------------------------------------------------------


def map_point(p: XY, machine: MachineConfig) -> XY:
    """Canvas point to machine coordinates."""
    x, y = p
    if machine.invert_x:
        x = -x
    if machine.invert_y:
        y = -y
    if machine.swap_axes:
        x, y = y, x
    return (x - machine.origin_x, y - machine.origin_y)


def _mirrored(machine: MachineConfig) -> bool:
    return bool(machine.invert_x) ^ bool(machine.invert_y) ^ bool(machine.swap_axes)


def emit_toolpath(model: GeometryModel, machine: Optional[MachineConfig] = None) -> str:
    """Return the G-code drawing ``model`` with ``machine``'s settings."""
    machine = machine or MachineConfig()
    post = get_post_processor(machine)
    runs = plan_runs(model, machine)
    mirrored = _mirrored(machine)

    lines = post.header()
    draws = arcs = 0
    for run in runs:
        cur = map_point(run.start, machine)
        lines.append(post.rapid(*cur))
        lines.extend(post.pen_down())
        if machine.dwell_time > 0:
            lines.extend(post.dwell())
        first = True
        for move in run.moves:
            x, y = map_point(move.end, machine)
            if move.kind == "arc" and move.center is not None:
                cx, cy = map_point(move.center, machine)
                ccw = move.ccw != mirrored
                lines.append(post.arc(x, y, cx - cur[0], cy - cur[1], ccw, first))
                arcs += 1
            else:
                lines.append(post.draw(x, y, first))
                draws += 1
            first = False
            cur = (x, y)
        lines.extend(post.pen_up())
    lines.extend(post.footer())

    logger.info(
        "Toolpath (%s): %d runs, %d line moves, %d arc moves",
        post.name,
        len(runs),
        draws,
        arcs,
    )
    return "\n".join(lines) + "\n"


__all__ = [
    "Move",
    "Run",
    "PostProcessor",
    "POST_PROCESSORS",
    "emit_toolpath",
    "fit_arcs",
    "get_post_processor",
    "join_runs",
    "map_point",
    "optimize_order",
    "plan_runs",
]
