"""Chain finding: group paths that touch end to end into open or closed chains.

Chains are derived views.  They are recomputed whenever needed and never
stored in the model.  Every coordinate in a :class:`Chain` is absolute,
whether the search starts at the root or at a nested model.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .geometry import (
    XY,
    Arc,
    Circle,
    GeometryModel,
    Line,
    Path,
    distance,
    flatten_path,
    is_full_turn,
    path_endpoints,
    path_length,
    to_absolute,
)

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.05


@dataclass
class Link:
    """One path inside a chain, with its traversal direction."""

    path: Path
    reversed: bool
    start: XY
    end: XY
    route: Tuple[str, ...] = ()
    path_id: str = ""

    @property
    def length(self) -> float:
        return path_length(self.path)

    def points(self, max_chord: float = 0.5) -> List[XY]:
        pts = flatten_path(self.path, max_chord)
        return pts[::-1] if self.reversed else pts


@dataclass
class Chain:
    links: List[Link]
    closed: bool

    @property
    def start(self) -> XY:
        return self.links[0].start

    @property
    def end(self) -> XY:
        return self.links[-1].end

    @property
    def length(self) -> float:
        return sum(link.length for link in self.links)

    def points(self, max_chord: float = 0.5) -> List[XY]:
        """Flattened traversal of the chain, joints not repeated."""
        out: List[XY] = []
        for link in self.links:
            pts = link.points(max_chord)
            out.extend(pts if not out else pts[1:])
        return out

    def polygon(self, max_chord: float = 0.5) -> List[XY]:
        """Vertices of a closed chain without the repeated closing point."""
        pts = self.points(max_chord)
        if len(pts) > 1 and distance(pts[0], pts[-1]) < 1e-9:
            pts = pts[:-1]
        return pts


def _unit(dx: float, dy: float) -> XY:
    n = math.hypot(dx, dy)
    return (dx / n, dy / n) if n > 0 else (0.0, 0.0)


def _forward_tangent(path: Path, at_end: bool) -> XY:
    """Unit tangent in the path's own direction at its start or end."""
    if isinstance(path, Line):
        return _unit(path.end[0] - path.start[0], path.end[1] - path.start[1])
    if isinstance(path, Arc):
        angle = math.radians(path.end_angle if at_end else path.start_angle)
        return (-math.sin(angle), math.cos(angle))
    if isinstance(path, Circle):
        return (0.0, 1.0)
    raise TypeError(f"Unsupported path: {type(path)!r}")


def _in_dir(path: Path, reversed_: bool) -> XY:
    if reversed_:
        tx, ty = _forward_tangent(path, at_end=True)
        return (-tx, -ty)
    return _forward_tangent(path, at_end=False)


def _out_dir(path: Path, reversed_: bool) -> XY:
    if reversed_:
        tx, ty = _forward_tangent(path, at_end=False)
        return (-tx, -ty)
    return _forward_tangent(path, at_end=True)


@dataclass
class _Item:
    route: Tuple[str, ...]
    key: str
    path: Path
    start: XY
    end: XY

    def link(self, reversed_: bool) -> Link:
        start, end = (self.end, self.start) if reversed_ else (self.start, self.end)
        return Link(self.path, reversed_, start, end, self.route, self.key)


class _EndpointIndex:
    """Spatial hash of path endpoints bucketed by the matching tolerance."""

    def __init__(self, tolerance: float) -> None:
        self.tolerance = tolerance
        self.cell = max(tolerance, 1e-9)
        self._grid: Dict[Tuple[int, int], List[Tuple[int, bool]]] = defaultdict(list)

    def _key(self, p: XY) -> Tuple[int, int]:
        return (int(math.floor(p[0] / self.cell)), int(math.floor(p[1] / self.cell)))

    def add(self, index: int, point: XY, is_end: bool) -> None:
        self._grid[self._key(point)].append((index, is_end))

    def near(self, p: XY) -> List[Tuple[int, bool]]:
        kx, ky = self._key(p)
        found: List[Tuple[int, bool]] = []
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                found.extend(self._grid.get((kx + dx, ky + dy), ()))
        return found


def _collect(model: GeometryModel, offset: XY, shallow: bool, include_hidden: bool) -> List[_Item]:
    items: List[_Item] = []
    if shallow:
        here = (offset[0] + model.origin[0], offset[1] + model.origin[1])
        walked = [((), key, to_absolute(path, here)) for key, path in model.paths.items()]
    else:
        walked = [(item.route, item.key, item.absolute) for item in model.walk(offset, include_hidden=include_hidden)]
    for route, key, path in walked:
        start, end = path_endpoints(path)
        items.append(_Item(route, key, path, start, end))
    return items


def find_chains(
    model: GeometryModel,
    tolerance: float = DEFAULT_TOLERANCE,
    offset: XY = (0.0, 0.0),
    shallow: bool = False,
    include_hidden: bool = True,
) -> List[Chain]:
    """Group the paths of ``model`` into chains.

    ``offset`` is the absolute offset of ``model``'s parent (zero for the
    root); the model's own origin is added here.  With ``shallow`` only the
    model's own paths are considered, not those of its children.
    """
    items = _collect(model, offset, shallow, include_hidden)
    visited = [False] * len(items)
    index = _EndpointIndex(tolerance)
    for i, item in enumerate(items):
        if is_full_turn(item.path) or distance(item.start, item.end) <= tolerance and isinstance(item.path, Line):
            continue
        index.add(i, item.start, False)
        index.add(i, item.end, True)

    def best(point: XY, direction: XY, attach_at_end: bool) -> Optional[Tuple[int, bool]]:
        """Pick the unvisited path touching ``point`` that turns the least.

        ``attach_at_end`` is True when extending the tail: the candidate's
        traversal must then start at ``point``.
        """
        ranked = []
        for i, touches_end in index.near(point):
            if visited[i]:
                continue
            item = items[i]
            if distance(point, item.end if touches_end else item.start) > tolerance:
                continue
            if attach_at_end:
                reversed_ = touches_end
                tx, ty = _in_dir(item.path, reversed_)
            else:
                reversed_ = not touches_end
                tx, ty = _out_dir(item.path, reversed_)
            dot = direction[0] * tx + direction[1] * ty
            ranked.append((-round(dot, 9), i, reversed_))
        if not ranked:
            return None
        ranked.sort()
        _, i, reversed_ = ranked[0]
        return i, reversed_

    chains: List[Chain] = []
    for i, item in enumerate(items):
        if visited[i]:
            continue
        visited[i] = True
        if is_full_turn(item.path):
            chains.append(Chain([item.link(False)], closed=True))
            continue
        if isinstance(item.path, Line) and distance(item.start, item.end) <= tolerance:
            chains.append(Chain([item.link(False)], closed=False))
            continue

        links = [item.link(False)]
        closed = False
        while True:
            if len(links) > 1 and distance(links[-1].end, links[0].start) <= tolerance:
                closed = True
                break
            tail = links[-1]
            found = best(tail.end, _out_dir(tail.path, tail.reversed), attach_at_end=True)
            if found is None:
                break
            visited[found[0]] = True
            links.append(items[found[0]].link(found[1]))

        if not closed:
            while True:
                head = links[0]
                found = best(head.start, _in_dir(head.path, head.reversed), attach_at_end=False)
                if found is None:
                    break
                visited[found[0]] = True
                links.insert(0, items[found[0]].link(found[1]))
                if distance(links[-1].end, links[0].start) <= tolerance:
                    closed = True
                    break
        if len(links) == 1 and distance(links[0].start, links[0].end) <= tolerance:
            closed = True
        chains.append(Chain(links, closed))

    logger.debug("find_chains: %d paths -> %d chains", len(items), len(chains))
    return chains


__all__ = ["Link", "Chain", "find_chains", "DEFAULT_TOLERANCE"]
