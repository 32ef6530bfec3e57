"""Nearest-neighbour index over GPS points and containment helpers."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from operator import attrgetter
from typing import Optional

from tracematch.geometry import FrequentSection, GpsPoint, haversine_distance

METERS_PER_DEGREE = 111_000.0


@dataclass(frozen=True)
class IndexedPoint:
    """A point with its position in the polyline it came from."""

    idx: int
    lat: float
    lng: float

    def distance_2(self, lat: float, lng: float) -> float:
        """Squared planar distance in degrees to ``(lat, lng)``."""
        dlat = self.lat - lat
        dlng = self.lng - lng
        return dlat * dlat + dlng * dlng


@dataclass
class _Node:
    point: IndexedPoint
    axis: int
    left: Optional["_Node"]
    right: Optional["_Node"]


_AXIS_KEYS = (attrgetter("lat"), attrgetter("lng"))


class PointIndex:
    """A 2-d tree answering nearest-point queries in degree space."""

    def __init__(self, points: Iterable[IndexedPoint]) -> None:
        items = list(points)
        self._size = len(items)
        self._root = self._build(items, 0)

    @classmethod
    def _build(cls, items: list[IndexedPoint], depth: int) -> Optional[_Node]:
        if not items:
            return None
        axis = depth % 2
        items.sort(key=_AXIS_KEYS[axis])
        mid = len(items) // 2
        return _Node(
            items[mid],
            axis,
            cls._build(items[:mid], depth + 1),
            cls._build(items[mid + 1 :], depth + 1),
        )

    def nearest(self, lat: float, lng: float) -> Optional[IndexedPoint]:
        """Return the indexed point closest to ``(lat, lng)``, or None if empty."""
        best: Optional[IndexedPoint] = None
        best_d = math.inf
        stack: list[tuple[_Node, float]] = []
        if self._root is not None:
            stack.append((self._root, 0.0))
        while stack:
            node, bound = stack.pop()
            if bound >= best_d:
                continue
            d = node.point.distance_2(lat, lng)
            if d < best_d:
                best, best_d = node.point, d
            query = lat if node.axis == 0 else lng
            split = node.point.lat if node.axis == 0 else node.point.lng
            diff = query - split
            near, far = (node.left, node.right) if diff < 0 else (node.right, node.left)
            if far is not None:
                stack.append((far, diff * diff))
            if near is not None:
                stack.append((near, 0.0))
        return best

    def __len__(self) -> int:
        return self._size


def build_rtree(points: Sequence[GpsPoint]) -> PointIndex:
    """Index ``points`` by position, remembering each point's index."""
    return PointIndex(
        IndexedPoint(i, p.latitude, p.longitude) for i, p in enumerate(points)
    )


def _is_near(index: PointIndex, point: GpsPoint, threshold_deg_sq: float) -> bool:
    nearest = index.nearest(point.latitude, point.longitude)
    return nearest is not None and (
        nearest.distance_2(point.latitude, point.longitude) <= threshold_deg_sq
    )


def compute_containment(
    points: Sequence[GpsPoint], index: PointIndex, threshold: float
) -> float:
    """Fraction of ``points`` lying within ``threshold`` meters of the index."""
    if not points:
        return 0.0
    threshold_deg = threshold / METERS_PER_DEGREE
    threshold_deg_sq = threshold_deg * threshold_deg
    contained = sum(1 for p in points if _is_near(index, p, threshold_deg_sq))
    return contained / len(points)


def is_loop_section(section: FrequentSection, threshold: float) -> bool:
    """True when the section has at least 10 points and starts near where it ends."""
    polyline = section.polyline
    if len(polyline) < 10:
        return False
    return haversine_distance(polyline[0], polyline[-1]) < threshold