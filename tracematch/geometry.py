"""GPS points, section records, detection settings and distance helpers."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from itertools import pairwise
from typing import Optional

EARTH_RADIUS_METERS = 6_371_000.0


@dataclass(frozen=True)
class GpsPoint:
    """A latitude/longitude pair in degrees with optional elevation in meters."""

    latitude: float
    longitude: float
    elevation: Optional[float] = None

    def is_valid(self) -> bool:
        """True when both coordinates are finite and within their ranges."""
        return (
            math.isfinite(self.latitude)
            and math.isfinite(self.longitude)
            and -90.0 <= self.latitude <= 90.0
            and -180.0 <= self.longitude <= 180.0
        )


@dataclass
class FrequentSection:
    """A stretch of path travelled by several activities."""

    id: str
    sport_type: str
    polyline: list[GpsPoint]
    name: Optional[str] = None
    representative_activity_id: str = ""
    activity_ids: list[str] = field(default_factory=list)
    activity_portions: list = field(default_factory=list)
    route_ids: list[str] = field(default_factory=list)
    visit_count: int = 0
    distance_meters: float = 0.0
    activity_traces: dict[str, list[GpsPoint]] = field(default_factory=dict)
    confidence: float = 0.0
    observation_count: int = 0
    average_spread: float = 0.0
    point_density: list[int] = field(default_factory=list)
    scale: Optional[str] = None
    version: int = 1
    is_user_defined: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    stability: float = 0.0


@dataclass
class SectionConfig:
    """Settings for section detection and post-processing."""

    proximity_threshold: float = 50.0
    min_section_length: float = 200.0
    max_section_length: float = 5000.0
    min_activities: int = 3
    cluster_tolerance: float = 80.0


def haversine_distance(a: GpsPoint, b: GpsPoint) -> float:
    """Great-circle distance in meters between two points."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(min(1.0, h)))


def calculate_route_distance(points: Sequence[GpsPoint]) -> float:
    """Total length in meters of the path through ``points``."""
    return sum(haversine_distance(a, b) for a, b in pairwise(points))