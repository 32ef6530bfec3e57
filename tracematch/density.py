"""Splitting of sections whose middle is travelled far more than their ends."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from tracematch.geometry import (
    FrequentSection,
    GpsPoint,
    SectionConfig,
    calculate_route_distance,
)
from tracematch.spatial import METERS_PER_DEGREE, PointIndex, build_rtree

logger = logging.getLogger(__name__)

SPLIT_DENSITY_RATIO = 2.0
"""Window density over endpoint density at which a high-traffic region starts."""

MIN_SPLIT_LENGTH = 100.0
"""Shortest high-traffic portion (meters) that becomes a section of its own."""

MIN_SPLIT_POINTS = 10
"""Fewest points spanned by a high-traffic portion."""

_EXPANSION_FACTOR = 1.5
_MIN_OVERLAP_SHARE = 0.5


@dataclass(frozen=True)
class SplitCandidate:
    """A high-traffic stretch of a section, with inclusive point indices."""

    start_idx: int
    end_idx: int
    avg_density: float
    density_ratio: float


def _mean(values: Sequence[int]) -> float:
    return sum(values) / len(values)


def find_split_candidates(section: FrequentSection) -> list[SplitCandidate]:
    """Find stretches of ``section`` visited much more often than its ends.

    Raises IndexError when a candidate stretch reaches past the polyline.
    """
    density = section.point_density
    n = len(density)
    if n < MIN_SPLIT_POINTS * 2:
        return []

    endpoint_window = max(n // 10, 3)
    start_density = _mean(density[:endpoint_window])
    end_density = _mean(density[n - endpoint_window :])
    endpoint_density = (start_density + end_density) / 2.0
    if endpoint_density < 1.0:
        return []

    window_size = max(n // 5, MIN_SPLIT_POINTS)
    half = window_size // 2
    high = endpoint_density * _EXPANSION_FACTOR
    candidates: list[SplitCandidate] = []

    i = window_size
    while i < n - window_size:
        window_density = sum(density[i - half : i + half]) / window_size
        if window_density / endpoint_density < SPLIT_DENSITY_RATIO:
            i += 1
            continue

        start_idx = i - half
        end_idx = i + half
        while start_idx > 0 and density[start_idx - 1] >= high:
            start_idx -= 1
        while end_idx < n - 1 and density[end_idx + 1] >= high:
            end_idx += 1

        if end_idx > start_idx:
            if end_idx >= len(section.polyline):
                raise IndexError(
                    f"section {section.id}: point density reaches index {end_idx} "
                    f"but the polyline has {len(section.polyline)} points"
                )
            portion_distance = calculate_route_distance(
                section.polyline[start_idx : end_idx + 1]
            )
        else:
            portion_distance = 0.0

        if portion_distance >= MIN_SPLIT_LENGTH and end_idx - start_idx >= MIN_SPLIT_POINTS:
            portion_density = _mean(density[start_idx : end_idx + 1])
            candidates.append(
                SplitCandidate(
                    start_idx=start_idx,
                    end_idx=end_idx,
                    avg_density=portion_density,
                    density_ratio=portion_density / endpoint_density,
                )
            )
            i = end_idx + window_size
        else:
            i += 1

    return candidates


def _overlap_points(
    track: Sequence[GpsPoint], index: PointIndex, threshold_deg_sq: float
) -> list[GpsPoint]:
    near: list[GpsPoint] = []
    for point in track:
        nearest = index.nearest(point.latitude, point.longitude)
        if nearest is not None and (
            nearest.distance_2(point.latitude, point.longitude) <= threshold_deg_sq
        ):
            near.append(point)
    return near


def split_section_by_density(
    section: FrequentSection,
    track_map: Mapping[str, Sequence[GpsPoint]],
    config: SectionConfig,
) -> list[FrequentSection]:
    """Return new sections for the high-traffic stretches, then ``section`` itself.

    A stretch becomes a section only when at least ``config.min_activities``
    of the section's activities cover half its length or more.
    """
    candidates = find_split_candidates(section)
    if not candidates:
        return [section]

    logger.info(
        "[Sections] Found %d split candidates for section %s (len=%dm)",
        len(candidates),
        section.id,
        int(section.distance_meters),
    )

    threshold_deg = config.proximity_threshold / METERS_PER_DEGREE
    threshold_deg_sq = threshold_deg * threshold_deg
    result: list[FrequentSection] = []

    for split_idx, candidate in enumerate(candidates):
        stop = candidate.end_idx + 1
        split_polyline = list(section.polyline[candidate.start_idx : stop])
        split_density = list(section.point_density[candidate.start_idx : stop])
        split_distance = calculate_route_distance(split_polyline)
        split_index = build_rtree(split_polyline)

        activity_ids: list[str] = []
        traces: dict[str, list[GpsPoint]] = {}
        for activity_id in section.activity_ids:
            track = track_map.get(activity_id)
            if track is None:
                continue
            overlap = _overlap_points(track, split_index, threshold_deg_sq)
            if calculate_route_distance(overlap) >= split_distance * _MIN_OVERLAP_SHARE:
                activity_ids.append(activity_id)
                if overlap:
                    traces[activity_id] = overlap

        if len(activity_ids) < config.min_activities:
            continue

        split_section = FrequentSection(
            id=f"{section.id}_split{split_idx}",
            name=None,
            sport_type=section.sport_type,
            polyline=split_polyline,
            representative_activity_id=section.representative_activity_id,
            activity_ids=activity_ids,
            activity_portions=[],
            route_ids=list(section.route_ids),
            visit_count=int(candidate.avg_density),
            distance_meters=split_distance,
            activity_traces=traces,
            confidence=section.confidence,
            observation_count=int(candidate.avg_density),
            average_spread=section.average_spread,
            point_density=split_density,
            scale=section.scale,
            version=section.version,
            is_user_defined=section.is_user_defined,
            created_at=section.created_at,
            updated_at=section.updated_at,
            stability=section.stability,
        )
        logger.info(
            "[Sections] Created split section %s with %d activities (density ratio %.1fx)",
            split_section.id,
            len(activity_ids),
            candidate.density_ratio,
        )
        result.append(split_section)

    result.append(section)
    return result


def split_high_variance_sections(
    sections: Iterable[FrequentSection],
    track_map: Mapping[str, Sequence[GpsPoint]],
    config: SectionConfig,
) -> list[FrequentSection]:
    """Add density-based split sections alongside each original section."""
    return [
        part
        for section in sections
        for part in split_section_by_density(section, track_map, config)
    ]