"""Overlap removal, mutual exclusivity and quality filtering of sections."""

from __future__ import annotations

import copy
import logging
import math
from collections.abc import Iterable, Sequence
from typing import Optional

from tracematch.geometry import (
    FrequentSection,
    SectionConfig,
    calculate_route_distance,
)
from tracematch.spatial import (
    METERS_PER_DEGREE,
    PointIndex,
    build_rtree,
    compute_containment,
    is_loop_section,
)

logger = logging.getLogger(__name__)

LOOP_PRIORITY_BOOST = 1.5
"""Priority multiplier given to loop sections when claiming territory."""

MIN_QUALITY_POINTS = 8
"""Fewest polyline points a section needs to pass the quality filter."""

MIN_TRIMMED_POINTS = 3
"""Fewest points a trimmed section must keep."""


def remove_overlapping_sections(
    sections: Iterable[FrequentSection], config: SectionConfig
) -> list[FrequentSection]:
    """Remove sections that largely overlap another section.

    Sections are ordered by length, shortest first, ties broken by visit count,
    most visited first. Loop sections are never removed.
    """
    ordered = list(sections)
    if len(ordered) < 2:
        return ordered

    loop_threshold = config.proximity_threshold * 2.0
    ordered.sort(key=lambda s: (s.distance_meters, -s.visit_count))

    indexes = [build_rtree(s.polyline) for s in ordered]
    is_loop = [is_loop_section(s, loop_threshold) for s in ordered]
    keep = [True] * len(ordered)
    threshold = config.proximity_threshold

    for i, section_i in enumerate(ordered):
        if not keep[i]:
            continue
        for j in range(i + 1, len(ordered)):
            if not keep[j]:
                continue
            section_j = ordered[j]
            j_in_i = compute_containment(section_j.polyline, indexes[i], threshold)
            i_in_j = compute_containment(section_i.polyline, indexes[j], threshold)

            if j_in_i > 0.6 and not is_loop[j]:
                logger.info(
                    "[Sections] Removing %s (%dm) - %d%% contained in %s (%dm)",
                    section_j.id,
                    int(section_j.distance_meters),
                    int(j_in_i * 100.0),
                    section_i.id,
                    int(section_i.distance_meters),
                )
                keep[j] = False
            elif i_in_j > 0.8 and not is_loop[i]:
                logger.info(
                    "[Sections] Removing %s (%dm) - %d%% contained in %s (%dm)",
                    section_i.id,
                    int(section_i.distance_meters),
                    int(i_in_j * 100.0),
                    section_j.id,
                    int(section_j.distance_meters),
                )
                keep[i] = False
                break
            elif j_in_i > 0.4 and i_in_j > 0.4 and not is_loop[i] and not is_loop[j]:
                logger.info(
                    "[Sections] Removing %s due to mutual overlap with %s (%d%% vs %d%%)",
                    section_j.id,
                    section_i.id,
                    int(j_in_i * 100.0),
                    int(i_in_j * 100.0),
                )
                keep[j] = False

    result = [s for s, k in zip(ordered, keep) if k]
    loop_count = sum(1 for s in result if is_loop_section(s, loop_threshold))
    logger.info(
        "[Sections] After removing overlaps: %d sections (%d loops protected)",
        len(result),
        loop_count,
    )
    return result


def _priority(section: FrequentSection, loop_threshold: float) -> float:
    boost = LOOP_PRIORITY_BOOST if is_loop_section(section, loop_threshold) else 1.0
    visits = math.log(section.visit_count) if section.visit_count > 0 else -math.inf
    return section.confidence * max(visits, 1.0) * boost


def make_sections_exclusive(
    sections: Iterable[FrequentSection], config: SectionConfig
) -> list[FrequentSection]:
    """Trim sections so that no two of them cover the same ground.

    Sections claim territory in priority order (confidence times the log of
    the visit count, with loops boosted); later sections keep only their
    longest unclaimed stretch. Loops are kept whole.
    """
    ordered = list(sections)
    if len(ordered) < 2:
        return ordered

    loop_threshold = config.proximity_threshold * 2.0
    ordered.sort(key=lambda s: _priority(s, loop_threshold), reverse=True)

    result: list[FrequentSection] = []
    claimed: list[PointIndex] = []
    loop_count = 0

    for section in ordered:
        if is_loop_section(section, loop_threshold):
            logger.info(
                "[Sections] Preserving loop section %s (%.0fm, %d visits)",
                section.id,
                section.distance_meters,
                section.visit_count,
            )
            claimed.append(build_rtree(section.polyline))
            result.append(section)
            loop_count += 1
            continue

        trimmed = trim_to_unclaimed(section, claimed, config)
        if trimmed is not None and trimmed.distance_meters >= config.min_section_length:
            claimed.append(build_rtree(trimmed.polyline))
            result.append(trimmed)

    logger.info(
        "[Sections] After making exclusive: %d sections (%d loops preserved)",
        len(result),
        loop_count,
    )
    return result


def _longest_true_run(mask: Sequence[bool]) -> tuple[int, int]:
    best_start = best_len = 0
    current_start = current_len = 0
    for i, flag in enumerate(mask):
        if flag:
            if current_len == 0:
                current_start = i
            current_len += 1
            if current_len > best_len:
                best_start, best_len = current_start, current_len
        else:
            current_len = 0
    return best_start, best_len


def trim_to_unclaimed(
    section: FrequentSection,
    claimed: Sequence[PointIndex],
    config: SectionConfig,
) -> Optional[FrequentSection]:
    """Return a copy of ``section`` cut down to its longest unclaimed stretch.

    Returns None when fewer than three consecutive points are unclaimed or the
    remaining stretch is shorter than the minimum section length.
    """
    if not claimed:
        return copy.deepcopy(section)

    threshold_deg = config.proximity_threshold / METERS_PER_DEGREE
    threshold_deg_sq = threshold_deg * threshold_deg

    def unclaimed(lat: float, lng: float) -> bool:
        for index in claimed:
            nearest = index.nearest(lat, lng)
            if nearest is not None and nearest.distance_2(lat, lng) <= threshold_deg_sq:
                return False
        return True

    mask = [unclaimed(p.latitude, p.longitude) for p in section.polyline]
    start, length = _longest_true_run(mask)
    if length < MIN_TRIMMED_POINTS:
        return None

    end = start + length
    polyline = list(section.polyline[start:end])
    distance = calculate_route_distance(polyline)
    if distance < config.min_section_length:
        return None

    trimmed = copy.deepcopy(section)
    trimmed.polyline = polyline
    trimmed.distance_meters = distance
    if section.point_density and end <= len(section.point_density):
        trimmed.point_density = list(section.point_density[start:end])
    return trimmed


def required_visits_for_length(distance_meters: float) -> int:
    """Visits a section of this length needs to count as a real pattern."""
    if distance_meters < 200.0:
        return 6
    if distance_meters < 400.0:
        return 4
    if distance_meters < 800.0:
        return 3
    return 2


def filter_low_quality_sections(
    sections: Iterable[FrequentSection],
) -> list[FrequentSection]:
    """Keep sections with enough visits for their length and enough points."""
    items = list(sections)
    filtered: list[FrequentSection] = []
    for section in items:
        min_visits = required_visits_for_length(section.distance_meters)
        if section.visit_count >= min_visits and len(section.polyline) >= MIN_QUALITY_POINTS:
            filtered.append(section)
        else:
            logger.info(
                "[Sections] Filtered out %s: %.0fm with %d visits (needs %d visits) and %d points",
                section.id,
                section.distance_meters,
                section.visit_count,
                min_visits,
                len(section.polyline),
            )
    logger.info("[Sections] Quality filter: %d → %d sections", len(items), len(filtered))
    return filtered