"""Detection and splitting of sections that fold back on themselves."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Sequence
from typing import Optional

from tracematch.geometry import (
    FrequentSection,
    GpsPoint,
    SectionConfig,
    calculate_route_distance,
)
from tracematch.spatial import METERS_PER_DEGREE, PointIndex, build_rtree

logger = logging.getLogger(__name__)


def _threshold_deg_sq(threshold: float) -> float:
    threshold_deg = threshold / METERS_PER_DEGREE
    return threshold_deg * threshold_deg


def _near(index: PointIndex, point: GpsPoint, threshold_deg_sq: float) -> bool:
    nearest = index.nearest(point.latitude, point.longitude)
    return nearest is not None and (
        nearest.distance_2(point.latitude, point.longitude) <= threshold_deg_sq
    )


def detect_fold_point(polyline: Sequence[GpsPoint], threshold: float) -> Optional[int]:
    """Index where the second half of ``polyline`` starts returning over the first.

    Returns None for fewer than 10 points or when fewer than three points of
    the second half come within ``threshold`` meters of the first half.
    """
    if len(polyline) < 10:
        return None
    threshold_sq = _threshold_deg_sq(threshold)
    half = len(polyline) // 2
    first_half = build_rtree(polyline[:half])

    candidates = [
        idx
        for idx in range(half, len(polyline))
        if _near(first_half, polyline[idx], threshold_sq)
    ]
    return candidates[0] if len(candidates) >= 3 else None


def compute_fold_ratio(polyline: Sequence[GpsPoint], threshold: float) -> float:
    """Share of the last third of ``polyline`` lying on its first third.

    0.0 means no fold, 1.0 a perfect out-and-back.
    """
    if len(polyline) < 6:
        return 0.0
    threshold_sq = _threshold_deg_sq(threshold)
    third = len(polyline) // 3
    first_tree = build_rtree(polyline[:third])
    last_third = polyline[len(polyline) - third :]
    close = sum(1 for p in reversed(last_third) if _near(first_tree, p, threshold_sq))
    return close / third


def _derive(section: FrequentSection, suffix: str, polyline: list[GpsPoint], length: float) -> FrequentSection:
    part = copy.deepcopy(section)
    part.id = f"{section.id}{suffix}"
    part.polyline = polyline
    part.distance_meters = length
    part.activity_traces = {}
    return part


def _process_fold_section(
    section: FrequentSection, config: SectionConfig
) -> list[FrequentSection]:
    fold_ratio = compute_fold_ratio(section.polyline, config.proximity_threshold)
    if fold_ratio <= 0.5:
        return [section]

    fold_idx = detect_fold_point(section.polyline, config.proximity_threshold)
    if fold_idx is None:
        return [section]

    result: list[FrequentSection] = []

    outbound = list(section.polyline[:fold_idx])
    outbound_length = calculate_route_distance(outbound)
    if outbound_length >= config.min_section_length:
        result.append(_derive(section, "_out", outbound, outbound_length))

    back = list(section.polyline[fold_idx:])
    back_length = calculate_route_distance(back)
    if back_length >= config.min_section_length:
        result.append(_derive(section, "_ret", back, back_length))

    logger.info(
        "[Sections] Split folding section %s at index %d (fold_ratio=%.2f)",
        section.id,
        fold_idx,
        fold_ratio,
    )
    return result or [section]


def split_folding_sections(
    sections: Iterable[FrequentSection], config: SectionConfig
) -> list[FrequentSection]:
    """Split out-and-back sections into an outbound and a return section."""
    return [
        part
        for section in sections
        for part in _process_fold_section(section, config)
    ]