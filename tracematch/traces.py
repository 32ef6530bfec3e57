"""Extraction of the parts of activity tracks that run along a section."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Optional

from tracematch.geometry import GpsPoint
from tracematch.spatial import METERS_PER_DEGREE, PointIndex, build_rtree

TRACE_PROXIMITY_THRESHOLD = 50.0
"""Distance in meters within which a track point counts as on the section."""

MIN_TRACE_POINTS = 3
"""Fewest points a run of nearby points needs to count as a trace."""

MAX_GAP = 3
"""Number of consecutive off-section points tolerated inside a trace."""


def _near(index: PointIndex, point: GpsPoint, threshold_deg_sq: float) -> bool:
    nearest = index.nearest(point.latitude, point.longitude)
    return nearest is not None and (
        nearest.distance_2(point.latitude, point.longitude) <= threshold_deg_sq
    )


def extract_activity_trace(
    track: Sequence[GpsPoint],
    section_polyline: Sequence[GpsPoint],
    index: PointIndex,
) -> list[GpsPoint]:
    """Return the longest run of ``track`` that follows the section.

    Short gaps of up to ``MAX_GAP`` off-section points are kept inside a run.
    When several runs are equally long, the last one wins.
    """
    if len(track) < MIN_TRACE_POINTS or len(section_polyline) < 2:
        return []

    threshold_deg = (TRACE_PROXIMITY_THRESHOLD * 1.2) / METERS_PER_DEGREE
    threshold_deg_sq = threshold_deg * threshold_deg

    sequences: list[list[GpsPoint]] = []
    current: list[GpsPoint] = []
    gap_count = 0

    for point in track:
        if _near(index, point, threshold_deg_sq):
            gap_count = 0
            current.append(point)
            continue
        gap_count += 1
        if gap_count <= MAX_GAP:
            if current:
                current.append(point)
        else:
            if len(current) >= MIN_TRACE_POINTS:
                sequences.append(current)
            current = []
            gap_count = 0

    if len(current) >= MIN_TRACE_POINTS:
        sequences.append(current)

    best: Optional[list[GpsPoint]] = None
    for sequence in sequences:
        if best is None or len(sequence) >= len(best):
            best = sequence
    return best if best is not None else []


def extract_all_activity_traces(
    activity_ids: Sequence[str],
    section_polyline: Sequence[GpsPoint],
    track_map: Mapping[str, Sequence[GpsPoint]],
) -> dict[str, list[GpsPoint]]:
    """Map each activity with a track and a non-empty trace to that trace."""
    index = build_rtree(section_polyline)
    traces: dict[str, list[GpsPoint]] = {}
    for activity_id in activity_ids:
        track = track_map.get(activity_id)
        if track is None:
            continue
        trace = extract_activity_trace(track, section_polyline, index)
        if trace:
            traces[activity_id] = trace
    return traces