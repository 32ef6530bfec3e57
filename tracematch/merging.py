"""Merging of nearby sections and consolidation of adjacent fragments."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Sequence

from tracematch.geometry import (
    FrequentSection,
    GpsPoint,
    SectionConfig,
    calculate_route_distance,
    haversine_distance,
)
from tracematch.spatial import build_rtree, compute_containment

logger = logging.getLogger(__name__)

MAX_FRAGMENT_LENGTH = 400.0
"""Longest section (meters) treated as a short fragment."""

TIGHT_ENDPOINT_GAP = 50.0
"""Endpoint gap (meters) below which any two sections are joined."""

LOOSE_ENDPOINT_GAP = 100.0
"""Endpoint gap (meters) below which two short fragments are merged."""

MAX_MERGED_LENGTH = 3000.0
"""Longest combined length (meters) a join or merge may produce."""

MAX_CONSOLIDATION_ITERATIONS = 10

_DENSE_POLYLINE = 200


def merge_nearby_sections(
    sections: Iterable[FrequentSection], config: SectionConfig
) -> list[FrequentSection]:
    """Drop sections lying close to a more visited section of similar length.

    Sections are ordered by visit count, most visited first, and each later
    section is dropped when more than 40% of it lies within twice the
    proximity threshold of a kept, earlier one.
    """
    ordered = list(sections)
    if len(ordered) < 2:
        return ordered

    ordered.sort(key=lambda s: s.visit_count, reverse=True)
    indexes = [build_rtree(s.polyline) for s in ordered]
    keep = [True] * len(ordered)
    merge_threshold = config.proximity_threshold * 2.0

    for i, (section_i, index_i) in enumerate(zip(ordered, indexes)):
        if not keep[i]:
            continue
        for j in range(i + 1, len(ordered)):
            if not keep[j]:
                continue
            section_j = ordered[j]
            length_ratio = section_i.distance_meters / max(section_j.distance_meters, 1.0)
            if not 0.33 <= length_ratio <= 3.0:
                continue
            # Containment is a per-point fraction, so it is the same for the
            # section traversed in either direction.
            containment = compute_containment(section_j.polyline, index_i, merge_threshold)
            if containment > 0.4:
                keep[j] = False
                logger.info(
                    "[Sections] Merged nearby same section %s into %s "
                    "(%.0f%% overlap @ %dm threshold)",
                    section_j.id,
                    section_i.id,
                    containment * 100.0,
                    int(merge_threshold),
                )

    return [s for s, k in zip(ordered, keep) if k]


def consolidate_fragments(
    sections: Iterable[FrequentSection], config: SectionConfig
) -> list[FrequentSection]:
    """Join adjacent sections and short fragments until nothing more merges."""
    current = list(sections)
    if len(current) < 2:
        return current

    for iteration in range(1, MAX_CONSOLIDATION_ITERATIONS + 1):
        before = len(current)
        current = join_at_endpoints(current, TIGHT_ENDPOINT_GAP)
        current = merge_short_fragments(current, config)
        after = len(current)
        if after == before:
            logger.info(
                "[Sections] Consolidation converged after %d iteration(s)", iteration
            )
            break
        logger.info(
            "[Sections] Consolidation iteration %d: %d → %d sections",
            iteration,
            before,
            after,
        )
    return current


def _group_by_sport(sections: Sequence[FrequentSection]) -> dict[str, list[int]]:
    groups: dict[str, list[int]] = {}
    for idx, section in enumerate(sections):
        groups.setdefault(section.sport_type, []).append(idx)
    return groups


def _combine(
    first: FrequentSection,
    second: FrequentSection,
    base: FrequentSection,
    other: FrequentSection,
    suffix: str,
) -> FrequentSection:
    polyline: list[GpsPoint] = list(first.polyline) + list(second.polyline)
    if len(polyline) > _DENSE_POLYLINE:
        polyline = polyline[::2]
    merged = copy.deepcopy(base)
    merged.id = f"{base.id}{suffix}"
    merged.polyline = polyline
    merged.distance_meters = calculate_route_distance(polyline)
    merged.visit_count = max(base.visit_count, other.visit_count)
    merged.confidence = (base.confidence + other.confidence) / 2.0
    merged.activity_traces = {}
    return merged


def join_at_endpoints(
    sections: Iterable[FrequentSection], max_gap: float
) -> list[FrequentSection]:
    """Join pairs of same-sport sections whose end meets the other's start.

    Each section is joined with at most one other, the one with the smallest
    end-to-start gap not above ``max_gap`` meters, provided the combined length
    stays within ``MAX_MERGED_LENGTH``.
    """
    items = list(sections)
    if len(items) < 2:
        return items

    merged = [False] * len(items)
    result: list[FrequentSection] = []

    for indices in _group_by_sport(items).values():
        for i in indices:
            if merged[i]:
                continue
            section_i = items[i]
            best: tuple[int, float, bool] | None = None

            for j in indices:
                if i == j or merged[j]:
                    continue
                section_j = items[j]
                if section_i.distance_meters + section_j.distance_meters > MAX_MERGED_LENGTH:
                    continue
                gap_i_to_j = haversine_distance(section_i.polyline[-1], section_j.polyline[0])
                gap_j_to_i = haversine_distance(section_j.polyline[-1], section_i.polyline[0])
                if gap_i_to_j <= gap_j_to_i:
                    gap, i_first = gap_i_to_j, True
                else:
                    gap, i_first = gap_j_to_i, False
                if gap <= max_gap and (best is None or gap < best[1]):
                    best = (j, gap, i_first)

            if best is None:
                continue
            j, gap, i_first = best
            merged[i] = merged[j] = True
            section_j = items[j]
            first, second = (section_i, section_j) if i_first else (section_j, section_i)
            joined = _combine(first, second, section_i, section_j, "_joined")
            logger.info(
                "[Sections] Joined %s + %s -> %s (%.0fm + %.0fm = %.0fm, gap %.0fm)",
                section_i.id,
                section_j.id,
                joined.id,
                section_i.distance_meters,
                section_j.distance_meters,
                joined.distance_meters,
                gap,
            )
            result.append(joined)

        result.extend(items[i] for i in indices if not merged[i])

    return result


def merge_short_fragments(
    sections: Iterable[FrequentSection], config: SectionConfig
) -> list[FrequentSection]:
    """Merge pairs of same-sport fragments shorter than ``MAX_FRAGMENT_LENGTH``.

    Two fragments merge when any of their endpoints lie within
    ``LOOSE_ENDPOINT_GAP`` meters of each other; each fragment takes its
    closest partner.
    """
    items = list(sections)
    if len(items) < 2:
        return items

    merged = [False] * len(items)
    result: list[FrequentSection] = []

    for indices in _group_by_sport(items).values():
        for i in indices:
            if merged[i]:
                continue
            section_i = items[i]
            if section_i.distance_meters > MAX_FRAGMENT_LENGTH:
                continue
            best: tuple[int, float] | None = None

            for j in indices:
                if i == j or merged[j]:
                    continue
                section_j = items[j]
                if section_j.distance_meters > MAX_FRAGMENT_LENGTH:
                    continue
                if section_i.distance_meters + section_j.distance_meters > MAX_MERGED_LENGTH:
                    continue
                i_start, i_end = section_i.polyline[0], section_i.polyline[-1]
                j_start, j_end = section_j.polyline[0], section_j.polyline[-1]
                gap = min(
                    haversine_distance(i_start, j_start),
                    haversine_distance(i_start, j_end),
                    haversine_distance(i_end, j_start),
                    haversine_distance(i_end, j_end),
                )
                if gap <= LOOSE_ENDPOINT_GAP and (best is None or gap < best[1]):
                    best = (j, gap)

            if best is None:
                continue
            j, gap = best
            merged[i] = merged[j] = True
            section_j = items[j]
            end_to_start = haversine_distance(section_i.polyline[-1], section_j.polyline[0])
            if end_to_start <= config.proximity_threshold * 2.0:
                first, second = section_i, section_j
            else:
                first, second = section_j, section_i
            combined = _combine(first, second, section_i, section_j, "_merged")
            logger.info(
                "[Sections] Merged fragments %s + %s -> %s "
                "(%.0fm + %.0fm = %.0fm, gap %.0fm)",
                section_i.id,
                section_j.id,
                combined.id,
                section_i.distance_meters,
                section_j.distance_meters,
                combined.distance_meters,
                gap,
            )
            result.append(combined)

        result.extend(items[i] for i in indices if not merged[i])

    return result