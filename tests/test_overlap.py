import math

import pytest

from tracematch.geometry import (
    FrequentSection,
    GpsPoint,
    SectionConfig,
    calculate_route_distance,
)
from tracematch.overlap import (
    filter_low_quality_sections,
    make_sections_exclusive,
    remove_overlapping_sections,
    required_visits_for_length,
    trim_to_unclaimed,
)
from tracematch.spatial import build_rtree

STEP = 0.001


def line(start_index, count, lng=0.0):
    return [GpsPoint((start_index + i) * STEP, lng) for i in range(count)]


def ring(count=20, radius=0.005, lat0=10.0, lng0=10.0):
    pts = [
        GpsPoint(
            lat0 + radius * math.cos(2 * math.pi * i / count),
            lng0 + radius * math.sin(2 * math.pi * i / count),
        )
        for i in range(count)
    ]
    return pts + [pts[0]]


def make_section(sid, polyline, visits=3, confidence=0.5, sport="Run", density=None):
    return FrequentSection(
        id=sid,
        sport_type=sport,
        polyline=polyline,
        visit_count=visits,
        confidence=confidence,
        distance_meters=calculate_route_distance(polyline),
        point_density=density if density is not None else [],
    )


@pytest.mark.parametrize(
    "distance, expected",
    [
        (0.0, 6),
        (199.9, 6),
        (200.0, 4),
        (399.9, 4),
        (400.0, 3),
        (799.9, 3),
        (800.0, 2),
        (5000.0, 2),
    ],
)
def test_required_visits_for_length(distance, expected):
    assert required_visits_for_length(distance) == expected


def test_filter_low_quality_sections():
    good = make_section("good", line(0, 10), visits=2)
    short_rare = make_section("short", line(100, 2), visits=5)
    few_points = make_section("few", [GpsPoint(1.0, 0.0), GpsPoint(1.01, 0.0)], visits=10)
    result = filter_low_quality_sections([good, short_rare, few_points])
    assert [s.id for s in result] == ["good"]


def test_filter_keeps_order():
    a = make_section("a", line(0, 10), visits=9)
    b = make_section("b", line(50, 10), visits=9)
    assert [s.id for s in filter_low_quality_sections([a, b])] == ["a", "b"]


def test_remove_overlapping_single_section_unchanged():
    s = make_section("only", line(0, 5))
    assert remove_overlapping_sections([s], SectionConfig()) == [s]


def test_remove_overlapping_drops_longer_mostly_contained():
    short = make_section("short", line(0, 10))
    longer = make_section("long", line(0, 12))
    result = remove_overlapping_sections([longer, short], SectionConfig())
    assert [s.id for s in result] == ["short"]


def test_remove_overlapping_drops_small_section_inside_long_one():
    small = make_section("small", line(0, 6))
    big = make_section("big", line(0, 21))
    result = remove_overlapping_sections([small, big], SectionConfig())
    assert [s.id for s in result] == ["big"]


def test_remove_overlapping_keeps_disjoint_sorted_by_length():
    a = make_section("a", line(0, 20))
    b = make_section("b", line(0, 10, lng=1.0))
    result = remove_overlapping_sections([a, b], SectionConfig())
    assert [s.id for s in result] == ["b", "a"]


def test_remove_overlapping_identical_prefers_more_visits():
    a = make_section("a", line(0, 12), visits=3)
    b = make_section("b", line(0, 12), visits=5)
    result = remove_overlapping_sections([a, b], SectionConfig())
    assert [s.id for s in result] == ["b"]


def test_remove_overlapping_protects_loops():
    a = make_section("loop_a", ring())
    b = make_section("loop_b", ring())
    result = remove_overlapping_sections([a, b], SectionConfig())
    assert sorted(s.id for s in result) == ["loop_a", "loop_b"]


def test_trim_without_claims_returns_copy():
    s = make_section("s", line(0, 10), density=list(range(10)))
    trimmed = trim_to_unclaimed(s, [], SectionConfig())
    assert trimmed == s
    assert trimmed is not s


def test_trim_keeps_longest_unclaimed_run():
    poly = line(0, 30)
    s = make_section("s", poly, density=list(range(30)))
    claimed = [build_rtree(line(0, 10))]
    trimmed = trim_to_unclaimed(s, claimed, SectionConfig(min_section_length=200.0))
    assert trimmed is not None
    assert trimmed.polyline == poly[10:]
    assert trimmed.point_density == list(range(10, 30))
    assert trimmed.distance_meters == pytest.approx(calculate_route_distance(poly[10:]))
    assert s.polyline == poly


def test_trim_fully_claimed_returns_none():
    s = make_section("s", line(0, 10))
    claimed = [build_rtree(line(0, 10))]
    assert trim_to_unclaimed(s, claimed, SectionConfig()) is None


def test_trim_too_short_remainder_returns_none():
    s = make_section("s", line(0, 14))
    claimed = [build_rtree(line(0, 10))]
    assert trim_to_unclaimed(s, claimed, SectionConfig(min_section_length=1000.0)) is None


def test_trim_density_left_alone_when_too_short():
    s = make_section("s", line(0, 30), density=[1, 2, 3])
    claimed = [build_rtree(line(0, 10))]
    trimmed = trim_to_unclaimed(s, claimed, SectionConfig(min_section_length=200.0))
    assert trimmed is not None
    assert trimmed.point_density == [1, 2, 3]


def test_make_exclusive_trims_lower_priority():
    first_poly = line(0, 20)
    second_poly = line(10, 30)
    high = make_section("high", first_poly, visits=10, confidence=0.9)
    low = make_section("low", second_poly, visits=3, confidence=0.5)
    config = SectionConfig(min_section_length=200.0)
    result = make_sections_exclusive([low, high], config)
    assert [s.id for s in result] == ["high", "low"]
    assert result[0].polyline == first_poly
    assert result[1].polyline == second_poly[10:]


def test_make_exclusive_drops_fully_claimed():
    high = make_section("high", line(0, 20), visits=10, confidence=0.9)
    low = make_section("low", line(5, 10), visits=3, confidence=0.5)
    result = make_sections_exclusive([high, low], SectionConfig())
    assert [s.id for s in result] == ["high"]


def test_make_exclusive_preserves_loops():
    straight = make_section("straight", line(0, 20), visits=10, confidence=0.9)
    loop_a = make_section("loop_a", ring(), visits=3, confidence=0.5)
    loop_b = make_section("loop_b", ring(), visits=3, confidence=0.5)
    result = make_sections_exclusive([straight, loop_a, loop_b], SectionConfig())
    ids = [s.id for s in result]
    assert set(ids) == {"straight", "loop_a", "loop_b"}
    by_id = {s.id: s for s in result}
    assert by_id["loop_a"].polyline == loop_a.polyline
    assert by_id["loop_b"].polyline == loop_b.polyline


def test_make_exclusive_single_section_unchanged():
    s = make_section("only", line(0, 3))
    assert make_sections_exclusive([s], SectionConfig()) == [s]


def test_make_exclusive_handles_zero_visits():
    a = make_section("a", line(0, 10), visits=0, confidence=0.5)
    b = make_section("b", line(0, 10, lng=1.0), visits=0, confidence=0.5)
    result = make_sections_exclusive([a, b], SectionConfig(min_section_length=100.0))
    assert [s.id for s in result] == ["a", "b"]