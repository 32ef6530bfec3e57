from tracematch.geometry import GpsPoint
from tracematch.spatial import build_rtree
from tracematch.traces import extract_activity_trace, extract_all_activity_traces


def line(n, lat0=51.5, lng=-0.1, step=0.0001):
    return [GpsPoint(lat0 + i * step, lng) for i in range(n)]


def far(n, lat0=51.5):
    return [GpsPoint(lat0 + i * 0.0001, -0.1 + 0.01) for i in range(n)]


POLYLINE = line(50)
INDEX = build_rtree(POLYLINE)


def test_track_on_section_is_returned_whole():
    track = line(20)
    assert extract_activity_trace(track, POLYLINE, INDEX) == track


def test_track_far_away_gives_empty_trace():
    assert extract_activity_trace(far(20), POLYLINE, INDEX) == []


def test_too_short_track_gives_empty_trace():
    assert extract_activity_trace(line(2), POLYLINE, INDEX) == []


def test_degenerate_polyline_gives_empty_trace():
    single = line(1)
    assert extract_activity_trace(line(20), single, build_rtree(single)) == []


def test_small_gap_is_bridged():
    track = line(5) + far(2, lat0=51.5005) + line(5, lat0=51.5007)
    trace = extract_activity_trace(track, POLYLINE, INDEX)
    assert trace == track


def test_long_gap_splits_and_longest_run_wins():
    second = line(8, lat0=51.502)
    track = line(3) + far(5, lat0=51.5003) + second
    trace = extract_activity_trace(track, POLYLINE, INDEX)
    assert trace == second


def test_equal_runs_prefer_the_last():
    first = line(3)
    second = line(6, lat0=51.502)
    # The first run picks up three trailing gap points, making it six long too.
    track = first + far(5, lat0=51.5003) + second
    trace = extract_activity_trace(track, POLYLINE, INDEX)
    assert trace == second


def test_extract_all_skips_missing_and_empty():
    track_map = {
        "on": line(20),
        "off": far(20),
    }
    traces = extract_all_activity_traces(["on", "off", "missing"], POLYLINE, track_map)
    assert list(traces) == ["on"]
    assert traces["on"] == track_map["on"]


def test_extract_all_keeps_activity_order():
    track_map = {"b": line(10), "a": line(12)}
    traces = extract_all_activity_traces(["a", "b"], POLYLINE, track_map)
    assert list(traces) == ["a", "b"]
    assert len(traces["a"]) == len(track_map["a"])