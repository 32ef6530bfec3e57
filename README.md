# tracematch

Tools for cleaning up a list of frequently travelled sections found in GPS
activity tracks. Given sections that have already been detected, tracematch
can split out-and-back sections, drop near-duplicates, join fragments into
longer routes, remove or trim overlapping sections, filter out low-quality
sections and carve out high-traffic portions.

Pure Python, with no dependencies beyond the standard library. Progress is
reported through the `logging` module at INFO level.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Building blocks

- `tracematch.geometry`
  - `GpsPoint(latitude, longitude, elevation=None)`, a frozen dataclass with
    `is_valid()`.
  - `FrequentSection`, a dataclass describing a section: `id`, `sport_type`,
    `polyline`, `visit_count`, `distance_meters`, `confidence`,
    `activity_ids`, `activity_traces`, `point_density` and more.
  - `SectionConfig` with `proximity_threshold` (50 m), `min_section_length`
    (200 m), `max_section_length` (5000 m), `min_activities` (3) and
    `cluster_tolerance` (80 m).
  - `haversine_distance(a, b)` and `calculate_route_distance(points)`, in
    meters.
- `tracematch.spatial`
  - `build_rtree(points)` returns a `PointIndex`, a 2-d tree whose
    `nearest(lat, lng)` returns the closest `IndexedPoint` (or `None` when
    empty).
  - `compute_containment(points, index, threshold)` gives the fraction of
    points lying within `threshold` meters of the indexed points.
  - `is_loop_section(section, threshold)` is true for a section of at least
    10 points whose start and end are less than `threshold` meters apart.
- `tracematch.union_find`
  - `UnionFind`, a generic disjoint-set structure with `make_set`, `find`,
    `union`, `connected`, `groups`, `len()` and `in`.
  - `from_ids(ids)` seeds one with a singleton set per identifier.

## Section post-processing

- `tracematch.traces.extract_all_activity_traces(activity_ids, section_polyline, track_map)`:
  for each activity, the longest stretch of its track that runs along the
  section polyline, tolerating gaps of up to three off-section points.
- `tracematch.folding.split_folding_sections(sections, config)`: splits
  sections that fold back on themselves into `_out` and `_ret` parts, keeping
  only parts at least `min_section_length` long.
- `tracematch.merging.merge_nearby_sections(sections, config)`: orders
  sections by visit count and drops any section of similar length (ratio
  0.33 to 3) of which more than 40% lies within twice the proximity threshold
  of a kept, more visited one. The check does not depend on direction.
- `tracematch.merging.consolidate_fragments(sections, config)`: repeatedly
  (up to 10 rounds) runs `join_at_endpoints` with a 50 m gap and
  `merge_short_fragments`, which merges fragments under 400 m whose endpoints
  are within 100 m. Combined sections stay under 3000 m and only sections of
  the same sport are combined.
- `tracematch.overlap.remove_overlapping_sections(sections, config)`:
  deduplicates sections, preferring shorter ones. Loop sections are never
  removed.
- `tracematch.overlap.make_sections_exclusive(sections, config)`: sections
  claim territory in priority order and later ones are trimmed to their
  longest unclaimed stretch (`trim_to_unclaimed`). Loop sections are kept
  whole.
- `tracematch.overlap.filter_low_quality_sections(sections)`: keeps sections
  with at least 8 points and the number of visits
  `required_visits_for_length` asks for (6 under 200 m, 4 under 400 m, 3
  under 800 m, otherwise 2).
- `tracematch.density.split_high_variance_sections(sections, track_map, config)`:
  for each section, adds new `_split<n>` sections for high-traffic stretches
  found in `point_density` (see `find_split_candidates`) that enough of its
  activities cover, followed by the original section.

## Example

```python
from tracematch.geometry import GpsPoint, FrequentSection, SectionConfig, calculate_route_distance
from tracematch.overlap import remove_overlapping_sections, filter_low_quality_sections

config = SectionConfig()
polyline = [GpsPoint(51.5 + i * 0.0005, -0.12) for i in range(20)]
section = FrequentSection(
    id="sec_1",
    sport_type="Run",
    polyline=polyline,
    distance_meters=calculate_route_distance(polyline),
    visit_count=4,
)

kept = filter_low_quality_sections(remove_overlapping_sections([section], config))
print([s.id for s in kept])  # ['sec_1']
```

## What it does not do

tracematch works on sections that are handed to it. It does not detect
sections from raw activity tracks, match or group whole routes, read GPS
files, or store anything; it has no command-line tool.