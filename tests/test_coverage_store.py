"""Tests for coverage accumulation and remainder computation."""

import pytest

from walkpoi.core.geometry import NullEngine, to_internal
from walkpoi.services.coverage_store import CoverageStore

from tests.helpers import coverage_rows, square


def test_empty_store_leaves_everything_uncovered(coverage_store):
    geom = to_internal(square(0, 0, 1, 1))

    remainder = coverage_store.uncovered_remainder(geom, "restaurants")

    assert remainder is not None
    assert remainder.equals(geom)
    assert coverage_store.is_covered(geom, "restaurants") is False


def test_recorded_region_is_covered(coverage_store):
    geom = to_internal(square(0, 0, 1, 1))
    coverage_store.record_coverage(geom, "restaurants", 3)

    assert coverage_store.uncovered_remainder(geom, "restaurants") is None
    assert coverage_store.is_covered(geom, "restaurants") is True


def test_coverage_is_per_category(coverage_store):
    geom = to_internal(square(0, 0, 1, 1))
    coverage_store.record_coverage(geom, "restaurants", 3)

    assert coverage_store.is_covered(geom, "recreation") is False


def test_partial_overlap_leaves_strictly_smaller_remainder(coverage_store):
    p1 = to_internal(square(0, 0, 1, 1))
    p2 = to_internal(square(0.5, 0, 1.5, 1))
    coverage_store.record_coverage(p1, "restaurants", 2)

    remainder = coverage_store.uncovered_remainder(p2, "restaurants")

    assert remainder is not None
    assert remainder.area < p2.area
    assert remainder.area == pytest.approx(0.5)
    assert p2.covers(remainder)


def test_union_of_overlapping_records_covers_larger_polygon(coverage_store):
    coverage_store.record_coverage(to_internal(square(0, 0, 1, 1)), "recreation", 1)
    coverage_store.record_coverage(to_internal(square(0.8, 0, 2, 1)), "recreation", 1)

    assert coverage_store.is_covered(to_internal(square(0.1, 0.1, 1.9, 0.9)), "recreation") is True


def test_records_accumulate_without_merging(coverage_store, db):
    geom = to_internal(square(0, 0, 1, 1))
    coverage_store.record_coverage(geom, "restaurants", 1)
    coverage_store.record_coverage(geom, "restaurants", 1)

    assert len(coverage_rows(db, "restaurants")) == 2


def test_monotonic_coverage(coverage_store):
    a = to_internal(square(0, 0, 1, 1))
    coverage_store.record_coverage(a, "restaurants", 1)
    assert coverage_store.is_covered(a, "restaurants")

    for ring in (square(5, 5, 6, 6), square(0.5, 0.5, 3, 3), square(-1, -1, 0.2, 0.2)):
        coverage_store.record_coverage(to_internal(ring), "restaurants", 0)
        assert coverage_store.is_covered(a, "restaurants")


@pytest.mark.parametrize(
    "ring",
    [
        square(0, 0, 1, 1),
        square(0.2, 0.2, 0.8, 0.8),
        square(0.5, 0.5, 1.5, 1.5),
        square(3, 3, 4, 4),
        [[0, 0], [2, 0], [1, 2], [0, 0]],
    ],
)
def test_remainder_none_iff_covered(coverage_store, ring):
    coverage_store.record_coverage(to_internal(square(0, 0, 1, 1)), "restaurants", 1)
    coverage_store.record_coverage(to_internal(square(3, 3, 3.5, 4)), "restaurants", 1)
    geom = to_internal(ring)

    remainder = coverage_store.uncovered_remainder(geom, "restaurants")

    assert (remainder is None) == coverage_store.is_covered(geom, "restaurants")


def test_stale_records_are_ignored(coverage_store, db):
    geom = to_internal(square(0, 0, 1, 1))
    coverage_store.record_coverage(geom, "restaurants", 1)
    with db.transaction() as conn:
        conn.execute("UPDATE cache_coverage SET cached_at = '2000-01-01T00:00:00.000000Z'")

    assert coverage_store.is_covered(geom, "restaurants") is False
    # ignored, not deleted
    assert coverage_store.count() == 1


def test_null_engine_treats_everything_as_uncovered(db):
    store = CoverageStore(db, engine=NullEngine(), freshness_s=3600)
    geom = to_internal(square(0, 0, 1, 1))
    store.record_coverage(geom, "restaurants", 1)

    remainder = store.uncovered_remainder(geom, "restaurants")

    assert remainder is not None
    assert remainder.equals(geom)


def test_corrupt_coverage_geometry_degrades_to_uncovered(coverage_store, db):
    geom = to_internal(square(0, 0, 1, 1))
    coverage_store.record_coverage(geom, "restaurants", 1)
    with db.transaction() as conn:
        conn.execute("UPDATE cache_coverage SET geom_wkb = ?", (b"\x00not-wkb",))

    remainder = coverage_store.uncovered_remainder(geom, "restaurants")

    assert remainder is not None
    assert remainder.equals(geom)
