from __future__ import annotations

import logging
from typing import List, Optional

from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from walkpoi.core.errors import SpatialEngineUnavailable
from walkpoi.core.geometry import SpatialEngine, bounds, from_wkb, to_wkb
from walkpoi.core.storage import CacheDB
from walkpoi.core.time import cutoff_iso, utc_now_iso

logger = logging.getLogger(__name__)


class CoverageStore:
    """
    Append-only record of which (footprint, category) regions were fetched.

    Records overlap freely and are never merged on write. Reads union every
    non-stale record touching the query bbox and subtract that union from the
    requested polygon. Any engine failure answers "uncovered": a spurious
    miss costs one provider call, a spurious hit hides data.
    """

    def __init__(
        self,
        db: CacheDB,
        *,
        engine: SpatialEngine,
        freshness_s: int,
        sliver_ratio: float = 1e-9,
    ):
        self.db = db
        self.engine = engine
        self.freshness_s = int(freshness_s)
        self.sliver_ratio = float(sliver_ratio)

    # ──────────────────────────────────────────────────────────────
    # Write
    # ──────────────────────────────────────────────────────────────

    def record_coverage(self, geom: BaseGeometry, category: str, poi_count: int) -> int:
        min_lng, min_lat, max_lng, max_lat = bounds(geom)
        sql = """
        INSERT INTO cache_coverage (category, minLng, minLat, maxLng, maxLat, geom_wkb, poi_count, cached_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        with self.db.transaction() as conn:
            cur = conn.execute(
                sql,
                (
                    category,
                    min_lng,
                    min_lat,
                    max_lng,
                    max_lat,
                    to_wkb(geom),
                    int(poi_count),
                    utc_now_iso(),
                ),
            )
            return int(cur.lastrowid)

    # ──────────────────────────────────────────────────────────────
    # Read
    # ──────────────────────────────────────────────────────────────

    def _overlapping(self, geom: BaseGeometry, category: str) -> List[BaseGeometry]:
        min_lng, min_lat, max_lng, max_lat = bounds(geom)
        sql = """
        SELECT geom_wkb FROM cache_coverage
        WHERE category = ?
          AND cached_at > ?
          AND maxLng >= ? AND minLng <= ?
          AND maxLat >= ? AND minLat <= ?
        """
        params = (category, cutoff_iso(self.freshness_s), min_lng, max_lng, min_lat, max_lat)
        with self.db.read() as conn:
            rows = conn.execute(sql, params).fetchall()

        out: List[BaseGeometry] = []
        for (blob,) in rows:
            try:
                out.append(from_wkb(blob))
            except (GEOSException, ValueError, TypeError) as e:
                # one bad row poisons the union; treat the whole read as unusable
                raise SpatialEngineUnavailable(f"unreadable coverage geometry: {e}") from e
        return out

    def uncovered_remainder(self, geom: BaseGeometry, category: str) -> Optional[BaseGeometry]:
        """
        `geom` minus the union of fresh coverage for `category`.

        None means fully covered. Without a usable engine the whole input is
        returned as uncovered.
        """
        if not self.engine.capable:
            return geom

        try:
            covered = self._overlapping(geom, category)
            if not covered:
                return geom
            remainder = self.engine.difference(geom, self.engine.union(covered))
        except SpatialEngineUnavailable as e:
            logger.warning("[CoverageStore] difference unavailable (%s); treating polygon as uncovered", e)
            return geom

        if remainder.is_empty or remainder.area <= geom.area * self.sliver_ratio:
            return None
        return remainder

    def is_covered(self, geom: BaseGeometry, category: str) -> bool:
        return self.uncovered_remainder(geom, category) is None

    def count(self) -> int:
        with self.db.read() as conn:
            row = conn.execute("SELECT COUNT(*) FROM cache_coverage").fetchone()
        return int(row[0]) if row else 0
