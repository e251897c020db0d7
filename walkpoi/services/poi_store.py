from __future__ import annotations

import logging
from typing import Any, List, Sequence

import orjson
from shapely.geometry.base import BaseGeometry

from walkpoi.core.contracts import Poi
from walkpoi.core.errors import SpatialEngineUnavailable
from walkpoi.core.geometry import SpatialEngine, bounds
from walkpoi.core.storage import CacheDB
from walkpoi.core.time import cutoff_iso, utc_now_iso

logger = logging.getLogger(__name__)


_UPSERT_SQL = """
INSERT INTO poi_cache (poi_id, provider, name, category, kind, lat, lng, tags_json, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(poi_id) DO UPDATE SET
  provider=excluded.provider,
  name=excluded.name,
  category=excluded.category,
  kind=excluded.kind,
  lat=excluded.lat,
  lng=excluded.lng,
  tags_json=excluded.tags_json,
  updated_at=excluded.updated_at
"""


def _row_to_poi(row: Sequence[Any]) -> Poi:
    (poi_id, provider, name, category, kind, lat, lng, tags_json, created_at, updated_at) = row
    try:
        tags = orjson.loads(tags_json) if tags_json else {}
    except orjson.JSONDecodeError:
        tags = {}
    return Poi(
        id=poi_id,
        name=name or "Unnamed",
        category=category,
        kind=kind,
        lat=float(lat),
        lng=float(lng),
        tags=tags,
        provider=provider,
        created_at=created_at,
        updated_at=updated_at,
    )


class PoiStore:
    """
    Cached POIs keyed by provider-qualified id.

      - upsert: same id replaces the row and refreshes updated_at
      - query: bbox prefilter in SQL, exact containment via the spatial engine
      - staleness: rows older than the freshness window are ignored, never deleted
    """

    def __init__(self, db: CacheDB, *, engine: SpatialEngine, freshness_s: int):
        self.db = db
        self.engine = engine
        self.freshness_s = int(freshness_s)

    # ──────────────────────────────────────────────────────────────
    # Upsert
    # ──────────────────────────────────────────────────────────────

    def upsert_many(self, pois: Sequence[Poi]) -> int:
        """
        Idempotent bulk upsert in one transaction.

        When called inside an open `db.transaction()` it joins that
        transaction instead of committing on its own.
        """
        if not pois:
            return 0

        now = utc_now_iso()
        rows: list[tuple] = []
        for p in pois:
            rows.append(
                (
                    p.id,
                    p.provider,
                    p.name or "Unnamed",
                    p.category,
                    p.kind,
                    float(p.lat),
                    float(p.lng),
                    orjson.dumps(p.tags or {}),
                    now,  # created_at (kept on conflict)
                    now,  # updated_at
                )
            )

        with self.db.transaction() as conn:
            conn.executemany(_UPSERT_SQL, rows)
        return len(rows)

    # ──────────────────────────────────────────────────────────────
    # Query
    # ──────────────────────────────────────────────────────────────

    def query_cached(self, geom: BaseGeometry, category: str) -> List[Poi]:
        """Non-stale POIs of `category` located inside `geom` (boundary included)."""
        min_lng, min_lat, max_lng, max_lat = bounds(geom)
        cutoff = cutoff_iso(self.freshness_s)

        sql = """
        SELECT poi_id, provider, name, category, kind, lat, lng, tags_json, created_at, updated_at
        FROM poi_cache
        WHERE category = ?
          AND updated_at > ?
          AND lat >= ? AND lat <= ? AND lng >= ? AND lng <= ?
        ORDER BY poi_id
        """
        with self.db.read() as conn:
            rows = conn.execute(sql, (category, cutoff, min_lat, max_lat, min_lng, max_lng)).fetchall()

        if not rows:
            return []

        points = [(float(r[6]), float(r[5])) for r in rows]
        try:
            inside = self.engine.points_within(geom, points)
        except SpatialEngineUnavailable as e:
            # Without containment we cannot claim a hit; a miss just refetches.
            logger.warning("[PoiStore] containment unavailable (%s); reporting cache miss", e)
            return []

        return [_row_to_poi(r) for r, ok in zip(rows, inside) if ok]

    def fresh_ids(self, poi_ids: Sequence[str]) -> set[str]:
        """Subset of `poi_ids` already cached inside the freshness window."""
        if not poi_ids:
            return set()
        cutoff = cutoff_iso(self.freshness_s)
        out: set[str] = set()
        ids = list(poi_ids)
        with self.db.read() as conn:
            # stay well under SQLITE_MAX_VARIABLE_NUMBER
            for i in range(0, len(ids), 500):
                chunk = ids[i : i + 500]
                placeholders = ",".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT poi_id FROM poi_cache WHERE updated_at > ? AND poi_id IN ({placeholders})",
                    [cutoff, *chunk],
                ).fetchall()
                out.update(r[0] for r in rows)
        return out

    def count(self) -> int:
        with self.db.read() as conn:
            row = conn.execute("SELECT COUNT(*) FROM poi_cache").fetchone()
        return int(row[0]) if row else 0
