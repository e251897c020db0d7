"""
Polygon codec + pluggable spatial engine.

Wire polygons are single lng/lat rings, usually wrapped in the GeoJSON that
the isochrone provider returns. Internally everything is a shapely geometry;
the stores only talk to geometry through a `SpatialEngine`, so a deployment
without a working engine degrades to "nothing is cached" instead of failing
requests.
"""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Sequence, Tuple

import shapely
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.prepared import prep

from walkpoi.core.errors import InvalidGeometry, SpatialEngineUnavailable

logger = logging.getLogger(__name__)

Coord = Tuple[float, float]  # (lng, lat)


# ──────────────────────────────────────────────────────────────
# Codec: wire <-> internal
# ──────────────────────────────────────────────────────────────

def extract_ring(obj: Any) -> List[Any]:
    """
    Pull the outer ring out of whatever the client sent.

    Accepted:
      - FeatureCollection (first feature)
      - Feature
      - Polygon geometry with a single ring (holes are rejected)
      - bare ring [[lng, lat], ...]
    """
    if isinstance(obj, list):
        return obj

    if not isinstance(obj, dict):
        raise InvalidGeometry("polygon must be GeoJSON or a list of [lng, lat] pairs")

    gtype = obj.get("type")
    if gtype == "FeatureCollection":
        features = obj.get("features") or []
        if not features:
            raise InvalidGeometry("FeatureCollection has no features")
        return extract_ring(features[0])
    if gtype == "Feature":
        geom = obj.get("geometry")
        if not geom:
            raise InvalidGeometry("Feature has no geometry")
        return extract_ring(geom)
    if gtype == "Polygon":
        rings = obj.get("coordinates") or []
        if not rings or not isinstance(rings[0], list):
            raise InvalidGeometry("Polygon has no rings")
        if len(rings) > 1:
            raise InvalidGeometry("Polygon with holes is not supported; send a single ring")
        return rings[0]

    raise InvalidGeometry(f"unsupported geometry type: {gtype!r}")


def normalize_ring(ring: Sequence[Any]) -> List[Coord]:
    """
    Canonicalize every coordinate to a finite float pair.

    `1` and `1.0` collapse to the same float and -0.0 collapses to 0.0, so
    downstream hashing only sees values, never their JSON spelling.
    """
    out: List[Coord] = []
    for pt in ring:
        if not isinstance(pt, (list, tuple)) or len(pt) < 2:
            raise InvalidGeometry("each point must be a [lng, lat] pair")
        try:
            lng = float(pt[0]) + 0.0
            lat = float(pt[1]) + 0.0
        except (TypeError, ValueError):
            raise InvalidGeometry("coordinates must be numbers") from None
        if not (math.isfinite(lng) and math.isfinite(lat)):
            raise InvalidGeometry("coordinates must be finite")
        if not (-180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0):
            raise InvalidGeometry(f"coordinate out of range: [{lng}, {lat}]")
        out.append((lng, lat))
    return out


def canonical_ring(polygon: Any) -> List[Coord]:
    """Extract + normalize + validate ring closure. Used by both codec and fingerprinting."""
    ring = normalize_ring(extract_ring(polygon))
    if len(ring) < 4:
        raise InvalidGeometry(f"ring needs at least 4 points, got {len(ring)}")
    if ring[0] != ring[-1]:
        raise InvalidGeometry("ring is not closed (first point != last point)")
    return ring


def to_internal(polygon: Any) -> Polygon:
    ring = canonical_ring(polygon)
    geom = Polygon(ring)
    if geom.is_empty or geom.area <= 0.0:
        raise InvalidGeometry("ring has zero area")
    return geom


def polygon_parts(geom: BaseGeometry) -> List[Polygon]:
    """Flatten a (Multi)Polygon or collection into its non-empty polygons."""
    if geom is None or geom.is_empty:
        return []
    if isinstance(geom, Polygon):
        return [geom]
    if isinstance(geom, MultiPolygon):
        return [p for p in geom.geoms if not p.is_empty]
    parts: List[Polygon] = []
    for g in getattr(geom, "geoms", []):
        parts.extend(polygon_parts(g))
    return parts


def outer_ring(poly: Polygon) -> List[Coord]:
    return [(float(x), float(y)) for x, y in poly.exterior.coords]


def to_wkb(geom: BaseGeometry) -> bytes:
    return shapely.to_wkb(geom)


def from_wkb(blob: bytes) -> BaseGeometry:
    return shapely.from_wkb(blob)


def bounds(geom: BaseGeometry) -> Tuple[float, float, float, float]:
    """(minLng, minLat, maxLng, maxLat)"""
    min_x, min_y, max_x, max_y = geom.bounds
    return float(min_x), float(min_y), float(max_x), float(max_y)


# ──────────────────────────────────────────────────────────────
# Spatial engines
# ──────────────────────────────────────────────────────────────

class SpatialEngine(ABC):
    """Set operations + containment over 2-D lng/lat geometries (SRID 4326)."""

    name: str = "abstract"
    capable: bool = False

    @abstractmethod
    def union(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        ...

    @abstractmethod
    def difference(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        ...

    @abstractmethod
    def points_within(self, geom: BaseGeometry, points: Sequence[Coord]) -> List[bool]:
        ...


class ShapelyEngine(SpatialEngine):
    """GEOS-backed engine. GEOS failures surface as SpatialEngineUnavailable."""

    name = "shapely"
    capable = True

    def union(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        try:
            return unary_union(list(geoms))
        except (GEOSException, ValueError) as e:
            raise SpatialEngineUnavailable(f"union failed: {e}") from e

    def difference(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        try:
            return a.difference(b)
        except (GEOSException, ValueError) as e:
            raise SpatialEngineUnavailable(f"difference failed: {e}") from e

    def points_within(self, geom: BaseGeometry, points: Sequence[Coord]) -> List[bool]:
        try:
            pg = prep(geom)
            # intersects == covers for points; boundary points count as inside
            return [pg.intersects(Point(lng, lat)) for lng, lat in points]
        except (GEOSException, ValueError) as e:
            raise SpatialEngineUnavailable(f"containment failed: {e}") from e


class NullEngine(SpatialEngine):
    """Stand-in when spatial support is switched off: every operation is unavailable."""

    name = "none"
    capable = False

    def union(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        raise SpatialEngineUnavailable("no spatial engine configured")

    def difference(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        raise SpatialEngineUnavailable("no spatial engine configured")

    def points_within(self, geom: BaseGeometry, points: Sequence[Coord]) -> List[bool]:
        raise SpatialEngineUnavailable("no spatial engine configured")


def resolve_spatial_engine(name: str) -> SpatialEngine:
    """
    Pick the engine once at startup. Unknown names and a GEOS build that
    cannot run a trivial union both fall back to NullEngine.
    """
    key = (name or "").strip().lower()
    if key in ("none", "off", "disabled", ""):
        logger.warning("[geometry] spatial engine disabled: every request will fetch its full polygon")
        return NullEngine()

    if key != "shapely":
        logger.warning("[geometry] unknown spatial engine %r: using conservative fallback", name)
        return NullEngine()

    engine = ShapelyEngine()
    try:
        probe = Polygon([(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)])
        engine.difference(probe, engine.union([probe]))
    except SpatialEngineUnavailable as e:
        logger.warning("[geometry] shapely probe failed (%s); using conservative fallback", e)
        return NullEngine()

    logger.info("[geometry] spatial engine: shapely (GEOS %s)", shapely.geos_version_string)
    return engine
