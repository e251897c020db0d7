"""Shared builders and fakes for the test suite."""

import logging

import orjson
from shapely.geometry import Point

from walkpoi.core.contracts import RawEntity
from walkpoi.core.errors import ProviderFailure
from walkpoi.services.providers.base import PoiProvider

log = logging.getLogger("tests")


def poi_row(db, poi_id):
    """Raw poi_cache row as a dict (tags decoded), or None."""
    with db.read() as conn:
        cur = conn.execute("SELECT * FROM poi_cache WHERE poi_id = ?", (poi_id,))
        row = cur.fetchone()
        cols = [d[0] for d in cur.description]
    if row is None:
        return None
    out = dict(zip(cols, row))
    out["tags"] = orjson.loads(out.pop("tags_json"))
    return out


def coverage_rows(db, category):
    with db.read() as conn:
        return conn.execute(
            "SELECT id, poi_count, cached_at FROM cache_coverage WHERE category = ? ORDER BY id",
            (category,),
        ).fetchall()


def square(min_lng, min_lat, max_lng, max_lat):
    """Closed lng/lat ring for an axis-aligned box."""
    return [
        [min_lng, min_lat],
        [max_lng, min_lat],
        [max_lng, max_lat],
        [min_lng, max_lat],
        [min_lng, min_lat],
    ]


def feature_collection(ring):
    return {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": [ring]}}
        ],
    }


def entity(osm_id, lng, lat, *, kind="restaurant", key="amenity", name="Place", osm_type="node"):
    tags = {key: kind}
    if name is not None:
        tags["name"] = name
    return RawEntity(
        id=f"overpass:{osm_type}:{osm_id}",
        osm_type=osm_type,
        name=name,
        kind=kind,
        lat=lat,
        lng=lng,
        tags=tags,
    )


class FakeProvider(PoiProvider):
    """In-memory 'world' of entities; returns the ones inside the queried geometry."""

    name = "overpass"

    def __init__(self, entities=None):
        self.entities = list(entities or [])
        self.calls = []
        self.fail = False

    def fetch(self, geom, tags):
        self.calls.append((geom, list(tags)))
        if self.fail:
            raise ProviderFailure("overpass", "simulated outage")
        wanted = {v for _, v in tags}
        return [
            e
            for e in self.entities
            if e.kind in wanted and geom.intersects(Point(e.lng, e.lat))
        ]


class InlineRefill:
    """Runs background jobs immediately on the calling thread, swallowing errors like RefillWorker."""

    def __init__(self):
        self.submitted = []
        self.errors = []

    def submit(self, job, *, label="job"):
        self.submitted.append(label)
        try:
            job()
        except Exception as e:
            log.exception("inline refill %s failed", label)
            self.errors.append(e)
        return True
