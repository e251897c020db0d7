"""HTTP surface tests using FastAPI's TestClient."""

import pytest

from walkpoi.core.errors import ProviderFailure
from walkpoi.core.keying import fingerprint
from walkpoi.core.settings import settings

from tests.helpers import entity, feature_collection, square

P1 = square(0, 0, 1, 1)


class FakeIsochrones:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def walking_area(self, *, lat, lng, minutes):
        self.calls.append((lat, lng, minutes))
        if self.fail:
            raise ProviderFailure("ors", "HTTP 500")
        return {"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [P1]}}]}


@pytest.fixture
def isochrones():
    from walkpoi.api import isochrone as isochrone_api
    from walkpoi.main import app

    fake = FakeIsochrones()
    saved = app.dependency_overrides.get(isochrone_api.get_isochrone_service)
    app.dependency_overrides[isochrone_api.get_isochrone_service] = lambda: fake
    yield fake
    app.dependency_overrides[isochrone_api.get_isochrone_service] = saved


class TestPoisEndpoint:
    def test_miss_then_hit(self, client, provider):
        provider.entities = [entity(1, 0.2, 0.2), entity(2, 0.5, 0.5, kind="cafe"), entity(3, 0.8, 0.8, kind="bar")]

        first = client.post("/api/pois", json={"polygon": feature_collection(P1), "category": "restaurants"})
        second = client.post("/api/pois", json={"polygon": feature_collection(P1), "category": "restaurants"})

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert first.json()["count"] == 3
        assert second.json()["cached"] is True
        assert second.json()["count"] == 3
        assert len(provider.calls) == 1

    def test_poi_shape(self, client, provider):
        provider.entities = [entity(1, 0.2, 0.2, kind="cafe", name="Beans")]

        poi = client.post("/api/pois", json={"polygon": P1, "category": "restaurants"}).json()["pois"][0]

        assert poi["id"] == "overpass:node:1"
        assert poi["name"] == "Beans"
        assert poi["kind"] == "cafe"
        assert poi["category"] == "restaurants"
        assert (poi["lng"], poi["lat"]) == (0.2, 0.2)

    def test_invalid_polygon(self, client):
        r = client.post("/api/pois", json={"polygon": [[0, 0], [1, 1]], "category": "restaurants"})

        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "invalid_geometry"

    def test_polygon_with_hole_is_400(self, client, provider):
        holed = {"type": "Polygon", "coordinates": [P1, square(0.2, 0.2, 0.4, 0.4)]}

        r = client.post("/api/pois", json={"polygon": holed, "category": "restaurants"})

        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "invalid_geometry"
        assert provider.calls == []

    def test_unknown_category(self, client):
        r = client.post("/api/pois", json={"polygon": P1, "category": "museums"})

        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "unknown_category"

    def test_provider_failure_is_502(self, client, provider):
        provider.fail = True

        r = client.post("/api/pois", json={"polygon": P1, "category": "restaurants"})

        assert r.status_code == 502
        assert r.json()["detail"] == {"code": "poi_fetch_failed", "message": "Could not retrieve POIs"}

    def test_fingerprint_matches_push_key(self, client):
        r = client.post("/api/pois/fingerprint", json={"polygon": feature_collection(P1), "category": "recreation"})

        assert r.status_code == 200
        assert r.json()["fingerprint"] == fingerprint(P1, "recreation")

    def test_stream_unknown_category(self, client, channel):
        r = client.get("/api/pois/stream/museums")

        assert r.status_code == 400
        assert channel.registry.count() == 0


class TestHealth:
    def test_health(self, client, channel):
        channel.subscribe("recreation")

        body = client.get("/api/health").json()

        assert body == {"status": "ok", "spatial_engine": "shapely", "subscribers": 1}


class TestIsochrone:
    def test_bad_duration(self, client, isochrones):
        r = client.post("/api/isochrone", json={"lat": -27.47, "lng": 153.02, "duration": 20})

        assert r.status_code == 400
        assert isochrones.calls == []

    def test_missing_api_key(self, client, isochrones, monkeypatch):
        monkeypatch.setattr(settings, "ors_api_key", "")

        r = client.post("/api/isochrone", json={"lat": -27.47, "lng": 153.02, "duration": 15})

        assert r.status_code == 503
        assert r.json()["detail"]["code"] == "isochrone_unconfigured"

    def test_success(self, client, isochrones, monkeypatch):
        monkeypatch.setattr(settings, "ors_api_key", "test-key")

        r = client.post("/api/isochrone", json={"lat": -27.47, "lng": 153.02, "duration": 30})

        assert r.status_code == 200
        assert r.json()["type"] == "FeatureCollection"
        assert isochrones.calls == [(-27.47, 153.02, 30)]

    def test_upstream_failure(self, client, isochrones, monkeypatch):
        monkeypatch.setattr(settings, "ors_api_key", "test-key")
        isochrones.fail = True

        r = client.post("/api/isochrone", json={"lat": -27.47, "lng": 153.02, "duration": 30})

        assert r.status_code == 502
        assert r.json()["detail"]["code"] == "isochrone_failed"
