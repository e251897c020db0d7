"""Global test configuration and fixtures."""

import os
import tempfile

# Must happen before walkpoi.core.settings is imported anywhere.
_TMP = tempfile.mkdtemp(prefix="walkpoi-tests-")
os.environ.setdefault("CACHE_DB_PATH", os.path.join(_TMP, "app_cache.db"))
os.environ.setdefault("REFILL_WORKERS", "1")

import pytest

from walkpoi.core.geometry import ShapelyEngine
from walkpoi.core.storage import CacheDB
from walkpoi.services.coverage_store import CoverageStore
from walkpoi.services.gateway import ProviderGateway
from walkpoi.services.orchestrator import CacheOrchestrator
from walkpoi.services.poi_store import PoiStore
from walkpoi.services.updates import SubscriberRegistry, UpdateChannel

from tests.helpers import FakeProvider, InlineRefill

FRESHNESS_S = 30 * 24 * 60 * 60


@pytest.fixture
def engine():
    return ShapelyEngine()


@pytest.fixture
def db(tmp_path):
    cache = CacheDB.open(str(tmp_path / "cache.db"))
    yield cache
    cache.close()


@pytest.fixture
def poi_store(db, engine):
    return PoiStore(db, engine=engine, freshness_s=FRESHNESS_S)


@pytest.fixture
def coverage_store(db, engine):
    return CoverageStore(db, engine=engine, freshness_s=FRESHNESS_S)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def channel():
    return UpdateChannel(SubscriberRegistry(), queue_size=10)


@pytest.fixture
def refill():
    return InlineRefill()


@pytest.fixture
def orchestrator(db, poi_store, coverage_store, provider, channel, refill):
    return CacheOrchestrator(
        db=db,
        pois=poi_store,
        coverage=coverage_store,
        gateway=ProviderGateway({"overpass": provider}),
        channel=channel,
        refill=refill,
    )


@pytest.fixture
def client(orchestrator, channel, engine):
    """Test client wired to the fixture orchestrator instead of the process-wide one."""
    from fastapi.testclient import TestClient

    from walkpoi.api import health as health_api
    from walkpoi.api import pois as pois_api
    from walkpoi.main import app

    saved = dict(app.dependency_overrides)
    app.dependency_overrides[pois_api.get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[pois_api.get_update_channel] = lambda: channel
    app.dependency_overrides[health_api.get_spatial_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.dependency_overrides.update(saved)

