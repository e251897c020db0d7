# walkpoi/main.py
from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

# Load <project>/.env (main.py is <project>/walkpoi/main.py)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

from walkpoi.core.settings import settings
from walkpoi.core.storage import CacheDB
from walkpoi.core.geometry import resolve_spatial_engine
from walkpoi.api import api_router

from walkpoi.services.coverage_store import CoverageStore
from walkpoi.services.gateway import ProviderGateway
from walkpoi.services.isochrone import Isochrones
from walkpoi.services.orchestrator import CacheOrchestrator
from walkpoi.services.poi_store import PoiStore
from walkpoi.services.providers.overpass import OverpassProvider
from walkpoi.services.refill import RefillWorker
from walkpoi.services.updates import SubscriberRegistry, UpdateChannel

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="WalkPOI Backend", version="1.0.0")

# ── Compression (must be added before CORS) ──
# text/event-stream is excluded by GZipMiddleware, so SSE is not buffered.
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Cache-Control"],
)

# ──────────────────────────────────────────────────────────────
# Shared state (process lifetime)
# ──────────────────────────────────────────────────────────────

# Resolved once; stores never re-probe.
_engine = resolve_spatial_engine(settings.spatial_engine)

_db = CacheDB.open(settings.cache_db_path)

_poi_store = PoiStore(_db, engine=_engine, freshness_s=settings.freshness_s)
_coverage_store = CoverageStore(
    _db,
    engine=_engine,
    freshness_s=settings.freshness_s,
    sliver_ratio=settings.coverage_sliver_ratio,
)

_gateway = ProviderGateway({"overpass": OverpassProvider()}, default="overpass")

_registry = SubscriberRegistry()
_channel = UpdateChannel(_registry, queue_size=settings.sse_queue_size)

_refill = RefillWorker(
    workers=settings.refill_workers,
    queue_size=settings.refill_queue_size,
    name="refill",
)

_orchestrator = CacheOrchestrator(
    db=_db,
    pois=_poi_store,
    coverage=_coverage_store,
    gateway=_gateway,
    channel=_channel,
    refill=_refill,
)

_isochrones = Isochrones()

# ──────────────────────────────────────────────────────────────
# Dependency providers
# ──────────────────────────────────────────────────────────────

def provide_orchestrator() -> CacheOrchestrator:
    return _orchestrator


def provide_update_channel() -> UpdateChannel:
    return _channel


def provide_isochrones() -> Isochrones:
    return _isochrones


def provide_spatial_engine():
    return _engine


# ──────────────────────────────────────────────────────────────
# Dependency overrides
# ──────────────────────────────────────────────────────────────

from walkpoi.api import health as health_api
from walkpoi.api import isochrone as isochrone_api
from walkpoi.api import pois as pois_api

app.dependency_overrides[pois_api.get_orchestrator] = provide_orchestrator
app.dependency_overrides[pois_api.get_update_channel] = provide_update_channel
app.dependency_overrides[isochrone_api.get_isochrone_service] = provide_isochrones
app.dependency_overrides[health_api.get_spatial_engine] = provide_spatial_engine

# Routes
app.include_router(api_router)

# ──────────────────────────────────────────────────────────────
# Shutdown
# ──────────────────────────────────────────────────────────────

@app.on_event("shutdown")
def shutdown():
    logger.info("[app] Shutting down, draining refill queue, closing connections")
    _registry.close_all()
    _refill.shutdown()
    try:
        _gateway.close()
        _isochrones.close()
    except Exception as e:
        logger.warning(f"[app] Error closing HTTP clients: {e}")
    _db.close()
