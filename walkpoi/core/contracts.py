from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ──────────────────────────────────────────────────────────────
# POIs
# ──────────────────────────────────────────────────────────────

Category = str  # validated against walkpoi.services.categories.CATEGORIES


class Poi(BaseModel):
    id: str                         # provider-qualified, e.g. "overpass:node:123"
    name: str = "Unnamed"
    category: Category
    kind: Optional[str] = None      # matched provider tag value ("cafe", "park")
    lat: float
    lng: float
    tags: Dict[str, Any] = Field(default_factory=dict)
    provider: str = "overpass"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RawEntity(BaseModel):
    """Located entity as returned by a POI provider, before categorisation."""
    id: str
    osm_type: str = "node"
    name: Optional[str] = None
    kind: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    tags: Dict[str, Any] = Field(default_factory=dict)


# ──────────────────────────────────────────────────────────────
# /api/pois
# ──────────────────────────────────────────────────────────────

class PoiQueryRequest(BaseModel):
    # GeoJSON FeatureCollection | Feature | Polygon | bare ring
    polygon: Any
    category: Category


class PoiQueryResponse(BaseModel):
    pois: List[Poi] = Field(default_factory=list)
    category: Category
    count: int
    cached: bool


class FingerprintRequest(BaseModel):
    polygon: Any
    category: Category


class FingerprintResponse(BaseModel):
    category: Category
    fingerprint: str


class PoiUpdateEvent(BaseModel):
    type: Literal["poi_update"] = "poi_update"
    category: Category
    pois: List[Poi] = Field(default_factory=list)
    count: int
    timestamp: int                  # epoch ms
    fingerprint: str


# ──────────────────────────────────────────────────────────────
# /api/isochrone
# ──────────────────────────────────────────────────────────────

class IsochroneRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    duration: int                   # minutes: 15 | 30 | 45 | 60


# ──────────────────────────────────────────────────────────────
# /api/health
# ──────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    spatial_engine: str
    subscribers: int = 0
