from __future__ import annotations

from fastapi import HTTPException


# ──────────────────────────────────────────────────────────────
# Domain errors
# ──────────────────────────────────────────────────────────────

class PoiCacheError(Exception):
    """Base for errors raised by the POI cache core."""


class InvalidGeometry(PoiCacheError):
    """Input polygon is malformed or degenerate."""


class UnknownCategory(PoiCacheError):
    def __init__(self, category: str):
        super().__init__(f"Unknown category: {category}")
        self.category = category


class ProviderFailure(PoiCacheError):
    """An external source (POIs or isochrones) errored, timed out or returned garbage."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class SpatialEngineUnavailable(PoiCacheError):
    """No geometry engine could run the requested operation."""


# ──────────────────────────────────────────────────────────────
# HTTP helpers
# ──────────────────────────────────────────────────────────────

def bad_request(code: str, message: str):
    raise HTTPException(status_code=400, detail={"code": code, "message": message})


def bad_gateway(code: str, message: str):
    raise HTTPException(status_code=502, detail={"code": code, "message": message})


def service_unavailable(code: str, message: str):
    raise HTTPException(status_code=503, detail={"code": code, "message": message})
