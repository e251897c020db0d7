from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from walkpoi.core.contracts import IsochroneRequest
from walkpoi.core.errors import ProviderFailure, bad_gateway, bad_request, service_unavailable
from walkpoi.core.settings import settings
from walkpoi.services.isochrone import ALLOWED_MINUTES, Isochrones

router = APIRouter(prefix="/api")


def get_isochrone_service() -> Isochrones:
    raise RuntimeError("Isochrones must be provided by app dependency override")


@router.post("/isochrone")
def walking_area(
    req: IsochroneRequest,
    isochrones: Isochrones = Depends(get_isochrone_service),
) -> Dict[str, Any]:
    if req.duration not in ALLOWED_MINUTES:
        bad_request(
            "bad_isochrone_request",
            "Duration is required and must be 15, 30, 45 or 60 minutes",
        )
    if not settings.ors_api_key:
        service_unavailable("isochrone_unconfigured", "ORS_API_KEY is not set")

    try:
        return isochrones.walking_area(lat=req.lat, lng=req.lng, minutes=req.duration)
    except ProviderFailure:
        bad_gateway("isochrone_failed", "Failed to generate walking area")
