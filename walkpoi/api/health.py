from __future__ import annotations

from fastapi import APIRouter, Depends

from walkpoi.core.contracts import HealthResponse
from walkpoi.core.geometry import SpatialEngine
from walkpoi.services.updates import UpdateChannel
from walkpoi.api.pois import get_update_channel

router = APIRouter(prefix="/api")


def get_spatial_engine() -> SpatialEngine:
    raise RuntimeError("SpatialEngine must be provided by app dependency override")


@router.get("/health", response_model=HealthResponse)
def health(
    engine: SpatialEngine = Depends(get_spatial_engine),
    channel: UpdateChannel = Depends(get_update_channel),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        spatial_engine=engine.name,
        subscribers=channel.registry.count(),
    )
