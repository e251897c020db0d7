from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from walkpoi.core.contracts import (
    FingerprintRequest,
    FingerprintResponse,
    PoiQueryRequest,
    PoiQueryResponse,
)
from walkpoi.core.errors import (
    InvalidGeometry,
    ProviderFailure,
    UnknownCategory,
    bad_gateway,
    bad_request,
)
from walkpoi.core.keying import fingerprint
from walkpoi.core.settings import settings
from walkpoi.services.categories import require_category
from walkpoi.services.orchestrator import CacheOrchestrator
from walkpoi.services.updates import SSE_KEEPALIVE, UpdateChannel, format_sse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pois")

_POLL_S = 0.25


def get_orchestrator() -> CacheOrchestrator:
    raise RuntimeError("CacheOrchestrator must be provided by app dependency override")


def get_update_channel() -> UpdateChannel:
    raise RuntimeError("UpdateChannel must be provided by app dependency override")


# ──────────────────────────────────────────────────────────────
# POST /api/pois
# ──────────────────────────────────────────────────────────────

@router.post("", response_model=PoiQueryResponse)
def query_pois(
    req: PoiQueryRequest,
    orchestrator: CacheOrchestrator = Depends(get_orchestrator),
) -> PoiQueryResponse:
    try:
        return orchestrator.query(req.polygon, req.category)
    except InvalidGeometry as e:
        bad_request("invalid_geometry", str(e))
    except UnknownCategory as e:
        bad_request("unknown_category", str(e))
    except ProviderFailure as e:
        logger.error("[pois] provider failure on synchronous fetch: %s", e)
        bad_gateway("poi_fetch_failed", "Could not retrieve POIs")


# ──────────────────────────────────────────────────────────────
# POST /api/pois/fingerprint
# ──────────────────────────────────────────────────────────────

@router.post("/fingerprint", response_model=FingerprintResponse)
def polygon_fingerprint(req: FingerprintRequest) -> FingerprintResponse:
    try:
        category = require_category(req.category)
        return FingerprintResponse(category=category, fingerprint=fingerprint(req.polygon, category))
    except InvalidGeometry as e:
        bad_request("invalid_geometry", str(e))
    except UnknownCategory as e:
        bad_request("unknown_category", str(e))


# ──────────────────────────────────────────────────────────────
# GET /api/pois/stream/{category}  (server-sent events)
# ──────────────────────────────────────────────────────────────

async def sse_frames(
    request: Request,
    channel: UpdateChannel,
    category: str,
    *,
    keepalive_s: float,
) -> AsyncIterator[bytes]:
    """
    Subscribe to `category` and drain the subscription onto the wire until
    the client goes away.

    The subscription is taken on the first iteration, so a response that is
    cancelled before its body starts never registers one. Once taken it is
    released on every exit path: client disconnect, cancellation, or the
    channel dropping it after a failed send.
    """
    sub = channel.subscribe(category)
    last_write = time.monotonic()
    try:
        yield b"retry: 3000\n\n"
        while not sub.closed:
            if await request.is_disconnected():
                break

            event = sub.poll()
            if event is not None:
                yield format_sse(event)
                last_write = time.monotonic()
                continue

            if time.monotonic() - last_write >= keepalive_s:
                yield SSE_KEEPALIVE
                last_write = time.monotonic()
            await asyncio.sleep(_POLL_S)
    finally:
        channel.unsubscribe(sub)


@router.get("/stream/{category}")
async def stream_updates(
    category: str,
    request: Request,
    channel: UpdateChannel = Depends(get_update_channel),
) -> StreamingResponse:
    try:
        category = require_category(category)
    except UnknownCategory as e:
        bad_request("unknown_category", str(e))

    return StreamingResponse(
        sse_frames(request, channel, category, keepalive_s=settings.sse_keepalive_s),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
