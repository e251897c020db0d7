"""
Walking-area polygons from OpenRouteService.

The response is handed back to the client untouched; the client then posts
it to /api/pois as the query polygon.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from walkpoi.core.errors import ProviderFailure
from walkpoi.core.settings import settings

logger = logging.getLogger(__name__)

ALLOWED_MINUTES = (15, 30, 45, 60)


class Isochrones:
    def __init__(self, *, client: httpx.Client | None = None):
        self.client = client or httpx.Client(timeout=settings.ors_timeout_s)

    def _url(self) -> str:
        return f"{settings.ors_url.rstrip('/')}/{settings.ors_profile}"

    def walking_area(self, *, lat: float, lng: float, minutes: int) -> Dict[str, Any]:
        if minutes not in ALLOWED_MINUTES:
            raise ValueError(f"duration must be one of {ALLOWED_MINUTES}")

        body = {
            "locations": [[float(lng), float(lat)]],
            "range": [int(minutes) * 60],
            "range_type": "time",
            "attributes": ["area", "reachfactor"],
            "smoothing": 0.1,
        }
        headers = {
            "Authorization": settings.ors_api_key,
            "Content-Type": "application/json",
        }

        try:
            r = self.client.post(self._url(), json=body, headers=headers)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPStatusError as e:
            logger.error("[isochrone] ORS HTTP %s: %s", e.response.status_code, e.response.text[:300])
            raise ProviderFailure("ors", f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("[isochrone] ORS request failed: %r", e)
            raise ProviderFailure("ors", repr(e)) from e
        except ValueError as e:
            raise ProviderFailure("ors", "response was not JSON") from e

        if not isinstance(data, dict) or not data.get("features"):
            raise ProviderFailure("ors", "response has no features")
        return data

    def close(self) -> None:
        self.client.close()
