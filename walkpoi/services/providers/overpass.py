from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from shapely.geometry.base import BaseGeometry

from walkpoi.core.contracts import RawEntity
from walkpoi.core.errors import ProviderFailure
from walkpoi.core.geometry import outer_ring, polygon_parts
from walkpoi.core.settings import settings
from walkpoi.services.providers.base import PoiProvider

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────
# Query building
# ──────────────────────────────────────────────────────────────

def _poly_filter(ring: Sequence[Tuple[float, float]]) -> str:
    # Overpass wants "lat lng lat lng ..."; our rings are (lng, lat)
    coords = " ".join(f"{lat:.7f} {lng:.7f}" for lng, lat in ring)
    return f'(poly:"{coords}")'


def _tag_filter(key: str, value: str) -> str:
    return f'["{key}"="{value}"]'


def build_overpass_ql(
    geom: BaseGeometry,
    tags: Sequence[Tuple[str, str]],
    *,
    timeout_s: int,
) -> str:
    """
    Union of node/way queries for every (tag, polygon part) pair.

    Holes are not expressible in a poly filter, so each part is queried by
    its outer ring; stray results inside holes are harmless because the
    caller already holds them in cache.
    """
    parts: List[str] = []
    for poly in polygon_parts(geom):
        pf = _poly_filter(outer_ring(poly))
        for key, value in tags:
            tf = _tag_filter(key, value)
            parts.append(f"node{tf}{pf};")
            parts.append(f"way{tf}{pf};")

    return (
        f"[out:json][timeout:{int(timeout_s)}];"
        f"("
        f"{''.join(parts)}"
        f");"
        f"out center;"
    )


# ──────────────────────────────────────────────────────────────
# Response parsing
# ──────────────────────────────────────────────────────────────

def _element_to_entity(el: Dict[str, Any], tags_wanted: Sequence[Tuple[str, str]]) -> Optional[RawEntity]:
    osm_id = el.get("id")
    if osm_id is None:
        return None

    lat = el.get("lat")
    lon = el.get("lon")
    if lat is None or lon is None:
        center = el.get("center") or {}
        lat = center.get("lat")
        lon = center.get("lon")
    if lat is None or lon is None:
        return None

    tags = el.get("tags") or {}
    kind = None
    for key, value in tags_wanted:
        if tags.get(key) == value:
            kind = value
            break

    osm_type = str(el.get("type") or "node")
    return RawEntity(
        id=f"overpass:{osm_type}:{osm_id}",
        osm_type=osm_type,
        name=tags.get("name"),
        kind=kind,
        lat=float(lat),
        lng=float(lon),
        tags=dict(tags),
    )


def parse_overpass_response(payload: Any, tags_wanted: Sequence[Tuple[str, str]]) -> List[RawEntity]:
    if not isinstance(payload, dict) or not isinstance(payload.get("elements"), list):
        raise ProviderFailure("overpass", "malformed response (no elements array)")

    # Server-side timeouts and memory aborts still answer 200, with a partial
    # (often empty) elements list and the reason in "remark".
    remark = payload.get("remark")
    if isinstance(remark, str) and ("runtime error" in remark or "runtime remark" in remark):
        raise ProviderFailure("overpass", remark)

    out: List[RawEntity] = []
    seen: set[str] = set()
    for el in payload["elements"]:
        if not isinstance(el, dict):
            continue
        ent = _element_to_entity(el, tags_wanted)
        if ent is None or ent.id in seen:
            continue
        seen.add(ent.id)
        out.append(ent)
    return out


# ──────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────

def _is_retryable_status(code: int) -> bool:
    return code in (429, 502, 503, 504)


class OverpassProvider(PoiProvider):
    name = "overpass"

    def __init__(
        self,
        *,
        url: str | None = None,
        client: httpx.Client | None = None,
        retries: int | None = None,
        retry_base_s: float | None = None,
    ):
        self.url = url or settings.overpass_url
        self.client = client or httpx.Client(
            timeout=settings.overpass_http_timeout_s,
            headers={"User-Agent": "walkpoi/1.0"},
        )
        self.retries = max(1, int(retries if retries is not None else settings.overpass_retries))
        self.retry_base_s = float(retry_base_s if retry_base_s is not None else settings.overpass_retry_base_s)

    def _post_with_retries(self, ql: str) -> Any:
        last_err: str = "no attempts made"
        for i in range(self.retries):
            try:
                r = self.client.post(self.url, data={"data": ql})
                if _is_retryable_status(r.status_code):
                    last_err = f"HTTP {r.status_code}"
                    logger.warning("[overpass] retryable %s (attempt %d/%d)", last_err, i + 1, self.retries)
                else:
                    r.raise_for_status()
                    return r.json()
            except httpx.TimeoutException as e:
                last_err = f"timeout: {e!r}"
                logger.warning("[overpass] timeout (attempt %d/%d)", i + 1, self.retries)
            except httpx.HTTPStatusError as e:
                raise ProviderFailure("overpass", f"HTTP {e.response.status_code}") from e
            except httpx.HTTPError as e:
                last_err = f"transport: {e!r}"
                logger.warning("[overpass] transport error %r (attempt %d/%d)", e, i + 1, self.retries)
            except ValueError as e:
                raise ProviderFailure("overpass", "response was not JSON") from e

            if i + 1 < self.retries:
                time.sleep(self.retry_base_s * (2 ** i) + random.random() * 0.25)

        raise ProviderFailure("overpass", last_err)

    def fetch(self, geom: BaseGeometry, tags: Sequence[Tuple[str, str]]) -> List[RawEntity]:
        if not tags or not polygon_parts(geom):
            return []

        ql = build_overpass_ql(geom, tags, timeout_s=settings.overpass_timeout_s)
        t0 = time.monotonic()
        payload = self._post_with_retries(ql)
        entities = parse_overpass_response(payload, tags)
        logger.info(
            "[overpass] fetched %d entities (%d parts, %d tags) in %.2fs",
            len(entities),
            len(polygon_parts(geom)),
            len(tags),
            time.monotonic() - t0,
        )
        return entities

    def close(self) -> None:
        self.client.close()
