from __future__ import annotations

import base64
import hashlib
from typing import Any

import orjson

from walkpoi.core.geometry import canonical_ring


def _orjson_dumps(obj: Any) -> bytes:
    return orjson.dumps(
        obj,
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
    )


def sha256_b64(data: bytes) -> str:
    h = hashlib.sha256(data).digest()
    # URL-safe base64, no padding: short and safe in query strings
    return base64.urlsafe_b64encode(h).decode("ascii").rstrip("=")


def canonical_polygon_bytes(polygon: Any) -> bytes:
    """
    Stable bytes for a wire polygon.

    Coordinates go through float canonicalization before serialization, so
    `[1, 2]` and `[1.0, 2.00]` hash identically while point order is kept.
    """
    ring = canonical_ring(polygon)
    return _orjson_dumps([[lng, lat] for lng, lat in ring])


def fingerprint(polygon: Any, category: str) -> str:
    blob = b"poi-fingerprint/v1|" + str(category).encode("utf-8") + b"|" + canonical_polygon_bytes(polygon)
    return sha256_b64(blob)
