from __future__ import annotations

import logging
from typing import Dict, List

from shapely.geometry.base import BaseGeometry

from walkpoi.core.contracts import Poi
from walkpoi.core.errors import ProviderFailure
from walkpoi.services.categories import category_tags, matched_kind
from walkpoi.services.providers.base import PoiProvider

logger = logging.getLogger(__name__)

UNNAMED = "Unnamed"


class ProviderGateway:
    """
    Category-aware front door to the named POI providers.

    Translates a category into provider tag filters and raw entities into
    cacheable `Poi`s (provider-qualified ids, "Unnamed" default).
    """

    def __init__(self, providers: Dict[str, PoiProvider], *, default: str = "overpass"):
        self.providers = dict(providers)
        self.default = default

    def get_pois(self, geom: BaseGeometry, category: str, provider: str | None = None) -> List[Poi]:
        pname = provider or self.default
        src = self.providers.get(pname)
        if src is None:
            raise ProviderFailure(pname, "unknown provider")

        raw = src.fetch(geom, category_tags(category))

        out: List[Poi] = []
        for ent in raw:
            if ent.lat is None or ent.lng is None:
                continue
            out.append(
                Poi(
                    id=ent.id,
                    name=ent.name or UNNAMED,
                    category=category,
                    kind=ent.kind or matched_kind(category, ent.tags),
                    lat=float(ent.lat),
                    lng=float(ent.lng),
                    tags=dict(ent.tags),
                    provider=pname,
                )
            )
        return out

    def close(self) -> None:
        for p in self.providers.values():
            close = getattr(p, "close", None)
            if callable(close):
                close()
