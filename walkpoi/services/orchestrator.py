from __future__ import annotations

import logging
import time
from typing import Any, List, Protocol

from shapely.geometry.base import BaseGeometry

from walkpoi.core.contracts import Poi, PoiQueryResponse
from walkpoi.core.geometry import to_internal
from walkpoi.core.storage import CacheDB
from walkpoi.services.categories import require_category
from walkpoi.services.coverage_store import CoverageStore
from walkpoi.services.gateway import ProviderGateway
from walkpoi.services.poi_store import PoiStore
from walkpoi.services.updates import UpdateChannel

logger = logging.getLogger(__name__)


class JobQueue(Protocol):
    def submit(self, job, *, label: str = "job") -> bool: ...


class CacheOrchestrator:
    """
    Read-through / write-back POI cache.

    Per request:
      CachedHit  fresh POIs exist inside the polygon. Answer with them now,
                 then queue one background pass that fetches only the
                 uncovered remainder and pushes what it finds.
      CacheMiss  nothing cached. Fetch the whole polygon synchronously,
                 cache it, answer. Provider errors propagate; nothing is
                 written for a failed fetch.

    Concurrent misses for overlapping polygons may fetch the same area twice.
    Coverage only grows and upserts are idempotent, so that is wasted work,
    not inconsistency.
    """

    def __init__(
        self,
        *,
        db: CacheDB,
        pois: PoiStore,
        coverage: CoverageStore,
        gateway: ProviderGateway,
        channel: UpdateChannel,
        refill: JobQueue,
    ):
        self.db = db
        self.pois = pois
        self.coverage = coverage
        self.gateway = gateway
        self.channel = channel
        self.refill = refill

    # ──────────────────────────────────────────────────────────────
    # Request path
    # ──────────────────────────────────────────────────────────────

    def query(self, polygon: Any, category: str) -> PoiQueryResponse:
        category = require_category(category)
        geom = to_internal(polygon)

        cached = self.pois.query_cached(geom, category)
        if cached:
            logger.info("[orchestrator] cache hit: %d %s POIs", len(cached), category)
            self.refill.submit(
                lambda: self.reconcile(polygon, geom, category),
                label=f"reconcile:{category}",
            )
            return PoiQueryResponse(pois=cached, category=category, count=len(cached), cached=True)

        logger.info("[orchestrator] cache miss for %s: fetching full polygon", category)
        fetched = self._fetch_and_cache(geom, category)
        return PoiQueryResponse(pois=fetched, category=category, count=len(fetched), cached=False)

    # ──────────────────────────────────────────────────────────────
    # Background path
    # ──────────────────────────────────────────────────────────────

    def reconcile(self, polygon: Any, geom: BaseGeometry, category: str) -> int:
        """
        Fetch + cache the part of `geom` not yet covered and publish new POIs.

        Returns how many previously unknown POIs were published. Runs on a
        refill worker; errors propagate to the worker, which logs them.
        """
        remainder = self.coverage.uncovered_remainder(geom, category)
        if remainder is None:
            logger.debug("[orchestrator] %s fully covered: nothing to reconcile", category)
            return 0

        logger.info(
            "[orchestrator] reconciling %s remainder (%.1f%% of request)",
            category,
            100.0 * remainder.area / geom.area if geom.area else 100.0,
        )
        fresh = self._fetch_and_cache(remainder, category, only_new=True)
        if fresh:
            self.channel.publish(category, fresh, polygon)
        return len(fresh)

    # ──────────────────────────────────────────────────────────────
    # Shared
    # ──────────────────────────────────────────────────────────────

    def _fetch_and_cache(self, geom: BaseGeometry, category: str, *, only_new: bool = False) -> List[Poi]:
        """
        Provider fetch, then POIs + coverage in one transaction.

        With `only_new`, returns just the POIs that were not already cached
        and fresh before this write.
        """
        t0 = time.monotonic()
        fetched = self.gateway.get_pois(geom, category)

        with self.db.transaction():
            known = self.pois.fresh_ids([p.id for p in fetched]) if only_new else set()
            self.pois.upsert_many(fetched)
            self.coverage.record_coverage(geom, category, len(fetched))

        logger.info(
            "[orchestrator] cached %d %s POIs (+coverage) in %.2fs",
            len(fetched),
            category,
            time.monotonic() - t0,
        )
        if only_new:
            return [p for p in fetched if p.id not in known]
        return fetched
