"""
Per-category fan-out of newly discovered POIs.

Each long-lived client connection owns a `Subscription` with a bounded
queue; `UpdateChannel.publish` pushes one event onto every live queue for
the category. Delivery is best-effort and at-most-once: no backlog, no
replay, and a subscriber whose queue is closed or full is dropped.

Filtering by fingerprint is the subscriber's job: the channel broadcasts
per category.
"""
from __future__ import annotations

import itertools
import logging
import queue
import threading
from typing import Any, Dict, List, Optional, Sequence

import orjson

from walkpoi.core.contracts import Poi, PoiUpdateEvent
from walkpoi.core.errors import InvalidGeometry
from walkpoi.core.keying import fingerprint
from walkpoi.core.time import epoch_ms

logger = logging.getLogger(__name__)


class SubscriptionClosed(Exception):
    pass


class Subscription:
    def __init__(self, sub_id: str, category: str, *, maxsize: int):
        self.id = sub_id
        self.category = category
        self._q: "queue.Queue[PoiUpdateEvent]" = queue.Queue(maxsize=max(1, int(maxsize)))
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, event: PoiUpdateEvent) -> None:
        """Raises SubscriptionClosed if the subscriber is gone or not keeping up."""
        if self._closed.is_set():
            raise SubscriptionClosed(self.id)
        try:
            self._q.put_nowait(event)
        except queue.Full:
            raise SubscriptionClosed(f"{self.id}: queue full") from None

    def poll(self) -> Optional[PoiUpdateEvent]:
        if self._closed.is_set():
            return None
        try:
            return self._q.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        self._closed.set()


class SubscriberRegistry:
    """Live subscriptions by category. Created at app start, passed explicitly."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_category: Dict[str, Dict[str, Subscription]] = {}
        self._ids = itertools.count(1)

    def add(self, category: str, *, maxsize: int) -> Subscription:
        with self._lock:
            sub = Subscription(f"sub_{next(self._ids)}", category, maxsize=maxsize)
            self._by_category.setdefault(category, {})[sub.id] = sub
        return sub

    def remove(self, sub: Subscription) -> None:
        sub.close()
        with self._lock:
            subs = self._by_category.get(sub.category)
            if subs is None:
                return
            subs.pop(sub.id, None)
            if not subs:
                del self._by_category[sub.category]

    def snapshot(self, category: str) -> List[Subscription]:
        with self._lock:
            return list(self._by_category.get(category, {}).values())

    def count(self, category: str | None = None) -> int:
        with self._lock:
            if category is not None:
                return len(self._by_category.get(category, {}))
            return sum(len(v) for v in self._by_category.values())

    def close_all(self) -> None:
        with self._lock:
            subs = [s for v in self._by_category.values() for s in v.values()]
            self._by_category.clear()
        for s in subs:
            s.close()


class UpdateChannel:
    def __init__(self, registry: SubscriberRegistry, *, queue_size: int = 100):
        self.registry = registry
        self.queue_size = int(queue_size)

    def subscribe(self, category: str) -> Subscription:
        sub = self.registry.add(category, maxsize=self.queue_size)
        logger.info("[updates] %s subscribed to %s (%d live)", sub.id, category, self.registry.count(category))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self.registry.remove(sub)
        logger.info("[updates] %s unsubscribed from %s", sub.id, sub.category)

    def publish(self, category: str, pois: Sequence[Poi], source_polygon: Any) -> int:
        """
        Broadcast `pois` to every live subscriber of `category`.

        Returns the number of subscribers reached. Never raises.
        """
        if not pois:
            return 0

        subs = self.registry.snapshot(category)
        if not subs:
            return 0

        try:
            fp = fingerprint(source_polygon, category)
        except InvalidGeometry as e:
            logger.warning("[updates] could not fingerprint source polygon (%s); dropping publish", e)
            return 0

        event = PoiUpdateEvent(
            category=category,
            pois=list(pois),
            count=len(pois),
            timestamp=epoch_ms(),
            fingerprint=fp,
        )

        sent = 0
        for sub in subs:
            try:
                sub.send(event)
                sent += 1
            except SubscriptionClosed as e:
                logger.warning("[updates] dropping subscriber %s (%s)", sub.id, e)
                self.registry.remove(sub)

        logger.info("[updates] published %d %s POIs to %d/%d subscribers", len(pois), category, sent, len(subs))
        return sent


def format_sse(event: PoiUpdateEvent) -> bytes:
    return b"data: " + orjson.dumps(event.model_dump()) + b"\n\n"


SSE_KEEPALIVE = b": keepalive\n\n"
