from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)

Job = Callable[[], None]

_STOP = object()


class RefillWorker:
    """
    Bounded queue + fixed pool of worker threads for fire-and-forget jobs.

    - submit() never blocks the request thread; a full queue drops the job
    - each job runs once; exceptions are logged, never re-raised or retried
    - shutdown() stops intake, lets workers drain what is queued, then joins
    """

    def __init__(self, *, workers: int = 2, queue_size: int = 64, name: str = "refill"):
        self.name = name
        self._q: "queue.Queue[object]" = queue.Queue(maxsize=max(1, int(queue_size)))
        self._accepting = True
        self._lock = threading.Lock()
        self._threads: List[threading.Thread] = []
        for i in range(max(1, int(workers))):
            t = threading.Thread(target=self._run, name=f"{name}-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def submit(self, job: Job, *, label: str = "job") -> bool:
        with self._lock:
            if not self._accepting:
                logger.warning("[%s] shutting down: dropping %s", self.name, label)
                return False
            try:
                self._q.put_nowait((label, job))
            except queue.Full:
                logger.warning("[%s] queue full: dropping %s", self.name, label)
                return False
        return True

    def _run(self) -> None:
        while True:
            item = self._q.get()
            try:
                if item is _STOP:
                    return
                label, job = item
                try:
                    job()
                except Exception:
                    logger.exception("[%s] %s failed", self.name, label)
            finally:
                self._q.task_done()

    def join(self) -> None:
        """Block until every queued job has run."""
        self._q.join()

    def shutdown(self, timeout: float | None = 30.0) -> None:
        with self._lock:
            if not self._accepting:
                return
            self._accepting = False
        # Sentinels queue behind real jobs, so workers drain first.
        for _ in self._threads:
            self._q.put(_STOP)
        for t in self._threads:
            t.join(timeout=timeout)
        logger.info("[%s] stopped", self.name)
