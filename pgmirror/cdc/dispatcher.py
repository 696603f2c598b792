"""Bounded worker pool between the listener and the sync pipeline"""

import threading
from queue import Empty, Queue
from typing import Any, Callable, List, Optional

from loguru import logger


_STOP = object()


class WorkQueue:
    """
    Unbounded intake feeding a fixed number of worker threads

    ``submit`` never blocks, so the notification receive loop keeps draining
    while at most ``workers`` syncs run at once.
    """

    def __init__(self, handler: Callable[[Any], Any], workers: int = 4, name: str = "sync"):
        """
        Initialize the work queue

        Args:
            handler: Called with each submitted item on a worker thread
            workers: Maximum number of items handled concurrently
            name: Thread name prefix
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.handler = handler
        self.workers = workers
        self.name = name

        self._queue: Queue = Queue()
        self._threads: List[threading.Thread] = []
        self._in_flight = 0
        self._lock = threading.Lock()
        self.is_running = False

    def start(self) -> None:
        if self.is_running:
            return
        self.is_running = True
        self._threads = [
            threading.Thread(target=self._work, name=f"{self.name}-worker-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"Started {self.workers} {self.name} workers")

    def submit(self, item: Any) -> bool:
        """Queue ``item``; returns False if the queue is stopped"""
        if not self.is_running:
            logger.warning(f"Work queue '{self.name}' is stopped, dropping {item}")
            return False
        self._queue.put_nowait(item)
        return True

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the workers; items still queued are dropped"""
        if not self.is_running:
            return
        self.is_running = False

        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
                dropped += 1
            except Empty:
                break
        if dropped:
            logger.warning(f"Dropped {dropped} queued {self.name} items on stop")

        for _ in self._threads:
            self._queue.put_nowait(_STOP)
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info(f"Stopped {self.name} workers")

    def pending(self) -> int:
        return self._queue.qsize()

    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def get_status(self):
        return {
            'pending': self.pending(),
            'in_flight': self.in_flight(),
            'workers': self.workers,
            'is_running': self.is_running
        }

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return

            with self._lock:
                self._in_flight += 1
            try:
                self.handler(item)
            except Exception as e:
                logger.exception(f"Unhandled error in {self.name} worker for {item}: {e}")
            finally:
                with self._lock:
                    self._in_flight -= 1
