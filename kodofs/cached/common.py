"""Data structures used by multiple components of the cached file system."""

from __future__ import annotations

import collections
import queue
import threading
from typing import Any, Callable, Dict, List, Optional

from kodofs.logger import log


class ReaderIndex:
    """
    Counts the open readers of arbitrary keys.

    Its use case is deciding which of multiple handles to the same remote file is the
    last one to be closed. Counters are automatically garbage collected when there are
    no readers left.
    """

    def __init__(self) -> None:
        """Instantiate a ReaderIndex."""
        self._global_lock = threading.Lock()
        self._readers: Dict[Any, int] = collections.defaultdict(int)

    def acquire(self, key: Any) -> None:
        """Register a new reader of the key."""
        with self._global_lock:
            self._readers[key] += 1

    def release(self, key: Any) -> bool:
        """Unregister a reader of the key and return whether it was the last one."""
        with self._global_lock:
            self._readers[key] -= 1

            if self._readers[key] <= 0:
                del self._readers[key]
                return True

            return False

    def reader_count(self, key: Any) -> int:
        """Return the number of readers currently registered for the key."""
        with self._global_lock:
            return self._readers.get(key, 0)

    @property
    def key_count(self) -> int:
        """Return the number of keys that currently have readers."""
        with self._global_lock:
            return len(self._readers)


class WorkerPool:
    """
    Fixed number of worker threads that run jobs from a shared queue.

    Jobs are fire-and-forget: their exceptions are logged and never reach the code that
    submitted them. The number of workers bounds how much background I/O can happen at
    the same time, no matter how many jobs are submitted.
    """

    def __init__(self, worker_count: int = 4, name: str = "worker"):
        """Instantiate the pool and start its worker threads."""
        if worker_count < 1:
            raise ValueError("worker count must be at least 1")

        self._queue: queue.Queue = queue.Queue()
        self._workers: List[threading.Thread] = []

        for i in range(worker_count):
            t = threading.Thread(
                target=self._run_worker, name=f"{name}-{i}", daemon=True
            )
            t.start()
            self._workers.append(t)

    def submit(self, job: Callable[..., None], *args: Any) -> None:
        """Queue a job to be run by one of the workers."""
        self._queue.put((job, args))

    def join(self) -> None:
        """Wait until all jobs submitted so far have finished."""
        self._queue.join()

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Finish the queued jobs and stop all workers."""
        for _ in self._workers:
            self._queue.put(None)

        for t in self._workers:
            t.join(timeout=timeout)

        self._workers = []

    def _run_worker(self) -> None:
        """Job loop of a single worker thread."""
        while True:
            item = self._queue.get()

            try:
                if item is None:
                    return

                job, args = item

                try:
                    job(*args)
                except Exception as e:
                    name = getattr(job, "__name__", job)
                    log.error(f"background job {name} failed: {e}")
            finally:
                self._queue.task_done()
