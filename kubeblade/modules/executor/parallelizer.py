"""Bounded fan-out of independent work items over a fixed pool of threads."""

import logging
import threading
from queue import Empty, Queue
from typing import Callable, List

from kubeblade.modules.api import ResourceStatus

logger = logging.getLogger(__name__)

MAX_PARALLELISM = 64


def worker_count(pieces: int, max_workers: int = MAX_PARALLELISM) -> int:
    """Number of workers for a batch: min(pieces, max_workers), at least 1 if there is work."""
    if pieces <= 0:
        return 0
    return max(1, min(pieces, max_workers))


def parallelize(pieces: int, do_work: Callable[[int], None], max_workers: int = MAX_PARALLELISM) -> None:
    """
    Call do_work(index) for every index in range(pieces).

    A fixed set of worker threads drains a queue of indices; the call
    returns once every worker has exited. do_work is expected to record its
    own failures; anything it raises is logged and the worker moves on.
    """
    workers = worker_count(pieces, max_workers)
    if workers == 0:
        return

    to_process: Queue = Queue()
    for index in range(pieces):
        to_process.put(index)

    def worker():
        while True:
            try:
                index = to_process.get_nowait()
            except Empty:
                return
            try:
                do_work(index)
            except Exception:
                logger.exception(f"Unhandled error processing work item {index}")

    threads = [
        threading.Thread(target=worker, name=f"blade-exec-{n}", daemon=True)
        for n in range(workers)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


class ResultAccumulator:
    """Collects per-resource statuses and folds the aggregate success flag."""

    def __init__(self):
        self._lock = threading.Lock()
        self._statuses: List[ResourceStatus] = []
        self._success = True

    def add(self, status: ResourceStatus) -> None:
        with self._lock:
            self._statuses.append(status)
            self._success = self._success and status.success

    @property
    def success(self) -> bool:
        with self._lock:
            return self._success

    def statuses(self) -> List[ResourceStatus]:
        with self._lock:
            return list(self._statuses)
