"""
Controller manager.

Watches ChaosBlade objects, filters events through the predicate, and
feeds admitted names to a pool of reconcile workers.
"""

import logging
import threading
from datetime import UTC, datetime
from typing import Dict, List, Optional

from kubernetes.client.rest import ApiException

from kubeblade.config.provider import ControllerConfig
from kubeblade.modules.api import PRE_SPEC_ANNOTATION, ChaosBlade, ConflictError, encode_spec

from .workqueue import WorkQueue

logger = logging.getLogger(__name__)

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
ERROR = "ERROR"


class ControllerManager:
    """Runs the watch loop and the reconcile workers on background threads."""

    def __init__(self, store, reconciler, predicate, config: Optional[ControllerConfig] = None):
        self.store = store
        self.reconciler = reconciler
        self.predicate = predicate
        self.config = config or ControllerConfig()
        self.queue = WorkQueue(base_delay=self.config.requeue_delay, max_delay=self.config.max_requeue_delay)
        self._cache: Dict[str, ChaosBlade] = {}
        self._cache_lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self.watching = False
        self.last_sync: Optional[datetime] = None

    # Lifecycle

    def start(self) -> None:
        if self._threads:
            return
        logger.info(f"Starting controller manager with {self.config.reconcile_workers} reconcile worker(s)")
        watcher = threading.Thread(target=self._watch_loop, name="chaosblade-watch", daemon=True)
        self._threads.append(watcher)
        for n in range(self.config.reconcile_workers):
            self._threads.append(
                threading.Thread(target=self._worker_loop, name=f"chaosblade-reconcile-{n}", daemon=True)
            )
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float = 30.0) -> None:
        """Stop watching and wait for in-flight reconcile passes to finish."""
        logger.info("Stopping controller manager")
        self._stop.set()
        self.queue.shutdown()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        self.watching = False

    @property
    def running(self) -> bool:
        return bool(self._threads) and not self._stop.is_set()

    # Cache

    def snapshot(self) -> List[ChaosBlade]:
        with self._cache_lock:
            return sorted(self._cache.values(), key=lambda blade: blade.name)

    def get_cached(self, name: str) -> Optional[ChaosBlade]:
        with self._cache_lock:
            return self._cache.get(name)

    # Events

    def handle_event(self, event_type: str, obj: ChaosBlade) -> bool:
        """
        Update the cache and enqueue the object if the predicate admits the event.

        Returns:
            True if the object was enqueued
        """
        name = obj.name
        with self._cache_lock:
            old = self._cache.get(name)
            if event_type == DELETED:
                self._cache.pop(name, None)
            else:
                self._cache[name] = obj

        if event_type == DELETED:
            admitted = self.predicate.delete(obj)
        elif event_type == ADDED and old is None:
            admitted = self.predicate.create(obj)
        elif event_type in (ADDED, MODIFIED):
            admitted = self.predicate.update(old, obj)
        else:
            admitted = self.predicate.generic(obj)

        if not admitted:
            return False
        if event_type != DELETED and self.predicate.needs_prior_spec(old, obj):
            self._save_prior_spec(old, obj)
        logger.debug(f"Enqueue {name} for {event_type} event")
        self.queue.add(name)
        return True

    def _save_prior_spec(self, old: ChaosBlade, new: ChaosBlade) -> None:
        try:
            self.store.set_annotation(new.name, PRE_SPEC_ANNOTATION, encode_spec(old.spec))
            new.metadata.annotations[PRE_SPEC_ANNOTATION] = encode_spec(old.spec)
            logger.info(f"[{new.name}] spec changed, saved previous spec for teardown")
        except (ApiException, ConflictError) as e:
            logger.error(f"[{new.name}] failed to save previous spec: {e}")

    def sync(self, items: List[ChaosBlade]) -> None:
        """Reconcile the cache against a full list of objects."""
        listed = {item.name for item in items}
        for item in items:
            self.handle_event(ADDED, item)
        for cached in self.snapshot():
            if cached.name not in listed:
                self.handle_event(DELETED, cached)
        self.last_sync = datetime.now(UTC)

    # Loops

    def _watch_loop(self) -> None:
        while not self._stop.is_set():
            try:
                items, resource_version = self.store.list()
                self.sync(items)
                self.watching = True
                for event_type, raw in self.store.watch(resource_version, self.config.resync_period):
                    if self._stop.is_set():
                        break
                    if event_type == ERROR:
                        logger.info(f"Watch returned an error event, relisting: {raw}")
                        break
                    self.handle_event(event_type, ChaosBlade.from_dict(raw))
            except ApiException as e:
                self.watching = False
                if e.status == 410:
                    logger.info("Watch resource version expired, relisting")
                    continue
                logger.error(f"Watching chaosblades failed: {e.status} {e.reason}")
                self._stop.wait(self.config.requeue_delay)
            except Exception:
                self.watching = False
                logger.exception("Unexpected error in chaosblade watch loop")
                self._stop.wait(self.config.requeue_delay)

    def _worker_loop(self) -> None:
        while not self._stop.is_set():
            name = self.queue.get(timeout=1.0)
            if name is None:
                continue
            try:
                self.process(name)
            finally:
                self.queue.done(name)

    def process(self, name: str) -> None:
        """Run one reconcile pass and schedule the follow-up."""
        try:
            result = self.reconciler.reconcile(name)
        except ConflictError as e:
            logger.info(f"[{name}] {e}, requeueing")
            self.queue.add(name)
            return
        except Exception:
            delay = self.queue.backoff(name)
            logger.exception(f"[{name}] reconcile failed, retrying in {delay}s")
            self.queue.add_after(name, delay)
            return

        self.queue.forget(name)
        if result.requeue_after > 0:
            self.queue.add_after(name, result.requeue_after)
        elif result.requeue:
            self.queue.add(name)
