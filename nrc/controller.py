from __future__ import annotations

import heapq
import itertools
import time
from collections import deque
from threading import Condition, Thread
from typing import Callable

from .db import ResourceStore
from .models import ReconcileResult, ResourceIdentity

ReconcileFn = Callable[[ResourceIdentity], ReconcileResult]


class WorkQueue:
    """Deduplicating queue of identities.

    An identity is handed to at most one worker at a time: adding it while it
    is being processed marks it dirty, and it is queued again on ``done``.
    """

    def __init__(self, backoff_base_s: float = 0.005, backoff_max_s: float = 1000.0):
        self.backoff_base_s = backoff_base_s
        self.backoff_max_s = backoff_max_s
        self._cond = Condition()
        self._queue: deque[ResourceIdentity] = deque()
        self._dirty: set[ResourceIdentity] = set()
        self._processing: set[ResourceIdentity] = set()
        self._waiting: list[tuple[float, int, ResourceIdentity]] = []  # heap of (ready_at, seq, key)
        self._seq = itertools.count()
        self._failures: dict[ResourceIdentity, int] = {}
        self._shutdown = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def _add_locked(self, key: ResourceIdentity) -> None:
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def add(self, key: ResourceIdentity) -> None:
        with self._cond:
            if self._shutdown:
                return
            self._add_locked(key)

    def add_after(self, key: ResourceIdentity, delay_s: float) -> None:
        if delay_s <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutdown:
                return
            heapq.heappush(self._waiting, (time.monotonic() + delay_s, next(self._seq), key))
            self._cond.notify()

    def backoff(self, failures: int) -> float:
        return min(self.backoff_max_s, self.backoff_base_s * (2 ** min(failures, 64)))

    def add_rate_limited(self, key: ResourceIdentity) -> float:
        """Requeue after an exponential delay; returns the delay used."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delay = self.backoff(failures)
        self.add_after(key, delay)
        return delay

    def forget(self, key: ResourceIdentity) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: ResourceIdentity) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def get(self, timeout: float | None = None) -> ResourceIdentity | None:
        """Block until an identity is ready; None on timeout or shutdown."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                now = time.monotonic()
                while self._waiting and self._waiting[0][0] <= now:
                    _, _, key = heapq.heappop(self._waiting)
                    self._add_locked(key)
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key
                if self._shutdown:
                    return None
                wait: float | None = None
                if self._waiting:
                    wait = max(0.0, self._waiting[0][0] - now)
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: ResourceIdentity) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()

    def reopen(self) -> None:
        """Accept work again after ``shut_down``; pending items are kept."""
        with self._cond:
            self._shutdown = False


class Controller:
    """Turns store changes into reconcile calls.

    A watcher thread polls the store and enqueues identities whose
    resource_version changed (or that disappeared); worker threads pop them
    and run the registered reconcile function. Failed reconciles are requeued
    with backoff.
    """

    def __init__(
        self,
        store: ResourceStore,
        workers: int = 2,
        poll_interval_s: float = 2.0,
        resync_period_s: float = 300.0,
        queue: WorkQueue | None = None,
    ):
        self.store = store
        self.workers = max(1, int(workers))
        self.poll_interval_s = poll_interval_s
        self.resync_period_s = resync_period_s
        self.queue = queue or WorkQueue()
        self._reconcile: ReconcileFn | None = None
        self._seen: dict[ResourceIdentity, int] = {}
        self._last_resync = time.monotonic()
        self._stop = False
        self._threads: list[Thread] = []

    def register_watch(self, kind: str, reconcile_fn: ReconcileFn) -> None:
        if kind != self.store.kind:
            raise ValueError(f"Store holds '{self.store.kind}' resources, cannot watch '{kind}'.")
        if self._reconcile is not None:
            raise RuntimeError(f"A reconcile function is already registered for '{kind}'.")
        self._reconcile = reconcile_fn

    def start(self) -> None:
        if self._reconcile is None:
            raise RuntimeError("register_watch() must be called before start().")
        if any(t.is_alive() for t in self._threads):
            return
        self._stop = False
        self.queue.reopen()
        self._threads = [Thread(target=self._watch_loop, name="nrc-watch", daemon=True)]
        for i in range(self.workers):
            self._threads.append(Thread(target=self._worker_loop, name=f"nrc-worker-{i}", daemon=True))
        for t in self._threads:
            t.start()

    def stop(self, timeout_s: float | None = 5.0) -> None:
        self._stop = True
        self.queue.shut_down()
        for t in self._threads:
            t.join(timeout_s)

    def _watch_loop(self) -> None:
        self.store.log_event("INFO", "Controller started")
        while not self._stop:
            try:
                self.sync_once()
            except Exception as e:
                self.store.log_event("ERROR", f"Watch tick failed: {type(e).__name__}: {e}")
            time.sleep(max(0.05, self.poll_interval_s))

    def sync_once(self) -> int:
        """Enqueue changed, new and removed identities; returns how many."""
        current = self.store.list_versions()
        resync = time.monotonic() - self._last_resync >= self.resync_period_s
        if resync:
            self._last_resync = time.monotonic()

        changed = [key for key, rv in current.items() if resync or self._seen.get(key) != rv]
        # Removed objects still get one call so the loop observes the deletion.
        changed.extend(key for key in self._seen if key not in current)
        self._seen = current

        for key in changed:
            self.queue.add(key)
        return len(changed)

    def _worker_loop(self) -> None:
        while not self._stop:
            try:
                self.process_next(timeout=1.0)
            except Exception as e:
                self.store.log_event("ERROR", f"Worker failed: {type(e).__name__}: {e}")

    def process_next(self, timeout: float | None = None) -> bool:
        """Reconcile one identity from the queue; False if nothing was ready."""
        if self._reconcile is None:
            raise RuntimeError("No reconcile function registered.")
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False
        try:
            result = self._reconcile(key)
        except Exception as e:
            delay = self.queue.add_rate_limited(key)
            self.store.log_event(
                "ERROR",
                f"Reconcile failed, retrying in {delay:.3f}s: {type(e).__name__}: {e}",
                namespace=key.namespace,
                name=key.name,
            )
            return True
        finally:
            self.queue.done(key)

        self.queue.forget(key)
        if result.requeue_after is not None:
            self.queue.add_after(key, result.requeue_after)
        elif result.requeue:
            self.queue.add_rate_limited(key)
        return True
