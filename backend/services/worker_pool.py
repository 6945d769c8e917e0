"""Bounded multi-threaded worker pool with caller-runs overflow."""
import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional, Set

from config import (
    WORKER_CORE_SIZE,
    WORKER_KEEP_ALIVE,
    WORKER_MAX_SIZE,
    WORKER_QUEUE_CAPACITY,
    WORKER_SHUTDOWN_GRACE,
)
from services.errors import PoolShutdownError

logger = logging.getLogger(__name__)


class _WorkItem:
    """A unit of work bound to the future that reports its outcome."""

    def __init__(self, fn: Callable[..., Any], args: tuple, kwargs: Dict[str, Any]):
        self.future: Future = Future()
        self.fn = fn
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.fn(*self.args, **self.kwargs)
        except Exception as e:
            logger.error(f"Unit of work {_describe(self.fn)} failed: {e}", exc_info=True)
            self.future.set_exception(e)
        else:
            self.future.set_result(result)


class WorkerPool:
    """
    Thread pool with a bounded queue and a caller-runs overflow policy.

    Admission follows the classic executor rules:

    1. Fewer than ``core_workers`` threads: start a new thread for the unit
    2. Otherwise enqueue the unit if the queue has room
    3. Queue full and fewer than ``max_workers`` threads: start a new thread
    4. Otherwise run the unit synchronously on the submitting thread

    Work is never rejected or dropped while the pool is running. Threads
    above the core size exit after ``keep_alive`` seconds without work.
    """

    # How often idle workers wake to check for shutdown and expiry
    POLL_INTERVAL = 0.2

    def __init__(
        self,
        core_workers: int = WORKER_CORE_SIZE,
        max_workers: int = WORKER_MAX_SIZE,
        queue_capacity: int = WORKER_QUEUE_CAPACITY,
        keep_alive: float = WORKER_KEEP_ALIVE,
        name: str = "chat-worker"
    ):
        """
        Args:
            core_workers: Threads kept alive even when idle
            max_workers: Upper bound on threads
            queue_capacity: Pending units held before overflow kicks in
            keep_alive: Idle seconds before a non-core thread exits
            name: Thread name prefix
        """
        if core_workers < 1 or max_workers < core_workers:
            raise ValueError("Require 1 <= core_workers <= max_workers")
        if queue_capacity < 1:
            raise ValueError("queue_capacity must be positive")

        self.core_workers = core_workers
        self.max_workers = max_workers
        self.queue_capacity = queue_capacity
        self.keep_alive = keep_alive
        self.name = name

        self._queue: "queue.Queue[_WorkItem]" = queue.Queue(maxsize=queue_capacity)
        self._lock = threading.Lock()
        self._workers: Set[threading.Thread] = set()
        self._thread_counter = 0
        self._active = 0
        self._completed = 0
        self._caller_runs = 0
        self._shutdown = False

        logger.info(
            f"WorkerPool initialized: core={core_workers}, max={max_workers}, "
            f"queue={queue_capacity}, keep_alive={keep_alive}s"
        )

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """
        Schedule ``fn(*args, **kwargs)`` and return a future for its result.

        Raises:
            PoolShutdownError: If the pool has been shut down
        """
        item = _WorkItem(fn, args, kwargs)

        with self._lock:
            if self._shutdown:
                raise PoolShutdownError("Worker pool is shut down")

            if len(self._workers) < self.core_workers:
                self._start_worker(item)
                return item.future

            try:
                self._queue.put_nowait(item)
                return item.future
            except queue.Full:
                pass

            if len(self._workers) < self.max_workers:
                self._start_worker(item)
                return item.future

            self._caller_runs += 1

        logger.warning(
            f"Worker pool saturated, running {_describe(fn)} on the submitting thread"
        )
        self._execute(item)
        return item.future

    def shutdown(self, grace_seconds: float = WORKER_SHUTDOWN_GRACE) -> int:
        """
        Stop accepting work, wait for in-flight units, then cancel the rest.

        Args:
            grace_seconds: Maximum time to wait for queued and running units

        Returns:
            Number of units that had not started and were cancelled
        """
        with self._lock:
            if self._shutdown:
                return 0
            self._shutdown = True
            workers = list(self._workers)

        logger.info(f"Shutting down worker pool ({len(workers)} threads, grace {grace_seconds}s)")

        deadline = time.monotonic() + grace_seconds
        for worker in workers:
            worker.join(timeout=max(0.0, deadline - time.monotonic()))

        cancelled = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item.future.cancel():
                cancelled += 1

        still_running = sum(1 for worker in workers if worker.is_alive())
        if cancelled or still_running:
            logger.warning(
                f"Worker pool shutdown cancelled {cancelled} pending units; "
                f"{still_running} threads still running"
            )
        else:
            logger.info("Worker pool shut down cleanly")
        return cancelled

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def stats(self) -> Dict[str, int]:
        """Point-in-time gauges for monitoring."""
        with self._lock:
            return {
                "pool_size": len(self._workers),
                "active_threads": self._active,
                "queue_size": self._queue.qsize(),
                "completed_tasks": self._completed,
                "caller_runs": self._caller_runs,
            }

    def _start_worker(self, first_item: Optional[_WorkItem]) -> None:
        # Caller holds self._lock
        self._thread_counter += 1
        worker = threading.Thread(
            target=self._worker_loop,
            args=(first_item,),
            name=f"{self.name}-{self._thread_counter}",
            daemon=True
        )
        self._workers.add(worker)
        worker.start()

    def _worker_loop(self, item: Optional[_WorkItem]) -> None:
        me = threading.current_thread()
        idle_since = time.monotonic()
        try:
            while True:
                if item is not None:
                    self._execute(item)
                    item = None
                    idle_since = time.monotonic()

                try:
                    item = self._queue.get(timeout=self.POLL_INTERVAL)
                    continue
                except queue.Empty:
                    pass

                with self._lock:
                    if self._shutdown:
                        return
                    idle_for = time.monotonic() - idle_since
                    if len(self._workers) > self.core_workers and idle_for >= self.keep_alive:
                        logger.debug(f"{me.name} idle for {idle_for:.1f}s, exiting")
                        return
        finally:
            with self._lock:
                self._workers.discard(me)

    def _execute(self, item: _WorkItem) -> None:
        with self._lock:
            self._active += 1
        try:
            item.run()
        finally:
            with self._lock:
                self._active -= 1
                self._completed += 1


def _describe(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)
