"""
=============================================================================
THREAD POOL
=============================================================================

Worker threads pulling accepted connections off a bounded queue:

    ┌─────────────────────────────────────────────────────────────────────┐
    │   accept loop ──► [conn] [conn] [conn] ...   (queue.Queue)          │
    │                          │                                          │
    │                          ▼ get()                                    │
    │   ┌──────────┐ ┌──────────┐ ┌──────────┐ ┌──────────┐               │
    │   │ Worker 0 │ │ Worker 1 │ │ Worker 2 │ │ Worker 3 │  ... max      │
    │   └──────────┘ └──────────┘ └──────────┘ └──────────┘               │
    └─────────────────────────────────────────────────────────────────────┘

min_workers threads start with the pool. A submit that finds every worker
busy adds one more, up to max_workers. A full queue makes submit() return
False so the caller can turn the connection away itself.

A queued task always runs, however long it waited. The only tasks that
never run are those still queued when shutdown() gives up waiting; their
``on_drop`` callback runs instead, so the server can still answer and
close those connections.

Shutdown ends with one None ("poison pill") per worker.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """``func(*args, **kwargs)``, or ``on_drop()`` if the pool discards it."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    on_drop: Optional[Callable[[], None]] = None

    def run(self) -> None:
        self.func(*self.args, **self.kwargs)

    def drop(self) -> None:
        if self.on_drop is not None:
            self.on_drop()


class Worker(threading.Thread):
    """Runs tasks until it takes a None off the queue."""

    def __init__(self, tasks: "queue.Queue[Optional[Task]]", worker_id: int):
        super().__init__(name=f"webapp-worker-{worker_id}", daemon=True)
        self.tasks = tasks
        self.worker_id = worker_id
        self.state = WorkerState.IDLE

    def run(self) -> None:
        try:
            while self._run_next():
                pass
        finally:
            self.state = WorkerState.STOPPED

    def _run_next(self) -> bool:
        task = self.tasks.get()
        try:
            if task is None:
                return False
            self.state = WorkerState.BUSY
            try:
                task.run()
            except Exception as e:
                # The connection is lost, the worker is not
                logger.exception(f"{self.name}: unhandled error in {task.func!r}: {e}")
            finally:
                self.state = WorkerState.IDLE
            return True
        finally:
            self.tasks.task_done()


class ThreadPool:
    """
    Usage:
        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()
        pool.submit(handle_connection, args=(conn,), on_drop=conn.close)
        pool.shutdown(wait=True)
    """

    def __init__(self, min_workers: int = 4, max_workers: int = 16, queue_size: int = 100):
        self.min_workers = min_workers
        self.max_workers = max_workers

        self._tasks: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._running = False
        self._spawned = 0

    @property
    def size(self) -> int:
        """Number of worker threads."""
        return len(self._workers)

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            for _ in range(self.min_workers):
                self._spawn()
            self._running = True
        logger.info(f"Thread pool started with {self.min_workers} workers (max {self.max_workers})")

    def _spawn(self) -> None:
        # Caller holds self._lock
        worker = Worker(self._tasks, self._spawned)
        self._spawned += 1
        self._workers.append(worker)
        worker.start()

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[Dict[str, Any]] = None,
        on_drop: Optional[Callable[[], None]] = None,
        block: bool = False,
    ) -> bool:
        """
        Queue ``func(*args, **kwargs)``.

        Args:
            on_drop: Called instead of ``func`` if shutdown() discards the
                     task before a worker picks it up.
            block: Wait for room in the queue instead of failing.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._running:
            raise RuntimeError("Thread pool is not running")

        try:
            self._tasks.put(Task(func, args, kwargs or {}, on_drop), block=block)
        except queue.Full:
            return False

        self._grow_if_saturated()
        return True

    def _grow_if_saturated(self) -> None:
        with self._lock:
            if len(self._workers) >= self.max_workers or self._tasks.empty():
                return
            if any(w.state is WorkerState.IDLE for w in self._workers):
                return
            logger.debug(f"All {len(self._workers)} workers busy, adding one")
            self._spawn()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop the workers.

        With ``wait``, queued tasks get ``timeout`` seconds (forever when
        None) to be picked up. Whatever is still queued after that is
        dropped through its ``on_drop`` callback.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            workers, self._workers = self._workers, []

        logger.info("Shutting down thread pool...")
        if wait and not self._wait_for_queue(timeout):
            logger.warning("Shutdown timeout reached with tasks still queued")

        dropped = self._drop_queued()
        if dropped:
            logger.warning(f"Dropped {dropped} queued tasks")

        for _ in workers:
            try:
                self._tasks.put(None, timeout=1.0)
            except queue.Full:
                logger.warning("Task queue full, not every worker got a stop signal")
                break
        for worker in workers:
            worker.join(timeout=2.0)

        logger.info("Thread pool shutdown complete")

    def _wait_for_queue(self, timeout: Optional[float]) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._tasks.empty():
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.05)
        return True

    def _drop_queued(self) -> int:
        dropped = 0
        while True:
            try:
                task = self._tasks.get_nowait()
            except queue.Empty:
                return dropped
            try:
                if task is not None:
                    dropped += 1
                    task.drop()
            except Exception as e:
                logger.exception(f"Drop callback for {task.func!r} failed: {e}")
            finally:
                self._tasks.task_done()
