"""
=============================================================================
WORKER THREAD POOL
=============================================================================

Connections are handed to a fixed-bounds pool of worker threads through a
bounded queue. The accept loop never runs a handler itself.

    accept loop ──submit()──► [ task queue (bounded) ] ──► Worker-0
                                                      ──► Worker-1
                                                      ──► ...
                                                      ──► Worker-N

    min_workers   started with the pool
    max_workers   upper bound; one more worker is spawned whenever every
                  worker is busy and tasks are waiting
    queue_size    bound of the queue; submit(block=False) returns False
                  when it is full and the server answers 503

Shutdown uses poison pills: one None per worker is queued, and a worker
exits when it takes one.

Handlers run on these threads concurrently. That is safe for the router
because the route table is sealed (immutable) before the first submit().

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
    """
    A deferred call: func(*args, **kwargs).

    Attributes:
        timeout: If set, a task that waited longer than this in the
                 queue is dropped instead of run.
    """

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    submitted_at: float = field(default_factory=time.time)

    @property
    def waited(self) -> float:
        return time.time() - self.submitted_at


class Worker(threading.Thread):
    """Daemon thread pulling tasks off the shared queue until it gets None."""

    def __init__(self, task_queue: "queue.Queue[Optional[Task]]", worker_id: int,
                 idle_timeout: float = 60.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._stop_event = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task):
        """
        Run one task. Exceptions are logged and counted so that a failing
        task never kills the worker.
        """
        self.state = WorkerState.BUSY
        start = time.time()

        try:
            if task.timeout is not None and task.waited > task.timeout:
                logger.warning(
                    f"Dropping task that waited {task.waited:.2f}s "
                    f"(timeout {task.timeout}s)"
                )
                self.tasks_failed += 1
                return

            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(f"Worker {self.worker_id} finished task in {time.time() - start:.3f}s")

        except Exception:
            self.tasks_failed += 1
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start:.3f}s"
            )

        finally:
            self.state = WorkerState.IDLE

    def stop(self):
        self._stop_event.set()


class ThreadPool:
    """
    Bounded pool of Worker threads.

        pool = ThreadPool(min_workers=4, max_workers=16, queue_size=100)
        pool.start()
        if not pool.submit(handle, args=(conn,), block=False):
            ...  # overloaded
        pool.shutdown()
    """

    def __init__(self, min_workers: int = 4, max_workers: int = 16,
                 queue_size: int = 100, idle_timeout: float = 60.0):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError("need 1 <= min_workers <= max_workers")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._next_worker_id = 0
        self._started = False
        self._shutting_down = False

    def start(self):
        """Start min_workers threads. Calling it twice is a no-op."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_worker()
        self._started = True
        self._shutting_down = False

    def _spawn_worker(self) -> Worker:
        # Caller holds self._lock
        worker = Worker(self._task_queue, self._next_worker_id, self.idle_timeout)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], args: tuple = (),
               kwargs: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None,
               block: bool = True, queue_timeout: Optional[float] = None) -> bool:
        """
        Queue func(*args, **kwargs) for a worker.

        Args:
            timeout: Drop the task if it waits longer than this.
            block: Wait for queue space instead of failing immediately.
            queue_timeout: How long to wait for space when blocking.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: The pool is not running.
        """
        if not self._started or self._shutting_down:
            raise RuntimeError("Thread pool is not running")

        task = Task(func=func, args=args, kwargs=kwargs or {}, timeout=timeout)
        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            if self.busy_workers == len(self._workers) and not self._task_queue.empty():
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._spawn_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop all workers.

        Args:
            wait: Let queued tasks finish first.
            timeout: Upper bound for that wait, in seconds.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutting_down = True

        if wait:
            deadline = None if timeout is None else time.time() + timeout
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.time() > deadline:
                    logger.warning("Thread pool shutdown timed out, stopping workers")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for worker in workers:
            worker.stop()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass

        for worker in workers:
            worker.join(timeout=2.0)

        self._started = False
        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._started and not self._shutting_down

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def pending_tasks(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
            },
            "tasks": {
                "queued": self.pending_tasks,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
