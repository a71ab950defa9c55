# worker_pool.py
import logging
import os
import threading
from typing import Any, Callable, NamedTuple, Optional

from handoff import HandoffQueue, QueueClosed

logger = logging.getLogger(__name__)

DEFAULT_NUM_WORKERS = 3
POOL_SIZE_ENV = "WORKER_POOL_SIZE"


class WorkerPoolError(Exception):
    """Base class for worker pool errors."""
    pass


class ConfigurationError(WorkerPoolError, ValueError):
    """Invalid pool configuration, e.g. a worker count below 1."""
    pass


class PoolClosedError(WorkerPoolError, RuntimeError):
    """Task submitted after wait() started."""
    pass


class Response(NamedTuple):
    """Outcome of one task: its return value, or the exception it raised."""
    result: Any = None
    err: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.err is None


class ResultHandle:
    """Single-use slot that receives the Response of one submitted task."""

    def __init__(self):
        self._delivered = threading.Event()
        self._lock = threading.Lock()
        self._response = None

    def done(self) -> bool:
        return self._delivered.is_set()

    def get(self, timeout: Optional[float] = None) -> Response:
        """Block until the task has run and return its Response.

        Raises TimeoutError if timeout (seconds) elapses first. Any number of
        readers, from any thread, get the same Response.
        """
        if not self._delivered.wait(timeout):
            raise TimeoutError(f"no result after {timeout} s")
        return self._response

    def _deliver(self, response: Response) -> None:
        with self._lock:
            if self._delivered.is_set():
                raise RuntimeError("result already delivered")
            self._response = response
            self._delivered.set()


class Task(NamedTuple):
    fn: Callable[..., Any]
    args: tuple
    kwargs: dict
    resp: ResultHandle

    def run(self) -> Response:
        try:
            return Response(self.fn(*self.args, **self.kwargs), None)
        except Exception as e:
            logger.debug("Task %s failed", _task_name(self.fn), exc_info=True)
            return Response(None, e)


def _task_name(fn) -> str:
    return getattr(fn, "__name__", repr(fn))


def _get_env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r, not an integer", name, raw)
        return default


def _resolve_num_workers(num_workers: Optional[int]) -> int:
    if num_workers is None:
        num_workers = _get_env_int(POOL_SIZE_ENV, DEFAULT_NUM_WORKERS)
    if isinstance(num_workers, bool) or not isinstance(num_workers, int):
        raise ConfigurationError(f"num_workers must be an int, got {num_workers!r}")
    if num_workers < 1:
        raise ConfigurationError(f"num_workers must be at least 1, got {num_workers}")
    return num_workers


class WorkerPool:
    """Fixed set of worker threads fed through a zero-capacity handoff queue.

    submit() blocks until a worker is free to take the task, so at most
    num_workers tasks run at once. Each task's outcome comes back through
    the ResultHandle that submit() returns. Call wait() (or leave a with
    block) to drain the pool and stop the workers.
    """

    def __init__(self, num_workers: Optional[int] = None):
        self.num_workers = _resolve_num_workers(num_workers)
        self._tasks = HandoffQueue()
        self._wait_lock = threading.Lock()
        workers = []
        for i in range(self.num_workers):
            t = threading.Thread(target=self._worker_loop,
                                 name=f"Worker-{i+1}",
                                 daemon=True)
            t.start()
            workers.append(t)
        self.workers = tuple(workers)
        logger.info("Started worker pool with %d workers", self.num_workers)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.wait()

    @property
    def closed(self) -> bool:
        return self._tasks.closed

    def _worker_loop(self):
        name = threading.current_thread().name
        logger.debug("%s started", name)
        while True:
            task = self._tasks.get()
            if task is None:
                break
            try:
                response = task.run()
            except BaseException as e:
                # SystemExit, KeyboardInterrupt etc. are a task outcome too; the worker stays up
                logger.warning("Task %s raised %s", _task_name(task.fn), type(e).__name__)
                response = Response(None, e)
            task.resp._deliver(response)
        logger.debug("%s exiting", name)

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> ResultHandle:
        """Hand fn(*args, **kwargs) to a worker and return its ResultHandle.

        Blocks until a worker takes the task. Raises PoolClosedError once
        wait() has started.
        """
        resp = ResultHandle()
        try:
            self._tasks.put(Task(fn, args, kwargs, resp))
        except QueueClosed:
            logger.warning("Rejected task %s: pool is closed", _task_name(fn))
            raise PoolClosedError("cannot submit to a pool after wait()") from None
        return resp

    def wait(self) -> None:
        """Stop accepting tasks, finish the submitted ones and join all workers.

        Calling it again is a no-op.
        """
        if threading.current_thread() in self.workers:
            raise RuntimeError("wait() called from one of the pool's own workers")
        with self._wait_lock:
            first = self._tasks.close()
            for t in self.workers:
                t.join()
        if first:
            logger.info("Worker pool stopped")


_default_pool = None
_default_lock = threading.Lock()


def submit(func, *args, **kwargs):
    """Schedule func(*args, **kwargs) on the default pool."""
    global _default_pool
    with _default_lock:
        if _default_pool is None:
            _default_pool = WorkerPool()
        pool = _default_pool
    return pool.submit(func, *args, **kwargs)


def shutdown():
    """Drain and stop the default pool; the next submit() starts a new one."""
    global _default_pool
    with _default_lock:
        pool, _default_pool = _default_pool, None
    if pool is not None:
        pool.wait()
