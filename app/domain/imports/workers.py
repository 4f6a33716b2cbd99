"""
Worker dispatcher for import batches.

Each unit of work (one validated batch to insert, one chunk of ids to remove)
runs on a thread pool owned by a ``WorkerDispatcher``. The dispatcher tracks
every submitted worker so that all of them can be cancelled at once, and calls
a single completion hook whenever the last tracked worker finishes.

Workers are plain functions ``fn(payload, context)``. They receive only their
payload and a :class:`WorkerContext`; cancellation is cooperative, so a worker
must call ``context.raise_if_cancelled()`` before it commits anything.
"""
import importlib
import logging
import threading
import uuid
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.domain.imports.errors import WorkerCancelledError, WorkerError

logger = logging.getLogger(__name__)

WORKER_ENTRYPOINTS = {
    "bulkInsert": "app.domain.imports.tasks:bulk_insert",
    "importHistoryRemove": "app.domain.imports.tasks:import_history_remove",
}

WorkerFn = Callable[[Dict[str, Any], "WorkerContext"], Any]


def resolve_worker(path: str) -> WorkerFn:
    """Resolve a registered worker name or a ``module:function`` path to a callable."""
    target = WORKER_ENTRYPOINTS.get(path, path)
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise WorkerError(f"Unknown worker: {path}")

    try:
        module = importlib.import_module(module_name)
        fn = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise WorkerError(f"Unknown worker: {path}") from e

    if not callable(fn):
        raise WorkerError(f"Worker {path} is not callable")
    return fn


class WorkerContext:
    """Per-worker handle passed into the worker function."""

    def __init__(self, worker_id: str, path: str):
        self.worker_id = worker_id
        self.path = path
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise WorkerCancelledError(f"Worker {self.worker_id} ({self.path}) was cancelled")


@dataclass
class WorkerHandle:
    worker_id: str
    path: str
    context: WorkerContext
    future: Optional[Future] = field(default=None)


class WorkerDispatcher:
    """Owns the worker pool, the registry of active workers, and the completion hook."""

    def __init__(self, max_workers: Optional[int] = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.import_worker_max_workers,
            thread_name_prefix="import-worker",
        )
        self._workers: Dict[str, WorkerHandle] = {}
        self._lock = threading.Lock()
        self._handle_end: Optional[Callable[[], Any]] = None

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._workers)

    def set_handle_end(self, callback: Optional[Callable[[], Any]]) -> None:
        """Register the hook called after the last tracked worker finishes."""
        with self._lock:
            self._handle_end = callback

    def create_worker(self, path: str, payload: Dict[str, Any]) -> WorkerHandle:
        """Submit ``payload`` to the worker at ``path`` and start tracking it."""
        fn = resolve_worker(path)
        worker_id = str(uuid.uuid4())
        context = WorkerContext(worker_id, path)
        handle = WorkerHandle(worker_id=worker_id, path=path, context=context)

        # Registered and submitted under the lock so the worker cannot finish
        # (and unregister itself) before it is tracked.
        with self._lock:
            self._workers[worker_id] = handle
            handle.future = self._executor.submit(self._run, fn, payload, context)

        logger.debug("Started worker %s (%s)", worker_id, path)
        return handle

    def run_worker(self, path: str, payload: Dict[str, Any]) -> Any:
        """
        Submit a worker and block until it finishes.

        Raises:
            WorkerCancelledError: If the worker was cancelled
            WorkerError: If the worker raised
        """
        handle = self.create_worker(path, payload)
        try:
            return handle.future.result()
        except CancelledError as e:
            raise WorkerCancelledError(f"Worker {handle.worker_id} ({path}) was cancelled") from e
        except WorkerError:
            raise
        except Exception as e:
            logger.error("Worker %s (%s) failed: %s", handle.worker_id, path, e)
            raise WorkerError(f"Worker {path} failed: {e}") from e

    def remove_workers(self) -> int:
        """
        Cancel every tracked worker. Queued workers never start; running ones
        are flagged and abort at their next cancellation check.

        Returns:
            Number of workers that were tracked when cancellation was requested
        """
        with self._lock:
            handles = list(self._workers.values())
            for handle in handles:
                handle.context.cancel()
                if handle.future is not None and handle.future.cancel():
                    self._workers.pop(handle.worker_id, None)
            drained = bool(handles) and not self._workers
            callback = self._handle_end

        logger.info("Cancellation requested for %d import workers", len(handles))

        if drained and callback is not None:
            self._invoke_handle_end(callback)
        return len(handles)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, fn: WorkerFn, payload: Dict[str, Any], context: WorkerContext) -> Any:
        try:
            context.raise_if_cancelled()
            return fn(payload, context)
        finally:
            with self._lock:
                self._workers.pop(context.worker_id, None)
                drained = not self._workers
                callback = self._handle_end

            if drained and callback is not None:
                self._invoke_handle_end(callback)

    def _invoke_handle_end(self, callback: Callable[[], Any]) -> None:
        try:
            callback()
        except Exception as e:
            logger.exception("Worker completion hook failed: %s", e)
