"""Single-threaded background execution context.

Every device callback and every capture-session operation runs on one
worker thread, in the order it was posted. Session state therefore needs
no locks: it is only ever touched from this thread.

Built on a one-thread ThreadPoolExecutor, which gives FIFO execution,
futures for callers that need a result, and a draining shutdown.

Example:
    worker = BackgroundWorker(name="CameraBackground")
    worker.start()
    future = worker.post(session.start_recording, path)
    started = future.result(timeout=5.0)
    worker.stop()  # drains queued work, then joins
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from capture_logger.observability import get_logger

logger = get_logger(__name__)

__all__ = ["BackgroundWorker"]

T = TypeVar("T")


class BackgroundWorker:
    """Serial task queue backed by one thread.

    Implements the driver ``Executor`` protocol. Tasks posted after
    ``stop()`` are dropped and their futures cancelled, the same way a
    device callback arriving after teardown is discarded.
    """

    def __init__(self, name: str = "CameraBackground") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._detached: ThreadPoolExecutor | None = None
        self._thread_ident: int | None = None

    @property
    def is_running(self) -> bool:
        return self._executor is not None

    def in_worker_thread(self) -> bool:
        """True when called from the worker thread itself."""
        return self._thread_ident == threading.get_ident()

    def start(self) -> None:
        """Start the worker thread. No-op when already running.

        A previous thread whose stop was requested from inside itself is
        joined first.
        """
        with self._lock:
            if self._executor is not None:
                return
            detached, self._detached = self._detached, None
        if detached is not None and not self.in_worker_thread():
            detached.shutdown(wait=True)
        with self._lock:
            if self._executor is not None:
                return
            self._executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix=self.name,
                initializer=self._remember_thread,
            )
        logger.debug("Background worker started", worker=self.name)

    def _remember_thread(self) -> None:
        self._thread_ident = threading.get_ident()

    def post(self, fn: Callable[..., T], *args: Any) -> Future[T]:
        """Queue ``fn(*args)``; never runs it inline.

        Returns:
            Future of the call. Already cancelled if the worker is stopped.
        """
        with self._lock:
            executor = self._executor
            if executor is not None:
                try:
                    future = executor.submit(fn, *args)
                except RuntimeError:
                    # Shut down between the check and the submit
                    executor = None
        if executor is None:
            logger.debug(
                "Task dropped, worker not running",
                worker=self.name,
                task=getattr(fn, "__qualname__", repr(fn)),
            )
            dropped: Future[T] = Future()
            dropped.cancel()
            return dropped

        future.add_done_callback(self._log_failure)
        return future

    def call(
        self, fn: Callable[..., T], *args: Any, timeout: float | None = None
    ) -> T:
        """Run ``fn(*args)`` on the worker and wait for its result.

        Runs inline when the worker is not running or when already on the
        worker thread, so operations keep working before start and after
        stop.

        Raises:
            TimeoutError: If the result is not ready within ``timeout``.
            Exception: Whatever ``fn`` raised.
        """
        if not self.is_running or self.in_worker_thread():
            return fn(*args)
        future = self.post(fn, *args)
        if future.cancelled():
            return fn(*args)
        return future.result(timeout=timeout)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until everything posted so far has run.

        Returns:
            True when drained, False on timeout or when not running.
        """
        if not self.is_running or self.in_worker_thread():
            return False
        marker = self.post(lambda: None)
        if marker.cancelled():
            return False
        try:
            marker.result(timeout=timeout)
        except TimeoutError:
            return False
        return True

    def stop(self) -> None:
        """Drain queued tasks and join the thread. Idempotent.

        Called from the worker thread itself (a device callback tearing
        down the session), the shutdown is requested without joining; a
        later ``stop()`` from another thread completes the join.
        """
        with self._lock:
            executor, self._executor = self._executor, None
            if executor is None:
                executor, self._detached = self._detached, None
        if executor is None:
            return
        if self.in_worker_thread():
            executor.shutdown(wait=False)
            with self._lock:
                self._detached = executor
            logger.debug("Background worker stop requested", worker=self.name)
            return
        executor.shutdown(wait=True)
        self._thread_ident = None
        logger.debug("Background worker stopped", worker=self.name)

    @staticmethod
    def _log_failure(future: Future[Any]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                "Background task failed",
                error=str(error),
                error_type=type(error).__name__,
                exc_info=error,
            )
