"""Test helper functions for capture-logger.

Provides protocol compliance checks and a manually pumped executor for
driving the asynchronous device callbacks deterministically.

Example:
    from tests.helpers import QueueExecutor, assert_implements_protocol
    from capture_logger.drivers.cameras import CameraDriver

    def test_twin_is_a_driver():
        assert_implements_protocol(DigitalTwinCameraDriver(), CameraDriver)

    def test_open_delivers_on_opened(driver):
        executor = QueueExecutor()
        driver.open("0", callbacks, executor)
        executor.run_pending()
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any, Protocol

_Task = tuple[Callable[..., Any], tuple[Any, ...], Future[Any]]


def assert_implements_protocol(instance: object, protocol: type[Protocol]) -> None:
    """Assert that an instance implements a Protocol interface.

    Uses isinstance() (the Protocol must be @runtime_checkable) and, on
    failure, lists the protocol members the instance lacks.

    Business context: The capture core only talks to driver protocols,
    so the digital twin and the session callbacks must satisfy them
    exactly or hosts plugging in a real camera stack get late failures.

    Args:
        instance: Object to check for protocol compliance.
        protocol: Runtime-checkable Protocol class.

    Raises:
        AssertionError: If instance doesn't implement protocol.
        TypeError: If protocol is not @runtime_checkable.

    Example:
        >>> assert_implements_protocol(session, DeviceStateCallback)
    """
    if isinstance(instance, protocol):
        return

    object_attrs = set(dir(object))
    required = {
        attr
        for attr in set(dir(protocol)) - object_attrs
        if not attr.startswith("_")
    }
    missing = sorted(attr for attr in required if not hasattr(instance, attr))
    missing_str = ", ".join(missing) if missing else "unknown"
    raise AssertionError(
        f"{type(instance).__name__} does not implement {protocol.__name__}. "
        f"Missing: {missing_str}"
    )


class QueueExecutor:
    """Executor that queues tasks until the test runs them.

    Implements the driver ``Executor`` protocol. Nothing runs until
    ``run_pending()`` is called, so a test decides exactly when each
    device callback is delivered, all on the test thread.
    """

    def __init__(self) -> None:
        self._tasks: deque[_Task] = deque()
        self.executed = 0

    def __len__(self) -> int:
        return len(self._tasks)

    def post(self, fn: Callable[..., Any], *args: Any) -> Future[Any]:
        future: Future[Any] = Future()
        self._tasks.append((fn, args, future))
        return future

    def run_next(self) -> Any:
        """Run the oldest queued task and return its result."""
        if not self._tasks:
            raise AssertionError("No task queued")
        fn, args, future = self._tasks.popleft()
        self.executed += 1
        result = fn(*args)
        future.set_result(result)
        return result

    def run_pending(self, limit: int = 10_000) -> int:
        """Run queued tasks, including ones they queue, until idle.

        Exceptions raised by a task are set on its future and re-raised,
        so a failing callback fails the test.

        Returns:
            Number of tasks run.
        """
        ran = 0
        while self._tasks:
            if ran >= limit:
                raise AssertionError(f"Executor did not go idle after {limit} tasks")
            fn, args, future = self._tasks.popleft()
            ran += 1
            self.executed += 1
            try:
                future.set_result(fn(*args))
            except Exception as e:
                future.set_exception(e)
                raise
        return ran
