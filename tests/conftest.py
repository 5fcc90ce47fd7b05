"""Pytest configuration and fixtures for capture-logger tests.

Sessions here run against the digital twin driver with a seeded, jitter
free configuration and a ``QueueExecutor``, so every device callback is
delivered on the test thread exactly when the test pumps the queue.

Run with:
    pdm run pytest
    pdm run pytest tests/test_session.py -k focus
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from capture_logger.devices.session import CaptureSession, SessionState
from capture_logger.drivers.cameras import DigitalTwinCameraDriver, DigitalTwinConfig
from capture_logger.drivers.config import reset_factory
from capture_logger.observability import reset_logging
from tests.helpers import QueueExecutor


@pytest.fixture(autouse=True)
def _reset_globals() -> Iterator[None]:
    """Drop the global driver factory and logging setup after each test.

    Business context:
    The CLI and DeviceLifecycle read the module-level driver factory, and
    logging tests reconfigure the package root logger. Resetting both keeps
    tests independent of execution order.
    """
    yield
    reset_factory()
    reset_logging()


@pytest.fixture
def twin_config() -> DigitalTwinConfig:
    """Deterministic twin settings: seeded, no exposure jitter.

    With the defaults, auto exposure settles on 30 ms at ISO 100 and each
    frame lasts 33,333,333 ns (30 fps).
    """
    return DigitalTwinConfig(seed=1234, jitter=0.0)


@pytest.fixture
def driver(twin_config: DigitalTwinConfig) -> DigitalTwinCameraDriver:
    """Digital twin driver with the default rear and front cameras."""
    return DigitalTwinCameraDriver(twin_config)


@pytest.fixture
def executor() -> QueueExecutor:
    """Manually pumped executor standing in for the background worker."""
    return QueueExecutor()


@pytest.fixture
def session(driver: DigitalTwinCameraDriver, executor: QueueExecutor) -> CaptureSession:
    """Idle capture session for the rear camera with default settings."""
    return CaptureSession(driver, executor)


@pytest.fixture
def streaming_session(
    session: CaptureSession, executor: QueueExecutor
) -> CaptureSession:
    """Capture session that has been opened and is STREAMING.

    Example:
        >>> def test_x(streaming_session, driver, executor):
        ...     driver.session("0").emit_frames(5)
        ...     executor.run_pending()
    """
    session.open()
    executor.run_pending()
    assert session.state is SessionState.STREAMING
    return session
