"""Device lifecycle: background worker plus capture session.

``DeviceLifecycle`` is the entry point hosts use. It owns the background
worker every device callback and session operation runs on, and brackets
the device's lifetime with it:

    open():  start worker -> post session.open
    close(): post session.release -> wait -> stop and join worker

The worker is always running before the device is requested and is only
stopped after the device and all its resources are released, on every
path: normal close, device error, disconnect.

Example:
    with DeviceLifecycle(driver, SessionConfig(1280, 720)) as camera:
        camera.open()
        camera.wait_for_state(SessionState.STREAMING, timeout=5.0)
        camera.start_recording("frames.csv")
        ...
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from pathlib import Path
from types import TracebackType

from capture_logger.devices.session import (
    CaptureSession,
    FrameTelemetryObserver,
    OrientationSource,
    SessionConfig,
    SessionState,
)
from capture_logger.devices.worker import BackgroundWorker
from capture_logger.drivers.cameras import CameraDriver
from capture_logger.drivers.cameras.types import LensFacing, Size
from capture_logger.drivers.config import get_factory
from capture_logger.errors import CaptureError
from capture_logger.observability import get_logger

logger = get_logger(__name__)

__all__ = ["DEFAULT_CALL_TIMEOUT", "DeviceLifecycle"]

# Seconds a caller waits for a worker-side operation to finish
DEFAULT_CALL_TIMEOUT = 10.0


class DeviceLifecycle:
    """Opens and closes one camera around a dedicated background worker.

    Operations are posted to the worker and return immediately, except
    ``configure`` (runs on the caller before the worker exists),
    ``start_recording`` (waits for its result) and ``close`` (waits for
    the teardown to finish).

    After the session reaches CLOSED, calling ``open()`` again starts a
    fresh session.

    Args:
        driver: Camera driver. None uses the global driver factory.
        config: Session settings.
        facing: Camera to use. None uses the driver factory's setting.
        observer: Per-frame telemetry receiver.
        orientation: Orientation tracker enabled while the camera is open.
        worker_name: Name of the background thread.
    """

    def __init__(
        self,
        driver: CameraDriver | None = None,
        config: SessionConfig | None = None,
        *,
        facing: LensFacing | None = None,
        observer: FrameTelemetryObserver | None = None,
        orientation: OrientationSource | None = None,
        worker_name: str = "CameraBackground",
    ) -> None:
        factory = get_factory()
        self._driver = driver or factory.create_camera_driver()
        self._config = config or SessionConfig()
        self._facing = facing if facing is not None else factory.config.facing
        self._observer = observer
        self._orientation = orientation
        self._worker = BackgroundWorker(worker_name)
        self._lock = threading.Lock()
        self._session: CaptureSession | None = None

    def __enter__(self) -> DeviceLifecycle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def driver(self) -> CameraDriver:
        return self._driver

    @property
    def worker(self) -> BackgroundWorker:
        return self._worker

    @property
    def session(self) -> CaptureSession | None:
        return self._session

    @property
    def state(self) -> SessionState:
        session = self._session
        return session.state if session is not None else SessionState.IDLE

    @property
    def last_error(self) -> CaptureError | None:
        session = self._session
        return session.last_error if session is not None else None

    def _current_session(self) -> CaptureSession:
        """Current session, replaced by a fresh one once it has ended."""
        with self._lock:
            if self._session is None or self._session.state in (
                SessionState.CLOSED,
                SessionState.ERROR,
            ):
                if self._session is not None:
                    # The old session and its worker thread end before a new
                    # session starts
                    if self._session.state is SessionState.ERROR:
                        self._release_now(self._session)
                    self._worker.stop()
                self._session = CaptureSession(
                    self._driver,
                    self._worker,
                    self._config,
                    facing=self._facing,
                    observer=self._observer,
                    orientation=self._orientation,
                    on_released=self._on_session_released,
                )
            return self._session

    def configure(
        self, target_width: int | None = None, target_height: int | None = None
    ) -> Size:
        """Choose output sizes; returns the preview size (0x0 on failure)."""
        session = self._current_session()
        return self._worker.call(
            session.configure,
            target_width,
            target_height,
            timeout=DEFAULT_CALL_TIMEOUT,
        )

    def open(self) -> Future[None]:
        """Start the worker, then post the device-open request.

        Returns:
            Future completing once the open request has been issued; the
            device outcome arrives later through the session state.
        """
        session = self._current_session()
        self._worker.start()
        logger.info("Opening camera", facing=self._facing.name)
        return self._worker.post(session.open)

    def start_preview(self) -> Future[bool]:
        return self._worker.post(self._current_session().start_preview)

    def stop_preview(self) -> Future[bool]:
        return self._worker.post(self._current_session().stop_preview)

    def change_manual_focus_point(
        self, x: float, y: float, view_width: int, view_height: int
    ) -> Future[bool]:
        """Post a tap-to-focus at view coordinates (x, y)."""
        session = self._current_session()
        return self._worker.post(
            session.change_manual_focus_point, x, y, view_width, view_height
        )

    def set_desired_exposure(
        self, exposure_ns: int, timeout: float | None = DEFAULT_CALL_TIMEOUT
    ) -> None:
        """Set the exposure target used by the next tap-to-focus.

        Runs inline before open(), on the worker afterwards.
        """
        if exposure_ns <= 0:
            raise ValueError(f"Desired exposure must be positive, got {exposure_ns}")
        self._worker.call(
            self._current_session().set_desired_exposure, exposure_ns, timeout=timeout
        )

    def start_recording(
        self, path: Path | str, timeout: float | None = DEFAULT_CALL_TIMEOUT
    ) -> bool:
        """Start the metadata log; True if recording started.

        Runs on the worker so the recording flag is only ever changed in
        between frame callbacks.
        """
        session = self._session
        if session is None:
            logger.warning("Recording not started, camera was never opened")
            return False
        return self._worker.call(session.start_recording, path, timeout=timeout)

    def stop_recording(self, timeout: float | None = DEFAULT_CALL_TIMEOUT) -> None:
        session = self._session
        if session is not None:
            self._worker.call(session.stop_recording, timeout=timeout)

    def capabilities(self) -> dict[str, str]:
        """Capability report of the configured camera (configures if needed)."""
        session = self._current_session()
        if session.static_info is None:
            self.configure()
        return session.capabilities()

    def wait_for_state(
        self, *states: SessionState, timeout: float | None = None
    ) -> bool:
        """Block until the current session reaches one of ``states``."""
        session = self._session
        if session is None:
            return SessionState.IDLE in states
        return session.wait_for_state(*states, timeout=timeout)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until all work posted so far has run on the worker."""
        return self._worker.flush(timeout)

    def close(self, timeout: float | None = DEFAULT_CALL_TIMEOUT) -> None:
        """Release the camera, then stop and join the worker. Idempotent."""
        session = self._session
        try:
            if session is not None:
                self._release_now(session, timeout)
        finally:
            self._worker.stop()
            logger.info("Camera lifecycle closed")

    def _release_now(
        self, session: CaptureSession, timeout: float | None = DEFAULT_CALL_TIMEOUT
    ) -> None:
        self._worker.call(session.release, timeout=timeout)

    def _on_session_released(self) -> None:
        # Runs on the worker when the session ends through a device callback
        self._worker.stop()
