"""Capture session state machine.

Drives one camera through open -> configure -> stream -> reconfigure on
touch -> close, feeds every completed frame into the exposure history and
the metadata log, and pins exposure/ISO when the user taps to focus.

States:
    IDLE -> OPENING -> CONFIGURING -> STREAMING <-> RECONFIGURING
    any non-terminal state -> STOPPING -> CLOSED
    any non-terminal state -> ERROR -> STOPPING -> CLOSED

Transitions only happen from explicit operation calls or device
callbacks. All of them, and all frame callbacks, run on the single
background worker the session was given, so session state is never
touched concurrently.

Failures reported by the driver are caught where they happen, logged and
turned into state transitions; they do not escape the public operations.
``start_recording`` is the exception: it returns whether recording
started.

Example:
    session = CaptureSession(driver, worker, SessionConfig(640, 480))
    worker.post(session.open)
    ...
    worker.post(session.change_manual_focus_point, 540, 960, 1080, 1920)
    worker.post(session.release)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from capture_logger.devices.exposure import (
    DEFAULT_HISTORY_CAPACITY,
    ExposureHistory,
    ExposureIsoController,
    FrameSample,
)
from capture_logger.devices.metadata_sink import (
    CaptureMetadataSink,
    CaptureResultRecord,
)
from capture_logger.devices.outputs import PreviewBuffer
from capture_logger.devices.request import CaptureRequestBuilder, CaptureRequestSpec
from capture_logger.drivers.cameras import (
    CameraDevice,
    CameraDriver,
    CaptureSessionHandle,
    Executor,
)
from capture_logger.drivers.cameras.types import (
    AfMode,
    AfTrigger,
    AwbMode,
    CameraStaticInfo,
    CaptureResultMetadata,
    ControlMode,
    DeviceError,
    LensFacing,
    MeteringRectangle,
    OpticalStabilizationMode,
    RequestTemplate,
    Size,
    SizeF,
    VideoStabilizationMode,
)
from capture_logger.errors import (
    CaptureError,
    ConfigureFailedError,
    DeviceAccessError,
    DisconnectedError,
    MetadataIOError,
)
from capture_logger.observability import FrameStats, LogContext, get_logger
from capture_logger.utils.coordinates import (
    DEFAULT_HALF_TOUCH_SIZE,
    metering_region_for_touch,
)
from capture_logger.utils.exposure import DEFAULT_DESIRED_EXPOSURE_NS
from capture_logger.utils.geometry import FocalLengthHelper
from capture_logger.utils.sizes import choose_optimal_size, choose_video_size

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_MIN_FOCUS_DISTANCE",
    "CaptureSession",
    "FrameTelemetry",
    "FrameTelemetryObserver",
    "OrientationSource",
    "SessionConfig",
    "SessionState",
]

# Used when the device does not report a minimum focus distance
DEFAULT_MIN_FOCUS_DISTANCE = 5.0


class SessionState(Enum):
    """Lifecycle state of a capture session."""

    IDLE = "idle"
    OPENING = "opening"
    CONFIGURING = "configuring"
    STREAMING = "streaming"
    RECONFIGURING = "reconfiguring"
    STOPPING = "stopping"
    CLOSED = "closed"
    ERROR = "error"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset(
        {SessionState.OPENING, SessionState.STOPPING, SessionState.ERROR}
    ),
    SessionState.OPENING: frozenset(
        {SessionState.CONFIGURING, SessionState.STOPPING, SessionState.ERROR}
    ),
    SessionState.CONFIGURING: frozenset(
        {SessionState.STREAMING, SessionState.STOPPING, SessionState.ERROR}
    ),
    SessionState.STREAMING: frozenset(
        {SessionState.RECONFIGURING, SessionState.STOPPING, SessionState.ERROR}
    ),
    SessionState.RECONFIGURING: frozenset(
        {SessionState.STREAMING, SessionState.STOPPING, SessionState.ERROR}
    ),
    SessionState.STOPPING: frozenset({SessionState.CLOSED}),
    SessionState.ERROR: frozenset({SessionState.STOPPING}),
    SessionState.CLOSED: frozenset(),
}

_FRAME_STATES = frozenset({SessionState.STREAMING, SessionState.RECONFIGURING})


@dataclass(slots=True)
class SessionConfig:
    """Capture session settings.

    Attributes:
        target_width: Requested aspect width / maximum video width.
        target_height: Requested aspect height.
        desired_exposure_ns: Exposure the controller aims for on tap-to-focus.
        history_capacity: Recent frames kept for the exposure controller.
        min_focus_distance_fallback: Focus distance (diopters) pinned at open
            when the device reports no minimum focus distance.
        metering_half_size: Half edge of the tap-to-focus region, sensor px.
        metering_weight: Weight of the tap-to-focus region.
    """

    target_width: int = 640
    target_height: int = 480
    desired_exposure_ns: int = DEFAULT_DESIRED_EXPOSURE_NS
    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    min_focus_distance_fallback: float = DEFAULT_MIN_FOCUS_DISTANCE
    metering_half_size: int = DEFAULT_HALF_TOUCH_SIZE
    metering_weight: int = MeteringRectangle.WEIGHT_MAX - 1


@dataclass(frozen=True, slots=True)
class FrameTelemetry:
    """Per-frame values shown to the user while streaming."""

    focal_length_px: float
    exposure_ns: int
    ois_enabled: bool
    dis_enabled: bool


@runtime_checkable
class FrameTelemetryObserver(Protocol):  # pragma: no cover
    """Receives telemetry for every completed frame.

    Called on the background worker; implementations hand the values
    over to their own UI thread.
    """

    def on_frame_telemetry(self, telemetry: FrameTelemetry) -> None:
        ...


@runtime_checkable
class OrientationSource(Protocol):  # pragma: no cover
    """Device orientation tracking, active while the camera is open."""

    def enable(self) -> None:
        ...

    def disable(self) -> None:
        ...


class CaptureSession:
    """State machine owning one camera device and its capture session.

    Implements the device, session-state and capture-listener callback
    protocols itself; the driver delivers all of them through the
    executor passed in here.

    A session is single use: once CLOSED it stays closed. Create a new
    session to reopen the camera.

    Args:
        driver: Camera driver to open the device with.
        executor: Background worker all callbacks are delivered on.
        config: Session settings. Defaults to SessionConfig().
        facing: Which camera to use.
        observer: Optional per-frame telemetry receiver.
        orientation: Optional orientation tracker, enabled while open.
        on_released: Called once at the end of release().
    """

    def __init__(
        self,
        driver: CameraDriver,
        executor: Executor,
        config: SessionConfig | None = None,
        *,
        facing: LensFacing = LensFacing.BACK,
        observer: FrameTelemetryObserver | None = None,
        orientation: OrientationSource | None = None,
        on_released: Callable[[], None] | None = None,
    ) -> None:
        self._driver = driver
        self._executor = executor
        self.config = config or SessionConfig()
        self._facing = facing
        self._observer = observer
        self._orientation = orientation
        self._on_released = on_released

        self._state = SessionState.IDLE
        self._state_changed = threading.Condition()

        self._camera_id: str | None = None
        self._static_info: CameraStaticInfo | None = None
        self._video_size: Size | None = None
        self._preview_size: Size | None = None
        self._preview_buffer: PreviewBuffer | None = None
        self._preview_target: Any = None

        self._device: CameraDevice | None = None
        self._capture_session: CaptureSessionHandle | None = None
        self._builder: CaptureRequestBuilder | None = None
        self._request: CaptureRequestSpec | None = None
        self._ois_enabled = False
        self._dis_enabled = False
        self._last_error: CaptureError | None = None

        self._history = ExposureHistory(self.config.history_capacity)
        self._controller = ExposureIsoController()
        self._geometry = FocalLengthHelper()
        self._sink = CaptureMetadataSink()
        self._stats = FrameStats()
        self._desired_exposure_ns = self.config.desired_exposure_ns

    def __repr__(self) -> str:
        return (
            f"CaptureSession(camera_id={self._camera_id!r}, "
            f"state={self._state.value})"
        )

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def camera_id(self) -> str | None:
        return self._camera_id

    @property
    def static_info(self) -> CameraStaticInfo | None:
        return self._static_info

    @property
    def video_size(self) -> Size | None:
        return self._video_size

    @property
    def preview_size(self) -> Size | None:
        return self._preview_size

    @property
    def preview_buffer(self) -> PreviewBuffer | None:
        return self._preview_buffer

    @property
    def device(self) -> CameraDevice | None:
        return self._device

    @property
    def capture_session(self) -> CaptureSessionHandle | None:
        return self._capture_session

    @property
    def request(self) -> CaptureRequestSpec | None:
        """Last request snapshot submitted as the repeating request."""
        return self._request

    @property
    def history(self) -> ExposureHistory:
        return self._history

    @property
    def stats(self) -> FrameStats:
        return self._stats

    @property
    def is_recording(self) -> bool:
        return self._sink.active

    @property
    def ois_enabled(self) -> bool:
        """True when optical stabilization could not be switched off."""
        return self._ois_enabled

    @property
    def dis_enabled(self) -> bool:
        """True when digital stabilization could not be switched off."""
        return self._dis_enabled

    @property
    def desired_exposure_ns(self) -> int:
        return self._desired_exposure_ns

    @property
    def last_error(self) -> CaptureError | None:
        """Most recent device or driver failure, None while all is well."""
        return self._last_error

    def wait_for_state(
        self, *states: SessionState, timeout: float | None = None
    ) -> bool:
        """Block until the session is in one of ``states``.

        Safe to call from any thread except the worker.

        Returns:
            True if reached, False on timeout.
        """
        with self._state_changed:
            return self._state_changed.wait_for(
                lambda: self._state in states, timeout=timeout
            )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def configure(
        self, target_width: int | None = None, target_height: int | None = None
    ) -> Size:
        """Read the camera's characteristics and choose output sizes.

        Only acts while IDLE and not yet configured; otherwise returns the
        preview size chosen before.

        Returns:
            Preview size, or Size(0, 0) if the characteristics could not
            be read (the session is then in ERROR).
        """
        if self._static_info is not None or self._state is not SessionState.IDLE:
            if self._state is not SessionState.IDLE:
                logger.warning("Configure ignored", state=self._state.value)
            return self._preview_size or Size(0, 0)

        width = target_width or self.config.target_width
        height = target_height or self.config.target_height

        try:
            camera_id = self._driver.get_camera_id(self._facing)
            if camera_id is None:
                raise DeviceAccessError(f"No {self._facing.name.lower()} camera")
            info = self._driver.get_characteristics(camera_id)
        except DeviceAccessError as e:
            logger.error("Cannot read camera characteristics", error=str(e))
            self._last_error = e
            self._transition(SessionState.ERROR)
            return Size(0, 0)

        with LogContext(camera_id=camera_id):
            video_size = choose_video_size(
                info.video_sizes or (info.pixel_array_size,), width, height, width
            )
            preview_size = choose_optimal_size(
                info.preview_sizes or (video_size,), width, height, video_size
            )
            self._geometry.set_lens_params(info)
            self._geometry.set_image_size(video_size)

            self._camera_id = camera_id
            self._static_info = info
            self._video_size = video_size
            self._preview_size = preview_size
            self._preview_buffer = PreviewBuffer(preview_size)

            logger.info(
                "Camera configured",
                video_size=str(video_size),
                preview_size=str(preview_size),
            )
            self._log_capabilities(info)
        return preview_size

    def set_preview_target(self, target: Any) -> None:
        """Stream preview frames into a host surface as well.

        Takes effect when the capture session is created, so it must be
        set before ``open()``.
        """
        if self._state is not SessionState.IDLE:
            logger.warning(
                "Preview target set after open, used on next session",
                state=self._state.value,
            )
        self._preview_target = target

    def open(self) -> None:
        """Start opening the camera; configures first if needed."""
        if self._state is not SessionState.IDLE:
            logger.warning("Open ignored", state=self._state.value)
            return
        if self._static_info is None:
            self.configure()
            if self._state is SessionState.ERROR:
                return
        if self._camera_id is None:
            logger.error("Open ignored, no camera selected")
            return

        with LogContext(camera_id=self._camera_id):
            if self._orientation is not None:
                self._orientation.enable()
            self._transition(SessionState.OPENING)
            try:
                self._driver.open(self._camera_id, self, self._executor)
            except DeviceAccessError as e:
                logger.error("Camera open failed", error=str(e))
                self._last_error = e
                self._transition(SessionState.ERROR)

    def start_preview(self) -> bool:
        """Submit the current request as the repeating request.

        Returns:
            False (with a warning) if there is nothing to submit, or if the
            device rejected the request.
        """
        if self._capture_session is None or self._request is None:
            logger.warning("start_preview: no capture session or request")
            return False
        try:
            self._capture_session.set_repeating_request(
                self._request, self, self._executor
            )
        except DeviceAccessError as e:
            logger.error("Failed to start preview", error=str(e))
            self._last_error = e
            return False
        logger.debug("Preview started", request_version=self._request.version)
        return True

    def stop_preview(self) -> bool:
        """Cancel the repeating request.

        Returns:
            False (with a warning) if there is no capture session, or if
            the device refused.
        """
        if self._capture_session is None or self._request is None:
            logger.warning("stop_preview: no capture session or request")
            return False
        try:
            self._capture_session.stop_repeating()
        except DeviceAccessError as e:
            logger.error("Failed to stop preview", error=str(e))
            return False
        logger.debug("Preview stopped")
        return True

    def change_manual_focus_point(
        self, x: float, y: float, view_width: int, view_height: int
    ) -> bool:
        """Refocus at a touched point and pin exposure/ISO.

        Sequence:
            1. Submit the autofocus region around the touch, without a
               result listener.
            2. Fix exposure and ISO from the recent frame history.
            3. Switch to auto control with autofocus and trigger a focus
               search, then resubmit with the frame listener.

        Args:
            x: Touch x in view pixels.
            y: Touch y in view pixels.
            view_width: Preview view width in pixels.
            view_height: Preview view height in pixels.

        Returns:
            True when the new request is streaming.

        Raises:
            ValueError: If the view size is not positive.
        """
        if (
            self._state is not SessionState.STREAMING
            or self._capture_session is None
            or self._builder is None
            or self._static_info is None
        ):
            logger.warning(
                "Focus point ignored, not streaming", state=self._state.value
            )
            return False

        region = metering_region_for_touch(
            x,
            y,
            view_width,
            view_height,
            self._static_info.active_array,
            half_size=self.config.metering_half_size,
            weight=self.config.metering_weight,
        )

        with LogContext(camera_id=self._camera_id):
            self._transition(SessionState.RECONFIGURING)
            builder = self._builder
            handle = self._capture_session
            try:
                builder.set(af_regions=(region,))
                handle.set_repeating_request(builder.build(), None, None)

                self._controller.apply(
                    builder,
                    self._static_info,
                    self._desired_exposure_ns,
                    self._history,
                )

                builder.set(
                    control_mode=ControlMode.AUTO,
                    af_mode=AfMode.AUTO,
                    af_trigger=AfTrigger.START,
                )
                self._request = builder.build()
                handle.set_repeating_request(self._request, self, self._executor)
            except DeviceAccessError as e:
                logger.error("Refocus failed", error=str(e))
                self._last_error = e
                self._transition(SessionState.ERROR)
                return False

            self._transition(SessionState.STREAMING)
            logger.info(
                "Focus point changed",
                region=[region.x, region.y, region.width, region.height],
                request_version=self._request.version,
            )
        return True

    def set_desired_exposure(self, exposure_ns: int) -> None:
        """Exposure the next tap-to-focus will aim for.

        Raises:
            ValueError: If ``exposure_ns`` is not positive.
        """
        if exposure_ns <= 0:
            raise ValueError(f"Desired exposure must be positive, got {exposure_ns}")
        self._desired_exposure_ns = exposure_ns
        logger.debug("Desired exposure set", exposure_ns=exposure_ns)

    def start_recording(self, path: Path | str) -> bool:
        """Start writing per-frame metadata to ``path``.

        Returns:
            True if recording started; False if the log could not be
            opened or the session is closed.
        """
        if self._state is SessionState.CLOSED:
            logger.warning("Recording not started, session closed")
            return False
        try:
            self._sink.start(path)
        except MetadataIOError as e:
            logger.error("Recording not started", error=str(e))
            return False
        return True

    def stop_recording(self) -> None:
        """Stop writing metadata. No-op when not recording."""
        self._sink.stop()

    def capabilities(self) -> dict[str, str]:
        """Key-ordered capability report; empty before configure."""
        if self._static_info is None:
            return {}
        return self._static_info.capabilities_report()

    def release(self) -> None:
        """Tear everything down and end in CLOSED. Idempotent.

        Stops the repeating request, closes the capture session, the
        device and the preview buffer, disables orientation tracking and
        stops recording.
        """
        if self._state is SessionState.CLOSED:
            logger.debug("Release ignored, already closed")
            return

        try:
            with LogContext(camera_id=self._camera_id):
                self._transition(SessionState.STOPPING)
                try:
                    self._close_device_handles()
                finally:
                    buffer, self._preview_buffer = self._preview_buffer, None
                    if buffer is not None:
                        buffer.close()
                    self._sink.stop()
                    self._builder = None
                    self._request = None
                    self._preview_target = None

                    self._transition(SessionState.CLOSED)
                    summary = self._stats.get_summary()
                    logger.info(
                        "Camera released",
                        frames=summary.total_frames,
                        written=summary.written_frames,
                        dropped=summary.dropped_frames,
                    )
        finally:
            if self._on_released is not None:
                self._on_released()

    def _close_device_handles(self) -> None:
        """Close capture session and device; driver failures are logged."""
        handle, self._capture_session = self._capture_session, None
        if handle is not None:
            try:
                handle.stop_repeating()
            except DeviceAccessError as e:
                logger.debug("Repeating request already gone", error=str(e))
            try:
                handle.close()
            except DeviceAccessError as e:
                logger.warning("Capture session close failed", error=str(e))
                self._last_error = e

        device, self._device = self._device, None
        if device is not None:
            try:
                device.close()
            except DeviceAccessError as e:
                logger.warning("Camera device close failed", error=str(e))
                self._last_error = e

        if self._orientation is not None:
            self._orientation.disable()

    # -------------------------------------------------------------------------
    # Device state callbacks
    # -------------------------------------------------------------------------

    def on_opened(self, device: CameraDevice) -> None:
        with LogContext(camera_id=device.camera_id):
            if self._state is not SessionState.OPENING:
                logger.warning(
                    "Device opened after session moved on, closing it",
                    state=self._state.value,
                )
                device.close()
                return

            logger.info("Camera opened")
            self._device = device
            outputs = self._outputs()
            self._builder = self._build_initial_request(outputs)
            self._transition(SessionState.CONFIGURING)
            try:
                device.create_capture_session(outputs, self, self._executor)
            except DeviceAccessError as e:
                logger.error("Capture session creation failed", error=str(e))
                self._last_error = e
                self._transition(SessionState.ERROR)

    def on_disconnected(self, device: CameraDevice) -> None:
        with LogContext(camera_id=device.camera_id):
            if self._state is SessionState.CLOSED:
                return
            logger.warning("Camera disconnected", state=self._state.value)
            self._last_error = DisconnectedError(
                f"Camera {device.camera_id} disconnected"
            )
            self.release()

    def on_error(self, device: CameraDevice, error: int) -> None:
        with LogContext(camera_id=device.camera_id):
            if self._state is SessionState.CLOSED:
                return
            try:
                code = DeviceError(error).name
            except ValueError:
                code = str(error)
            logger.error("Camera device error", error=code, state=self._state.value)
            self._last_error = DeviceAccessError(
                f"Camera {device.camera_id} reported error {code}"
            )
            if self._state is not SessionState.ERROR:
                self._transition(SessionState.ERROR)
            self.release()

    # -------------------------------------------------------------------------
    # Session state callbacks
    # -------------------------------------------------------------------------

    def on_configured(self, session: CaptureSessionHandle) -> None:
        with LogContext(camera_id=self._camera_id):
            if self._state is not SessionState.CONFIGURING or self._builder is None:
                logger.warning(
                    "Session configured after session moved on, closing it",
                    state=self._state.value,
                )
                session.close()
                return

            self._capture_session = session
            self._request = self._builder.build()
            if self.start_preview():
                self._transition(SessionState.STREAMING)
            else:
                self._transition(SessionState.ERROR)

    def on_configure_failed(self, session: CaptureSessionHandle) -> None:
        with LogContext(camera_id=self._camera_id):
            if self._state is not SessionState.CONFIGURING:
                session.close()
                return
            logger.error("Capture session configuration failed")
            self._last_error = ConfigureFailedError(
                f"Capture session of camera {self._camera_id} failed to configure"
            )
            # Kept so release() closes it
            self._capture_session = session
            self._transition(SessionState.ERROR)

    # -------------------------------------------------------------------------
    # Capture listener
    # -------------------------------------------------------------------------

    def on_capture_completed(
        self,
        session: CaptureSessionHandle,
        request: CaptureRequestSpec,
        result: CaptureResultMetadata,
    ) -> None:
        """Handle one completed frame: history, log line, telemetry."""
        if self._state not in _FRAME_STATES:
            return

        self._history.append(
            FrameSample(
                result.frame_number, result.exposure_time_ns, result.sensitivity
            )
        )

        focal_px: SizeF | None = None
        if result.focal_length_mm is not None:
            # Unreported focus distance is taken as infinity
            focal_px = self._geometry.focal_length_px(
                result.focal_length_mm,
                result.focus_distance_diopters or 0.0,
                result.crop_region,
            )
        written = False
        if self._sink.active:
            written = self._sink.record(
                CaptureResultRecord(
                    timestamp_ns=result.timestamp_ns,
                    focal_length_px_w=focal_px.width if focal_px is not None else None,
                    focal_length_px_h=focal_px.height if focal_px is not None else None,
                    frame_number=result.frame_number,
                    exposure_ns=result.exposure_time_ns,
                    frame_duration_ns=result.frame_duration_ns,
                    frame_readout_ns=result.rolling_shutter_skew_ns,
                    iso=result.sensitivity,
                    focal_length_mm=result.focal_length_mm,
                    focus_distance_diopters=result.focus_distance_diopters,
                )
            )
            if not written:
                self._stats.record_write_failure("MetadataIOError")
        self._stats.record_frame(result.frame_number, result.timestamp_ns, written)

        if self._observer is not None:
            self._observer.on_frame_telemetry(
                FrameTelemetry(
                    focal_length_px=focal_px.width if focal_px is not None else 0.0,
                    exposure_ns=result.exposure_time_ns,
                    ois_enabled=self._ois_enabled,
                    dis_enabled=self._dis_enabled,
                )
            )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _transition(self, new_state: SessionState) -> None:
        old_state = self._state
        if new_state is old_state:
            return
        if new_state not in _TRANSITIONS[old_state]:
            raise RuntimeError(
                f"Invalid session transition {old_state.value} -> {new_state.value}"
            )
        with self._state_changed:
            self._state = new_state
            self._state_changed.notify_all()
        logger.info(
            "Session state changed",
            from_state=old_state.value,
            to_state=new_state.value,
        )

    def _outputs(self) -> Sequence[Any]:
        outputs: list[Any] = []
        if self._preview_buffer is not None:
            outputs.append(self._preview_buffer)
        if self._preview_target is not None:
            outputs.append(self._preview_target)
        return outputs

    def _build_initial_request(
        self, outputs: Sequence[Any]
    ) -> CaptureRequestBuilder:
        """Auto white balance, focus pinned, stabilization off where possible."""
        info = self._static_info
        if info is None:
            raise RuntimeError("Initial request needs the camera characteristics")

        builder = CaptureRequestBuilder(RequestTemplate.RECORD)
        builder.set(control_mode=ControlMode.AUTO, awb_mode=AwbMode.AUTO)

        min_focus = info.minimum_focus_distance
        if min_focus is None:
            min_focus = self.config.min_focus_distance_fallback
        builder.set(af_mode=AfMode.OFF, focus_distance_diopters=min_focus)
        logger.debug("Focus distance set to its minimum", diopters=min_focus)

        ois_modes = info.optical_stabilization_modes
        logger.debug("OIS modes", modes=[int(m) for m in ois_modes])
        if OpticalStabilizationMode.OFF in ois_modes:
            builder.set(optical_stabilization=OpticalStabilizationMode.OFF)
            self._ois_enabled = False
        else:
            self._ois_enabled = bool(ois_modes)

        dis_modes = info.video_stabilization_modes
        logger.debug("DIS modes", modes=[int(m) for m in dis_modes])
        if VideoStabilizationMode.OFF in dis_modes:
            builder.set(video_stabilization=VideoStabilizationMode.OFF)
            self._dis_enabled = False
        else:
            self._dis_enabled = bool(dis_modes)

        for output in outputs:
            builder.add_target(output)
        return builder

    def _log_capabilities(self, info: CameraStaticInfo) -> None:
        logger.debug(
            "Camera capabilities",
            hardware_level=info.hardware_level.name,
            capabilities=list(info.capabilities),
            focus_calibration=info.focus_distance_calibration,
        )
        if info.pose_reference is not None:
            logger.debug(
                "Camera pose",
                reference=info.pose_reference,
                translation=list(info.pose_translation or ()),
                rotation=list(info.pose_rotation or ()),
            )
