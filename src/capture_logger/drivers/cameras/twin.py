"""Digital Twin Camera Driver - simulated capture device for testing.

Implements the CameraDriver, CameraDevice and CaptureSessionHandle
protocols without hardware. Every device callback is delivered through
the executor handed in by the caller, exactly like a real asynchronous
camera stack, so the whole open -> configure -> stream -> close lifecycle
can be exercised in tests and demos.

Simulated behaviour:
    - Manual exposure (AE off): requested exposure time and ISO are echoed,
      clipped to the sensor's valid ranges.
    - Auto exposure: converges on the scene's exposure x ISO product with
      a small seeded jitter.
    - Focus: AF off echoes the requested focus distance; an AF trigger
      start settles on the scene focus distance.
    - Preview frames: numpy arrays whose brightness follows exposure x ISO,
      delivered to every request target exposing ``submit_frame``.

Frames are produced either explicitly with ``emit_frames(n)``
(deterministic, used by tests) or by a producer thread at the configured
frame rate when ``free_run`` is enabled.

Example:
    driver = DigitalTwinCameraDriver(DigitalTwinConfig(seed=7))
    camera_id = driver.get_camera_id(LensFacing.BACK)
    driver.open(camera_id, callbacks, worker)
    ...
    driver.session(camera_id).emit_frames(30)
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, final

import numpy as np

from capture_logger.drivers.cameras.types import (
    AeMode,
    AfMode,
    AfTrigger,
    CameraStaticInfo,
    CaptureResultMetadata,
    DeviceError,
    HardwareLevel,
    LensFacing,
    OpticalStabilizationMode,
    Rect,
    Size,
    SizeF,
    VideoStabilizationMode,
)
from capture_logger.errors import DeviceAccessError
from capture_logger.observability import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from capture_logger.devices.request import CaptureRequestSpec
    from capture_logger.drivers.cameras import (
        CaptureListener,
        DeviceStateCallback,
        Executor,
        SessionStateCallback,
    )

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_CAMERAS",
    "DigitalTwinCameraDevice",
    "DigitalTwinCameraDriver",
    "DigitalTwinCaptureSession",
    "DigitalTwinConfig",
]

# =============================================================================
# Constants
# =============================================================================

_NANOS_PER_SECOND = 1_000_000_000

# Auto exposure aims for this ISO before stretching exposure time
_AUTO_EXPOSURE_BASE_ISO = 100

# Synthetic preview pattern
_PREVIEW_GRID_SPACING = 50
_PREVIEW_GRID_LEVEL = 50

_COMMON_VIDEO_SIZES = (
    Size(3840, 2160),
    Size(1920, 1080),
    Size(1280, 720),
    Size(720, 480),
    Size(640, 480),
    Size(320, 240),
)
_COMMON_PREVIEW_SIZES = (
    Size(1920, 1080),
    Size(1440, 1080),
    Size(1280, 960),
    Size(1280, 720),
    Size(960, 720),
    Size(720, 480),
    Size(640, 480),
    Size(352, 288),
)

# Camera "0": rear module with OIS that can be switched off
# Camera "1": front fixed-focus module without OIS
DEFAULT_CAMERAS: Mapping[str, CameraStaticInfo] = MappingProxyType(
    {
        "0": CameraStaticInfo(
            camera_id="0",
            facing=LensFacing.BACK,
            active_array=Rect(0, 0, 4032, 3024),
            pixel_array_size=Size(4032, 3024),
            physical_size_mm=SizeF(5.645, 4.234),
            exposure_time_range_ns=(14_000, 1_000_000_000),
            sensitivity_range=(55, 7_111),
            minimum_focus_distance=10.0,
            focal_lengths_mm=(4.38,),
            optical_stabilization_modes=(
                OpticalStabilizationMode.OFF,
                OpticalStabilizationMode.ON,
            ),
            video_stabilization_modes=(
                VideoStabilizationMode.OFF,
                VideoStabilizationMode.ON,
            ),
            intrinsic_calibration=(3225.0, 3225.0, 2016.0, 1512.0, 0.0),
            radial_distortion=(0.0913, -0.2516, 0.0, 0.0, 0.0, 0.0),
            pose_reference=0,
            pose_translation=(0.0, 0.0, 0.0),
            pose_rotation=(0.0, 0.0, 0.0, 1.0),
            ois_data_modes=(0, 1),
            hardware_level=HardwareLevel.FULL,
            capabilities=(0, 1, 2, 3, 5, 6),
            focus_distance_calibration=2,
            video_sizes=_COMMON_VIDEO_SIZES,
            preview_sizes=_COMMON_PREVIEW_SIZES,
        ),
        "1": CameraStaticInfo(
            camera_id="1",
            facing=LensFacing.FRONT,
            active_array=Rect(0, 0, 2592, 1944),
            pixel_array_size=Size(2592, 1944),
            physical_size_mm=SizeF(3.629, 2.722),
            exposure_time_range_ns=(20_000, 500_000_000),
            sensitivity_range=(100, 3_200),
            minimum_focus_distance=0.0,
            focal_lengths_mm=(2.9,),
            optical_stabilization_modes=(OpticalStabilizationMode.OFF,),
            video_stabilization_modes=(VideoStabilizationMode.ON,),
            hardware_level=HardwareLevel.LIMITED,
            capabilities=(0,),
            focus_distance_calibration=0,
            video_sizes=_COMMON_VIDEO_SIZES[1:],
            preview_sizes=_COMMON_PREVIEW_SIZES[2:],
        ),
    }
)


@dataclass
class DigitalTwinConfig:
    """Behaviour of the simulated device.

    Attributes:
        frame_rate: Frames per second; sets frame duration and timestamps.
        scene_exposure_iso: Exposure (ns) x ISO the scene needs for a
            mid-grey image. Auto exposure converges on it.
        scene_focus_diopters: Focus distance an AF trigger settles on.
        rolling_shutter_skew_ns: Readout time reported per frame.
        jitter: Relative standard deviation applied to auto exposure/ISO.
        seed: Seed for the jitter generator; None for nondeterministic.
        free_run: Produce frames on a background thread while a
            repeating request is active.
        fail_open: Deliver ``on_error`` instead of ``on_opened``.
        fail_characteristics: Raise DeviceAccessError from
            ``get_characteristics``.
        fail_configure: Deliver ``on_configure_failed``.
        render_preview: Synthesize preview frames for request targets.
    """

    frame_rate: float = 30.0
    scene_exposure_iso: int = 3_000_000_000
    scene_focus_diopters: float = 2.0
    rolling_shutter_skew_ns: int = 10_000_000
    jitter: float = 0.02
    seed: int | None = None
    free_run: bool = False
    fail_open: bool = False
    fail_characteristics: bool = False
    fail_configure: bool = False
    render_preview: bool = True


def _clip(value: int, value_range: tuple[int, int] | None) -> int:
    if value_range is None:
        return value
    low, high = value_range
    return max(low, min(high, value))


# =============================================================================
# Capture session
# =============================================================================


@final
class DigitalTwinCaptureSession:
    """Simulated capture session bound to one device and its outputs."""

    def __init__(
        self,
        device: DigitalTwinCameraDevice,
        outputs: Sequence[Any],
    ) -> None:
        self._device = device
        self._outputs = tuple(outputs)
        self._lock = threading.RLock()
        self._closed = False
        self._request: CaptureRequestSpec | None = None
        self._listener: CaptureListener | None = None
        self._listener_executor: Executor | None = None
        self._frame_number = 0
        self._timestamp_ns = 1_000 * _NANOS_PER_SECOND
        self._focus_diopters: float | None = None
        self._producer: threading.Thread | None = None
        self._producer_stop = threading.Event()
        # (request, listener) per set_repeating_request call, oldest first
        self.submitted: list[tuple[CaptureRequestSpec, CaptureListener | None]] = []

    @property
    def outputs(self) -> tuple[Any, ...]:
        return self._outputs

    @property
    def repeating_request(self) -> CaptureRequestSpec | None:
        """Request currently repeated for every frame, if any."""
        return self._request

    @property
    def is_closed(self) -> bool:
        return self._closed

    def set_repeating_request(
        self,
        request: CaptureRequestSpec,
        listener: CaptureListener | None = None,
        executor: Executor | None = None,
    ) -> int:
        """Replace the repeating request.

        Args:
            request: Snapshot to repeat for every subsequent frame.
            listener: Receives ``on_capture_completed`` per frame, or None.
            executor: Where listener callbacks run; required with a listener.

        Returns:
            Sequence id of the request (its version).

        Raises:
            DeviceAccessError: If the session or its device is closed.
            ValueError: If a listener is given without an executor.
        """
        if listener is not None and executor is None:
            raise ValueError("A capture listener needs an executor")
        with self._lock:
            self._check_open()
            self._request = request
            self._listener = listener
            self._listener_executor = executor
            self.submitted.append((request, listener))
            logger.debug(
                "Twin repeating request set",
                camera_id=self._device.camera_id,
                version=request.version,
                with_listener=listener is not None,
            )
        if self._device.config.free_run:
            self._start_producer()
        return request.version

    def stop_repeating(self) -> None:
        """Cancel the repeating request; frames stop being produced."""
        with self._lock:
            self._check_open()
            self._request = None
            self._listener = None
            self._listener_executor = None
        self._stop_producer()

    def close(self) -> None:
        """Close the session. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._request = None
            self._listener = None
            self._listener_executor = None
        self._stop_producer()
        logger.debug("Twin capture session closed", camera_id=self._device.camera_id)

    def emit_frames(self, count: int = 1) -> int:
        """Produce ``count`` frames from the current repeating request.

        Results are posted to the listener's executor in frame order;
        preview frames are handed to targets on the calling thread.

        Returns:
            Number of frames produced; 0 when nothing is repeating.
        """
        produced = 0
        for _ in range(count):
            with self._lock:
                if self._closed or self._request is None:
                    break
                request = self._request
                listener = self._listener
                executor = self._listener_executor
                result = self._next_result(request)
            if self._device.config.render_preview:
                self._deliver_preview(request, result)
            if listener is not None and executor is not None:
                executor.post(listener.on_capture_completed, self, request, result)
            produced += 1
        return produced

    def _check_open(self) -> None:
        if self._closed or self._device.is_closed:
            raise DeviceAccessError(
                f"Capture session of camera {self._device.camera_id} is closed"
            )

    def _next_result(self, request: CaptureRequestSpec) -> CaptureResultMetadata:
        """Synthesize the result for one frame (caller holds the lock)."""
        info = self._device.info
        config = self._device.config
        frame_period_ns = int(_NANOS_PER_SECOND / config.frame_rate)

        if request.ae_mode == AeMode.OFF and request.exposure_time_ns is not None:
            exposure_ns = _clip(request.exposure_time_ns, info.exposure_time_range_ns)
            iso = _clip(
                request.sensitivity or _AUTO_EXPOSURE_BASE_ISO, info.sensitivity_range
            )
        else:
            exposure_ns, iso = self._auto_exposure(frame_period_ns)

        manual_focus = request.focus_distance_diopters
        if request.af_mode == AfMode.OFF and manual_focus is not None:
            self._focus_diopters = manual_focus
        elif request.af_trigger == AfTrigger.START or self._focus_diopters is None:
            self._focus_diopters = config.scene_focus_diopters

        self._frame_number += 1
        frame_duration_ns = max(frame_period_ns, exposure_ns)
        self._timestamp_ns += frame_duration_ns

        return CaptureResultMetadata(
            frame_number=self._frame_number,
            timestamp_ns=self._timestamp_ns,
            exposure_time_ns=exposure_ns,
            frame_duration_ns=frame_duration_ns,
            rolling_shutter_skew_ns=config.rolling_shutter_skew_ns,
            sensitivity=iso,
            focal_length_mm=info.focal_lengths_mm[0],
            focus_distance_diopters=self._focus_diopters,
            crop_region=request.crop_region or info.active_array,
            request_version=request.version,
        )

    def _auto_exposure(self, frame_period_ns: int) -> tuple[int, int]:
        info = self._device.info
        config = self._device.config
        rng = self._device.rng

        target_ns = config.scene_exposure_iso // _AUTO_EXPOSURE_BASE_ISO
        exposure_ns = min(target_ns, frame_period_ns)
        if config.jitter > 0:
            exposure_ns = int(exposure_ns * (1.0 + rng.normal(0.0, config.jitter)))
        exposure_ns = _clip(max(exposure_ns, 1), info.exposure_time_range_ns)

        iso = round(config.scene_exposure_iso / exposure_ns)
        return exposure_ns, _clip(iso, info.sensitivity_range)

    def _deliver_preview(
        self, request: CaptureRequestSpec, result: CaptureResultMetadata
    ) -> None:
        for target in request.targets:
            submit = getattr(target, "submit_frame", None)
            if submit is None:
                continue
            size = getattr(target, "size", None) or Size(320, 240)
            submit(self._render_frame(size, result), result.timestamp_ns)

    def _render_frame(
        self, size: Size, result: CaptureResultMetadata
    ) -> NDArray[np.uint8]:
        """Grey frame whose level tracks exposure x ISO, with a grid and noise."""
        exposure_iso = result.exposure_time_ns * result.sensitivity
        level = 128.0 * exposure_iso / self._device.config.scene_exposure_iso
        frame = np.full((size.height, size.width), min(level, 255.0), dtype=np.float32)
        frame[::_PREVIEW_GRID_SPACING, :] = _PREVIEW_GRID_LEVEL
        frame[:, ::_PREVIEW_GRID_SPACING] = _PREVIEW_GRID_LEVEL

        # Higher ISO, noisier picture
        noise_sigma = result.sensitivity / 400.0
        if noise_sigma > 0:
            frame += self._device.rng.normal(0.0, noise_sigma, frame.shape)
        return np.clip(frame, 0, 255).astype(np.uint8)

    def _start_producer(self) -> None:
        with self._lock:
            if self._producer is not None and self._producer.is_alive():
                return
            self._producer_stop.clear()
            self._producer = threading.Thread(
                target=self._produce_loop,
                name=f"TwinCamera{self._device.camera_id}-frames",
                daemon=True,
            )
            self._producer.start()

    def _stop_producer(self) -> None:
        self._producer_stop.set()
        producer = self._producer
        if (
            producer is not None
            and producer.is_alive()
            and producer is not threading.current_thread()
        ):
            producer.join(timeout=1.0)
        self._producer = None

    def _produce_loop(self) -> None:
        interval = 1.0 / self._device.config.frame_rate
        while not self._producer_stop.wait(interval):
            if self.emit_frames(1) == 0 and self._closed:
                break


# =============================================================================
# Device
# =============================================================================


@final
class DigitalTwinCameraDevice:
    """Opened simulated device. Invalid after ``close`` or disconnect."""

    def __init__(
        self,
        info: CameraStaticInfo,
        config: DigitalTwinConfig,
        callbacks: DeviceStateCallback,
        executor: Executor,
        rng: np.random.Generator,
    ) -> None:
        self.info = info
        self.config = config
        self.rng = rng
        self._callbacks = callbacks
        self._executor = executor
        self._closed = False
        self._session: DigitalTwinCaptureSession | None = None

    @property
    def camera_id(self) -> str:
        return self.info.camera_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def session(self) -> DigitalTwinCaptureSession | None:
        """The most recently created capture session."""
        return self._session

    def create_capture_session(
        self,
        outputs: Sequence[Any],
        callbacks: SessionStateCallback,
        executor: Executor,
    ) -> None:
        """Create a session; outcome is delivered through ``callbacks``.

        Creating a new session closes the previous one.

        Raises:
            DeviceAccessError: If the device is closed or no outputs given.
        """
        if self._closed:
            raise DeviceAccessError(f"Camera {self.camera_id} is closed")
        if not outputs:
            raise DeviceAccessError("A capture session needs at least one output")

        if self._session is not None:
            self._session.close()
        session = DigitalTwinCaptureSession(self, outputs)
        self._session = session

        if self.config.fail_configure:
            logger.debug("Twin session configure failure injected")
            executor.post(callbacks.on_configure_failed, session)
        else:
            executor.post(callbacks.on_configured, session)

    def close(self) -> None:
        """Close the device and its session. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._session is not None:
            self._session.close()
        logger.info("Twin camera closed", camera_id=self.camera_id)

    def disconnect(self) -> None:
        """Simulate the device going away; delivers ``on_disconnected``."""
        if self._closed:
            return
        if self._session is not None:
            self._session.close()
        self._executor.post(self._callbacks.on_disconnected, self)

    def fail(self, error: DeviceError = DeviceError.CAMERA_DEVICE) -> None:
        """Simulate a fatal device error; delivers ``on_error``."""
        if self._closed:
            return
        self._executor.post(self._callbacks.on_error, self, int(error))


# =============================================================================
# Driver
# =============================================================================


@final
class DigitalTwinCameraDriver:
    """Driver enumerating and opening simulated devices.

    Example:
        driver = DigitalTwinCameraDriver(DigitalTwinConfig(fail_configure=True))
        info = driver.get_characteristics("0")
        print(info.capabilities_report())
    """

    def __init__(
        self,
        config: DigitalTwinConfig | None = None,
        cameras: Mapping[str, CameraStaticInfo] | None = None,
    ) -> None:
        """Create the driver.

        Args:
            config: Simulation behaviour. Defaults to DigitalTwinConfig().
            cameras: Static info per camera id. Defaults to DEFAULT_CAMERAS.
        """
        self.config = config or DigitalTwinConfig()
        self._cameras: dict[str, CameraStaticInfo] = dict(
            cameras if cameras is not None else DEFAULT_CAMERAS
        )
        self._rng = np.random.default_rng(self.config.seed)
        self._devices: dict[str, DigitalTwinCameraDevice] = {}
        logger.info(
            "Digital twin camera driver initialized",
            num_cameras=len(self._cameras),
            free_run=self.config.free_run,
        )

    def __repr__(self) -> str:
        return f"DigitalTwinCameraDriver(cameras={list(self._cameras)})"

    def get_camera_ids(self) -> list[str]:
        return list(self._cameras)

    def get_camera_id(self, facing: LensFacing = LensFacing.BACK) -> str | None:
        """First camera id with the given facing, or None."""
        for camera_id, info in self._cameras.items():
            if info.facing == facing:
                return camera_id
        return None

    def get_characteristics(self, camera_id: str) -> CameraStaticInfo:
        """Return the static info of a camera.

        Raises:
            DeviceAccessError: Unknown id or injected failure.
        """
        if self.config.fail_characteristics:
            raise DeviceAccessError(
                f"Characteristics of camera {camera_id} are unavailable"
            )
        try:
            return self._cameras[camera_id]
        except KeyError:
            raise DeviceAccessError(f"Camera {camera_id} not found") from None

    def open(
        self,
        camera_id: str,
        callbacks: DeviceStateCallback,
        executor: Executor,
    ) -> None:
        """Start opening a camera; the result arrives through ``callbacks``.

        Raises:
            DeviceAccessError: If the camera id is unknown.
        """
        info = self.get_characteristics(camera_id)
        device = DigitalTwinCameraDevice(
            info, self.config, callbacks, executor, self._rng
        )
        if self.config.fail_open:
            logger.debug("Twin open failure injected", camera_id=camera_id)
            device._closed = True
            executor.post(callbacks.on_error, device, int(DeviceError.CAMERA_DEVICE))
            return

        self._devices[camera_id] = device
        logger.info("Opening simulated camera", camera_id=camera_id)
        executor.post(callbacks.on_opened, device)

    def device(self, camera_id: str) -> DigitalTwinCameraDevice | None:
        """Most recently opened device for ``camera_id``."""
        return self._devices.get(camera_id)

    def session(self, camera_id: str) -> DigitalTwinCaptureSession | None:
        """Current capture session of the most recently opened device."""
        device = self._devices.get(camera_id)
        return device.session if device is not None else None

    def simulate_disconnect(self, camera_id: str) -> None:
        device = self._devices.get(camera_id)
        if device is not None:
            device.disconnect()

    def simulate_error(
        self, camera_id: str, error: DeviceError = DeviceError.CAMERA_DEVICE
    ) -> None:
        device = self._devices.get(camera_id)
        if device is not None:
            device.fail(error)
