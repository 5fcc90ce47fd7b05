"""Camera driver module.

Defines the asynchronous device contract the capture core is written
against, plus a digital twin implementation for development and tests
without hardware. Hosts plug a real camera stack in by implementing the
same protocols.

Protocols:
    Executor: Serial task queue callbacks are delivered on
    DeviceStateCallback: Device open/disconnect/error notifications
    SessionStateCallback: Capture session configured/failed notifications
    CaptureListener: Per-frame completed-result notifications
    CaptureSessionHandle: Configured session accepting repeating requests
    CameraDevice: Opened device creating capture sessions
    CameraDriver: Discovery, characteristics and opening

Implementations:
    DigitalTwinCameraDriver/DigitalTwinCameraDevice/DigitalTwinCaptureSession

Value types:
    See capture_logger.drivers.cameras.types
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from capture_logger.drivers.cameras.twin import (
    DEFAULT_CAMERAS,
    DigitalTwinCameraDevice,
    DigitalTwinCameraDriver,
    DigitalTwinCaptureSession,
    DigitalTwinConfig,
)
from capture_logger.drivers.cameras.types import (
    AeMode,
    AfMode,
    AfTrigger,
    AwbMode,
    CameraStaticInfo,
    CaptureResultMetadata,
    ControlMode,
    DeviceError,
    HardwareLevel,
    LensFacing,
    MeteringRectangle,
    OpticalStabilizationMode,
    Rect,
    RequestTemplate,
    Size,
    SizeF,
    VideoStabilizationMode,
)

if TYPE_CHECKING:
    from capture_logger.devices.request import CaptureRequestSpec


@runtime_checkable
class Executor(Protocol):  # pragma: no cover
    """Serial task queue on which device callbacks are delivered.

    Drivers never call back on their own threads. They post every
    notification to the executor they were handed, so all session state
    is touched from one thread in submission order.
    """

    def post(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Queue ``fn(*args)`` for execution; never runs it inline."""
        ...


@runtime_checkable
class DeviceStateCallback(Protocol):  # pragma: no cover
    """Receives device lifecycle notifications from ``CameraDriver.open``."""

    def on_opened(self, device: CameraDevice) -> None:
        """Device is open and ready to create capture sessions."""
        ...

    def on_disconnected(self, device: CameraDevice) -> None:
        """Device is no longer available (unplugged, evicted)."""
        ...

    def on_error(self, device: CameraDevice, error: int) -> None:
        """Fatal device error; ``error`` is a DeviceError code."""
        ...


@runtime_checkable
class SessionStateCallback(Protocol):  # pragma: no cover
    """Receives the outcome of ``CameraDevice.create_capture_session``."""

    def on_configured(self, session: CaptureSessionHandle) -> None:
        """Session is ready for repeating requests."""
        ...

    def on_configure_failed(self, session: CaptureSessionHandle) -> None:
        """Device rejected the requested outputs."""
        ...


@runtime_checkable
class CaptureListener(Protocol):  # pragma: no cover
    """Receives one call per completed frame of a repeating request."""

    def on_capture_completed(
        self,
        session: CaptureSessionHandle,
        request: CaptureRequestSpec,
        result: CaptureResultMetadata,
    ) -> None:
        """Frame finished; ``result`` holds the metadata actually used."""
        ...


@runtime_checkable
class CaptureSessionHandle(Protocol):  # pragma: no cover
    """Configured capture session of an opened device.

    Business context: The repeating request is what the sensor executes
    frame after frame. Replacing it is the only way to change exposure,
    focus or stabilization while streaming, so the capture core always
    submits complete immutable request snapshots.
    """

    def set_repeating_request(
        self,
        request: CaptureRequestSpec,
        listener: CaptureListener | None = None,
        executor: Executor | None = None,
    ) -> int:
        """Repeat ``request`` for every frame until replaced or stopped.

        Args:
            request: Immutable request snapshot.
            listener: Per-frame result receiver, or None for no results.
            executor: Where listener callbacks are delivered.

        Returns:
            Sequence id of the submitted request.

        Raises:
            DeviceAccessError: If the session or device is closed.
        """
        ...

    def stop_repeating(self) -> None:
        """Stop producing frames for the current repeating request."""
        ...

    def close(self) -> None:
        """Close the session. Safe to call more than once."""
        ...


@runtime_checkable
class CameraDevice(Protocol):  # pragma: no cover
    """Opened camera device."""

    @property
    def camera_id(self) -> str:
        """Driver identifier of the device."""
        ...

    def create_capture_session(
        self,
        outputs: Sequence[Any],
        callbacks: SessionStateCallback,
        executor: Executor,
    ) -> None:
        """Start configuring a session for ``outputs``.

        The outcome arrives as ``on_configured`` or ``on_configure_failed``
        through ``executor``.

        Raises:
            DeviceAccessError: If the device refuses immediately.
        """
        ...

    def close(self) -> None:
        """Release the device. Safe to call more than once."""
        ...


@runtime_checkable
class CameraDriver(Protocol):  # pragma: no cover
    """Discovers cameras and opens them.

    Business context: The capture core only talks to this protocol, so
    the same session code drives the digital twin in tests and a real
    camera stack supplied by the host application.
    """

    def get_camera_ids(self) -> list[str]:
        """Identifiers of all cameras known to the driver."""
        ...

    def get_camera_id(self, facing: LensFacing = LensFacing.BACK) -> str | None:
        """First camera with the given facing, or None if there is none."""
        ...

    def get_characteristics(self, camera_id: str) -> CameraStaticInfo:
        """Static characteristics of a camera.

        Raises:
            DeviceAccessError: If the camera is unknown or inaccessible.
        """
        ...

    def open(
        self,
        camera_id: str,
        callbacks: DeviceStateCallback,
        executor: Executor,
    ) -> None:
        """Start opening a camera.

        The outcome arrives as ``on_opened`` or ``on_error`` through
        ``executor``.

        Raises:
            DeviceAccessError: If the open request is refused immediately.
        """
        ...


__all__ = [
    # Protocols
    "Executor",
    "DeviceStateCallback",
    "SessionStateCallback",
    "CaptureListener",
    "CaptureSessionHandle",
    "CameraDevice",
    "CameraDriver",
    # Digital twin
    "DEFAULT_CAMERAS",
    "DigitalTwinCameraDevice",
    "DigitalTwinCameraDriver",
    "DigitalTwinCaptureSession",
    "DigitalTwinConfig",
    # Value types
    "AeMode",
    "AfMode",
    "AfTrigger",
    "AwbMode",
    "CameraStaticInfo",
    "CaptureResultMetadata",
    "ControlMode",
    "DeviceError",
    "HardwareLevel",
    "LensFacing",
    "MeteringRectangle",
    "OpticalStabilizationMode",
    "Rect",
    "RequestTemplate",
    "Size",
    "SizeF",
    "VideoStabilizationMode",
]
