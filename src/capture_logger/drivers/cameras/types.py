"""Value types and metadata constants for camera drivers.

Geometry:
    Size, SizeF, Rect, MeteringRectangle

Metadata enums (integer values follow the common camera HAL numbering
so capability reports stay comparable across devices):
    RequestTemplate, ControlMode, AeMode, AfMode, AfTrigger, AwbMode,
    OpticalStabilizationMode, VideoStabilizationMode, LensFacing,
    HardwareLevel, DeviceError

Static and per-frame device data:
    CameraStaticInfo: immutable characteristics snapshot
    CaptureResultMetadata: one completed-frame result
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

__all__ = [
    "Size",
    "SizeF",
    "Rect",
    "MeteringRectangle",
    "RequestTemplate",
    "ControlMode",
    "AeMode",
    "AfMode",
    "AfTrigger",
    "AwbMode",
    "OpticalStabilizationMode",
    "VideoStabilizationMode",
    "LensFacing",
    "HardwareLevel",
    "DeviceError",
    "CameraStaticInfo",
    "CaptureResultMetadata",
]


# =============================================================================
# Geometry
# =============================================================================


@dataclass(frozen=True, slots=True)
class Size:
    """Integer width/height pair, e.g. an output stream size."""

    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True, slots=True)
class SizeF:
    """Floating point width/height pair (physical sizes, focal lengths)."""

    width: float
    height: float

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True, slots=True)
class Rect:
    """Pixel rectangle with exclusive right/bottom edges."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @classmethod
    def from_size(cls, width: int, height: int) -> Rect:
        """Rectangle anchored at the origin."""
        return cls(0, 0, width, height)


@dataclass(frozen=True, slots=True)
class MeteringRectangle:
    """Weighted region in sensor active-array coordinates.

    Used to steer the autofocus (and auto exposure) algorithms towards a
    point of interest. Weight 0 disables the region.
    """

    WEIGHT_MIN = 0
    WEIGHT_MAX = 1000

    x: int
    y: int
    width: int
    height: int
    weight: int = WEIGHT_MAX - 1

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValueError(
                f"Metering origin must be non-negative: ({self.x}, {self.y})"
            )
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Metering size must be non-negative: {self.width}x{self.height}"
            )
        if not self.WEIGHT_MIN <= self.weight <= self.WEIGHT_MAX:
            raise ValueError(f"Metering weight out of range: {self.weight}")

    @property
    def center(self) -> tuple[int, int]:
        return (self.x + self.width // 2, self.y + self.height // 2)


# =============================================================================
# Metadata enums
# =============================================================================


class RequestTemplate(IntEnum):
    PREVIEW = 1
    STILL_CAPTURE = 2
    RECORD = 3


class ControlMode(IntEnum):
    OFF = 0
    AUTO = 1


class AeMode(IntEnum):
    OFF = 0
    ON = 1


class AfMode(IntEnum):
    OFF = 0
    AUTO = 1
    CONTINUOUS_VIDEO = 3


class AfTrigger(IntEnum):
    IDLE = 0
    START = 1
    CANCEL = 2


class AwbMode(IntEnum):
    OFF = 0
    AUTO = 1


class OpticalStabilizationMode(IntEnum):
    OFF = 0
    ON = 1


class VideoStabilizationMode(IntEnum):
    OFF = 0
    ON = 1


class LensFacing(IntEnum):
    FRONT = 0
    BACK = 1
    EXTERNAL = 2


class HardwareLevel(IntEnum):
    LIMITED = 0
    FULL = 1
    LEGACY = 2
    LEVEL_3 = 3


class DeviceError(IntEnum):
    """Error codes delivered through ``on_error``."""

    CAMERA_IN_USE = 1
    MAX_CAMERAS_IN_USE = 2
    CAMERA_DISABLED = 3
    CAMERA_DEVICE = 4
    CAMERA_SERVICE = 5


# =============================================================================
# Static characteristics
# =============================================================================


def _array_string(values: Sequence[Any] | None) -> str:
    """Render a sequence as ``[a, b]``, or ``null`` when absent."""
    if values is None:
        return "null"
    return "[" + ", ".join(_scalar_string(v) for v in values) + "]"


def _scalar_string(value: Any) -> str:
    if value is None:
        return "null"
    return str(int(value) if isinstance(value, IntEnum) else value)


@dataclass(frozen=True)
class CameraStaticInfo:
    """Immutable snapshot of a device's characteristics.

    Fetched once when the session is configured and shared read-only with
    the exposure controller and the focal-length geometry helper.

    Attributes:
        camera_id: Driver identifier of the device.
        facing: Lens facing direction.
        active_array: Active sensor area in pixel-array coordinates.
        pixel_array_size: Full pixel array size.
        physical_size_mm: Physical size of the full pixel array.
        exposure_time_range_ns: Valid (min, max) exposure time, None if unknown.
        sensitivity_range: Valid (min, max) ISO, None if unknown.
        minimum_focus_distance: Closest focus distance in diopters; None
            when the device does not report one. 0 means fixed focus.
        focal_lengths_mm: Available focal lengths.
        optical_stabilization_modes: OIS modes the lens supports.
        video_stabilization_modes: Digital stabilization modes supported.
        intrinsic_calibration: [f_x, f_y, c_x, c_y, s] in active-array
            pixels, None if uncalibrated.
        radial_distortion: Distortion coefficients, None if unknown.
        pose_reference: Reference the lens pose is expressed in.
        pose_translation: Lens position relative to the reference.
        pose_rotation: Lens orientation quaternion.
        ois_data_modes: Available OIS data reporting modes.
        hardware_level: Supported hardware level.
        capabilities: Available request capabilities.
        focus_distance_calibration: Focus distance calibration quality.
        video_sizes: Supported sizes for the video encoder output.
        preview_sizes: Supported sizes for the preview output.
    """

    camera_id: str
    facing: LensFacing
    active_array: Rect
    pixel_array_size: Size
    physical_size_mm: SizeF
    exposure_time_range_ns: tuple[int, int] | None = None
    sensitivity_range: tuple[int, int] | None = None
    minimum_focus_distance: float | None = None
    focal_lengths_mm: tuple[float, ...] = (4.0,)
    optical_stabilization_modes: tuple[OpticalStabilizationMode, ...] = (
        OpticalStabilizationMode.OFF,
    )
    video_stabilization_modes: tuple[VideoStabilizationMode, ...] = (
        VideoStabilizationMode.OFF,
    )
    intrinsic_calibration: tuple[float, ...] | None = None
    radial_distortion: tuple[float, ...] | None = None
    pose_reference: int | None = None
    pose_translation: tuple[float, ...] | None = None
    pose_rotation: tuple[float, ...] | None = None
    ois_data_modes: tuple[int, ...] | None = None
    hardware_level: HardwareLevel = HardwareLevel.LIMITED
    capabilities: tuple[int, ...] = ()
    focus_distance_calibration: int = 0
    video_sizes: tuple[Size, ...] = field(default_factory=tuple)
    preview_sizes: tuple[Size, ...] = field(default_factory=tuple)

    def capabilities_report(self) -> dict[str, str]:
        """Return selected characteristics as a key-ordered string mapping.

        Meant for diagnostics screens and ``capture-logger capabilities``.
        Arrays render as ``[a, b, c]`` and missing values as ``null``.

        Returns:
            Dict whose keys are in ascending order.

        Example:
            >>> report = info.capabilities_report()
            >>> report["LENS_INFO_AVAILABLE_OPTICAL_STABILIZATION"]
            '[0, 1]'
        """
        report = {
            "REQUEST_AVAILABLE_CAPABILITIES": _array_string(self.capabilities),
            "INFO_SUPPORTED_HARDWARE_LEVEL": _scalar_string(self.hardware_level),
            "LENS_INFO_AVAILABLE_OPTICAL_STABILIZATION": _array_string(
                self.optical_stabilization_modes
            ),
            "CONTROL_AVAILABLE_VIDEO_STABILIZATION_MODES": _array_string(
                self.video_stabilization_modes
            ),
            "LENS_INFO_FOCUS_DISTANCE_CALIBRATION": _scalar_string(
                self.focus_distance_calibration
            ),
            "LENS_INTRINSIC_CALIBRATION": _array_string(self.intrinsic_calibration),
            "LENS_RADIAL_DISTORTION": _array_string(self.radial_distortion),
            "STATISTICS_INFO_AVAILABLE_OIS_DATA_MODES": _array_string(
                self.ois_data_modes
            ),
            "LENS_POSE_REFERENCE": _scalar_string(self.pose_reference),
            "LENS_POSE_TRANSLATION": _array_string(self.pose_translation),
            "LENS_POSE_ROTATION": _array_string(self.pose_rotation),
        }
        return dict(sorted(report.items()))


# =============================================================================
# Per-frame results
# =============================================================================


@dataclass(frozen=True, slots=True)
class CaptureResultMetadata:
    """Metadata the device reports for one completed frame.

    Attributes:
        frame_number: Monotonic device frame counter.
        timestamp_ns: Start of exposure of the first row.
        exposure_time_ns: Exposure time actually used.
        frame_duration_ns: Start-to-start frame duration.
        rolling_shutter_skew_ns: First-row to last-row readout offset.
        sensitivity: ISO actually used.
        focal_length_mm: Focal length at capture time.
        focus_distance_diopters: Focus distance at capture time.
        crop_region: Active-array region mapped to the output.
        request_version: Version of the request that produced the frame.

    Frame duration, readout skew, focal length and focus distance are
    None when the device does not report them.
    """

    frame_number: int
    timestamp_ns: int
    exposure_time_ns: int
    frame_duration_ns: int | None
    rolling_shutter_skew_ns: int | None
    sensitivity: int
    focal_length_mm: float | None
    focus_distance_diopters: float | None
    crop_region: Rect
    request_version: int = 0
