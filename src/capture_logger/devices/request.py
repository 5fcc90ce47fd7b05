"""Capture request description: mutable builder, immutable snapshots.

The session owns exactly one ``CaptureRequestBuilder``. Field writes only
change the builder; nothing reaches the device until ``build()`` produces
a new ``CaptureRequestSpec`` snapshot, which is what gets submitted. Each
snapshot carries a monotonically increasing version so results can be
traced back to the request that produced them and a half-applied request
can never be observed by the device.

Example:
    builder = CaptureRequestBuilder(RequestTemplate.RECORD)
    builder.set(ae_mode=AeMode.OFF, exposure_time_ns=5_000_000, sensitivity=180)
    request = builder.build()
    session_handle.set_repeating_request(request, listener, worker)
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

from capture_logger.drivers.cameras.types import (
    AeMode,
    AfMode,
    AfTrigger,
    AwbMode,
    ControlMode,
    MeteringRectangle,
    OpticalStabilizationMode,
    Rect,
    RequestTemplate,
    VideoStabilizationMode,
)

__all__ = ["CaptureRequestSpec", "CaptureRequestBuilder"]


@dataclass(frozen=True, slots=True)
class CaptureRequestSpec:
    """Immutable snapshot of one capture request.

    ``None`` means "leave at the device default" for optional controls.
    ``targets`` holds the output objects frames are delivered to.
    """

    version: int
    template: RequestTemplate
    control_mode: ControlMode = ControlMode.AUTO
    awb_mode: AwbMode = AwbMode.AUTO
    ae_mode: AeMode = AeMode.ON
    af_mode: AfMode = AfMode.CONTINUOUS_VIDEO
    af_trigger: AfTrigger = AfTrigger.IDLE
    af_regions: tuple[MeteringRectangle, ...] = ()
    focus_distance_diopters: float | None = None
    exposure_time_ns: int | None = None
    sensitivity: int | None = None
    optical_stabilization: OpticalStabilizationMode | None = None
    video_stabilization: VideoStabilizationMode | None = None
    crop_region: Rect | None = None
    targets: tuple[Any, ...] = ()


_SETTABLE = frozenset(f.name for f in fields(CaptureRequestSpec)) - {
    "version",
    "template",
    "targets",
}


class CaptureRequestBuilder:
    """Mutable request description owned by a single capture session."""

    def __init__(self, template: RequestTemplate = RequestTemplate.RECORD) -> None:
        self._current = CaptureRequestSpec(version=0, template=template)
        self._version = 0

    @property
    def version(self) -> int:
        """Version of the last snapshot built (0 before the first build)."""
        return self._version

    def get(self, name: str) -> Any:
        """Return the pending value of a control."""
        return getattr(self._current, name)

    def set(self, **controls: Any) -> CaptureRequestBuilder:
        """Update one or more controls on the pending request.

        Raises:
            KeyError: If a name is not a settable control.
        """
        unknown = set(controls) - _SETTABLE
        if unknown:
            raise KeyError(f"Unknown capture request controls: {sorted(unknown)}")
        self._current = replace(self._current, **controls)
        return self

    def add_target(self, target: Any) -> CaptureRequestBuilder:
        """Route frames of this request to ``target`` as well."""
        if target not in self._current.targets:
            self._current = replace(
                self._current, targets=(*self._current.targets, target)
            )
        return self

    def build(self) -> CaptureRequestSpec:
        """Freeze the pending controls into a new versioned snapshot."""
        self._version += 1
        return replace(self._current, version=self._version)
