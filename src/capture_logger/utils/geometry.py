"""Effective focal length in pixels for each captured frame.

Downstream photogrammetry needs the pinhole focal length (fx, fy) of the
*recorded* image, which changes with focus distance (lens breathing) and
with the crop region the device maps to the output.

Two sources, in order of preference:

1. Intrinsic calibration reported by the device (f_x, f_y in active-array
   pixels), rescaled from the crop region to the output image.
2. The thin-lens model from focal length and focus distance:

       v = 1 / (1/f - d/1000)        (f in mm, d in diopters, v in mm)
       fx = v * pixel_array_width / physical_width * image_width / crop_width

   and likewise for fy. A focus distance of 0 (infinity) yields v = f.

Example:
    helper = FocalLengthHelper()
    helper.set_lens_params(static_info)
    helper.set_image_size(Size(1280, 720))
    fx_fy = helper.focal_length_px(4.38, 2.0, Rect(0, 378, 4032, 2646))
"""

from __future__ import annotations

from capture_logger.drivers.cameras.types import CameraStaticInfo, Rect, Size, SizeF
from capture_logger.observability import get_logger

logger = get_logger(__name__)

__all__ = ["FocalLengthHelper", "image_distance_mm"]


def image_distance_mm(focal_length_mm: float, focus_distance_diopters: float) -> float:
    """Lens-to-sensor distance for a thin lens focused at a given distance.

    Falls back to ``focal_length_mm`` when the focus distance is not
    physically reachable (object inside the focal length).
    """
    inverse = 1.0 / focal_length_mm - focus_distance_diopters / 1000.0
    if inverse <= 0:
        return focal_length_mm
    return 1.0 / inverse


class FocalLengthHelper:
    """Converts per-frame lens state into a focal length in output pixels.

    Lens parameters and image size are set once at configure time; the
    per-frame call is a pure function of focal length, focus distance and
    crop region.
    """

    def __init__(self) -> None:
        self._pixel_array: Size | None = None
        self._physical_size: SizeF | None = None
        self._intrinsics: tuple[float, ...] | None = None
        self._image_size: Size | None = None

    def set_lens_params(self, info: CameraStaticInfo) -> None:
        self._pixel_array = info.pixel_array_size
        self._physical_size = info.physical_size_mm
        intrinsics = info.intrinsic_calibration
        # All-zero calibration means "not calibrated"
        if intrinsics and len(intrinsics) >= 2 and any(intrinsics[:2]):
            self._intrinsics = intrinsics
        else:
            self._intrinsics = None

    def set_image_size(self, size: Size) -> None:
        self._image_size = size

    @property
    def uses_intrinsic_calibration(self) -> bool:
        return self._intrinsics is not None

    def focal_length_px(
        self,
        focal_length_mm: float,
        focus_distance_diopters: float,
        crop_region: Rect,
    ) -> SizeF:
        """Effective (fx, fy) in pixels of the output image.

        Args:
            focal_length_mm: Focal length reported for the frame.
            focus_distance_diopters: Focus distance reported for the frame.
            crop_region: Active-array region mapped to the output.

        Returns:
            SizeF(fx, fy). SizeF(0, 0) if the helper is not configured or
            the crop region is empty.
        """
        if (
            self._pixel_array is None
            or self._physical_size is None
            or self._image_size is None
            or crop_region.width <= 0
            or crop_region.height <= 0
        ):
            return SizeF(0.0, 0.0)

        scale_x = self._image_size.width / crop_region.width
        scale_y = self._image_size.height / crop_region.height

        if self._intrinsics is not None:
            return SizeF(self._intrinsics[0] * scale_x, self._intrinsics[1] * scale_y)

        distance = image_distance_mm(focal_length_mm, focus_distance_diopters)
        px_per_mm_x = self._pixel_array.width / self._physical_size.width
        px_per_mm_y = self._pixel_array.height / self._physical_size.height
        return SizeF(distance * px_per_mm_x * scale_x, distance * px_per_mm_y * scale_y)
