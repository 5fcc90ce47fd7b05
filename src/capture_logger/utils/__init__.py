"""Pure helpers used by the capture core.

Example:
    from capture_logger.utils import exposure_for_shutter_angle
    desired_ns = exposure_for_shutter_angle(fps=30, degrees=54)
"""

from capture_logger.utils.coordinates import (
    DEFAULT_HALF_TOUCH_SIZE,
    metering_region_for_touch,
    touch_to_sensor_point,
)
from capture_logger.utils.exposure import (
    DEFAULT_DESIRED_EXPOSURE_NS,
    exposure_for_shutter_angle,
)
from capture_logger.utils.geometry import FocalLengthHelper, image_distance_mm
from capture_logger.utils.sizes import choose_optimal_size, choose_video_size

__all__ = [
    "DEFAULT_DESIRED_EXPOSURE_NS",
    "DEFAULT_HALF_TOUCH_SIZE",
    "FocalLengthHelper",
    "choose_optimal_size",
    "choose_video_size",
    "exposure_for_shutter_angle",
    "image_distance_mm",
    "metering_region_for_touch",
    "touch_to_sensor_point",
]
