"""Touch-to-sensor coordinate conversion for tap-to-focus.

The preview is shown in portrait while the sensor is mounted landscape,
rotated by 90 degrees. A touch at view coordinates (x, y) therefore maps
to sensor coordinates with the axes swapped:

    sensor_y = x / view_width * sensor_height
    sensor_x = y / view_height * sensor_width

Business context: Tap-to-focus needs an autofocus metering region in
active-array pixels. The region is a fixed 800x800 square around the
tapped point, pushed inside the array when the tap is near the top/left
edge.

Example:
    >>> region = metering_region_for_touch(
    ...     540, 960, 1080, 1920, Rect(0, 0, 4000, 3000)
    ... )
    >>> (region.x, region.y, region.width, region.height)
    (1600, 1100, 800, 800)
"""

from __future__ import annotations

from capture_logger.drivers.cameras.types import MeteringRectangle, Rect

__all__ = [
    "DEFAULT_HALF_TOUCH_SIZE",
    "metering_region_for_touch",
    "touch_to_sensor_point",
]

DEFAULT_HALF_TOUCH_SIZE = 400


def touch_to_sensor_point(
    x: float,
    y: float,
    view_width: int,
    view_height: int,
    active_array: Rect,
) -> tuple[int, int]:
    """Map a view-space touch to a sensor active-array point.

    Fractions are truncated towards zero, matching integer pixel
    addressing on the device.

    Args:
        x: Touch x in view pixels.
        y: Touch y in view pixels.
        view_width: Width of the preview view in pixels.
        view_height: Height of the preview view in pixels.
        active_array: Sensor active array rectangle.

    Returns:
        (sensor_x, sensor_y) in active-array pixels.

    Raises:
        ValueError: If the view has no area.
    """
    if view_width <= 0 or view_height <= 0:
        raise ValueError(
            f"View must have a positive size: {view_width}x{view_height}"
        )
    sensor_y = int((x / view_width) * active_array.height)
    sensor_x = int((y / view_height) * active_array.width)
    return sensor_x, sensor_y


def metering_region_for_touch(
    x: float,
    y: float,
    view_width: int,
    view_height: int,
    active_array: Rect,
    half_size: int = DEFAULT_HALF_TOUCH_SIZE,
    weight: int = MeteringRectangle.WEIGHT_MAX - 1,
) -> MeteringRectangle:
    """Build the autofocus metering region for a touch.

    The region origin is clamped at zero; its size is always
    ``2 * half_size`` on both axes.
    """
    sensor_x, sensor_y = touch_to_sensor_point(
        x, y, view_width, view_height, active_array
    )
    return MeteringRectangle(
        x=max(sensor_x - half_size, 0),
        y=max(sensor_y - half_size, 0),
        width=half_size * 2,
        height=half_size * 2,
        weight=weight,
    )
