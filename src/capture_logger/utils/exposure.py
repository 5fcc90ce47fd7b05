"""Shutter-angle exposure policy.

Film and video practice expresses exposure as a fraction of the frame
period: a 180 degree shutter at 30 fps exposes each frame for 1/60 s.
The desired exposure handed to the exposure/ISO controller is derived
from this rule.
"""

from __future__ import annotations

__all__ = ["DEFAULT_DESIRED_EXPOSURE_NS", "exposure_for_shutter_angle"]

_NANOS_PER_SECOND = 1_000_000_000

# Desired exposure when no shutter-angle policy is configured
DEFAULT_DESIRED_EXPOSURE_NS = 5_000_000


def exposure_for_shutter_angle(fps: float, degrees: float) -> int:
    """Exposure time in nanoseconds for a frame rate and shutter angle.

    Args:
        fps: Frames per second, > 0.
        degrees: Shutter angle in (0, 360].

    Returns:
        Exposure time in nanoseconds, rounded to the nearest integer.

    Raises:
        ValueError: If either argument is out of range.

    Example:
        >>> exposure_for_shutter_angle(30, 180)
        16666667
    """
    if fps <= 0:
        raise ValueError(f"Frame rate must be positive, got {fps}")
    if not 0 < degrees <= 360:
        raise ValueError(f"Shutter angle must be in (0, 360], got {degrees}")
    return round(degrees / 360.0 / fps * _NANOS_PER_SECOND)
