"""Output size selection for the video and preview streams.

Pure functions over the size lists a device advertises. The video size
is chosen first; the preview size must share its aspect ratio so the
preview shows exactly what is recorded.
"""

from __future__ import annotations

from collections.abc import Sequence

from capture_logger.drivers.cameras.types import Size

__all__ = ["choose_optimal_size", "choose_video_size"]


def _same_aspect(size: Size, width: int, height: int) -> bool:
    return size.width * height == size.height * width


def choose_video_size(
    choices: Sequence[Size],
    width: int,
    height: int,
    max_width: int,
) -> Size:
    """Pick the video encoder size.

    Prefers the largest size with the requested aspect ratio that is no
    wider than ``max_width``. Falls back to the largest size no wider than
    ``max_width``, then to the last advertised size.

    Args:
        choices: Sizes the encoder output supports.
        width: Requested aspect-ratio width (e.g. 640).
        height: Requested aspect-ratio height (e.g. 480).
        max_width: Largest acceptable width.

    Raises:
        ValueError: If ``choices`` is empty.

    Example:
        >>> choose_video_size([Size(1920, 1080), Size(640, 480)], 640, 480, 640)
        Size(width=640, height=480)
    """
    if not choices:
        raise ValueError("No video sizes to choose from")

    matching = [
        s for s in choices if _same_aspect(s, width, height) and s.width <= max_width
    ]
    if matching:
        return max(matching, key=lambda s: s.area)

    narrow = [s for s in choices if s.width <= max_width]
    if narrow:
        return max(narrow, key=lambda s: s.area)
    return choices[-1]


def choose_optimal_size(
    choices: Sequence[Size],
    width: int,
    height: int,
    aspect_ratio: Size,
) -> Size:
    """Pick the preview size for a chosen video size.

    Returns the smallest size with the video's aspect ratio that is at
    least ``width`` x ``height``. If none is large enough, returns the
    largest size with that aspect ratio, and if the aspect ratio is not
    offered at all, the first advertised size.

    Raises:
        ValueError: If ``choices`` is empty.
    """
    if not choices:
        raise ValueError("No preview sizes to choose from")

    same_aspect = [
        s for s in choices if _same_aspect(s, aspect_ratio.width, aspect_ratio.height)
    ]
    big_enough = [s for s in same_aspect if s.width >= width and s.height >= height]
    if big_enough:
        return min(big_enough, key=lambda s: s.area)
    if same_aspect:
        return max(same_aspect, key=lambda s: s.area)
    return choices[0]
