"""Preview output buffer.

The image-output resource a capture session streams into. Keeps the
most recent preview frame for polling consumers and forwards each new
frame to an optional image-available listener.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from capture_logger.drivers.cameras.types import Size
from capture_logger.observability import get_logger

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

logger = get_logger(__name__)

__all__ = ["ImageAvailableListener", "PreviewBuffer"]

ImageAvailableListener = Callable[["PreviewBuffer"], None]


class PreviewBuffer:
    """Latest-frame buffer for one preview stream.

    Frames are submitted by the device on its own thread; readers may
    poll from any thread.

    Args:
        size: Stream size the device renders frames at.
    """

    def __init__(self, size: Size) -> None:
        self.size = size
        self._lock = threading.Lock()
        self._frame: NDArray[np.uint8] | None = None
        self._timestamp_ns: int | None = None
        self._frames_received = 0
        self._listener: ImageAvailableListener | None = None
        self._closed = False

    def __repr__(self) -> str:
        return f"PreviewBuffer(size={self.size}, closed={self._closed})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def frames_received(self) -> int:
        return self._frames_received

    def set_image_available_listener(
        self, listener: ImageAvailableListener | None
    ) -> None:
        """Register the callback invoked for every new frame.

        Ignored with a warning once the buffer is closed.
        """
        if self._closed:
            logger.warning("Image listener not set, preview buffer is closed")
            return
        self._listener = listener

    def submit_frame(self, frame: NDArray[np.uint8], timestamp_ns: int) -> None:
        """Store a new frame and notify the listener."""
        with self._lock:
            if self._closed:
                return
            self._frame = frame
            self._timestamp_ns = timestamp_ns
            self._frames_received += 1
            listener = self._listener
        if listener is not None:
            listener(self)

    def latest(self) -> tuple[NDArray[np.uint8] | None, int | None]:
        """Most recent (frame, timestamp_ns); (None, None) before the first."""
        with self._lock:
            return self._frame, self._timestamp_ns

    def close(self) -> None:
        """Drop the stored frame and listener. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._frame = None
            self._timestamp_ns = None
            self._listener = None
        logger.debug("Preview buffer closed", size=str(self.size))
