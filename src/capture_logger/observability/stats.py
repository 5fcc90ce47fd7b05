"""Frame statistics for a capture session.

Collects per-session metrics from frame-completion events:
- Frames seen, frames written to the metadata log, write failures
- Frame-number gaps (frames the device skipped between two results)
- Frame interval statistics (min, max, avg, p95) over a rolling window
  of consecutive sensor timestamps

Recorded from the background worker, read from the caller thread, so
every method takes the collector lock.

Example:
    stats = FrameStats()
    stats.record_frame(frame_number=1, timestamp_ns=1_000_000_000, written=True)
    stats.record_frame(frame_number=2, timestamp_ns=1_033_333_333, written=True)

    summary = stats.get_summary()
    print(f"{summary.estimated_fps:.1f} fps, {summary.dropped_frames} dropped")
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# =============================================================================
# Constants
# =============================================================================

#: Frame intervals kept for the rolling statistics. About half a minute
#: of history at 30 fps.
DEFAULT_STATS_WINDOW_SIZE: int = 1000

_NANOS_PER_MILLI = 1_000_000


def _utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class FrameStatsSummary:
    """Snapshot of frame statistics.

    Attributes:
        total_frames: Frame-completion events seen.
        written_frames: Frames whose record reached the metadata log.
        write_failures: Records that failed to write.
        dropped_frames: Sum of frame-number gaps between consecutive results.
        min_interval_ms: Shortest interval between consecutive timestamps.
        max_interval_ms: Longest interval between consecutive timestamps.
        avg_interval_ms: Mean interval over the rolling window.
        p95_interval_ms: 95th percentile interval over the rolling window.
        estimated_fps: 1000 / avg_interval_ms, 0.0 without intervals.
        error_counts: Write failures by error type.
        last_frame_number: Frame number of the latest result, if any.
        last_frame_time: Wall clock time the latest result was recorded.
        uptime_seconds: Time since creation or last reset.
    """

    total_frames: int = 0
    written_frames: int = 0
    write_failures: int = 0
    dropped_frames: int = 0
    min_interval_ms: float = 0.0
    max_interval_ms: float = 0.0
    avg_interval_ms: float = 0.0
    p95_interval_ms: float = 0.0
    estimated_fps: float = 0.0
    error_counts: dict[str, int] = field(default_factory=dict)
    last_frame_number: int | None = None
    last_frame_time: datetime | None = None
    uptime_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary of the summary.

        Example:
            >>> FrameStatsSummary(total_frames=3).to_dict()["total_frames"]
            3
        """
        return {
            "total_frames": self.total_frames,
            "written_frames": self.written_frames,
            "write_failures": self.write_failures,
            "dropped_frames": self.dropped_frames,
            "min_interval_ms": self.min_interval_ms,
            "max_interval_ms": self.max_interval_ms,
            "avg_interval_ms": self.avg_interval_ms,
            "p95_interval_ms": self.p95_interval_ms,
            "estimated_fps": self.estimated_fps,
            "error_counts": self.error_counts.copy(),
            "last_frame_number": self.last_frame_number,
            "last_frame_time": (
                self.last_frame_time.isoformat() if self.last_frame_time else None
            ),
            "uptime_seconds": self.uptime_seconds,
        }


class FrameStats:
    """Thread-safe statistics collector for one capture session.

    Cumulative counters cover the whole session; interval statistics are
    computed from a bounded deque so memory stays constant during long
    recordings.
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        """Create an empty collector.

        Args:
            window_size: Number of frame intervals kept for min/max/avg/p95.

        Example:
            >>> stats = FrameStats(window_size=300)
        """
        self._window_size = window_size
        self._intervals_ms: deque[float] = deque(maxlen=window_size)
        self._error_counts: dict[str, int] = {}
        self._total_frames = 0
        self._written_frames = 0
        self._write_failures = 0
        self._dropped_frames = 0
        self._last_frame_number: int | None = None
        self._last_timestamp_ns: int | None = None
        self._last_frame_time: datetime | None = None
        self._start_time = time.monotonic()
        self._lock = threading.Lock()

    def record_frame(
        self,
        frame_number: int,
        timestamp_ns: int,
        written: bool = False,
    ) -> None:
        """Record one frame-completion event.

        A frame number more than one past the previous one counts the
        difference as dropped frames. A timestamp later than the previous
        one adds an interval sample; equal or earlier timestamps (device
        clock reset) are ignored for interval purposes.

        Args:
            frame_number: Device frame counter of the result.
            timestamp_ns: Sensor start-of-exposure timestamp.
            written: True if the record was appended to the metadata log.

        Example:
            >>> stats = FrameStats()
            >>> stats.record_frame(10, 1_000, written=False)
            >>> stats.record_frame(13, 2_000, written=False)
            >>> stats.get_summary().dropped_frames
            2
        """
        with self._lock:
            self._total_frames += 1
            if written:
                self._written_frames += 1

            if self._last_frame_number is not None:
                gap = frame_number - self._last_frame_number - 1
                if gap > 0:
                    self._dropped_frames += gap
            self._last_frame_number = frame_number

            if (
                self._last_timestamp_ns is not None
                and timestamp_ns > self._last_timestamp_ns
            ):
                self._intervals_ms.append(
                    (timestamp_ns - self._last_timestamp_ns) / _NANOS_PER_MILLI
                )
            self._last_timestamp_ns = timestamp_ns
            self._last_frame_time = _utc_now()

    def record_write_failure(self, error_type: str) -> None:
        """Count a metadata record that could not be written.

        Args:
            error_type: Category, typically the exception class name.
        """
        with self._lock:
            self._write_failures += 1
            self._error_counts[error_type] = self._error_counts.get(error_type, 0) + 1

    def get_summary(self) -> FrameStatsSummary:
        """Compute a snapshot of the current statistics.

        Counters and the interval window are copied under the lock; the
        sort for the percentile runs outside it.

        Returns:
            FrameStatsSummary with all fields populated.
        """
        with self._lock:
            intervals = list(self._intervals_ms)
            summary = FrameStatsSummary(
                total_frames=self._total_frames,
                written_frames=self._written_frames,
                write_failures=self._write_failures,
                dropped_frames=self._dropped_frames,
                error_counts=self._error_counts.copy(),
                last_frame_number=self._last_frame_number,
                last_frame_time=self._last_frame_time,
                uptime_seconds=time.monotonic() - self._start_time,
            )

        if intervals:
            summary.min_interval_ms = min(intervals)
            summary.max_interval_ms = max(intervals)
            summary.avg_interval_ms = sum(intervals) / len(intervals)
            summary.p95_interval_ms = _percentile(sorted(intervals), 95)
            if summary.avg_interval_ms > 0:
                summary.estimated_fps = 1000.0 / summary.avg_interval_ms
        return summary

    def reset(self) -> None:
        """Clear all counters and the interval window."""
        with self._lock:
            self._intervals_ms.clear()
            self._error_counts.clear()
            self._total_frames = 0
            self._written_frames = 0
            self._write_failures = 0
            self._dropped_frames = 0
            self._last_frame_number = None
            self._last_timestamp_ns = None
            self._last_frame_time = None
            self._start_time = time.monotonic()


def _percentile(sorted_data: list[float], p: float) -> float:
    """Percentile of pre-sorted data with linear interpolation.

    Matches numpy's default 'linear' method.

    Args:
        sorted_data: Values in ascending order.
        p: Percentile in [0, 100].

    Returns:
        Interpolated value, 0.0 for empty input.

    Raises:
        ValueError: If p is outside [0, 100].

    Example:
        >>> _percentile([10.0, 20.0, 30.0], 50)
        20.0
        >>> _percentile([], 95)
        0.0
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")

    if not sorted_data:
        return 0.0

    k = (len(sorted_data) - 1) * (p / 100)
    floor_idx = int(k)
    ceil_idx = min(floor_idx + 1, len(sorted_data) - 1)

    if floor_idx == ceil_idx:
        return sorted_data[floor_idx]

    fraction = k - floor_idx
    return sorted_data[floor_idx] * (1 - fraction) + sorted_data[ceil_idx] * fraction
