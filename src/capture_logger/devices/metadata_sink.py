"""Per-frame capture metadata log.

One header line, then one comma-separated line per completed frame:

    Timestamp[nanosec],fx[px],fy[px],Frame No.,Exposure time[nanosec],
    Sensor frame duration[nanosec],Frame readout time[nanosec],ISO,
    Focal length,Focus distance

Recording is explicit: ``start(path)`` opens (truncating) and writes the
header, ``stop()`` flushes and closes. While stopped, ``record`` writes
nothing. A failed write of one frame is logged and counted; recording
continues with the next frame. Values the device did not report are
written as ``null``.

Example:
    sink = CaptureMetadataSink()
    sink.start(Path("frames.csv"))
    sink.record(record)
    sink.stop()
"""

from __future__ import annotations

import csv
import threading
from dataclasses import astuple, dataclass
from pathlib import Path
from typing import IO, Any

from capture_logger.errors import MetadataIOError
from capture_logger.observability import get_logger

logger = get_logger(__name__)

__all__ = ["HEADER", "MISSING_VALUE", "CaptureMetadataSink", "CaptureResultRecord"]

HEADER = (
    "Timestamp[nanosec]",
    "fx[px]",
    "fy[px]",
    "Frame No.",
    "Exposure time[nanosec]",
    "Sensor frame duration[nanosec]",
    "Frame readout time[nanosec]",
    "ISO",
    "Focal length",
    "Focus distance",
)

MISSING_VALUE = "null"


@dataclass(frozen=True, slots=True)
class CaptureResultRecord:
    """One line of the metadata log, fields in column order."""

    timestamp_ns: int
    focal_length_px_w: float | None
    focal_length_px_h: float | None
    frame_number: int
    exposure_ns: int | None
    frame_duration_ns: int | None
    frame_readout_ns: int | None
    iso: int | None
    focal_length_mm: float | None
    focus_distance_diopters: float | None

    def as_row(self) -> tuple[object, ...]:
        return tuple(
            MISSING_VALUE if value is None else value for value in astuple(self)
        )


class CaptureMetadataSink:
    """Append-only CSV recorder of capture results.

    Thread Safety:
        ``active`` may be read from any thread. Writes are serialized by
        an internal lock so a record can never interleave with stop().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._file: IO[str] | None = None
        self._writer: Any = None
        self._path: Path | None = None
        self._active = False
        self._records_written = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def path(self) -> Path | None:
        """Path of the current (or last) log file."""
        return self._path

    @property
    def records_written(self) -> int:
        """Records written since the last start()."""
        return self._records_written

    def start(self, path: Path | str) -> None:
        """Open ``path`` for recording and write the header line.

        Any existing content is truncated. A log that is already open is
        stopped first.

        Raises:
            MetadataIOError: If the file cannot be opened or the header
                cannot be written. Recording stays inactive.
        """
        path = Path(path)
        self.stop()
        with self._lock:
            try:
                handle = open(path, "w", newline="", encoding="utf-8")
            except OSError as e:
                logger.error("Cannot open metadata log", path=str(path), error=str(e))
                raise MetadataIOError(f"Cannot open metadata log {path}: {e}") from e

            writer = csv.writer(handle, lineterminator="\n")
            try:
                writer.writerow(HEADER)
            except OSError as e:
                handle.close()
                logger.error("Cannot write metadata header", path=str(path))
                raise MetadataIOError(
                    f"Cannot write metadata header to {path}: {e}"
                ) from e

            self._file = handle
            self._writer = writer
            self._path = path
            self._records_written = 0
            self._active = True
        logger.info("Metadata recording started", path=str(path))

    def record(self, record: CaptureResultRecord) -> bool:
        """Append one record if recording.

        Returns:
            True if a line was written; False when inactive or when the
            write failed (the failure is logged, recording continues).
        """
        if not self._active:
            return False
        with self._lock:
            if not self._active or self._writer is None:
                return False
            try:
                self._writer.writerow(record.as_row())
            except OSError as e:
                logger.warning(
                    "Failed to write capture result",
                    frame_number=record.frame_number,
                    error=str(e),
                )
                return False
            self._records_written += 1
            return True

    def stop(self) -> None:
        """Flush and close the log. No-op when not recording."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            handle, self._file, self._writer = self._file, None, None
            if handle is None:
                return
            try:
                handle.flush()
                handle.close()
            except OSError as e:
                logger.error(
                    "Error closing metadata log", path=str(self._path), error=str(e)
                )
                return
        logger.info(
            "Metadata recording stopped",
            path=str(self._path),
            records=self._records_written,
        )
