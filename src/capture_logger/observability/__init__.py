"""Observability for capture-logger: structured logging and frame statistics.

Example:
    from capture_logger.observability import FrameStats, LogContext, get_logger

    logger = get_logger(__name__)

    with LogContext(camera_id="0"):
        logger.info("Streaming started", preview="1280x720")

    stats = FrameStats()
    stats.record_frame(frame_number=1, timestamp_ns=0, written=True)
"""

from capture_logger.observability.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from capture_logger.observability.stats import (
    FrameStats,
    FrameStatsSummary,
)

__all__ = [
    # Logging
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "FrameStats",
    "FrameStatsSummary",
]
