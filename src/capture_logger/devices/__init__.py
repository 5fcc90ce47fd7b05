"""Capture core - session state machine, exposure control, metadata log."""

from capture_logger.devices.exposure import (
    DEFAULT_HISTORY_CAPACITY,
    ExposureHistory,
    ExposureIsoController,
    ExposureSetting,
    FrameSample,
)
from capture_logger.devices.lifecycle import DeviceLifecycle
from capture_logger.devices.metadata_sink import (
    HEADER,
    CaptureMetadataSink,
    CaptureResultRecord,
)
from capture_logger.devices.outputs import PreviewBuffer
from capture_logger.devices.request import CaptureRequestBuilder, CaptureRequestSpec
from capture_logger.devices.session import (
    CaptureSession,
    FrameTelemetry,
    FrameTelemetryObserver,
    OrientationSource,
    SessionConfig,
    SessionState,
)
from capture_logger.devices.worker import BackgroundWorker

__all__ = [
    # Session
    "CaptureSession",
    "SessionConfig",
    "SessionState",
    "FrameTelemetry",
    "FrameTelemetryObserver",
    "OrientationSource",
    # Lifecycle
    "DeviceLifecycle",
    "BackgroundWorker",
    # Requests
    "CaptureRequestBuilder",
    "CaptureRequestSpec",
    # Exposure
    "DEFAULT_HISTORY_CAPACITY",
    "ExposureHistory",
    "ExposureIsoController",
    "ExposureSetting",
    "FrameSample",
    # Metadata log
    "HEADER",
    "CaptureMetadataSink",
    "CaptureResultRecord",
    # Outputs
    "PreviewBuffer",
]
