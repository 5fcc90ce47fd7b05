"""Exception taxonomy shared by drivers and the capture core.

Drivers raise these at the failing call. The capture session catches
them at its operation boundary, logs them and turns them into state
transitions, so callers normally observe failures through
``CaptureSession.state`` rather than through exceptions.
"""

from __future__ import annotations


class CaptureError(Exception):
    """Base exception for capture operations."""

    pass


class DeviceAccessError(CaptureError):
    """Device open, characteristics query or session creation failed."""

    pass


class ConfigureFailedError(CaptureError):
    """The device reported that capture-session configuration failed."""

    pass


class MetadataIOError(CaptureError, OSError):
    """Opening, writing or closing the frame metadata log failed."""

    pass


class DisconnectedError(CaptureError):
    """The device went away. Handled like a close request, never retried."""

    pass
