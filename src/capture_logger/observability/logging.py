"""Structured logging for capture-logger.

Thin layer over the standard logging module adding:
- Keyword arguments on log calls that become structured key/value data
- A human readable formatter (``message | key=value``) and a JSON formatter
- ``LogContext`` for tagging every record emitted inside a block
  (typically with the camera id of the device being driven)

All device callbacks run on the background worker thread, so the context
is held in a ``contextvars.ContextVar`` and not in thread-local storage
shared with the caller.

Example:
    logger = get_logger(__name__)

    logger.info("Device opened")
    logger.debug("Exposure time set", exposure_ns=5_000_000, iso=180)

    with LogContext(camera_id="0"):
        logger.info("Repeating request submitted", version=3)

    configure_logging(json_format=True, force=True)
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast

ROOT_LOGGER_NAME = "capture_logger"

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "capture_log_context", default={}
)


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger accepting keyword arguments as structured data.

    Usage:
        logger = get_logger("capture_logger.devices.session")
        logger.info("State changed", old="OPENING", new="CONFIGURING")
    """

    def debug(  # type: ignore[override]
        self, msg: object, *args: Any, exc_info: Any = None, **kwargs: Any
    ) -> None:
        """Log at DEBUG with optional structured kwargs."""
        if self.isEnabledFor(logging.DEBUG):
            self._log(logging.DEBUG, msg, args, exc_info=exc_info, **kwargs)

    def info(  # type: ignore[override]
        self, msg: object, *args: Any, exc_info: Any = None, **kwargs: Any
    ) -> None:
        """Log at INFO with optional structured kwargs."""
        if self.isEnabledFor(logging.INFO):
            self._log(logging.INFO, msg, args, exc_info=exc_info, **kwargs)

    def warning(  # type: ignore[override]
        self, msg: object, *args: Any, exc_info: Any = None, **kwargs: Any
    ) -> None:
        """Log at WARNING with optional structured kwargs."""
        if self.isEnabledFor(logging.WARNING):
            self._log(logging.WARNING, msg, args, exc_info=exc_info, **kwargs)

    def error(  # type: ignore[override]
        self, msg: object, *args: Any, exc_info: Any = None, **kwargs: Any
    ) -> None:
        """Log at ERROR with optional structured kwargs."""
        if self.isEnabledFor(logging.ERROR):
            self._log(logging.ERROR, msg, args, exc_info=exc_info, **kwargs)

    def critical(  # type: ignore[override]
        self, msg: object, *args: Any, exc_info: Any = None, **kwargs: Any
    ) -> None:
        """Log at CRITICAL with optional structured kwargs."""
        if self.isEnabledFor(logging.CRITICAL):
            self._log(logging.CRITICAL, msg, args, exc_info=exc_info, **kwargs)

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...] | MutableMapping[str, Any] | None = None,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        """Merge the active LogContext with call kwargs and emit.

        Explicit kwargs win over context values with the same key. The
        merged mapping travels on the record as ``structured_data``.

        Args:
            level: Numeric log level.
            msg: Message, may contain %-style placeholders.
            args: Arguments for %-formatting.
            exc_info: Exception info forwarded to the base logger.
            extra: Extra record attributes; ``structured_data`` is set on it.
            stack_info: Include a stack trace.
            stacklevel: Frames to skip when resolving the caller.
            **kwargs: Structured key/value data.
        """
        structured_data = {**_log_context.get(), **kwargs}
        if extra is None:
            extra = {}
        extra["structured_data"] = structured_data

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 2,
        )


# =============================================================================
# Formatters
# =============================================================================


class StructuredFormatter(logging.Formatter):
    """Human readable formatter.

    Format: ``timestamp - name - level - message | key=value key=value``
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Create the formatter.

        Args:
            fmt: Base format string. Defaults to
                ``%(asctime)s - %(name)s - %(levelname)s - %(message)s``.
            datefmt: Format for ``%(asctime)s``.
            include_structured: Append structured data after `` | ``.
        """
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format the base message and append structured pairs, if any."""
        base = super().format(record)
        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{base} | {pairs}"


class JSONFormatter(logging.Formatter):
    """One JSON object per line with structured data as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        """Serialize the record.

        Keys: ``timestamp`` (UTC ISO 8601), ``level``, ``logger``,
        ``message``, every structured key, and ``exception`` when the
        record carries exception info. Unserializable values go through
        ``str()``.
        """
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_dict.update(getattr(record, "structured_data", {}))

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


def _format_value(value: Any) -> str:
    """Render a structured value for the ``key=value`` format.

    None becomes ``null``, strings with spaces are quoted, dicts and
    lists are JSON encoded, everything else goes through ``str()``.

    Example:
        >>> _format_value(None)
        'null'
        >>> _format_value("auto focus")
        '"auto focus"'
        >>> _format_value([100, 3200])
        '[100, 3200]'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        if " " in value:
            return f'"{value}"'
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# Context Management
# =============================================================================


@dataclass
class LogContext:
    """Add key/value pairs to every log record emitted inside the block.

    Nested contexts merge, inner values override outer ones. The
    context is per thread of execution, so a context entered on the
    caller thread does not leak into records emitted by the background
    worker.

    Usage:
        with LogContext(camera_id="0"):
            logger.info("Opening device")
    """

    _kwargs: dict[str, Any] = field(default_factory=dict, init=False, repr=True)
    _token: contextvars.Token[dict[str, Any]] | None = field(
        default=None, init=False, repr=False
    )

    def __init__(self, **kwargs: Any) -> None:
        self._kwargs = kwargs
        self._token = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._kwargs})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure logging for the whole ``capture_logger`` package.

    Idempotent: calls after the first are ignored unless ``force`` is
    set, in which case the existing handler is removed first. Guarded by
    a lock so the CLI and library users can race on first use.

    Args:
        level: Minimum level, as int or name ("DEBUG", "INFO", ...).
        json_format: Emit one JSON object per line instead of text.
        stream: Destination stream. Defaults to ``sys.stderr``.
        include_structured: Append ``| key=value`` pairs in text mode.
        force: Reconfigure even when already configured.

    Example:
        >>> configure_logging(level="DEBUG")
        >>> configure_logging(json_format=True, force=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(level, json_format, stream, include_structured)


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
) -> None:
    """Install handler and formatter (caller holds the lock)."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StructuredFormatter(include_structured=include_structured)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Remove our handlers (caller holds the lock)."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    _configured = False


def reset_logging() -> None:
    """Return logging to the unconfigured state. Meant for tests."""
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Return a StructuredLogger, configuring defaults on first use.

    Args:
        name: Dotted logger name, normally ``__name__``.

    Returns:
        Logger that accepts structured keyword arguments.

    Example:
        >>> logger = get_logger("capture_logger.devices.exposure")
        >>> logger.debug("ISO set", iso=200)
    """
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    # setLoggerClass() in _configure_logging_impl makes this a StructuredLogger
    return cast(StructuredLogger, logging.getLogger(name))
