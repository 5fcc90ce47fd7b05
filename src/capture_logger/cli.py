"""CLI entry point for capture-logger.

Provides the ``capture-logger`` console script with subcommands:

- ``capabilities``: Print the capability report of the rear camera
- ``record``: Stream, optionally tap-to-focus, and log N frames of metadata

Usage::

    # Capability report, human readable or JSON
    capture-logger capabilities
    capture-logger capabilities --json

    # Record 300 frames at 1280x720 with a 5 ms exposure target
    capture-logger record --output frames.csv --frames 300 \\
        --width 1280 --height 720 --exposure-ms 5

    # 90 degree shutter at 30 fps, focus at the view centre
    capture-logger record --output frames.csv --shutter-angle 90 --fps 30 \\
        --focus 540 960 1080 1920

Without a host driver configured, the digital twin camera is used.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
import time
from functools import lru_cache
from pathlib import Path

from capture_logger.devices import DeviceLifecycle, SessionConfig, SessionState
from capture_logger.drivers.cameras import CameraDriver, Size
from capture_logger.drivers.config import DriverMode, get_factory, use_digital_twin
from capture_logger.observability import configure_logging
from capture_logger.utils import (
    DEFAULT_DESIRED_EXPOSURE_NS,
    exposure_for_shutter_angle,
)

# Constants
PROG_NAME = "capture-logger"
DEFAULT_FRAMES = 100
DEFAULT_FPS = 30.0
STREAMING_TIMEOUT = 10.0
POLL_INTERVAL = 0.05


@lru_cache(maxsize=1)
def _get_logger() -> logging.Logger:
    """Get the CLI logger (status messages go to stderr)."""
    return logging.getLogger(__name__)


def _create_driver(fps: float, free_run: bool) -> CameraDriver:
    """Driver from the global factory; the twin is set to the requested rate."""
    factory = get_factory()
    if factory.config.mode == DriverMode.DIGITAL_TWIN:
        twin = dataclasses.replace(
            factory.config.twin, frame_rate=fps, free_run=free_run
        )
        use_digital_twin(twin)
        factory = get_factory()
    return factory.create_camera_driver()


def _desired_exposure(args: argparse.Namespace) -> int:
    if args.exposure_ms is not None:
        return round(args.exposure_ms * 1_000_000)
    if args.shutter_angle is not None:
        return exposure_for_shutter_angle(args.fps, args.shutter_angle)
    return DEFAULT_DESIRED_EXPOSURE_NS


def run_capabilities(*, as_json: bool = False) -> int:
    """Print the capability report of the configured camera.

    Returns:
        0 on success, 1 when the camera characteristics are unavailable.
    """
    with DeviceLifecycle(_create_driver(DEFAULT_FPS, free_run=False)) as camera:
        report = camera.capabilities()
    if not report:
        _get_logger().error("Camera characteristics unavailable")
        return 1

    if as_json:
        print(json.dumps(report, indent=2))
    else:
        for key, value in report.items():
            print(f"{key}: {value}")
    return 0


def run_record(args: argparse.Namespace) -> int:
    """Open the camera, record ``args.frames`` frames, print statistics.

    Returns:
        0 on success, 1 if the camera did not start streaming or the
        metadata log could not be opened.
    """
    log = _get_logger()
    config = SessionConfig(
        target_width=args.width,
        target_height=args.height,
        desired_exposure_ns=args.desired_exposure_ns,
    )
    driver = _create_driver(args.fps, free_run=True)

    with DeviceLifecycle(driver, config) as camera:
        if camera.configure() == Size(0, 0):
            log.error("Camera could not be configured")
            return 1

        camera.open()
        camera.wait_for_state(
            SessionState.STREAMING,
            SessionState.ERROR,
            SessionState.CLOSED,
            timeout=STREAMING_TIMEOUT,
        )
        if camera.state is not SessionState.STREAMING:
            log.error(
                "Camera did not start streaming (state=%s)", camera.state.value
            )
            return 1

        if not camera.start_recording(args.output):
            log.error("Could not start recording to %s", args.output)
            return 1

        if args.focus is not None:
            x, y, view_w, view_h = args.focus
            camera.change_manual_focus_point(x, y, int(view_w), int(view_h)).result(
                timeout=STREAMING_TIMEOUT
            )

        session = camera.session
        if session is None:
            log.error("Camera session missing after open")
            return 1
        deadline = time.monotonic() + STREAMING_TIMEOUT + args.frames / args.fps
        while session.stats.get_summary().written_frames < args.frames:
            if session.state is not SessionState.STREAMING:
                log.error("Streaming stopped (state=%s)", session.state.value)
                break
            if time.monotonic() > deadline:
                log.warning("Timed out waiting for frames")
                break
            time.sleep(POLL_INTERVAL)

        camera.stop_recording()
        summary = session.stats.get_summary()

    print(json.dumps(summary.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    common.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as one JSON object per line",
    )

    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="Camera capture with per-frame metadata logging",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    caps_parser = subparsers.add_parser(
        "capabilities",
        parents=[common],
        help="Print the camera capability report",
    )
    caps_parser.add_argument("--json", action="store_true", help="Print as JSON")

    record_parser = subparsers.add_parser(
        "record",
        parents=[common],
        help="Record per-frame capture metadata",
    )
    record_parser.add_argument(
        "--output", type=Path, required=True, help="Metadata CSV path"
    )
    record_parser.add_argument(
        "--frames", type=int, default=DEFAULT_FRAMES, help="Frames to record"
    )
    record_parser.add_argument("--width", type=int, default=640)
    record_parser.add_argument("--height", type=int, default=480)
    record_parser.add_argument(
        "--fps", type=float, default=DEFAULT_FPS, help="Frame rate"
    )
    exposure_group = record_parser.add_mutually_exclusive_group()
    exposure_group.add_argument(
        "--exposure-ms", type=float, help="Desired exposure in milliseconds"
    )
    exposure_group.add_argument(
        "--shutter-angle",
        type=float,
        help="Desired exposure as a shutter angle in degrees (uses --fps)",
    )
    record_parser.add_argument(
        "--focus",
        type=float,
        nargs=4,
        metavar=("X", "Y", "VIEW_W", "VIEW_H"),
        help="Tap-to-focus at view coordinates after recording starts",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point for capture-logger.

    Returns:
        Exit code 0 for success, 1 for capture failures, 2 for usage errors.

    Raises:
        SystemExit: On --help or argument parsing errors.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 2

    configure_logging(level=args.log_level.upper(), json_format=args.json_logs)

    if args.command == "capabilities":
        return run_capabilities(as_json=args.json)
    if args.command == "record":
        if args.frames <= 0 or args.fps <= 0:
            parser.error("--frames and --fps must be positive")
        try:
            args.desired_exposure_ns = _desired_exposure(args)
        except ValueError as e:
            parser.error(str(e))
        return run_record(args)

    parser.print_help()
    return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
