"""Tests for the capture session state machine.

Drives CaptureSession against the digital twin with a QueueExecutor, so
every device callback runs on the test thread when the test pumps the
queue. Expected numbers follow from the twin defaults: auto exposure of
30 ms at ISO 100, 30 fps, rear camera "0" with a 4032x3024 active array
and a 10 diopter minimum focus distance.

Test Categories:
1. Configure: size selection, characteristics failures
2. Open/state machine: callbacks, initial request, failure injection
3. Frames: history, statistics, telemetry, preview delivery
4. Recording: metadata log content and failure handling
5. Tap-to-focus: region mapping, request ordering, exposure pinning
6. Release: idempotence, late callbacks
"""

import csv
import dataclasses
from unittest.mock import MagicMock, patch

import pytest

from capture_logger.devices.exposure import FrameSample
from capture_logger.devices.session import (
    CaptureSession,
    FrameTelemetry,
    SessionConfig,
    SessionState,
)
from capture_logger.drivers.cameras import (
    DEFAULT_CAMERAS,
    AeMode,
    AfMode,
    AfTrigger,
    AwbMode,
    CaptureListener,
    CaptureResultMetadata,
    ControlMode,
    DeviceStateCallback,
    DigitalTwinCameraDriver,
    DigitalTwinConfig,
    LensFacing,
    MeteringRectangle,
    OpticalStabilizationMode,
    Rect,
    SessionStateCallback,
    Size,
    VideoStabilizationMode,
)
from capture_logger.errors import (
    ConfigureFailedError,
    DeviceAccessError,
    DisconnectedError,
)
from tests.helpers import QueueExecutor, assert_implements_protocol

MS = 1_000_000
REAR = DEFAULT_CAMERAS["0"]


def _driver_with(info, twin_config) -> DigitalTwinCameraDriver:
    return DigitalTwinCameraDriver(twin_config, cameras={info.camera_id: info})


def _stream(session: CaptureSession, executor: QueueExecutor) -> None:
    session.open()
    executor.run_pending()
    assert session.state is SessionState.STREAMING


def _emit(driver, executor, count: int) -> None:
    assert driver.session("0").emit_frames(count) == count
    executor.run_pending()


class HostSurface:
    """Preview target supplied by a host UI."""

    size = Size(320, 240)

    def __init__(self) -> None:
        self.timestamps: list[int] = []

    def submit_frame(self, frame, timestamp_ns) -> None:
        assert frame.shape == (240, 320)
        self.timestamps.append(timestamp_ns)


# =============================================================================
# Protocols
# =============================================================================


class TestCallbackProtocols:
    """CaptureSession is the callback object for device, session and frames."""

    @pytest.mark.parametrize(
        "protocol", [DeviceStateCallback, SessionStateCallback, CaptureListener]
    )
    def test_implements(self, session, protocol):
        assert_implements_protocol(session, protocol)


# =============================================================================
# Configure
# =============================================================================


class TestConfigure:
    """Tests for CaptureSession.configure."""

    def test_default_target_chooses_vga(self, session):
        """Verifies 640x480 video and preview for the default config.

        Arrangement:
        1. Rear twin camera advertising 4K..QVGA video sizes.
        2. Default SessionConfig (640x480).

        Action:
        Calls configure().

        Assertion Strategy:
        - Returned preview size and video size are both 640x480.
        - Session stays IDLE with characteristics cached.
        - A preview buffer of the preview size was created.

        Testing Principle:
        Configure is pure preparation; nothing is opened yet.
        """
        preview = session.configure()

        assert preview == Size(640, 480)
        assert session.video_size == Size(640, 480)
        assert session.state is SessionState.IDLE
        assert session.camera_id == "0"
        assert session.static_info is REAR
        assert session.preview_buffer is not None
        assert session.preview_buffer.size == Size(640, 480)
        assert session.device is None

    def test_widescreen_target(self, session):
        assert session.configure(1280, 720) == Size(1280, 720)
        assert session.video_size == Size(1280, 720)

    def test_config_target_is_used(self, driver, executor):
        session = CaptureSession(driver, executor, SessionConfig(1920, 1080))
        assert session.configure() == Size(1920, 1080)

    def test_second_configure_returns_previous_size(self, session):
        first = session.configure()
        assert session.configure(1280, 720) == first

    def test_characteristics_failure_goes_to_error(self, executor):
        driver = DigitalTwinCameraDriver(DigitalTwinConfig(fail_characteristics=True))
        session = CaptureSession(driver, executor)

        assert session.configure() == Size(0, 0)

        assert session.state is SessionState.ERROR
        assert isinstance(session.last_error, DeviceAccessError)

    def test_missing_facing_goes_to_error(self, twin_config, executor):
        front_only = _driver_with(DEFAULT_CAMERAS["1"], twin_config)
        session = CaptureSession(front_only, executor, facing=LensFacing.BACK)

        assert session.configure() == Size(0, 0)
        assert session.state is SessionState.ERROR

    def test_capabilities_empty_before_configure(self, session):
        assert session.capabilities() == {}

    def test_capabilities_after_configure(self, session):
        session.configure()
        report = session.capabilities()
        assert report == REAR.capabilities_report()
        assert list(report) == sorted(report)


# =============================================================================
# Open and state machine
# =============================================================================


class TestOpen:
    """Tests for open() and the device/session callbacks."""

    def test_open_without_matching_camera_opens_nothing(self, twin_config, executor):
        front_only = _driver_with(DEFAULT_CAMERAS["1"], twin_config)
        session = CaptureSession(front_only, executor, facing=LensFacing.BACK)

        session.open()
        executor.run_pending()

        assert session.state is SessionState.ERROR
        assert front_only.device("1") is None
        assert session.device is None

    def test_open_configures_lazily_and_waits_for_callback(self, session, executor):
        session.open()

        assert session.static_info is REAR
        assert session.state is SessionState.OPENING
        assert len(executor) == 1

    def test_open_reaches_streaming(self, session, executor, driver):
        """Verifies open -> opened -> configured -> STREAMING.

        Arrangement:
        1. Idle session on the twin rear camera.

        Action:
        Calls open() then pumps all queued callbacks.

        Assertion Strategy:
        - State is STREAMING.
        - Device and capture session handles are held.
        - The twin repeats the session's request with the session as
          listener.

        Testing Principle:
        The whole opening sequence is callback driven and needs no
        caller involvement after open().
        """
        session.open()
        executor.run_pending()

        twin = driver.session("0")
        assert session.state is SessionState.STREAMING
        assert session.device is driver.device("0")
        assert session.capture_session is twin
        assert twin.repeating_request is session.request
        assert twin.submitted == [(session.request, session)]

    def test_open_twice_is_ignored(self, streaming_session, driver):
        device = driver.device("0")
        streaming_session.open()
        assert streaming_session.state is SessionState.STREAMING
        assert driver.device("0") is device

    def test_open_after_configure_error_stays_in_error(self, executor):
        driver = DigitalTwinCameraDriver(DigitalTwinConfig(fail_characteristics=True))
        session = CaptureSession(driver, executor)

        session.open()

        assert session.state is SessionState.ERROR
        assert len(executor) == 0

    def test_initial_request_rear_camera(self, streaming_session):
        request = streaming_session.request
        assert request is not None
        assert request.control_mode is ControlMode.AUTO
        assert request.awb_mode is AwbMode.AUTO
        assert request.ae_mode is AeMode.ON
        assert request.af_mode is AfMode.OFF
        assert request.focus_distance_diopters == 10.0
        assert request.optical_stabilization is OpticalStabilizationMode.OFF
        assert request.video_stabilization is VideoStabilizationMode.OFF
        assert request.targets == (streaming_session.preview_buffer,)
        assert streaming_session.ois_enabled is False
        assert streaming_session.dis_enabled is False

    def test_front_camera_keeps_digital_stabilization(self, driver, executor):
        """Front camera offers no DIS off mode, so DIS is reported enabled."""
        session = CaptureSession(driver, executor, facing=LensFacing.FRONT)
        _stream(session, executor)

        assert session.camera_id == "1"
        assert session.request.video_stabilization is None
        assert session.request.focus_distance_diopters == 0.0
        assert session.dis_enabled is True
        assert session.ois_enabled is False

    def test_ois_without_off_mode_is_reported_enabled(self, twin_config, executor):
        info = dataclasses.replace(
            REAR, optical_stabilization_modes=(OpticalStabilizationMode.ON,)
        )
        session = CaptureSession(_driver_with(info, twin_config), executor)
        _stream(session, executor)

        assert session.request.optical_stabilization is None
        assert session.ois_enabled is True

    def test_no_stabilization_modes_reported_disabled(self, twin_config, executor):
        info = dataclasses.replace(
            REAR, optical_stabilization_modes=(), video_stabilization_modes=()
        )
        session = CaptureSession(_driver_with(info, twin_config), executor)
        _stream(session, executor)

        assert session.ois_enabled is False
        assert session.dis_enabled is False

    def test_unknown_min_focus_uses_fallback(self, twin_config, executor):
        info = dataclasses.replace(REAR, minimum_focus_distance=None)
        session = CaptureSession(_driver_with(info, twin_config), executor)
        _stream(session, executor)

        assert session.request.focus_distance_diopters == 5.0

    def test_fallback_min_focus_is_configurable(self, twin_config, executor):
        info = dataclasses.replace(REAR, minimum_focus_distance=None)
        session = CaptureSession(
            _driver_with(info, twin_config),
            executor,
            SessionConfig(min_focus_distance_fallback=7.5),
        )
        _stream(session, executor)

        assert session.request.focus_distance_diopters == 7.5

    def test_orientation_enabled_while_open(self, driver, executor):
        orientation = MagicMock()
        session = CaptureSession(driver, executor, orientation=orientation)

        _stream(session, executor)
        orientation.enable.assert_called_once_with()
        orientation.disable.assert_not_called()

        session.release()
        orientation.disable.assert_called_once_with()

    def test_host_preview_target_receives_frames(self, session, executor, driver):
        surface = HostSurface()
        session.set_preview_target(surface)
        _stream(session, executor)

        assert session.request.targets == (session.preview_buffer, surface)
        _emit(driver, executor, 2)
        assert len(surface.timestamps) == 2

    def test_invalid_transition_raises(self, session):
        with pytest.raises(RuntimeError, match="idle -> streaming"):
            session._transition(SessionState.STREAMING)

    def test_wait_for_state(self, streaming_session):
        assert streaming_session.wait_for_state(SessionState.STREAMING, timeout=0.1)
        assert not streaming_session.wait_for_state(SessionState.CLOSED, timeout=0.01)


class TestDeviceFailures:
    """Failure injection through the twin driver."""

    def test_open_error_ends_closed(self, executor):
        driver = DigitalTwinCameraDriver(DigitalTwinConfig(fail_open=True))
        orientation = MagicMock()
        session = CaptureSession(driver, executor, orientation=orientation)

        session.open()
        executor.run_pending()

        assert session.state is SessionState.CLOSED
        assert isinstance(session.last_error, DeviceAccessError)
        orientation.disable.assert_called_once_with()

    def test_configure_failed_goes_to_error_and_keeps_handle(self, executor):
        """Verifies configure failure leaves a releasable ERROR session.

        Arrangement:
        1. Twin driver injecting on_configure_failed.

        Action:
        Opens the session, then releases it.

        Assertion Strategy:
        - After callbacks: ERROR, last_error is ConfigureFailedError,
          the failed capture session handle is still held.
        - After release: CLOSED, handle and device closed.

        Testing Principle:
        A failed session must be fully releasable from ERROR.
        """
        driver = DigitalTwinCameraDriver(
            DigitalTwinConfig(fail_configure=True, jitter=0.0)
        )
        session = CaptureSession(driver, executor)

        session.open()
        executor.run_pending()

        twin = driver.session("0")
        assert session.state is SessionState.ERROR
        assert isinstance(session.last_error, ConfigureFailedError)
        assert session.capture_session is twin

        session.release()

        assert session.state is SessionState.CLOSED
        assert twin.is_closed
        assert driver.device("0").is_closed

    def test_device_error_while_streaming_releases(
        self, streaming_session, driver, executor
    ):
        driver.simulate_error("0")
        executor.run_pending()

        assert streaming_session.state is SessionState.CLOSED
        assert isinstance(streaming_session.last_error, DeviceAccessError)
        assert "CAMERA_DEVICE" in str(streaming_session.last_error)
        assert driver.device("0").is_closed
        assert driver.session("0").is_closed

    def test_disconnect_is_full_teardown(self, streaming_session, driver, executor):
        driver.simulate_disconnect("0")
        executor.run_pending()

        assert streaming_session.state is SessionState.CLOSED
        assert isinstance(streaming_session.last_error, DisconnectedError)
        assert streaming_session.device is None
        assert streaming_session.capture_session is None
        assert driver.device("0").is_closed

    def test_disconnect_after_close_is_ignored(
        self, streaming_session, driver, executor
    ):
        device = driver.device("0")
        streaming_session.release()

        streaming_session.on_disconnected(device)

        assert streaming_session.last_error is None

    def test_unknown_error_code_is_handled(self, streaming_session, driver):
        streaming_session.on_error(driver.device("0"), 99)
        assert streaming_session.state is SessionState.CLOSED
        assert "99" in str(streaming_session.last_error)


# =============================================================================
# Frames
# =============================================================================


class TestFrames:
    """Tests for on_capture_completed."""

    def test_frames_feed_history_and_stats(self, streaming_session, driver, executor):
        _emit(driver, executor, 5)

        history = list(streaming_session.history)
        assert [s.frame_number for s in history] == [1, 2, 3, 4, 5]
        assert history[0] == FrameSample(1, 30 * MS, 100)

        summary = streaming_session.stats.get_summary()
        assert summary.total_frames == 5
        assert summary.written_frames == 0
        assert summary.dropped_frames == 0
        assert summary.estimated_fps == pytest.approx(30.0, rel=1e-6)

    def test_history_evicts_in_batches(self, streaming_session, driver, executor):
        _emit(driver, executor, 11)
        assert [s.frame_number for s in streaming_session.history] == [
            6,
            7,
            8,
            9,
            10,
            11,
        ]

    def test_preview_buffer_receives_frames(self, streaming_session, driver, executor):
        _emit(driver, executor, 3)

        frame, timestamp = streaming_session.preview_buffer.latest()

        assert frame is not None
        assert frame.shape == (480, 640)
        assert timestamp == 1_000_000_000_000 + 3 * 33_333_333

    def test_telemetry_observer(self, driver, executor):
        """Verifies per-frame telemetry values delivered to the host.

        Arrangement:
        1. Observer mock attached to a streaming session.

        Action:
        Emits one frame.

        Assertion Strategy:
        Telemetry carries fx from the intrinsic calibration rescaled
        to the 640 px wide output, the 30 ms auto exposure and both
        stabilization flags off.
        """
        observer = MagicMock()
        session = CaptureSession(driver, executor, observer=observer)
        _stream(session, executor)

        _emit(driver, executor, 1)

        observer.on_frame_telemetry.assert_called_once()
        telemetry = observer.on_frame_telemetry.call_args.args[0]
        assert isinstance(telemetry, FrameTelemetry)
        assert telemetry.focal_length_px == pytest.approx(3225.0 * 640 / 4032)
        assert telemetry.exposure_ns == 30 * MS
        assert telemetry.ois_enabled is False
        assert telemetry.dis_enabled is False

    def test_results_ignored_outside_streaming(self, session, driver, executor):
        session.configure()
        twin_result = MagicMock()
        session.on_capture_completed(MagicMock(), MagicMock(), twin_result)

        assert len(session.history) == 0
        assert session.stats.get_summary().total_frames == 0


# =============================================================================
# Recording
# =============================================================================


class TestRecording:
    """Tests for start_recording/stop_recording."""

    def test_records_one_line_per_frame(
        self, streaming_session, driver, executor, tmp_path
    ):
        """Verifies the metadata log content for streamed frames.

        Arrangement:
        1. Streaming session on the rear camera (AF off at 10 diopters).
        2. Recording started on a fresh file.

        Action:
        Emits three frames, stops recording.

        Assertion Strategy:
        - Header plus three lines.
        - First line holds the twin's timestamp, exposure, duration,
          readout, ISO, focal length and focus distance in order.
        - Frame statistics count three written frames.
        """
        path = tmp_path / "frames.csv"
        assert streaming_session.start_recording(path) is True
        assert streaming_session.is_recording is True

        _emit(driver, executor, 3)
        streaming_session.stop_recording()

        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert len(rows) == 4
        first = rows[1]
        assert first[0] == str(1_000_000_000_000 + 33_333_333)
        assert float(first[1]) == pytest.approx(3225.0 * 640 / 4032)
        assert float(first[2]) == pytest.approx(3225.0 * 480 / 3024)
        assert first[3:] == [
            "1",
            "30000000",
            "33333333",
            "10000000",
            "100",
            "4.38",
            "10.0",
        ]
        assert streaming_session.stats.get_summary().written_frames == 3

    def test_unreported_values_logged_as_null(
        self, streaming_session, driver, tmp_path
    ):
        path = tmp_path / "frames.csv"
        streaming_session.start_recording(path)
        result = CaptureResultMetadata(
            frame_number=1,
            timestamp_ns=5_000,
            exposure_time_ns=30 * MS,
            frame_duration_ns=None,
            rolling_shutter_skew_ns=None,
            sensitivity=100,
            focal_length_mm=None,
            focus_distance_diopters=None,
            crop_region=REAR.active_array,
        )

        streaming_session.on_capture_completed(
            driver.session("0"), streaming_session.request, result
        )
        streaming_session.stop_recording()

        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[1] == [
            "5000",
            "null",
            "null",
            "1",
            "30000000",
            "null",
            "null",
            "100",
            "null",
            "null",
        ]

    def test_focus_distance_missing_uses_infinity(
        self, streaming_session, driver, tmp_path
    ):
        path = tmp_path / "frames.csv"
        streaming_session.start_recording(path)
        result = CaptureResultMetadata(
            frame_number=1,
            timestamp_ns=5_000,
            exposure_time_ns=30 * MS,
            frame_duration_ns=33_333_333,
            rolling_shutter_skew_ns=10 * MS,
            sensitivity=100,
            focal_length_mm=4.38,
            focus_distance_diopters=None,
            crop_region=REAR.active_array,
        )

        streaming_session.on_capture_completed(
            driver.session("0"), streaming_session.request, result
        )
        streaming_session.stop_recording()

        with open(path, newline="", encoding="utf-8") as f:
            row = list(csv.reader(f))[1]
        assert row[1] != "null"
        assert row[-1] == "null"

    def test_frames_after_stop_are_not_written(
        self, streaming_session, driver, executor, tmp_path
    ):
        path = tmp_path / "frames.csv"
        streaming_session.start_recording(path)
        _emit(driver, executor, 1)
        streaming_session.stop_recording()
        size = path.stat().st_size

        _emit(driver, executor, 2)

        assert path.stat().st_size == size
        assert streaming_session.is_recording is False

    def test_stop_recording_twice(self, streaming_session, tmp_path):
        streaming_session.start_recording(tmp_path / "frames.csv")
        streaming_session.stop_recording()
        streaming_session.stop_recording()
        assert streaming_session.is_recording is False

    def test_recording_can_start_before_open(self, session, tmp_path):
        assert session.start_recording(tmp_path / "frames.csv") is True

    def test_unwritable_path_returns_false(self, streaming_session, tmp_path):
        assert (
            streaming_session.start_recording(tmp_path / "no" / "frames.csv")
            is False
        )
        assert streaming_session.is_recording is False

    def test_closed_session_refuses(self, streaming_session, tmp_path):
        streaming_session.release()
        assert streaming_session.start_recording(tmp_path / "frames.csv") is False

    def test_write_failure_counted_and_recording_continues(
        self, streaming_session, driver, executor, tmp_path
    ):
        streaming_session.start_recording(tmp_path / "frames.csv")
        with patch(
            "capture_logger.devices.session.CaptureMetadataSink.record",
            return_value=False,
        ):
            _emit(driver, executor, 2)

        summary = streaming_session.stats.get_summary()
        assert summary.write_failures == 2
        assert summary.error_counts == {"MetadataIOError": 2}
        assert streaming_session.is_recording is True

    def test_release_stops_recording(self, streaming_session, tmp_path):
        streaming_session.start_recording(tmp_path / "frames.csv")
        streaming_session.release()
        assert streaming_session.is_recording is False


# =============================================================================
# Tap-to-focus
# =============================================================================


@pytest.fixture
def sensor_4000(twin_config):
    """Driver whose rear camera has a 4000x3000 active array."""
    info = dataclasses.replace(
        REAR,
        active_array=Rect(0, 0, 4000, 3000),
        pixel_array_size=Size(4000, 3000),
    )
    return _driver_with(info, twin_config)


class TestChangeManualFocusPoint:
    """Tests for CaptureSession.change_manual_focus_point."""

    def test_ignored_when_not_streaming(self, session):
        assert session.change_manual_focus_point(10, 10, 100, 100) is False
        assert session.state is SessionState.IDLE

    def test_view_center_maps_to_rotated_sensor_point(self, sensor_4000, executor):
        """Verifies the touch region for the view centre on a 4000x3000 sensor.

        Arrangement:
        1. Portrait view 1080x1920, landscape sensor 4000x3000.
        2. Streaming session.

        Action:
        Taps the view centre (540, 960).

        Assertion Strategy:
        Axes are swapped: sensor x = 960/1920*4000 = 2000 and
        sensor y = 540/1080*3000 = 1500. The submitted region is the
        800x800 square at (1600, 1100) with weight 999.
        """
        session = CaptureSession(sensor_4000, executor)
        _stream(session, executor)

        assert session.change_manual_focus_point(540, 960, 1080, 1920) is True

        region_request, listener = sensor_4000.session("0").submitted[1]
        assert listener is None
        assert region_request.af_regions == (
            MeteringRectangle(x=1600, y=1100, width=800, height=800, weight=999),
        )

    def test_region_clamped_at_sensor_origin(self, sensor_4000, executor):
        session = CaptureSession(sensor_4000, executor)
        _stream(session, executor)

        session.change_manual_focus_point(10, 10, 1080, 1920)

        region = session.request.af_regions[0]
        assert (region.x, region.y, region.width, region.height) == (0, 0, 800, 800)

    def test_request_sequence(self, streaming_session, driver, executor):
        """Verifies the order of requests submitted on a tap.

        Arrangement:
        1. Streaming session with three 30 ms / ISO 100 frames seen.
        2. Desired exposure 5 ms (default).

        Action:
        Taps the view.

        Assertion Strategy:
        - Exactly two new submissions after the initial one.
        - First: metering region only, auto exposure still on, no
          listener.
        - Second: manual 5 ms at ISO 600 (30 ms x 100 rescaled), auto
          control with autofocus triggered, session as listener.
        - State is back to STREAMING.

        Testing Principle:
        The region must be in place before the focus search starts,
        and frame results must keep flowing to the session.
        """
        _emit(driver, executor, 3)

        assert streaming_session.change_manual_focus_point(540, 960, 1080, 1920)

        submitted = driver.session("0").submitted
        assert len(submitted) == 3
        (region_request, first_listener), (final, final_listener) = submitted[1:]

        assert first_listener is None
        assert region_request.ae_mode is AeMode.ON
        assert region_request.af_regions

        assert final_listener is streaming_session
        assert final is streaming_session.request
        assert final.version > region_request.version
        assert final.ae_mode is AeMode.OFF
        assert final.exposure_time_ns == 5 * MS
        assert final.sensitivity == 600
        assert final.control_mode is ControlMode.AUTO
        assert final.af_mode is AfMode.AUTO
        assert final.af_trigger is AfTrigger.START
        assert final.af_regions == region_request.af_regions
        assert streaming_session.state is SessionState.STREAMING

    def test_no_history_uses_reference_iso(self, streaming_session):
        streaming_session.change_manual_focus_point(540, 960, 1080, 1920)
        assert streaming_session.request.exposure_time_ns == 5 * MS
        assert streaming_session.request.sensitivity == 180

    def test_frames_after_tap_use_pinned_exposure(
        self, streaming_session, driver, executor
    ):
        _emit(driver, executor, 3)
        streaming_session.change_manual_focus_point(540, 960, 1080, 1920)

        _emit(driver, executor, 1)

        latest = streaming_session.history[-1]
        assert (latest.exposure_ns, latest.iso) == (5 * MS, 600)

    def test_desired_exposure_is_used_on_next_tap(
        self, streaming_session, driver, executor
    ):
        _emit(driver, executor, 3)
        streaming_session.set_desired_exposure(10 * MS)

        streaming_session.change_manual_focus_point(540, 960, 1080, 1920)

        assert streaming_session.desired_exposure_ns == 10 * MS
        assert streaming_session.request.exposure_time_ns == 10 * MS
        assert streaming_session.request.sensitivity == 300

    def test_set_desired_exposure_rejects_non_positive(self, session):
        with pytest.raises(ValueError):
            session.set_desired_exposure(0)

    def test_device_failure_during_refocus_goes_to_error(
        self, streaming_session, driver
    ):
        driver.session("0").close()

        assert streaming_session.change_manual_focus_point(1, 1, 10, 10) is False

        assert streaming_session.state is SessionState.ERROR
        assert isinstance(streaming_session.last_error, DeviceAccessError)

    def test_invalid_view_size_raises(self, streaming_session):
        with pytest.raises(ValueError, match="positive size"):
            streaming_session.change_manual_focus_point(1, 1, 0, 1920)
        assert streaming_session.state is SessionState.STREAMING


# =============================================================================
# Preview control
# =============================================================================


class TestPreviewControl:
    """Tests for start_preview/stop_preview."""

    def test_stop_and_restart(self, streaming_session, driver):
        twin = driver.session("0")

        assert streaming_session.stop_preview() is True
        assert twin.repeating_request is None
        assert twin.emit_frames(1) == 0

        assert streaming_session.start_preview() is True
        assert twin.repeating_request is streaming_session.request

    def test_without_session_returns_false(self, session):
        assert session.start_preview() is False
        assert session.stop_preview() is False

    def test_device_refusal_returns_false(self, streaming_session, driver):
        driver.session("0").close()
        assert streaming_session.start_preview() is False
        assert streaming_session.stop_preview() is False


# =============================================================================
# Release
# =============================================================================


class TestRelease:
    """Tests for CaptureSession.release."""

    def test_release_twice_from_streaming(self, driver, executor):
        """Verifies release frees everything once and the second call is a no-op.

        Arrangement:
        1. Streaming session with an on_released hook and a preview buffer.

        Action:
        Calls release() twice.

        Assertion Strategy:
        - After the first call: CLOSED, device/session/buffer closed, all
          handles dropped, hook called once.
        - After the second call: nothing changes, hook still called once.
        """
        on_released = MagicMock()
        session = CaptureSession(driver, executor, on_released=on_released)
        _stream(session, executor)
        buffer = session.preview_buffer
        twin = driver.session("0")

        session.release()

        assert session.state is SessionState.CLOSED
        assert twin.is_closed and twin.repeating_request is None
        assert driver.device("0").is_closed
        assert buffer.closed
        assert session.device is None
        assert session.capture_session is None
        assert session.preview_buffer is None
        assert session.request is None
        on_released.assert_called_once_with()

        session.release()

        assert session.state is SessionState.CLOSED
        on_released.assert_called_once_with()

    def test_release_from_idle(self, session):
        session.release()
        assert session.state is SessionState.CLOSED

    def test_release_from_error(self, executor):
        driver = DigitalTwinCameraDriver(DigitalTwinConfig(fail_characteristics=True))
        session = CaptureSession(driver, executor)
        session.configure()

        session.release()

        assert session.state is SessionState.CLOSED

    def test_device_opened_after_release_is_closed(self, session, executor, driver):
        session.open()
        session.release()

        executor.run_pending()

        assert session.state is SessionState.CLOSED
        assert driver.device("0").is_closed
        assert session.device is None

    def test_session_configured_after_release_is_closed(
        self, session, executor, driver
    ):
        session.open()
        # on_opened only; on_configured is still queued
        executor.run_next()
        assert session.state is SessionState.CONFIGURING
        session.release()

        executor.run_pending()

        assert driver.session("0").is_closed

    def test_frames_queued_before_release_are_dropped(
        self, streaming_session, driver, executor, tmp_path
    ):
        streaming_session.start_recording(tmp_path / "frames.csv")
        driver.session("0").emit_frames(2)
        streaming_session.release()

        executor.run_pending()

        assert streaming_session.stats.get_summary().total_frames == 0

    def test_device_close_failure_still_releases(self, driver, executor, monkeypatch):
        """Verifies a failing device close does not leave the session half-released.

        Arrangement:
        1. Streaming session with an on_released hook and a preview buffer.
        2. Both the capture session and the device raise on close.

        Action:
        Calls release().

        Assertion Strategy:
        - No exception escapes.
        - State is CLOSED, buffer closed, handles dropped.
        - last_error holds the device close failure.
        - The on_released hook still ran.
        """
        on_released = MagicMock()
        session = CaptureSession(driver, executor, on_released=on_released)
        _stream(session, executor)
        buffer = session.preview_buffer
        device_error = DeviceAccessError("device close failed")
        monkeypatch.setattr(
            driver.session("0"),
            "close",
            MagicMock(side_effect=DeviceAccessError("session close failed")),
        )
        monkeypatch.setattr(
            driver.device("0"), "close", MagicMock(side_effect=device_error)
        )

        session.release()

        assert session.state is SessionState.CLOSED
        assert session.last_error is device_error
        assert buffer.closed
        assert session.device is None
        assert session.capture_session is None
        on_released.assert_called_once_with()

    def test_recording_stopped_when_device_close_fails(
        self, streaming_session, driver, monkeypatch, tmp_path
    ):
        streaming_session.start_recording(tmp_path / "frames.csv")
        monkeypatch.setattr(
            driver.device("0"),
            "close",
            MagicMock(side_effect=DeviceAccessError("close failed")),
        )

        streaming_session.release()

        assert streaming_session.is_recording is False
        assert streaming_session.state is SessionState.CLOSED
