"""Exposure/ISO convergence.

Pins the sensor to a manual exposure time and ISO whose product keeps the
image brightness the auto-exposure loop had reached, while honouring a
desired (usually short) exposure time.

Algorithm:
    1. desired_iso = round(30 * 30 ms / desired_exposure)
    2. If frames were observed, take the sample at index ``len // 2`` of
       the recent history as the device's actual operating point.
    3. Actual exposure <= desired: adopt the actual exposure and ISO as is.
    4. Otherwise keep exposure x ISO constant at the desired exposure:
       iso = actual_iso * actual_exposure // desired_exposure (truncating).

The controller does not clamp to the sensor's ranges; it logs them and
leaves range enforcement to the device.

Example:
    history = ExposureHistory()
    history.append(FrameSample(1, 10_000_000, 100))
    ExposureIsoController().compute(5_000_000, history)
    # ExposureSetting(exposure_time_ns=5000000, iso=200)
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from capture_logger.devices.request import CaptureRequestBuilder
from capture_logger.drivers.cameras.types import AeMode, CameraStaticInfo
from capture_logger.observability import get_logger

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_HISTORY_CAPACITY",
    "REFERENCE_EXPOSURE_ISO",
    "ExposureHistory",
    "ExposureIsoController",
    "ExposureSetting",
    "FrameSample",
]

DEFAULT_HISTORY_CAPACITY = 10

# ISO 30 at 30 ms
REFERENCE_EXPOSURE_ISO = 30 * 30_000_000


@dataclass(frozen=True, slots=True)
class FrameSample:
    """Exposure and ISO one completed frame was captured with."""

    frame_number: int
    exposure_ns: int
    iso: int


@dataclass(frozen=True, slots=True)
class ExposureSetting:
    """Manual exposure pair to request next."""

    exposure_time_ns: int
    iso: int


class ExposureHistory:
    """Recent frame samples with batch eviction.

    After each append, if the history holds more than ``capacity``
    samples, the oldest ``capacity // 2`` are dropped at once. The size
    therefore peaks at ``capacity + 1`` and never stays above it.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 2:
            raise ValueError(f"History capacity must be at least 2, got {capacity}")
        self.capacity = capacity
        self._samples: list[FrameSample] = []

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[FrameSample]:
        return iter(self._samples)

    def __getitem__(self, index: int) -> FrameSample:
        return self._samples[index]

    def append(self, sample: FrameSample) -> int:
        """Add a sample, evicting in batch when over capacity.

        Returns:
            Number of samples evicted (0 or ``capacity // 2``).
        """
        self._samples.append(sample)
        if len(self._samples) > self.capacity:
            evicted = self.capacity // 2
            del self._samples[:evicted]
            return evicted
        return 0

    def midpoint(self) -> FrameSample | None:
        """Sample at index ``len // 2``, or None when empty."""
        if not self._samples:
            return None
        return self._samples[len(self._samples) // 2]

    def clear(self) -> None:
        self._samples.clear()


class ExposureIsoController:
    """Computes and applies the manual exposure/ISO pair."""

    def compute(
        self, desired_exposure_ns: int, history: ExposureHistory
    ) -> ExposureSetting:
        """Exposure/ISO pair for ``desired_exposure_ns`` given recent frames.

        Raises:
            ValueError: If ``desired_exposure_ns`` is not positive.
        """
        if desired_exposure_ns <= 0:
            raise ValueError(
                f"Desired exposure must be positive, got {desired_exposure_ns}"
            )

        exposure_ns = desired_exposure_ns
        iso = round(REFERENCE_EXPOSURE_ISO / desired_exposure_ns)

        actual = history.midpoint()
        if actual is not None:
            if actual.exposure_ns <= desired_exposure_ns:
                exposure_ns = actual.exposure_ns
                iso = actual.iso
            else:
                iso = actual.iso * actual.exposure_ns // desired_exposure_ns

        return ExposureSetting(exposure_time_ns=exposure_ns, iso=iso)

    def apply(
        self,
        builder: CaptureRequestBuilder,
        info: CameraStaticInfo,
        desired_exposure_ns: int,
        history: ExposureHistory,
    ) -> ExposureSetting:
        """Switch ``builder`` to manual exposure with the computed pair.

        The caller must build and submit a new request for it to take effect.
        """
        setting = self.compute(desired_exposure_ns, history)

        if info.exposure_time_range_ns is not None:
            logger.debug(
                "Exposure time range", range=list(info.exposure_time_range_ns)
            )
        if info.sensitivity_range is not None:
            logger.debug("ISO range", range=list(info.sensitivity_range))

        builder.set(
            ae_mode=AeMode.OFF,
            exposure_time_ns=setting.exposure_time_ns,
            sensitivity=setting.iso,
        )
        logger.debug(
            "Manual exposure set",
            exposure_ns=setting.exposure_time_ns,
            iso=setting.iso,
            samples=len(history),
        )
        return setting
