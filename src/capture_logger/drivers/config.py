"""Driver configuration and factory.

Selects the camera driver the capture core runs against: the digital
twin for tests and demos, or a driver supplied by the host application
for real hardware.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from capture_logger.drivers.cameras import (
    CameraDriver,
    DigitalTwinCameraDriver,
    DigitalTwinConfig,
)
from capture_logger.drivers.cameras.types import LensFacing
from capture_logger.observability import get_logger

logger = get_logger(__name__)

__all__ = [
    "DriverConfig",
    "DriverFactory",
    "DriverMode",
    "configure",
    "get_factory",
    "reset_factory",
    "use_digital_twin",
    "use_hardware",
]


class DriverMode(Enum):
    """Driver mode selection."""

    HARDWARE = "hardware"  # Host-supplied camera stack
    DIGITAL_TWIN = "digital_twin"  # Simulated camera


@dataclass
class DriverConfig:
    """Configuration for driver selection.

    Attributes:
        mode: HARDWARE for a host-supplied driver, DIGITAL_TWIN for simulation.
        facing: Which camera the session opens (rear by default).
        twin: Behaviour of the simulated camera in DIGITAL_TWIN mode.
        hardware_driver: Zero-argument callable returning the host's
            CameraDriver; required in HARDWARE mode.
    """

    mode: DriverMode = DriverMode.DIGITAL_TWIN
    facing: LensFacing = LensFacing.BACK
    twin: DigitalTwinConfig = field(default_factory=DigitalTwinConfig)
    hardware_driver: Callable[[], CameraDriver] | None = None


class DriverFactory:
    """Factory for creating camera drivers based on configuration.

    Thread Safety:
        Not thread-safe. Configure once at startup before creating
        sessions from several threads.
    """

    def __init__(self, config: DriverConfig | None = None):
        """Initialize the factory.

        Args:
            config: Driver configuration. None defaults to DriverConfig(),
                i.e. digital twin mode with the rear camera.
        """
        self.config = config or DriverConfig()

    def create_camera_driver(self) -> CameraDriver:
        """Create the camera driver for the configured mode.

        Returns:
            The host driver in HARDWARE mode, a DigitalTwinCameraDriver in
            DIGITAL_TWIN mode.

        Raises:
            RuntimeError: If HARDWARE mode is selected without a
                ``hardware_driver`` callable.

        Example:
            >>> factory = DriverFactory(DriverConfig(mode=DriverMode.DIGITAL_TWIN))
            >>> driver = factory.create_camera_driver()
            >>> driver.get_camera_ids()
            ['0', '1']
        """
        if self.config.mode == DriverMode.HARDWARE:
            if self.config.hardware_driver is None:
                raise RuntimeError(
                    "Hardware mode needs DriverConfig.hardware_driver to be set"
                )
            driver = self.config.hardware_driver()
        else:
            driver = DigitalTwinCameraDriver(self.config.twin)
        logger.debug("Camera driver created", mode=self.config.mode.value)
        return driver


# =============================================================================
# Global Singleton
# =============================================================================
# Not thread-safe. Configure once at startup before spawning threads.

_factory: DriverFactory | None = None


def get_factory() -> DriverFactory:
    """Get the global driver factory, creating a default one on first use."""
    global _factory
    if _factory is None:
        _factory = DriverFactory()
    return _factory


def configure(config: DriverConfig) -> None:
    """Replace the global factory with one using ``config``."""
    global _factory
    _factory = DriverFactory(config)
    logger.info(
        "Driver factory configured",
        mode=config.mode.value,
        facing=config.facing.name,
    )


def reset_factory() -> None:
    """Drop the global factory; the next get_factory() builds a default one."""
    global _factory
    _factory = None


def use_digital_twin(twin: DigitalTwinConfig | None = None) -> None:
    """Switch the global factory to the digital twin driver."""
    configure(
        DriverConfig(mode=DriverMode.DIGITAL_TWIN, twin=twin or DigitalTwinConfig())
    )


def use_hardware(hardware_driver: Callable[[], CameraDriver]) -> None:
    """Switch the global factory to a host-supplied driver."""
    configure(DriverConfig(mode=DriverMode.HARDWARE, hardware_driver=hardware_driver))
