"""Camera drivers for the capture core.

Supports two modes:
- HARDWARE: a camera stack supplied by the host application
- DIGITAL_TWIN: simulated camera for testing without hardware

Use drivers.config to switch modes:
    from capture_logger.drivers import config
    config.use_digital_twin()  # or config.use_hardware(make_driver)
"""

from capture_logger.drivers import cameras, config
from capture_logger.drivers.config import (
    DriverConfig,
    DriverFactory,
    DriverMode,
    configure,
    get_factory,
    reset_factory,
    use_digital_twin,
    use_hardware,
)

__all__ = [
    # Submodules
    "cameras",
    "config",
    # Configuration
    "DriverMode",
    "DriverConfig",
    "DriverFactory",
    "get_factory",
    "configure",
    "reset_factory",
    "use_digital_twin",
    "use_hardware",
]
