"""capture-logger: camera capture with exposure/ISO locking and metadata logs.

Subpackages:
    devices: capture session state machine, exposure controller, metadata log
    drivers: camera driver protocols, digital twin, driver configuration
    observability: structured logging and frame statistics
    utils: focal-length geometry, size selection, touch mapping
"""

__version__ = "0.1.0"
