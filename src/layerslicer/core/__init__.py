"""
Core module - Configuration, exceptions, logging and progress.
"""

from layerslicer.core.config import ProfileManager, SliceConfig, load_config
from layerslicer.core.exceptions import (
    LayerSlicerError,
    ConfigurationError,
    GeometryError,
    SlicingError,
    ReconstructionError,
    SlicingCancelled,
)
from layerslicer.core.progress import Progress, ProgressCallback

__all__ = [
    # Config
    "ProfileManager",
    "SliceConfig",
    "load_config",
    # Exceptions
    "LayerSlicerError",
    "ConfigurationError",
    "GeometryError",
    "SlicingError",
    "ReconstructionError",
    "SlicingCancelled",
    # Progress
    "Progress",
    "ProgressCallback",
]
