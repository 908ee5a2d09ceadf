"""
Custom exceptions for LayerSlicer.

All LayerSlicer exceptions inherit from LayerSlicerError for easy catching.
"""

from typing import Any


class LayerSlicerError(Exception):
    """Base exception for all LayerSlicer errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationError(LayerSlicerError):
    """Raised when configuration is invalid or missing."""

    pass


class GeometryError(LayerSlicerError):
    """Raised when mesh or polygon data cannot be used."""

    pass


class SlicingError(LayerSlicerError):
    """Raised when slicing fails."""

    pass


class ReconstructionError(SlicingError):
    """Raised when a cross-section cannot be closed into polygons."""

    def __init__(
        self,
        message: str,
        z: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.z = z


class SlicingCancelled(ReconstructionError):
    """Raised when a stop request is observed in a long-running loop."""

    pass
