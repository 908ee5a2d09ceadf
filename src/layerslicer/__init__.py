"""
LayerSlicer - Mesh to layer region slicer for additive manufacturing.

Cuts triangle meshes into closed cross-sections and derives per-layer
shells, fill, bridges, support, skin and skirt regions.
"""

__version__ = "0.1.0"
__author__ = "LayerSlicer Contributors"

from layerslicer.core.config import SliceConfig
from layerslicer.geometry.shape import Shape
from layerslicer.slicing.slicer import Slicer

__all__ = [
    "__version__",
    "SliceConfig",
    "Shape",
    "Slicer",
]
