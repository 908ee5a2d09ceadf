"""
Slicing module - Cross-sections, infill patterns, layers and the session.
"""

from layerslicer.slicing.cross_section import (
    CrossSection,
    chain_segments,
    cleanup_connect_segments,
    cleanup_shared_segments,
    cut_segments,
    extract_cross_section,
)
from layerslicer.slicing.infill import Infill, InfillType, PatternCache, make_pattern
from layerslicer.slicing.layer import InfillSet, Layer, LayerInfill, LayerRegions
from layerslicer.slicing.slicer import Slicer

__all__ = [
    "CrossSection",
    "chain_segments",
    "cleanup_connect_segments",
    "cleanup_shared_segments",
    "cut_segments",
    "extract_cross_section",
    "Infill",
    "InfillType",
    "PatternCache",
    "make_pattern",
    "InfillSet",
    "Layer",
    "LayerInfill",
    "LayerRegions",
    "Slicer",
]
