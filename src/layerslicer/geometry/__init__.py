"""
Geometry module - 2D polygons, boolean operations and triangle meshes.
"""

from layerslicer.geometry.polygon import (
    Poly,
    RegionWithHoles,
    cleanup_polys,
    convex_hull_2d,
    polys_bounds,
)
from layerslicer.geometry.transform import Transform3D
from layerslicer.geometry.triangle import Triangle
from layerslicer.geometry.shape import Shape
from layerslicer.geometry.components import (
    has_adjacent_triangle_to,
    split_shape,
    triangle_adjacency,
)

__all__ = [
    "Poly",
    "RegionWithHoles",
    "cleanup_polys",
    "convex_hull_2d",
    "polys_bounds",
    "Transform3D",
    "Triangle",
    "Shape",
    "has_adjacent_triangle_to",
    "split_shape",
    "triangle_adjacency",
]
