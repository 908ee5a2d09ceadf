"""
Mesh component splitting.

Separates a mesh holding several independent solids into one Shape per
connected component. Two triangles are adjacent when any of their vertices
coincide within a squared distance tolerance; components are collected with
an explicit worklist so very large meshes never hit a recursion limit.
"""

from __future__ import annotations

import math
from typing import List, Optional

import numpy as np
from scipy.spatial import cKDTree

from layerslicer.core.exceptions import SlicingCancelled
from layerslicer.core.logging import get_logger
from layerslicer.core.progress import Progress
from layerslicer.geometry.shape import Shape
from layerslicer.geometry.triangle import Triangle

logger = get_logger(__name__)


def triangle_adjacency(
    shape: Shape,
    sq_tolerance: float = 0.01,
    progress: Optional[Progress] = None,
) -> List[List[int]]:
    """
    Adjacency lists of the shape's triangles.

    Args:
        shape: Mesh to analyse (mesh coordinates, transform not needed).
        sq_tolerance: Squared distance under which two vertices coincide.
        progress: Optional progress/cancellation token.

    Returns:
        ``adjacency[i]`` is the sorted list of triangles touching triangle i.

    Raises:
        SlicingCancelled: If the progress token was stopped.
    """
    n = len(shape)
    adjacency: List[set] = [set() for _ in range(n)]
    if n == 0:
        return []

    points = shape.vertex_array().reshape(-1, 3)
    pairs = cKDTree(points).query_pairs(math.sqrt(sq_tolerance), output_type="ndarray")
    tri_pairs = pairs // 3
    tri_pairs = tri_pairs[tri_pairs[:, 0] != tri_pairs[:, 1]]
    tri_pairs = np.unique(np.sort(tri_pairs, axis=1), axis=0)

    if progress is not None:
        progress.start("Triangle adjacency", len(tri_pairs))
    for i, (a, b) in enumerate(tri_pairs):
        if progress is not None and not progress.poll(i):
            raise SlicingCancelled("Triangle adjacency cancelled")
        adjacency[a].add(int(b))
        adjacency[b].add(int(a))
    if progress is not None:
        progress.finish()

    return [sorted(neighbours) for neighbours in adjacency]


def split_shape(
    shape: Shape,
    sq_tolerance: float = 0.01,
    progress: Optional[Progress] = None,
) -> List[Shape]:
    """
    Split a shape into its connected components.

    Every component keeps a copy of the parent transform and derives its own
    bounding box. A cancelled run returns the shape unsplit.
    """
    try:
        adjacency = triangle_adjacency(shape, sq_tolerance, progress)
    except SlicingCancelled:
        logger.warning("split_cancelled", shape=shape.name, triangles=len(shape))
        return [shape]

    triangles = shape.triangles
    visited = np.zeros(len(triangles), dtype=bool)
    components: List[Shape] = []

    if progress is not None:
        progress.start("Split shapes", len(triangles))
    processed = 0
    for seed in range(len(triangles)):
        if visited[seed]:
            continue
        visited[seed] = True
        stack = [seed]
        members = []
        while stack:
            current = stack.pop()
            members.append(current)
            processed += 1
            if progress is not None and not progress.poll(processed):
                logger.warning("split_cancelled", shape=shape.name, triangles=len(shape))
                return [shape]
            for neighbour in adjacency[current]:
                if not visited[neighbour]:
                    visited[neighbour] = True
                    stack.append(neighbour)
        members.sort()
        components.append(
            Shape(
                [triangles[i] for i in members],
                transform=shape.transform.copy(),
                name=f"{shape.name}_{len(components)}" if shape.name else f"part_{len(components)}",
            )
        )
    if progress is not None:
        progress.finish()

    logger.info("shape_split", shape=shape.name, components=len(components))
    return components


def has_adjacent_triangle_to(shape: Shape, triangle: Triangle, sq_distance: float) -> bool:
    """True when any triangle of ``shape`` shares a vertex with ``triangle``."""
    if len(shape) == 0:
        return False
    diff = shape.vertex_array().reshape(-1, 3)[:, None, :] - triangle.vertices[None, :, :]
    return bool(np.any(np.einsum("ijk,ijk->ij", diff, diff) < sq_distance))
