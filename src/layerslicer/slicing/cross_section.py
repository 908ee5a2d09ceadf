"""
Cross-section extraction: closed polygons where a plane cuts a mesh.

Pipeline for one shape at one height:

1. Cut every triangle with the plane (vectorised with numpy) and pool the
   cut points so that neighbouring triangles share vertex indices.
   Each segment is directed so that solid material lies on its left.
2. Drop duplicated segments: exact copies are reduced to one, reversed
   copies (touching faces of two solids) cancel each other.
3. Close small gaps left by rounding by pairing dangling vertices.
4. Chain segments into loops; the loop orientation marks holes.

Steep downward-facing triangles near the plane are collected on the side
and turned into convex support candidate polygons.

References:
- Marching-segments slicing: Minetto et al., "An optimal algorithm for 3D
  triangle mesh slicing", CAD 92 (2017)
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from layerslicer.core.config import SliceConfig
from layerslicer.core.exceptions import ReconstructionError, SlicingCancelled
from layerslicer.core.logging import get_logger
from layerslicer.core.progress import Progress
from layerslicer.geometry.polygon import Poly
from layerslicer.geometry.shape import Shape
from layerslicer.geometry.transform import Transform3D
from layerslicer.geometry.triangle import Triangle

logger = get_logger(__name__)

Segment = Tuple[int, int]

_EDGES = ((0, 1), (1, 2), (2, 0))

# Squared distance between the segment's outward perpendicular and the
# triangle's XY normal above which the segment is reversed
_ORIENTATION_TOLERANCE = 0.2


def pool_points(points: np.ndarray, sq_tolerance: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Merge 2D points lying within ``sqrt(sq_tolerance)`` of each other.

    Each point joins the earliest pooled point within tolerance, otherwise it
    becomes a new pooled vertex.

    Returns:
        (pooled vertices, pooled index of every input point)
    """
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(points) == 0:
        return np.zeros((0, 2)), np.zeros(0, dtype=int)
    nearby = cKDTree(points).query_ball_point(points, r=math.sqrt(sq_tolerance))
    owner = np.arange(len(points))
    for i, near in enumerate(nearby):
        earlier = [j for j in near if j < i and owner[j] == j]
        if earlier:
            owner[i] = min(earlier)
    pooled = owner == np.arange(len(points))
    index = np.cumsum(pooled) - 1
    return points[pooled], index[owner]


@dataclass
class CutResult:
    """Raw plane cut: pooled vertices, directed segments and support triangles."""

    vertices: np.ndarray
    segments: List[Segment]
    support_triangles: List[Triangle] = field(default_factory=list)
    max_gradient: float = 0.0


@dataclass
class CrossSection:
    """Closed polygons of one shape at one height plus support candidates."""

    z: float
    polygons: List[Poly] = field(default_factory=list)
    support_polygons: List[Poly] = field(default_factory=list)
    max_gradient: float = 0.0

    @property
    def area(self) -> float:
        return sum(p.area for p in self.polygons)


def _plane_cuts(vertices: np.ndarray, z: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Vectorised triangle/plane intersection.

    Returns a boolean mask of cut triangles and an (M, 2, 2) array holding
    the two XY cut points of each cut triangle, in edge order.
    """
    above = vertices[:, :, 2] >= z
    edge_cut = np.empty((len(vertices), 3), dtype=bool)
    points = np.empty((len(vertices), 3, 2))
    for e, (i, j) in enumerate(_EDGES):
        vi = vertices[:, i]
        vj = vertices[:, j]
        edge_cut[:, e] = above[:, i] != above[:, j]
        dz = vj[:, 2] - vi[:, 2]
        t = np.divide(z - vi[:, 2], dz, out=np.zeros_like(dz), where=edge_cut[:, e])
        points[:, e] = vi[:, :2] + t[:, None] * (vj[:, :2] - vi[:, :2])

    mask = edge_cut.sum(axis=1) == 2
    order = np.argsort(~edge_cut[mask], axis=1, kind="stable")[:, :2]
    rows = np.arange(int(mask.sum()))
    cut_points = np.stack(
        [points[mask][rows, order[:, 0]], points[mask][rows, order[:, 1]]], axis=1,
    )
    return mask, cut_points


def cut_segments(
    shape: Shape,
    z: float,
    sq_tolerance: float = 1e-4,
    support_angle: Optional[float] = None,
    thickness: float = 0.0,
    plane_transform: Optional[Transform3D] = None,
    progress: Optional[Progress] = None,
) -> CutResult:
    """
    Cut all triangles of ``shape`` with the horizontal plane at ``z``.

    Args:
        shape: Mesh to cut; its own transform is applied.
        z: Plane height in world coordinates.
        sq_tolerance: Squared distance under which cut points are merged.
        support_angle: Overhang angle (radians) for support candidates, or
            None to skip support collection.
        thickness: Height of the band below ``z`` in which uncut triangles
            are still collected as support candidates.
        plane_transform: Extra transform applied after the shape's own.
        progress: Optional progress/cancellation token.

    Raises:
        SlicingCancelled: If the progress token was stopped.
    """
    segments: List[Segment] = []
    support: List[Triangle] = []

    vertices = shape.world_vertices(plane_transform)
    if len(vertices) == 0:
        return CutResult(np.zeros((0, 2)), segments)
    normals = shape.world_normals(plane_transform)

    mask, cut_points = _plane_cuts(vertices, z)
    cut_indices = np.nonzero(mask)[0]
    max_gradient = float(np.abs(normals[mask, 2]).max()) if len(cut_indices) else 0.0

    if support_angle is not None:
        slopes = -np.arcsin(np.clip(normals[:, 2], -1.0, 1.0))
        steep = slopes >= support_angle
        candidates = steep & mask
        if thickness > 0:
            zmin = vertices[:, :, 2].min(axis=1)
            zmax = vertices[:, :, 2].max(axis=1)
            candidates |= steep & ~mask & (zmin >= z - thickness) & (zmax <= z)
        if candidates.any():
            world = shape.world_triangles(plane_transform)
            support = [world[i] for i in np.nonzero(candidates)[0]]

    normals_xy = normals[cut_indices, :2]
    pooled, ids = pool_points(cut_points, sq_tolerance)
    for k, (p0, p1) in enumerate(cut_points):
        if progress is not None and not progress.check():
            raise SlicingCancelled("Plane cut cancelled", z=z)
        start, end = int(ids[2 * k]), int(ids[2 * k + 1])
        if start == end:
            continue
        seg = p1 - p0
        outward = np.array([seg[1], -seg[0]])
        normal = normals_xy[k]
        seg_len = np.linalg.norm(outward)
        normal_len = np.linalg.norm(normal)
        if seg_len > 0 and normal_len > 0:
            diff = normal / normal_len - outward / seg_len
            if diff @ diff > _ORIENTATION_TOLERANCE:
                start, end = end, start
        segments.append((start, end))

    return CutResult(pooled, segments, support, max_gradient)


def cleanup_shared_segments(segments: Sequence[Segment]) -> List[Segment]:
    """
    Remove double-counted segments.

    Exact duplicates are kept once; a segment and its reverse (coincident
    faces of two touching solids) cancel out and both disappear.
    """
    active: Dict[Segment, None] = {}
    for start, end in segments:
        if (start, end) in active:
            continue
        if (end, start) in active:
            del active[(end, start)]
            continue
        active[(start, end)] = None
    return list(active)


def vertex_degrees(vertex_count: int, segments: Sequence[Segment]) -> np.ndarray:
    """Signed degree per vertex: segments starting there minus segments ending there."""
    degrees = np.zeros(vertex_count, dtype=int)
    for start, end in segments:
        degrees[start] += 1
        degrees[end] -= 1
    return degrees


def cleanup_connect_segments(
    vertices: np.ndarray,
    segments: List[Segment],
    warn_distance: float = 1.0,
    hard_distance: float = 10.0,
) -> bool:
    """
    Join dangling vertices with synthetic segments.

    Dangling vertices of opposite sign are paired with their nearest partner;
    the new segment runs into the vertex that has an outgoing segment only.
    Pairs farther apart than ``hard_distance`` are left open, pairs beyond
    ``warn_distance`` are joined with a warning.

    Returns:
        False for an odd number of dangling vertices, in which case
        ``segments`` is left untouched.
    """
    degrees = vertex_degrees(len(vertices), segments)
    dangling = [int(i) for i in np.nonzero(degrees)[0]]
    if len(dangling) % 2:
        logger.debug("odd_dangling_vertices", count=len(dangling))
        return False

    warn_sq = warn_distance * warn_distance
    hard_sq = hard_distance * hard_distance
    joins: List[Segment] = []
    paired = [False] * len(dangling)
    for i, n in enumerate(dangling):
        if paired[i]:
            continue
        nearest = -1
        nearest_sq = math.inf
        for j in range(i + 1, len(dangling)):
            other = dangling[j]
            if paired[j] or degrees[n] == degrees[other]:
                continue
            diff = vertices[n] - vertices[other]
            dist_sq = float(diff @ diff)
            if dist_sq < nearest_sq:
                nearest_sq = dist_sq
                nearest = j
        if nearest < 0:
            continue
        if nearest_sq > hard_sq:
            logger.warning("connect_rejected", distance=math.sqrt(nearest_sq))
            continue
        if nearest_sq > warn_sq:
            logger.warning("connect_distance", distance=math.sqrt(nearest_sq))
        other = dangling[nearest]
        # n has an outgoing segment and needs an incoming one
        joins.append((other, n) if degrees[n] > 0 else (n, other))
        paired[i] = paired[nearest] = True

    segments.extend(joins)
    return True


def chain_segments(
    segments: Sequence[Segment],
    progress: Optional[Progress] = None,
) -> List[List[int]]:
    """
    Chain segments end-to-start into sequences of segment indices.

    A sequence is closed as soon as its end meets its start; when no
    continuation exists the open sequence is emitted and a new one starts
    from the next unused segment. Every segment is used exactly once.

    Raises:
        SlicingCancelled: If the progress token was stopped.
    """
    by_start: Dict[int, List[int]] = defaultdict(list)
    for index, (start, _) in enumerate(segments):
        by_start[start].append(index)

    used = [False] * len(segments)
    sequences: List[List[int]] = []
    sequence: List[int] = []
    next_free = 0
    for _ in range(len(segments)):
        if progress is not None and not progress.check():
            raise SlicingCancelled("Segment chaining cancelled")
        following = -1
        if sequence:
            candidates = by_start.get(segments[sequence[-1]][1], [])
            while candidates and used[candidates[0]]:
                candidates.pop(0)
            if candidates:
                following = candidates.pop(0)
            else:
                sequences.append(sequence)
                sequence = []
        if following < 0:
            while used[next_free]:
                next_free += 1
            following = next_free
        used[following] = True
        sequence.append(following)
        if segments[sequence[0]][0] == segments[sequence[-1]][1]:
            sequences.append(sequence)
            sequence = []
    if sequence:
        sequences.append(sequence)
    return sequences


def _support_polygon(triangle: Triangle, z: float) -> Optional[Poly]:
    """Convex XY outline of the part of a world-space triangle above ``z``."""
    cuts = triangle.cut_with_plane(z)
    verts = triangle.vertices
    if cuts:
        points = [v[:2] for v in verts if v[2] >= z] + cuts
    else:
        points = [v[:2] for v in verts]
    points = np.array(points)
    center = points.mean(axis=0)
    angles = np.arctan2(points[:, 1] - center[1], points[:, 0] - center[0])
    poly = Poly(points[np.argsort(angles)], z)
    if abs(poly.area) < 1e-12:
        return None
    return poly


def extract_cross_section(
    shape: Shape,
    z: float,
    config: SliceConfig,
    support_angle: Optional[float] = None,
    thickness: float = 0.0,
    plane_transform: Optional[Transform3D] = None,
    progress: Optional[Progress] = None,
) -> CrossSection:
    """
    Closed cross-section polygons of ``shape`` at height ``z``.

    Args:
        shape: Mesh to cut.
        z: Cut height in world coordinates.
        config: Slicing configuration (tolerances and distance budgets).
        support_angle: Overhang angle in radians for support candidates.
        thickness: Layer thickness; uncut steep triangles within
            ``[z - thickness, z]`` become support candidates too.
        plane_transform: Extra transform applied after the shape's own.
        progress: Optional progress/cancellation token.

    Returns:
        CrossSection with solid (CCW) and hole (CW) polygons.

    Raises:
        ReconstructionError: If the cut segments cannot be closed into loops
        SlicingCancelled: If the progress token was stopped
    """
    cut = cut_segments(
        shape, z, config.vertex_merge_sq, support_angle, thickness,
        plane_transform, progress,
    )
    segments = cleanup_shared_segments(cut.segments)
    if not cleanup_connect_segments(
        cut.vertices, segments,
        config.connect_warn_distance, config.connect_hard_distance,
    ):
        raise ReconstructionError(
            "Odd number of dangling vertices in cross-section",
            z=z,
            details={"shape": shape.name, "segments": len(segments)},
        )

    polygons: List[Poly] = []
    for sequence in chain_segments(segments, progress):
        points = [cut.vertices[segments[i][0]] for i in sequence]
        last_end = segments[sequence[-1]][1]
        if last_end != segments[sequence[0]][0]:
            points.append(cut.vertices[last_end])
            logger.debug("open_chain", z=z, segments=len(sequence))
        if len(points) >= 3:
            polygons.append(Poly(np.array(points), z))

    support_polygons = []
    for triangle in cut.support_triangles:
        poly = _support_polygon(triangle, z)
        if poly is not None:
            support_polygons.append(poly)

    return CrossSection(z, polygons, support_polygons, cut.max_gradient)


def support_polygons_at(
    shape: Shape,
    z: float,
    support_angle: float,
    thickness: float = 0.0,
    plane_transform: Optional[Transform3D] = None,
) -> List[Poly]:
    """Support candidate polygons at ``z`` without reconstructing the outline."""
    cut = cut_segments(
        shape, z, support_angle=support_angle, thickness=thickness,
        plane_transform=plane_transform,
    )
    polys = []
    for triangle in cut.support_triangles:
        poly = _support_polygon(triangle, z)
        if poly is not None:
            polys.append(poly)
    return polys
