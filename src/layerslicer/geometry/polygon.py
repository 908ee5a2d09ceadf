"""
2D polygon types for cross-sections and layer regions.

A ``Poly`` is a cyclic sequence of XY vertices tagged with the Z height of
the layer it belongs to. Orientation encodes solid versus hole: a positive
signed area (counter-clockwise) is solid, a negative one is a hole. Open
polys (``closed=False``) are fill lines and have no area.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import ConvexHull, QhullError
from shapely.geometry import LinearRing, LineString, Point, Polygon

Point2D = Tuple[float, float]


@dataclass
class Poly:
    """Polygon (or polyline when ``closed`` is False) at height ``z``."""

    vertices: np.ndarray
    z: float = 0.0
    closed: bool = True
    extrusion_factor: float = 1.0

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=float).reshape(-1, 2)

    def __len__(self) -> int:
        return len(self.vertices)

    def __getitem__(self, index: int) -> np.ndarray:
        return self.vertices[index % len(self.vertices)]

    @property
    def area(self) -> float:
        """Signed area (positive = CCW = solid)."""
        if not self.closed or len(self.vertices) < 3:
            return 0.0
        x = self.vertices[:, 0]
        y = self.vertices[:, 1]
        return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))

    @property
    def is_hole(self) -> bool:
        return self.area < 0

    @property
    def center(self) -> np.ndarray:
        """Area centroid, or the vertex mean for degenerate polygons."""
        if len(self.vertices) == 0:
            return np.zeros(2)
        area = self.area
        if abs(area) < 1e-12:
            return self.vertices.mean(axis=0)
        x = self.vertices[:, 0]
        y = self.vertices[:, 1]
        xn = np.roll(x, -1)
        yn = np.roll(y, -1)
        cross = x * yn - xn * y
        cx = np.sum((x + xn) * cross) / (6.0 * area)
        cy = np.sum((y + yn) * cross) / (6.0 * area)
        return np.array([cx, cy])

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y)."""
        mn = self.vertices.min(axis=0)
        mx = self.vertices.max(axis=0)
        return (float(mn[0]), float(mn[1]), float(mx[0]), float(mx[1]))

    def edges(self) -> Iterable[Tuple[np.ndarray, np.ndarray]]:
        """Consecutive vertex pairs; closed polys include the closing edge."""
        n = len(self.vertices)
        count = n if self.closed else n - 1
        for i in range(max(0, count)):
            yield self.vertices[i], self.vertices[(i + 1) % n]

    def length(self) -> float:
        return float(sum(np.linalg.norm(b - a) for a, b in self.edges()))

    def with_z(self, z: float) -> "Poly":
        return Poly(self.vertices.copy(), z, self.closed, self.extrusion_factor)

    def reversed(self) -> "Poly":
        return Poly(self.vertices[::-1].copy(), self.z, self.closed, self.extrusion_factor)

    def rotated(self, center: Sequence[float], angle: float) -> "Poly":
        """Rotate counter-clockwise by ``angle`` radians about ``center``."""
        c, s = math.cos(angle), math.sin(angle)
        rot = np.array([[c, -s], [s, c]])
        origin = np.asarray(center, dtype=float)
        verts = (self.vertices - origin) @ rot.T + origin
        return Poly(verts, self.z, self.closed, self.extrusion_factor)

    def cleanup(self, epsilon: float) -> Optional["Poly"]:
        """
        Drop vertices that deviate less than ``epsilon`` from the outline.

        Returns None when the polygon degenerates (fewer than three
        vertices or an area below ``epsilon**2``).
        """
        if not self.closed:
            return self if len(self.vertices) >= 2 else None
        if len(self.vertices) < 3:
            return None
        ring = np.vstack([self.vertices, self.vertices[:1]])
        simplified = LineString(ring).simplify(epsilon, preserve_topology=False)
        coords = list(simplified.coords)
        if len(coords) > 1 and coords[0] == coords[-1]:
            coords = coords[:-1]
        if len(coords) < 3:
            return None
        poly = Poly(np.array(coords), self.z, True, self.extrusion_factor)
        if abs(poly.area) < epsilon * epsilon:
            return None
        if (poly.area < 0) != (self.area < 0):
            return None
        return poly

    def contains(self, point: Sequence[float]) -> bool:
        """Whether ``point`` lies strictly inside the ring, regardless of orientation."""
        if not self.closed or len(self.vertices) < 3:
            return False
        return bool(Polygon(self.vertices).contains(Point(float(point[0]), float(point[1]))))

    def to_shapely(self):
        if self.closed:
            return LinearRing(self.vertices)
        return LineString(self.vertices)

    def to_path(self) -> List[Point2D]:
        return [(float(x), float(y)) for x, y in self.vertices]


@dataclass
class RegionWithHoles:
    """One outer polygon and the holes inside it."""

    outer: Poly
    holes: List[Poly] = field(default_factory=list)

    @property
    def area(self) -> float:
        return abs(self.outer.area) - sum(abs(h.area) for h in self.holes)

    def polys(self) -> List[Poly]:
        return [self.outer, *self.holes]

    def with_z(self, z: float) -> "RegionWithHoles":
        return RegionWithHoles(self.outer.with_z(z), [h.with_z(z) for h in self.holes])


def cleanup_polys(polys: Iterable[Poly], epsilon: float) -> List[Poly]:
    """Clean every poly and discard the ones that degenerate."""
    cleaned = []
    for poly in polys:
        result = poly.cleanup(epsilon)
        if result is not None:
            cleaned.append(result)
    return cleaned


def set_z(polys: Iterable[Poly], z: float) -> List[Poly]:
    return [p.with_z(z) for p in polys]


def polys_bounds(polys: Sequence[Poly]) -> Optional[Tuple[float, float, float, float]]:
    """Combined (min_x, min_y, max_x, max_y) or None if there are no vertices."""
    arrays = [p.vertices for p in polys if len(p.vertices)]
    if not arrays:
        return None
    pts = np.vstack(arrays)
    mn = pts.min(axis=0)
    mx = pts.max(axis=0)
    return (float(mn[0]), float(mn[1]), float(mx[0]), float(mx[1]))


def convex_hull_2d(polys: Sequence[Poly], z: float = 0.0) -> Optional[Poly]:
    """
    Convex hull of all vertices of ``polys`` as a CCW polygon.

    Uses scipy's Qhull wrapper; collinear or too few points give None.
    """
    arrays = [p.vertices for p in polys if len(p.vertices)]
    if not arrays:
        return None
    points = np.unique(np.vstack(arrays), axis=0)
    if len(points) < 3:
        return None
    try:
        hull = ConvexHull(points)
    except QhullError:
        return None
    # Qhull returns 2-D hull vertices in counter-clockwise order
    return Poly(points[hull.vertices], z)
