"""
Mesh triangle with the plane and slope queries the slicer needs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from layerslicer.geometry.transform import Transform3D

_EDGES = ((0, 1), (1, 2), (2, 0))


@dataclass
class Triangle:
    """
    Three 3D vertices plus the outward normal.

    When no normal is given it is derived from the winding (right-hand rule).
    """

    a: np.ndarray
    b: np.ndarray
    c: np.ndarray
    normal: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        self.a = np.asarray(self.a, dtype=float)
        self.b = np.asarray(self.b, dtype=float)
        self.c = np.asarray(self.c, dtype=float)
        if self.normal is None:
            self.normal = self.winding_normal()
        else:
            self.normal = np.asarray(self.normal, dtype=float)

    def __getitem__(self, index: int) -> np.ndarray:
        return (self.a, self.b, self.c)[index]

    @property
    def vertices(self) -> np.ndarray:
        return np.vstack([self.a, self.b, self.c])

    def winding_normal(self) -> np.ndarray:
        n = np.cross(self.b - self.a, self.c - self.a)
        length = np.linalg.norm(n)
        return n / length if length > 0 else np.zeros(3)

    def winding_agrees(self) -> bool:
        """True when the vertex order matches the stored normal."""
        return float(np.dot(np.cross(self.b - self.a, self.c - self.a), self.normal)) >= 0

    def area(self) -> float:
        return 0.5 * float(np.linalg.norm(np.cross(self.b - self.a, self.c - self.a)))

    def inverted(self) -> "Triangle":
        """Same triangle facing the other way."""
        return Triangle(self.a.copy(), self.c.copy(), self.b.copy(), -self.normal)

    def transformed(self, transform: Optional[Transform3D]) -> "Triangle":
        if transform is None:
            return self
        verts = transform.apply(self.vertices)
        normal = transform.apply_normals(self.normal)
        return Triangle(verts[0], verts[1], verts[2], normal)

    def cut_with_plane(
        self, z: float, transform: Optional[Transform3D] = None,
    ) -> List[np.ndarray]:
        """
        XY points where the horizontal plane at ``z`` crosses the edges.

        A vertex counts as above the plane when its Z is >= ``z``, so a
        vertex lying exactly on the plane is never counted twice by the
        two triangles sharing an edge. Returns zero or two points.
        """
        verts = transform.apply(self.vertices) if transform is not None else self.vertices
        above = verts[:, 2] >= z
        points = []
        for i, j in _EDGES:
            if above[i] != above[j]:
                vi, vj = verts[i], verts[j]
                t = (z - vi[2]) / (vj[2] - vi[2])
                points.append((vi + t * (vj - vi))[:2])
        return points

    def is_connected_to(self, other: "Triangle", sq_distance: float) -> bool:
        """True when any vertex pair of the two triangles lies within tolerance."""
        diff = self.vertices[:, None, :] - other.vertices[None, :, :]
        return bool(np.any(np.einsum("ijk,ijk->ij", diff, diff) < sq_distance))

    def projected_volume(self, transform: Optional[Transform3D] = None) -> float:
        """
        Signed volume between the triangle and the XY plane.

        Summed over a closed mesh this gives the enclosed volume; the sign
        comes from the normal, so inverted normals give a negative total.
        """
        tri = self.transformed(transform)
        ab = tri.b - tri.a
        ac = tri.c - tri.a
        projected_area = 0.5 * abs(ab[0] * ac[1] - ab[1] * ac[0])
        mean_z = (tri.a[2] + tri.b[2] + tri.c[2]) / 3.0
        return projected_area * mean_z * math.copysign(1.0, tri.normal[2]) if tri.normal[2] else 0.0

    def slope_angle(self, transform: Optional[Transform3D] = None) -> float:
        """Elevation of the normal above the XY plane in radians (-π/2 facing down)."""
        normal = transform.apply_normals(self.normal) if transform is not None else self.normal
        return math.asin(float(np.clip(normal[2], -1.0, 1.0)))

    def is_in_z_range(
        self, zmin: float, zmax: float, transform: Optional[Transform3D] = None,
    ) -> bool:
        verts = transform.apply(self.vertices) if transform is not None else self.vertices
        return bool(np.all((verts[:, 2] >= zmin) & (verts[:, 2] <= zmax)))
