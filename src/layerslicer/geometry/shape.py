"""
Triangle mesh with a placement transform.

Triangles are stored in the mesh's own coordinates; the transform is
applied whenever world coordinates are needed (bounding box, slicing), so
placing a shape never rewrites its vertex data. Triangle data is replaced
or appended as a whole, never edited per vertex.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

import numpy as np
import trimesh

from layerslicer.core.exceptions import GeometryError
from layerslicer.core.logging import get_logger
from layerslicer.geometry.transform import Transform3D
from layerslicer.geometry.triangle import Triangle

logger = get_logger(__name__)

# Decimals kept when merging shared vertices for normal repair
_REPAIR_DIGITS = 4
_MAX_REPAIR_PASSES = 10


def _edge_direction(faces: np.ndarray, edges: np.ndarray) -> np.ndarray:
    """+1 where a face runs along its edge ``(u, v)`` from u to v, else -1."""
    following = np.roll(faces, -1, axis=1)
    forward = np.any((faces == edges[:, :1]) & (following == edges[:, 1:]), axis=1)
    return np.where(forward, 1, -1)


class Shape:
    """
    An ordered set of triangles plus a mutable placement transform.

    Example:
        >>> import trimesh
        >>> shape = Shape.from_trimesh(trimesh.creation.box((10, 10, 10)))
        >>> shape.place_on_platform()
        >>> shape.max[2]
        10.0
    """

    def __init__(
        self,
        triangles: Optional[Iterable[Triangle]] = None,
        transform: Optional[Transform3D] = None,
        name: str = "",
    ) -> None:
        self.name = name
        self.transform = transform if transform is not None else Transform3D()
        self._triangles: List[Triangle] = []
        self._vertices: Optional[np.ndarray] = None
        self._normals: Optional[np.ndarray] = None
        if triangles is not None:
            self.set_triangles(triangles)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_arrays(
        cls,
        vertices: np.ndarray,
        normals: Optional[np.ndarray] = None,
        name: str = "",
    ) -> "Shape":
        """
        Build a shape from an (N, 3, 3) vertex array and optional (N, 3) normals.

        Raises:
            GeometryError: If the arrays have the wrong shape
        """
        vertices = np.asarray(vertices, dtype=float)
        if vertices.ndim != 3 or vertices.shape[1:] != (3, 3):
            raise GeometryError(
                "Triangle vertices must have shape (N, 3, 3)",
                details={"shape": list(vertices.shape)},
            )
        if normals is not None:
            normals = np.asarray(normals, dtype=float)
            if normals.shape != (len(vertices), 3):
                raise GeometryError(
                    "Triangle normals must have shape (N, 3)",
                    details={"shape": list(normals.shape)},
                )
        triangles = [
            Triangle(v[0], v[1], v[2], None if normals is None else normals[i])
            for i, v in enumerate(vertices)
        ]
        return cls(triangles, name=name)

    @classmethod
    def from_trimesh(cls, mesh, name: str = "") -> "Shape":
        """Adapter from a ``trimesh.Trimesh``; the core itself never reads files."""
        return cls.from_arrays(
            np.asarray(mesh.triangles), np.asarray(mesh.face_normals), name=name,
        )

    def set_triangles(self, triangles: Iterable[Triangle]) -> None:
        """Replace all triangles; a negative enclosed volume inverts every normal."""
        self._triangles = list(triangles)
        self._invalidate()
        if self.volume() < 0:
            logger.info("shape_normals_inverted", shape=self.name, triangles=len(self))
            self.invert_normals()

    def add_triangles(self, triangles: Iterable[Triangle]) -> None:
        self._triangles.extend(triangles)
        self._invalidate()

    def copy(self) -> "Shape":
        shape = Shape(transform=self.transform.copy(), name=self.name)
        shape._triangles = list(self._triangles)
        return shape

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def triangles(self) -> Sequence[Triangle]:
        return tuple(self._triangles)

    def __len__(self) -> int:
        return len(self._triangles)

    def _invalidate(self) -> None:
        self._vertices = None
        self._normals = None

    def vertex_array(self) -> np.ndarray:
        """(N, 3, 3) triangle vertices in mesh coordinates."""
        if self._vertices is None:
            if self._triangles:
                self._vertices = np.stack([t.vertices for t in self._triangles])
            else:
                self._vertices = np.zeros((0, 3, 3))
        return self._vertices

    def normal_array(self) -> np.ndarray:
        """(N, 3) triangle normals in mesh coordinates."""
        if self._normals is None:
            if self._triangles:
                self._normals = np.stack([t.normal for t in self._triangles])
            else:
                self._normals = np.zeros((0, 3))
        return self._normals

    def _world_transform(self, extra: Optional[Transform3D]) -> Transform3D:
        return extra @ self.transform if extra is not None else self.transform

    def world_vertices(self, extra: Optional[Transform3D] = None) -> np.ndarray:
        """Vertices after the shape transform and an optional extra transform."""
        return self._world_transform(extra).apply(self.vertex_array())

    def world_normals(self, extra: Optional[Transform3D] = None) -> np.ndarray:
        return self._world_transform(extra).apply_normals(self.normal_array())

    def world_triangles(self, extra: Optional[Transform3D] = None) -> List[Triangle]:
        transform = self._world_transform(extra)
        return [t.transformed(transform) for t in self._triangles]

    # ------------------------------------------------------------------
    # Bounding box
    # ------------------------------------------------------------------

    @property
    def min(self) -> np.ndarray:
        if not self._triangles:
            return np.zeros(3)
        return self.world_vertices().reshape(-1, 3).min(axis=0)

    @property
    def max(self) -> np.ndarray:
        if not self._triangles:
            return np.zeros(3)
        return self.world_vertices().reshape(-1, 3).max(axis=0)

    @property
    def center(self) -> np.ndarray:
        return (self.min + self.max) / 2.0

    # ------------------------------------------------------------------
    # Normals and volume
    # ------------------------------------------------------------------

    def volume(self) -> float:
        """Enclosed volume, negative when the normals point inwards."""
        verts = self.vertex_array()
        if len(verts) == 0:
            return 0.0
        ab = verts[:, 1] - verts[:, 0]
        ac = verts[:, 2] - verts[:, 0]
        projected = 0.5 * np.abs(ab[:, 0] * ac[:, 1] - ab[:, 1] * ac[:, 0])
        mean_z = verts[:, :, 2].mean(axis=1)
        return float(np.sum(projected * mean_z * np.sign(self.normal_array()[:, 2])))

    def invert_normals(self) -> None:
        self._triangles = [t.inverted() for t in self._triangles]
        self._invalidate()

    def repair_normals(self) -> int:
        """
        Make triangle windings consistent across shared edges.

        A triangle whose winding disagrees with the majority of its edge
        neighbours is flipped (winding and normal). Passes repeat until no
        triangle changes. A mesh left inside-out afterwards is inverted as
        a whole.

        Returns:
            Number of triangles flipped.
        """
        verts = self.vertex_array()
        if len(verts) == 0:
            return 0

        mesh = trimesh.Trimesh(
            vertices=verts.reshape(-1, 3),
            faces=np.arange(len(verts) * 3).reshape(-1, 3),
            process=False,
        )
        mesh.merge_vertices(digits_vertex=_REPAIR_DIGITS)
        faces = mesh.faces
        pairs = mesh.face_adjacency
        shared = mesh.face_adjacency_edges
        sides = np.stack(
            [_edge_direction(faces[pairs[:, 0]], shared), _edge_direction(faces[pairs[:, 1]], shared)],
            axis=1,
        )

        # face -> [(pair, own side, neighbour, neighbour side)]
        neighbours: List[List[tuple]] = [[] for _ in range(len(faces))]
        for k, (a, b) in enumerate(pairs):
            neighbours[a].append((k, 0, b, 1))
            neighbours[b].append((k, 1, a, 0))

        flipped = np.zeros(len(faces), dtype=bool)

        def direction(t: int, k: int, side: int) -> int:
            return -sides[k, side] if flipped[t] else sides[k, side]

        for _ in range(_MAX_REPAIR_PASSES):
            changed = 0
            for t in range(len(faces)):
                agree = disagree = 0
                for k, own_side, other, other_side in neighbours[t]:
                    # consistent neighbours traverse a shared edge in opposite directions
                    if direction(t, k, own_side) == direction(other, k, other_side):
                        disagree += 1
                    else:
                        agree += 1
                if disagree > agree:
                    flipped[t] = not flipped[t]
                    changed += 1
            if not changed:
                break

        flips = int(np.count_nonzero(flipped))
        if flips:
            self._triangles = [
                t.inverted() if flipped[i] else t for i, t in enumerate(self._triangles)
            ]
            self._invalidate()
            logger.info("shape_normals_repaired", shape=self.name, flipped=flips)
        if self.volume() < 0:
            self.invert_normals()
        return flips

    def triangles_steeper_than(
        self, angle: float, extra: Optional[Transform3D] = None,
    ) -> List[Triangle]:
        """
        Downward-facing world triangles whose overhang is at least ``angle``.

        ``angle`` is in radians; a triangle qualifies when the elevation of
        its normal is at or below ``-angle``.
        """
        normals = self.world_normals(extra)
        if len(normals) == 0:
            return []
        slopes = np.arcsin(np.clip(normals[:, 2], -1.0, 1.0))
        picked = np.nonzero(-slopes >= angle)[0]
        transform = self._world_transform(extra)
        return [self._triangles[i].transformed(transform) for i in picked]

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def place_on_platform(self) -> None:
        """Move the shape so its lowest point sits at Z = 0."""
        if self._triangles:
            self.transform.move((0.0, 0.0, -float(self.min[2])))

    def move(self, vector: Sequence[float]) -> None:
        self.transform.move(vector)

    def move_to(self, point: Sequence[float]) -> None:
        self.transform.move_to(point)

    def scale(self, factor: float) -> None:
        """Scale uniformly about the bounding box centre."""
        self.transform.scale(factor, self.center)

    def rotate(self, axis: Sequence[float], angle: float) -> None:
        """Rotate about the bounding box centre (radians)."""
        self.transform.rotate(self.center, axis, angle)

    def rotate_degrees(self, axis: Sequence[float], degrees: float) -> None:
        self.rotate(axis, math.radians(degrees))

    def __repr__(self) -> str:
        return f"Shape(name={self.name!r}, triangles={len(self)})"
