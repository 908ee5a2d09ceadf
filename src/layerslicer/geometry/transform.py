"""
Affine placement of a shape on the build platform.

The transform is kept separate from the stored triangle data and applied at
slice time, so moving, scaling or rotating a shape never rewrites vertices.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
from trimesh import transformations as tf


class Transform3D:
    """Mutable 4x4 homogeneous transform."""

    def __init__(self, matrix: Optional[np.ndarray] = None) -> None:
        if matrix is None:
            self.matrix = np.eye(4)
        else:
            self.matrix = np.array(matrix, dtype=float).reshape(4, 4)

    def copy(self) -> "Transform3D":
        return Transform3D(self.matrix.copy())

    def __matmul__(self, other: "Transform3D") -> "Transform3D":
        return Transform3D(self.matrix @ other.matrix)

    @property
    def translation(self) -> np.ndarray:
        return self.matrix[:3, 3].copy()

    @property
    def linear(self) -> np.ndarray:
        return self.matrix[:3, :3].copy()

    def inverse(self) -> "Transform3D":
        return Transform3D(np.linalg.inv(self.matrix))

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Transform an (..., 3) array of points."""
        points = np.asarray(points, dtype=float)
        return points @ self.matrix[:3, :3].T + self.matrix[:3, 3]

    def apply_normals(self, normals: np.ndarray) -> np.ndarray:
        """Transform (..., 3) normals with the inverse transpose, renormalised."""
        normals = np.asarray(normals, dtype=float)
        normal_matrix = np.linalg.inv(self.matrix[:3, :3]).T
        out = normals @ normal_matrix.T
        length = np.linalg.norm(out, axis=-1, keepdims=True)
        return np.divide(out, length, out=np.zeros_like(out), where=length > 0)

    def move(self, vector: Sequence[float]) -> None:
        self.matrix = tf.translation_matrix(np.asarray(vector, dtype=float)) @ self.matrix

    def move_to(self, point: Sequence[float]) -> None:
        self.matrix[:3, 3] = np.asarray(point, dtype=float)

    def scale(self, factor: float, center: Sequence[float] = (0.0, 0.0, 0.0)) -> None:
        """Uniform scale about ``center``."""
        self.matrix = tf.scale_matrix(factor, origin=np.asarray(center, dtype=float)) @ self.matrix

    def scale_axis(self, factor: float, axis: int, center: Sequence[float] = (0.0, 0.0, 0.0)) -> None:
        """Scale along one coordinate axis (0, 1, 2) about ``center``."""
        direction = np.zeros(3)
        direction[axis] = 1.0
        self.matrix = tf.scale_matrix(
            factor, origin=np.asarray(center, dtype=float), direction=direction
        ) @ self.matrix

    def rotate(self, center: Sequence[float], axis: Sequence[float], angle: float) -> None:
        """Rotate by ``angle`` radians about ``axis`` through ``center``."""
        self.matrix = tf.rotation_matrix(
            angle, np.asarray(axis, dtype=float), point=np.asarray(center, dtype=float)
        ) @ self.matrix

    def __repr__(self) -> str:
        return f"Transform3D(translation={self.translation.tolist()})"
