"""
Unit tests for mesh component splitting.
"""

import numpy as np
import pytest
import trimesh

from layerslicer.core.exceptions import SlicingCancelled
from layerslicer.core.progress import Progress
from layerslicer.geometry.components import (
    has_adjacent_triangle_to,
    split_shape,
    triangle_adjacency,
)
from layerslicer.geometry.shape import Shape
from layerslicer.geometry.triangle import Triangle


def two_boxes(gap=20.0):
    box = trimesh.creation.box(extents=(10.0, 10.0, 10.0))
    triangles = np.concatenate([box.triangles, box.triangles + [gap, 0.0, 0.0]])
    normals = np.concatenate([box.face_normals, box.face_normals])
    return Shape.from_arrays(triangles, normals, name="plate")


@pytest.mark.unit
class TestTriangleAdjacency:

    def test_box_is_fully_connected_through_vertices(self):
        shape = Shape.from_trimesh(trimesh.creation.box())
        adjacency = triangle_adjacency(shape)
        assert len(adjacency) == 12
        assert all(len(neighbours) >= 3 for neighbours in adjacency)
        assert all(i not in neighbours for i, neighbours in enumerate(adjacency))

    def test_adjacency_is_symmetric(self):
        adjacency = triangle_adjacency(two_boxes())
        for i, neighbours in enumerate(adjacency):
            for j in neighbours:
                assert i in adjacency[j]

    def test_empty_shape(self):
        assert triangle_adjacency(Shape()) == []

    def test_cancelled(self):
        progress = Progress(interval=1)
        progress.stop()
        with pytest.raises(SlicingCancelled):
            triangle_adjacency(two_boxes(), progress=progress)


@pytest.mark.unit
class TestSplitShape:

    def test_two_disjoint_boxes(self):
        shape = two_boxes()
        parts = split_shape(shape)
        assert len(parts) == 2
        assert [len(p) for p in parts] == [12, 12]
        assert [p.name for p in parts] == ["plate_0", "plate_1"]
        assert parts[0].max[0] == pytest.approx(5.0)
        assert parts[1].min[0] == pytest.approx(15.0)

    def test_touching_boxes_stay_together(self):
        parts = split_shape(two_boxes(gap=10.0))
        assert len(parts) == 1

    def test_components_copy_transform(self):
        shape = two_boxes()
        shape.move((0, 0, 5))
        parts = split_shape(shape)
        assert all(p.min[2] == pytest.approx(0.0) for p in parts)
        parts[0].move((1, 0, 0))
        assert shape.min[0] == pytest.approx(-5.0)

    def test_unnamed_shape(self):
        box = trimesh.creation.box()
        parts = split_shape(Shape.from_trimesh(box))
        assert parts[0].name == "part_0"

    def test_cancelled_returns_input(self):
        shape = two_boxes()
        progress = Progress(interval=1)
        progress.stop()
        assert split_shape(shape, progress=progress) == [shape]


@pytest.mark.unit
def test_has_adjacent_triangle_to():
    shape = Shape.from_trimesh(trimesh.creation.box(extents=(2.0, 2.0, 2.0)))
    touching = Triangle((1, 1, 1), (3, 1, 1), (3, 3, 1))
    apart = Triangle((5, 5, 5), (6, 5, 5), (6, 6, 5))
    assert has_adjacent_triangle_to(shape, touching, 1e-4)
    assert not has_adjacent_triangle_to(shape, apart, 1e-4)
