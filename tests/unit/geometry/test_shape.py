"""
Unit tests for Shape.
"""

import math

import numpy as np
import pytest
import trimesh

from layerslicer.core.exceptions import GeometryError
from layerslicer.geometry.shape import Shape
from layerslicer.geometry.triangle import Triangle


def box_shape(extents=(10.0, 10.0, 10.0), name="box"):
    return Shape.from_trimesh(trimesh.creation.box(extents=extents), name=name)


@pytest.mark.unit
class TestShapeConstruction:

    def test_from_trimesh(self):
        shape = box_shape()
        assert len(shape) == 12
        assert shape.name == "box"
        assert shape.volume() == pytest.approx(1000.0)

    def test_from_arrays_rejects_bad_shape(self):
        with pytest.raises(GeometryError):
            Shape.from_arrays(np.zeros((4, 3)))

    def test_from_arrays_rejects_bad_normals(self):
        with pytest.raises(GeometryError):
            Shape.from_arrays(np.zeros((2, 3, 3)), normals=np.zeros((3, 3)))

    def test_inside_out_mesh_is_inverted(self):
        mesh = trimesh.creation.box(extents=(2.0, 2.0, 2.0))
        mesh.invert()
        shape = Shape.from_trimesh(mesh)
        assert shape.volume() == pytest.approx(8.0)

    def test_triangles_are_read_only_view(self):
        shape = box_shape()
        assert isinstance(shape.triangles, tuple)

    def test_copy_has_independent_transform(self):
        shape = box_shape()
        clone = shape.copy()
        clone.move((5, 0, 0))
        assert shape.min[0] == pytest.approx(-5.0)
        assert clone.min[0] == pytest.approx(0.0)
        assert len(clone) == len(shape)


@pytest.mark.unit
class TestShapePlacement:

    def test_bounding_box(self):
        shape = box_shape((2.0, 4.0, 6.0))
        assert np.allclose(shape.min, [-1, -2, -3])
        assert np.allclose(shape.max, [1, 2, 3])
        assert np.allclose(shape.center, [0, 0, 0])

    def test_place_on_platform(self):
        shape = box_shape()
        shape.place_on_platform()
        assert shape.min[2] == pytest.approx(0.0)
        assert shape.max[2] == pytest.approx(10.0)

    def test_transform_never_touches_vertices(self):
        shape = box_shape()
        before = shape.vertex_array().copy()
        shape.move((1, 2, 3))
        shape.rotate_degrees((0, 0, 1), 30)
        assert np.allclose(shape.vertex_array(), before)

    def test_scale_about_center(self):
        shape = box_shape()
        shape.move((10, 0, 0))
        shape.scale(0.5)
        assert np.allclose(shape.min, [7.5, -2.5, -2.5])
        assert np.allclose(shape.max, [12.5, 2.5, 2.5])

    def test_rotate_swaps_extents(self):
        shape = box_shape((2.0, 4.0, 6.0))
        shape.rotate((0, 0, 1), math.pi / 2)
        assert np.allclose(shape.max - shape.min, [4, 2, 6])

    def test_world_normals_follow_rotation(self):
        shape = box_shape()
        shape.rotate((1, 0, 0), math.pi)
        assert shape.volume() > 0
        world = shape.world_normals()
        assert np.allclose(np.linalg.norm(world, axis=1), 1.0)


@pytest.mark.unit
class TestShapeNormals:

    def test_invert_normals(self):
        shape = box_shape()
        shape.invert_normals()
        assert shape.volume() == pytest.approx(-1000.0)

    def test_repair_flips_single_bad_triangle(self):
        mesh = trimesh.creation.box(extents=(4.0, 4.0, 4.0))
        good = Shape.from_trimesh(mesh)
        triangles = list(good.triangles)
        triangles[3] = triangles[3].inverted()
        broken = Shape(triangles)

        assert broken.repair_normals() == 1
        assert np.allclose(broken.normal_array(), good.normal_array())
        assert broken.volume() == pytest.approx(64.0)

    def test_repair_consistent_mesh_is_noop(self):
        shape = box_shape()
        assert shape.repair_normals() == 0

    def test_repair_turns_inside_out_mesh(self):
        shape = box_shape()
        shape.invert_normals()
        assert shape.repair_normals() == 0
        assert shape.volume() == pytest.approx(1000.0)

    def test_repair_welds_nearly_shared_vertices(self):
        mesh = trimesh.creation.box(extents=(4.0, 4.0, 4.0))
        triangles = list(Shape.from_trimesh(mesh).triangles)
        nudged = triangles[5].vertices.copy()
        nudged[0] += 1e-6
        triangles[5] = Triangle(*nudged).inverted()
        broken = Shape(triangles)
        assert broken.repair_normals() == 1
        assert broken.volume() == pytest.approx(64.0, rel=1e-4)

    def test_triangles_steeper_than(self):
        shape = box_shape()
        steep = shape.triangles_steeper_than(math.radians(60))
        # only the two bottom triangles face straight down
        assert len(steep) == 2
        assert all(t.normal[2] == pytest.approx(-1.0) for t in steep)
