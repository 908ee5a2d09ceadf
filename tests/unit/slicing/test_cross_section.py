"""
Unit tests for cross-section extraction.
"""

import math

import numpy as np
import pytest

from layerslicer.core.config import SliceConfig
from layerslicer.core.exceptions import ReconstructionError, SlicingCancelled
from layerslicer.core.progress import Progress
from layerslicer.geometry.shape import Shape
from layerslicer.geometry.transform import Transform3D
from layerslicer.slicing.cross_section import (
    chain_segments,
    cleanup_connect_segments,
    cleanup_shared_segments,
    cut_segments,
    extract_cross_section,
    pool_points,
    support_polygons_at,
    vertex_degrees,
)


def regular_polygon_area(sections, radius):
    return 0.5 * sections * radius ** 2 * math.sin(2.0 * math.pi / sections)


def fork_shape():
    """Two triangles whose cuts both start at the same point: three dangling ends."""
    s = math.sqrt(0.5)
    vertices = np.array([
        [(0, 0, 0), (0, 0, 10), (5, 5, 10)],
        [(0, 0, 0), (0, 0, 10), (5, -5, 10)],
    ], dtype=float)
    normals = np.array([(s, -s, 0.0), (-s, -s, 0.0)])
    return Shape.from_arrays(vertices, normals, name="fork")


@pytest.mark.unit
@pytest.mark.slicing
class TestExtractCrossSection:

    def test_cube_area(self, cube, config):
        section = extract_cross_section(cube, 5.0, config)
        assert len(section.polygons) == 1
        assert section.area == pytest.approx(100.0)
        assert section.polygons[0].z == 5.0

    def test_outer_loop_is_counter_clockwise(self, cube, config):
        section = extract_cross_section(cube, 2.5, config)
        assert not section.polygons[0].is_hole
        assert section.polygons[0].bounds == pytest.approx((-5.0, -5.0, 5.0, 5.0))

    def test_cylinder_area(self, cylinder, config):
        section = extract_cross_section(cylinder, 3.3, config)
        assert section.area == pytest.approx(regular_polygon_area(32, 5.0), rel=1e-6)

    def test_tube_has_hole(self, tube, config):
        section = extract_cross_section(tube, 5.0, config)
        assert len(section.polygons) == 2
        holes = [p for p in section.polygons if p.is_hole]
        assert len(holes) == 1
        expected = regular_polygon_area(32, 5.0) - regular_polygon_area(32, 2.0)
        assert section.area == pytest.approx(expected, rel=1e-6)

    def test_outside_mesh_is_empty(self, cube, config):
        section = extract_cross_section(cube, 20.0, config)
        assert section.polygons == []

    def test_plane_transform(self, cube, config):
        lift = Transform3D()
        lift.move((0, 0, 100))
        assert extract_cross_section(cube, 5.0, config, plane_transform=lift).polygons == []
        section = extract_cross_section(cube, 105.0, config, plane_transform=lift)
        assert section.area == pytest.approx(100.0)

    def test_odd_dangling_raises(self, config):
        with pytest.raises(ReconstructionError) as exc_info:
            extract_cross_section(fork_shape(), 5.0, config)
        assert exc_info.value.z == 5.0

    def test_cancelled(self, cube, config):
        progress = Progress(interval=1)
        progress.stop()
        with pytest.raises(SlicingCancelled):
            extract_cross_section(cube, 5.0, config, progress=progress)

    def test_leaves_stage_progress_alone(self, cube, config):
        calls = []
        progress = Progress(lambda label, fraction: calls.append((label, fraction)), interval=1)
        progress.start("Slicing", 3)
        extract_cross_section(cube, 5.0, config, progress=progress)
        assert calls == [("Slicing", 0.0)]

    def test_max_gradient_of_vertical_walls(self, cube, config):
        assert extract_cross_section(cube, 5.0, config).max_gradient == pytest.approx(0.0)


@pytest.mark.unit
@pytest.mark.slicing
class TestCutSegments:

    def test_cube_segments_share_vertices(self, cube):
        cut = cut_segments(cube, 5.0)
        # two triangles per side wall, cut points on the diagonals are shared
        assert len(cut.segments) == 8
        assert len(cut.vertices) == 8
        degrees = vertex_degrees(len(cut.vertices), cut.segments)
        assert not degrees.any()

    def test_pool_points_merges_within_tolerance(self):
        points = np.array([(0.0, 0.0), (0.005, 0.0), (1.0, 1.0), (0.0, 0.005)])
        pooled, ids = pool_points(points, 1e-4)
        assert len(pooled) == 2
        assert ids.tolist() == [0, 0, 1, 0]
        assert pooled[0].tolist() == [0.0, 0.0]

    def test_pool_points_joins_earliest_vertex(self):
        # the middle point is within tolerance of both ends, the ends are not
        points = np.array([(0.0, 0.0), (0.008, 0.0), (0.016, 0.0)])
        pooled, ids = pool_points(points, 1e-4)
        assert ids.tolist() == [0, 0, 1]
        assert len(pooled) == 2

    def test_pool_points_empty(self):
        pooled, ids = pool_points(np.zeros((0, 2, 2)), 1e-4)
        assert pooled.shape == (0, 2)
        assert len(ids) == 0

    def test_support_candidates(self, cube):
        cut = cut_segments(cube, 0.5, support_angle=math.radians(45), thickness=0.3)
        assert cut.support_triangles == []
        # bottom faces sit in [z - thickness, z]
        cut = cut_segments(cube, 0.2, support_angle=math.radians(45), thickness=0.3)
        assert len(cut.support_triangles) == 2

    def test_support_polygons_at(self, cube):
        polys = support_polygons_at(cube, 0.2, math.radians(45), thickness=0.3)
        assert len(polys) == 2
        assert sum(abs(p.area) for p in polys) == pytest.approx(100.0)


@pytest.mark.unit
@pytest.mark.slicing
class TestSegmentCleanup:

    def test_shared_segments(self):
        segments = [(0, 1), (0, 1), (1, 2), (2, 1), (2, 0)]
        assert cleanup_shared_segments(segments) == [(0, 1), (2, 0)]

    def test_connect_closes_gap(self):
        vertices = np.array([(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)])
        segments = [(0, 1), (1, 2), (2, 3)]
        assert cleanup_connect_segments(vertices, segments)
        assert segments[-1] == (3, 0)
        assert not vertex_degrees(4, segments).any()

    def test_connect_two_gaps(self):
        vertices = np.array([(0.0, 0.9), (1.0, 0.0), (1.1, 0.0), (2.0, 0.0),
                             (2.0, 1.0), (0.0, 1.0)])
        segments = [(0, 1), (2, 3), (3, 4), (4, 5)]
        assert cleanup_connect_segments(vertices, segments)
        assert set(segments[4:]) == {(1, 2), (5, 0)}
        assert not vertex_degrees(6, segments).any()

    def test_connect_far_pair_warns_but_joins(self):
        vertices = np.array([(0.0, 0.0), (3.0, 0.0)])
        segments = [(0, 1)]
        assert cleanup_connect_segments(vertices, segments, warn_distance=1.0, hard_distance=10.0)
        assert segments == [(0, 1), (1, 0)]

    def test_connect_beyond_hard_distance_stays_open(self):
        vertices = np.array([(0.0, 0.0), (20.0, 0.0)])
        segments = [(0, 1)]
        assert cleanup_connect_segments(vertices, segments, hard_distance=10.0)
        assert segments == [(0, 1)]

    def test_connect_odd_reports_failure(self):
        vertices = np.array([(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)])
        segments = [(0, 1), (0, 2)]
        assert not cleanup_connect_segments(vertices, segments)
        assert segments == [(0, 1), (0, 2)]
        # retrying is safe
        assert not cleanup_connect_segments(vertices, segments)


@pytest.mark.unit
@pytest.mark.slicing
class TestChainSegments:

    def test_two_loops(self):
        segments = [(0, 1), (1, 2), (2, 0), (3, 4), (4, 5), (5, 3)]
        assert chain_segments(segments) == [[0, 1, 2], [3, 4, 5]]

    def test_unordered_loop(self):
        segments = [(2, 0), (1, 2), (0, 1)]
        assert chain_segments(segments) == [[0, 2, 1]]

    def test_open_chain_is_emitted(self):
        segments = [(0, 1), (1, 2), (5, 6)]
        assert chain_segments(segments) == [[0, 1], [2]]

    def test_every_segment_used_once(self):
        segments = [(0, 1), (1, 0), (2, 3), (3, 2), (4, 5)]
        sequences = chain_segments(segments)
        used = sorted(i for sequence in sequences for i in sequence)
        assert used == list(range(len(segments)))

    def test_empty(self):
        assert chain_segments([]) == []

    def test_cancelled(self):
        progress = Progress(interval=1)
        progress.stop()
        with pytest.raises(SlicingCancelled):
            chain_segments([(0, 1), (1, 0)], progress)
