"""
Unit tests for the slicing session.
"""

import math

import pytest
import trimesh

from layerslicer.core.config import SliceConfig
from layerslicer.core.progress import Progress
from layerslicer.geometry.shape import Shape
from layerslicer.slicing.infill import InfillType
from layerslicer.slicing.slicer import Slicer


@pytest.mark.unit
@pytest.mark.slicing
class TestLayerHeights:

    def test_first_layer_offset(self, cube):
        heights = Slicer(SliceConfig(layer_height=0.3, first_layer_height=0.7)).layer_heights([cube])
        assert heights[0] == pytest.approx(0.21)
        assert len(heights) == 33
        assert heights[-1] == pytest.approx(9.81)

    def test_heights_are_monotonic(self, cylinder):
        heights = Slicer(SliceConfig(layer_height=0.25)).layer_heights([cylinder])
        assert all(b - a == pytest.approx(0.25) for a, b in zip(heights, heights[1:]))

    def test_no_shapes(self):
        assert Slicer(SliceConfig()).layer_heights([]) == []
        assert Slicer(SliceConfig()).slice([Shape()]) == []

    def test_shape_thinner_than_first_layer(self):
        flat = Shape.from_trimesh(trimesh.creation.box(extents=(5.0, 5.0, 0.1)))
        flat.place_on_platform()
        assert Slicer(SliceConfig(layer_height=0.3)).layer_heights([flat]) == []


@pytest.mark.unit
@pytest.mark.slicing
class TestInfillSet:

    def test_angle_alternates_per_layer(self, cube):
        config = SliceConfig(infill_angle=45.0)
        slicer = Slicer(config)
        layers = slicer.slice([cube])
        even = slicer._infill_set(layers[4])
        odd = slicer._infill_set(layers[5])
        assert even.normal.angle == pytest.approx(math.radians(45))
        assert odd.normal.angle == pytest.approx(math.radians(135))
        assert even.normal.infill_type is InfillType.PARALLEL
        assert even.support is None

    def test_no_sparse_infill(self, cube):
        slicer = Slicer(SliceConfig(do_infill=False))
        layers = slicer.slice([cube])
        assert slicer._infill_set(layers[0]).normal is None

    def test_session_owns_cache(self, cube):
        slicer = Slicer(SliceConfig())
        slicer.slice([cube])
        assert slicer.cache is not None
        # parallel fill at two alternating angles plus solid, decor and thin
        assert 0 < len(slicer.cache) <= 8
        assert slicer.cache.bounds == pytest.approx((-5.0, -5.0, 5.0, 5.0))


@pytest.mark.unit
@pytest.mark.slicing
def test_progress_callback_reports_stages(cube):
    labels = set()
    progress = Progress(lambda label, fraction: labels.add(label), interval=1000)
    Slicer(SliceConfig(), progress).slice([cube])
    assert {"Slicing", "Infill"} <= labels
