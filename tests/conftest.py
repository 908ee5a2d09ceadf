"""
Pytest configuration and shared fixtures.
"""

import tempfile
from pathlib import Path

import pytest
import trimesh

from layerslicer.core.config import SliceConfig
from layerslicer.geometry.shape import Shape


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config_dir(temp_dir):
    """Create a sample configuration directory with two slicing profiles."""
    config_dir = temp_dir / "config"
    (config_dir / "profiles").mkdir(parents=True)

    fine = """
slicing:
  layer_height: 0.15
  extrusion_width: 0.45
  shell_count: 3
"""
    (config_dir / "profiles" / "fine.yaml").write_text(fine)

    draft = """
layer_height: 0.4
infill_percent: 15
"""
    (config_dir / "profiles" / "draft.yaml").write_text(draft)

    return config_dir


@pytest.fixture
def config():
    return SliceConfig()


def make_shape(mesh, name="", platform=True):
    shape = Shape.from_trimesh(mesh, name=name)
    if platform:
        shape.place_on_platform()
    return shape


@pytest.fixture
def cube():
    """10 mm cube standing on the platform, centred on the Z axis."""
    return make_shape(trimesh.creation.box(extents=(10.0, 10.0, 10.0)), name="cube")


@pytest.fixture
def cylinder():
    return make_shape(
        trimesh.creation.cylinder(radius=5.0, height=10.0, sections=32), name="cylinder",
    )


@pytest.fixture
def tube():
    """Annulus: outer radius 5, inner radius 2, height 10."""
    return make_shape(
        trimesh.creation.annulus(r_min=2.0, r_max=5.0, height=10.0, sections=32), name="tube",
    )

