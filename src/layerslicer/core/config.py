"""
Configuration management for LayerSlicer.

Provides the typed, validated slicing configuration passed into every
component, and loading of named profiles from YAML files.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from layerslicer.core.exceptions import ConfigurationError


class SliceConfig(BaseModel):
    """Slicing session configuration.

    Lengths are in mm, angles in degrees unless noted otherwise. The
    tolerance constants at the end were tuned empirically on real meshes.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Layers
    layer_height: float = Field(default=0.3, gt=0)
    first_layer_height: float = Field(default=0.7, gt=0, le=1.0)

    # Shells and fill
    extrusion_width: float = Field(default=0.6, gt=0)
    shell_count: int = Field(default=2, ge=0)
    shell_offset: float = 0.0
    infill_overlap: float = Field(default=0.1, ge=0, lt=1)
    do_infill: bool = True
    infill_percent: float = Field(default=30.0, gt=0, le=100)
    infill_angle: float = 45.0
    solid_layers: int = Field(default=3, ge=0)
    skins: int = Field(default=1, ge=1)
    decor_infill: bool = False

    # Bridges
    bridges: bool = True
    bridge_extrusion_width: float | None = Field(default=None, gt=0)

    # Support
    support: bool = False
    support_angle: float = Field(default=60.0, ge=0, le=90)
    support_gap: float = Field(default=0.5, ge=0)
    support_min_area_factor: float = Field(default=10.0, ge=0)
    support_infill_percent: float = Field(default=20.0, gt=0, le=100)

    # Skirt
    skirt: bool = False
    skirt_distance: float = Field(default=3.0, gt=0)
    skirt_single: bool = True
    skirt_height: float = Field(default=0.0, ge=0)

    # Tolerances
    cleanup_factor: float = Field(default=7.0, gt=0)
    vertex_merge_sq: float = Field(default=1e-4, gt=0)
    connect_warn_distance: float = Field(default=1.0, gt=0)
    connect_hard_distance: float = Field(default=10.0, gt=0)
    adjacency_sq_tolerance: float = Field(default=0.01, gt=0)
    z_perturbation: float = Field(default=0.1, gt=0, le=1.0)
    pattern_tolerance: float = Field(default=0.01, gt=0)
    infill_line_tolerance: float = Field(default=0.1, gt=0)
    progress_interval: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def _check_connect_budgets(self) -> "SliceConfig":
        if self.connect_warn_distance > self.connect_hard_distance:
            raise ValueError(
                "connect_warn_distance must not exceed connect_hard_distance"
            )
        return self

    @property
    def clean_distance(self) -> float:
        """Simplification tolerance for region polygons."""
        return self.layer_height / self.cleanup_factor

    @property
    def infill_distance(self) -> float:
        """Sparse fill line spacing."""
        return self.extrusion_width / (self.infill_percent / 100.0)

    @property
    def full_infill_distance(self) -> float:
        """Solid fill line spacing."""
        return self.extrusion_width

    @property
    def support_infill_distance(self) -> float:
        return self.extrusion_width / (self.support_infill_percent / 100.0)

    @property
    def bridge_width(self) -> float:
        return self.bridge_extrusion_width or self.extrusion_width


@dataclass
class ProfileManager:
    """
    Loads named slicing profiles from YAML files.

    Profiles live in ``<config_dir>/profiles/*.yaml`` and carry a
    ``slicing:`` section whose keys are SliceConfig fields.

    Example:
        >>> profiles = ProfileManager(config_dir=Path("config"))
        >>> config = profiles.get_profile("fine")
    """

    config_dir: Path
    _profiles: dict[str, SliceConfig] = field(default_factory=dict, init=False)
    _loaded: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.config_dir = Path(self.config_dir)
        if not self.config_dir.exists():
            raise ConfigurationError(
                f"Configuration directory not found: {self.config_dir}"
            )

    def load(self) -> None:
        """Load all profiles from disk."""
        profiles_dir = self.config_dir / "profiles"
        if profiles_dir.exists():
            for config_file in sorted(profiles_dir.glob("*.yaml")):
                self._profiles[config_file.stem] = load_config(config_file)
        self._loaded = True

    def get_profile(self, name: str) -> SliceConfig:
        """
        Get a slicing profile by name.

        Args:
            name: Profile name (without .yaml extension)

        Returns:
            SliceConfig instance

        Raises:
            ConfigurationError: If the profile is not found
        """
        if not self._loaded:
            self.load()

        if name not in self._profiles:
            available = list(self._profiles.keys())
            raise ConfigurationError(
                f"Slicing profile not found: {name}",
                details={"available": available},
            )
        return self._profiles[name]

    def list_profiles(self) -> list[str]:
        """List available profiles."""
        if not self._loaded:
            self.load()
        return list(self._profiles.keys())


def load_config(path: str | Path, **overrides: Any) -> SliceConfig:
    """
    Read a SliceConfig from a YAML file.

    The file may hold the fields at top level or under a ``slicing:`` key.
    Keyword overrides win over file values.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data, dict) and "slicing" in data:
            data = data["slicing"] or {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Slicing config must be a mapping: {path}",
                details={"type": type(data).__name__},
            )
        data.update(overrides)
        return SliceConfig(**data)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise ConfigurationError(
            f"Failed to load slicing config: {path}",
            details={"error": str(e)},
        ) from e
