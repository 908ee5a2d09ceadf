"""
Layer region derivation for one Z height.

A :class:`Layer` accumulates the cross-sections of all shapes at its height
and derives the region sets the toolpath generator consumes: shell rings
(innermost first), thin walls, sparse fill, solid (full) fill, decor fill,
bridges with their fill angles, support, skin fill and skirt.

Region sets are kept disjoint: every step that assigns area to full fill,
decor fill or bridges subtracts it from the sparse fill. All boolean work is
delegated to :mod:`layerslicer.geometry.clipping`; the order of the steps
below is part of the contract.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from layerslicer.core.config import SliceConfig
from layerslicer.core.exceptions import ReconstructionError, SlicingCancelled
from layerslicer.core.logging import get_logger
from layerslicer.core.progress import Progress
from layerslicer.geometry import clipping
from layerslicer.geometry.polygon import (
    Poly,
    RegionWithHoles,
    cleanup_polys,
    convex_hull_2d,
    polys_bounds,
    set_z,
)
from layerslicer.geometry.shape import Shape
from layerslicer.geometry.transform import Transform3D
from layerslicer.slicing.cross_section import extract_cross_section, support_polygons_at
from layerslicer.slicing.infill import Infill, InfillType, PatternCache

logger = get_logger(__name__)

DEFAULT_CLEANUP_FACTOR = 7.0
DEFAULT_SUPPORT_MIN_AREA_FACTOR = 10.0


@dataclass
class InfillSet:
    """Fill generators for one layer; any of them may be absent."""

    cache: PatternCache
    normal: Optional[Infill] = None
    full: Optional[Infill] = None
    decor: Optional[Infill] = None
    support: Optional[Infill] = None
    skin: Optional[Infill] = None
    thin: Optional[Infill] = None


@dataclass
class LayerInfill:
    """Fill lines and polygons computed for one layer."""

    normal: List[Poly] = field(default_factory=list)
    full: List[Poly] = field(default_factory=list)
    decor: List[Poly] = field(default_factory=list)
    bridge: List[Poly] = field(default_factory=list)
    skin: List[Poly] = field(default_factory=list)
    support: List[Poly] = field(default_factory=list)
    thin: List[Poly] = field(default_factory=list)


@dataclass(frozen=True)
class LayerRegions:
    """Read-only region bundle of one layer, as handed to toolpath generation."""

    layer_no: int
    z: float
    thickness: float
    shells: Tuple[Tuple[Poly, ...], ...]
    thin: Tuple[Poly, ...]
    fill: Tuple[Poly, ...]
    full_fill: Tuple[Poly, ...]
    decor: Tuple[Poly, ...]
    bridges: Tuple[Tuple[RegionWithHoles, float], ...]
    support: Tuple[Poly, ...]
    skin: Tuple[Poly, ...]
    skin_fill: Tuple[Poly, ...]
    skirt: Tuple[Poly, ...]
    infill: Optional[LayerInfill] = None


class Layer:
    """
    Categorised regions of one layer.

    Args:
        layer_no: Index of the layer in the session.
        z: Cut height.
        thickness: Layer thickness.
        skins: Number of sub-slices the layer's surfaces are printed in.
        previous: The layer below, only read for overhang and bridge queries.
    """

    def __init__(
        self,
        layer_no: int,
        z: float,
        thickness: float,
        skins: int = 1,
        previous: Optional["Layer"] = None,
    ) -> None:
        self.layer_no = layer_no
        self.z = z
        self.thickness = thickness
        self.skins = max(1, int(skins))
        self.previous = previous

        self.polygons: List[Poly] = []
        self.shells: List[List[Poly]] = []  # innermost ring first
        self.thin_polygons: List[Poly] = []
        self.fill_polygons: List[Poly] = []
        self.full_fill_polygons: List[Poly] = []
        self.decor_polygons: List[Poly] = []
        self.bridge_polygons: List[RegionWithHoles] = []
        self.bridge_angles: List[float] = []
        self.bridge_pillars: List[List[Poly]] = []
        self.support_polygons: List[Poly] = []
        self.to_support_polygons: List[Poly] = []
        self.skin_polygons: List[Poly] = []
        self.skin_full_fill_polygons: List[Poly] = []
        self.skirt_polygons: List[Poly] = []
        self.hull_polygon: Optional[Poly] = None
        self.max_gradient = 0.0
        self.min = np.array([math.inf, math.inf])
        self.max = np.array([-math.inf, -math.inf])
        self.infill: Optional[LayerInfill] = None

    def __repr__(self) -> str:
        return f"Layer(no={self.layer_no}, z={self.z:.3f}, polygons={len(self.polygons)})"

    # ------------------------------------------------------------------
    # Cross-sections
    # ------------------------------------------------------------------

    def add_shape(
        self,
        shape: Shape,
        config: SliceConfig,
        support_angle: Optional[float] = None,
        progress: Optional[Progress] = None,
        plane_transform: Optional[Transform3D] = None,
    ) -> int:
        """
        Add the cross-section of ``shape`` at this layer's height.

        A failed reconstruction is retried slightly higher, in steps of
        ``thickness * z_perturbation``, while still inside the layer.

        Returns:
            Number of polygons added, or -1 when every attempt failed.
        """
        hacked_z = self.z
        step = self.thickness * config.z_perturbation
        while hacked_z < self.z + self.thickness:
            try:
                section = extract_cross_section(
                    shape, hacked_z, config, support_angle, self.thickness,
                    plane_transform, progress,
                )
            except SlicingCancelled:
                logger.warning("cross_section_cancelled", layer=self.layer_no, z=self.z)
                return -1
            except ReconstructionError:
                hacked_z += step
                logger.debug("cross_section_retry", layer=self.layer_no, z=self.z, retry_z=hacked_z)
                continue

            self.add_polygons(section.polygons)
            self.to_support_polygons.extend(set_z(section.support_polygons, self.z))
            self.max_gradient = max(self.max_gradient, section.max_gradient)
            self.cleanup_polygons(config.cleanup_factor)
            return len(section.polygons)

        logger.warning(
            "cross_section_failed", layer=self.layer_no, z=self.z, shape=shape.name,
        )
        if support_angle is not None:
            support = support_polygons_at(
                shape, self.z, support_angle, self.thickness, plane_transform,
            )
            self.to_support_polygons.extend(support)
        return -1

    def add_polygons(self, polys: Sequence[Poly]) -> None:
        self.polygons.extend(set_z(polys, self.z))

    def cleanup_polygons(self, cleanup_factor: float = DEFAULT_CLEANUP_FACTOR) -> None:
        """Simplify the raw outline with tolerance ``thickness / cleanup_factor``."""
        self.polygons = cleanup_polys(self.polygons, self.thickness / cleanup_factor)

    # ------------------------------------------------------------------
    # Shells and fill
    # ------------------------------------------------------------------

    @staticmethod
    def find_thin_polys(polys: Sequence[Poly], width: float) -> Tuple[List[Poly], List[Poly]]:
        """
        Split ``polys`` into thick regions and walls thinner than ``width``.

        The thick part is an opening (erode by half a width, re-dilate a
        little more); whatever the dilated thick part does not cover is thin.

        Returns:
            (thick, thin)
        """
        thick = clipping.offset(polys, -0.5 * width)
        thick = clipping.offset(thick, 0.55 * width)
        big_thick = clipping.offset(thick, width)
        z = polys[0].z if polys else 0.0
        thin = clipping.subtract(polys, big_thick, z)
        thick = clipping.offset(thick, -0.05 * width, z)
        return thick, thin

    def make_shells(self, config: SliceConfig) -> None:
        """
        Erode the outline into shell rings and compute the fill region.

        The first ring sits half an extrusion width (plus ``shell_offset``)
        inside the outline, every further ring one width deeper. With more
        than one skin the first ring becomes the skin outline instead of a
        shell. The fill region is the innermost ring eroded by
        ``(1 - infill_overlap) * width``.
        """
        width = config.extrusion_width
        distance = 0.5 * width
        clean = min(distance, self.thickness) / config.cleanup_factor

        shrinked = clipping.offset(self.polygons, -(distance + config.shell_offset), self.z)
        thick, thin = self.find_thin_polys(shrinked, width)
        self.thin_polygons = cleanup_polys(thin, clean)
        shrinked = cleanup_polys(thick, clean)

        rings: List[List[Poly]] = []
        self.skin_polygons = []
        if config.shell_count > 0:
            if self.skins > 1:
                for poly in shrinked:
                    poly.extrusion_factor = 1.0 / self.skins
                self.skin_polygons = shrinked
            else:
                rings.append(shrinked)
            for _ in range(1, config.shell_count):
                shrinked = clipping.offset(shrinked, -width, self.z)
                thick, thin = self.find_thin_polys(shrinked, width)
                self.thin_polygons.extend(cleanup_polys(thin, clean))
                shrinked = cleanup_polys(thick, clean)
                rings.append(shrinked)
        self.shells = rings[::-1]

        self.fill_polygons = []
        if config.do_infill:
            fill = clipping.offset(shrinked, -(1.0 - config.infill_overlap) * width, self.z)
            self.fill_polygons = cleanup_polys(fill, clean)

        self.calc_convex_hull()

    @property
    def inner_shell(self) -> List[Poly]:
        if self.shells:
            return self.shells[0]
        if self.skin_polygons:
            return self.skin_polygons
        return self.polygons

    @property
    def outer_shell(self) -> List[Poly]:
        if self.skin_polygons:
            return self.skin_polygons
        if self.shells:
            return self.shells[-1]
        if self.fill_polygons:
            return self.fill_polygons
        return self.polygons

    def calc_convex_hull(self) -> None:
        self.hull_polygon = convex_hull_2d(self.polygons, self.z)
        if self.hull_polygon is not None:
            bounds = self.hull_polygon.bounds
            self.min = np.array(bounds[:2])
            self.max = np.array(bounds[2:])

    # ------------------------------------------------------------------
    # Full fill, decor and bridges
    # ------------------------------------------------------------------

    def add_full_polygons(self, polys: Sequence[Poly], decor: bool = False) -> None:
        """
        Promote the part of the fill region covered by ``polys``.

        The covered area moves to full fill (or decor fill when ``decor``,
        in which case it is also taken out of existing full fill) and is
        removed from the sparse fill.
        """
        if not polys:
            return
        subject = list(self.fill_polygons)
        if decor:
            subject.extend(self.full_fill_polygons)
        covered = clipping.intersect(subject, polys, self.z)
        normals = clipping.subtract(self.fill_polygons, polys, self.z)
        if decor:
            self.decor_polygons.extend(covered)
            self.full_fill_polygons = clipping.subtract(self.full_fill_polygons, covered, self.z)
        else:
            self.full_fill_polygons.extend(covered)
        self.fill_polygons = normals

    def merge_full_polygons(self, cleanup_factor: float = DEFAULT_CLEANUP_FACTOR) -> None:
        """Unite full fill (closing gaps below one thickness) and re-subtract it from fill."""
        clean = self.thickness / cleanup_factor
        if self.full_fill_polygons:
            area = clipping.union(self.fill_polygons + self.full_fill_polygons, self.z)
            full = clipping.merged(self.full_fill_polygons, self.thickness, self.z)
            full = clipping.intersect(full, area, self.z)
            self.full_fill_polygons = cleanup_polys(full, clean)
        fill = cleanup_polys(self.fill_polygons, clean)
        taken = (
            self.full_fill_polygons
            + self.decor_polygons
            + clipping.region_polys(self.bridge_polygons)
        )
        self.fill_polygons = clipping.subtract(fill, taken, self.z) if taken else fill

    def add_bridge_polygons(self, regions: Sequence[RegionWithHoles]) -> None:
        """Turn the fill inside ``regions`` into bridges and remove it from fill."""
        if not regions:
            return
        self.bridge_polygons = []
        for region in regions:
            self.bridge_polygons.extend(
                clipping.ext_intersect(self.fill_polygons, region.polys(), self.z)
            )
        self.fill_polygons = clipping.subtract(
            self.fill_polygons, clipping.region_polys(regions), self.z,
        )

    def calc_bridge_angles(self, layer_below: "Layer") -> None:
        """
        Fill direction of every bridge from where it rests on the layer below.

        The pillars of a bridge are the outline of ``layer_below``, eroded by
        half a thickness, under the bridge outline grown by two thicknesses.
        The angle is the direction of the summed pairwise differences of
        pillar centres, folded into [0, π).
        """
        below = clipping.offset(layer_below.polygons, -0.5 * self.thickness, self.z)
        self.bridge_angles = []
        self.bridge_pillars = []
        for bridge in self.bridge_polygons:
            grown = clipping.offset([bridge.outer], 2.0 * self.thickness, self.z)
            pillars = clipping.intersect(below, grown, self.z) if below else []
            direction = np.zeros(2)
            for p in range(len(pillars)):
                for q in range(p + 1, len(pillars)):
                    direction += pillars[q].center - pillars[p].center
            angle = math.atan2(direction[1], direction[0])
            if angle < 0:
                angle += math.pi
            if angle >= math.pi:
                angle -= math.pi
            self.bridge_angles.append(angle)
            self.bridge_pillars.append(pillars)

    def set_bridge_polygons(self, regions: Sequence[RegionWithHoles]) -> None:
        self.bridge_polygons = [r.with_z(self.z) for r in regions]

    def set_bridge_angles(self, angles: Sequence[float]) -> None:
        self.bridge_angles = list(angles)

    # ------------------------------------------------------------------
    # Support, skirt and skins
    # ------------------------------------------------------------------

    def set_support_polygons(
        self,
        polys: Sequence[Poly],
        min_area_factor: float = DEFAULT_SUPPORT_MIN_AREA_FACTOR,
        cleanup_factor: float = DEFAULT_CLEANUP_FACTOR,
    ) -> None:
        """Store support regions, dropping slivers and growing the layer bounds."""
        min_area = min_area_factor * self.thickness * self.thickness
        kept = []
        for poly in cleanup_polys(set_z(polys, self.z), self.thickness / cleanup_factor):
            if abs(poly.area) < min_area:
                continue
            kept.append(poly)
            x0, y0, x1, y1 = poly.bounds
            self.min = np.minimum(self.min, [x0, y0])
            self.max = np.maximum(self.max, [x1, y1])
        self.support_polygons = kept

    def merge_support_polygons(
        self,
        min_area_factor: float = DEFAULT_SUPPORT_MIN_AREA_FACTOR,
        cleanup_factor: float = DEFAULT_CLEANUP_FACTOR,
    ) -> None:
        self.set_support_polygons(
            clipping.merged(self.support_polygons, 0.0, self.z),
            min_area_factor, cleanup_factor,
        )

    def make_skirt(self, distance: float, single: bool = True) -> None:
        """
        Skirt around the layer at ``distance``.

        In single mode one round-offset convex hull encloses the layer
        outline and its support; otherwise the outer shell itself is offset.
        """
        self.skirt_polygons = []
        if single:
            sources = list(self.support_polygons)
            if self.hull_polygon is not None:
                sources.append(self.hull_polygon)
            hull = convex_hull_2d(sources, self.z)
            if hull is None:
                return
            skirt = clipping.offset([hull], distance, self.z, join="round")
            if skirt:
                self.set_skirt_polygons(skirt[:1])
        else:
            self.skirt_polygons = clipping.offset(self.outer_shell, distance, self.z, join="round")

    def set_skirt_polygons(self, polys: Sequence[Poly]) -> None:
        self.skirt_polygons = cleanup_polys(set_z(polys, self.z), self.thickness)

    def make_skin_polygons(self) -> None:
        """Move full fill to the per-skin fill set when the layer has several skins."""
        if self.skins < 2:
            return
        self.skin_full_fill_polygons = list(self.full_fill_polygons)
        self.full_fill_polygons = []

    def skin_z_values(self) -> List[float]:
        return [
            self.z - self.thickness + (s + 1) * self.thickness / self.skins
            for s in range(self.skins)
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_overhangs(self) -> List[Poly]:
        """Outline parts not resting on the previous layer (grown by half a thickness)."""
        if self.previous is None:
            return []
        below = clipping.offset(self.previous.polygons, self.thickness / 2.0, self.z)
        return clipping.subtract(self.polygons, below, self.z)

    def area(self) -> float:
        return clipping.total_area(clipping.union(self.polygons, self.z))

    def point_in_polygons(self, point: Sequence[float]) -> bool:
        """Inside a solid polygon and outside every hole."""
        inside = any(not p.is_hole and p.contains(point) for p in self.polygons)
        return inside and not any(p.is_hole and p.contains(point) for p in self.polygons)

    @property
    def bounds(self) -> Optional[Tuple[float, float, float, float]]:
        if np.all(np.isfinite(self.min)) and np.all(np.isfinite(self.max)):
            return (float(self.min[0]), float(self.min[1]), float(self.max[0]), float(self.max[1]))
        return polys_bounds(self.polygons)

    def info(self) -> str:
        text = (
            f"Layer at Z={self.z:.3f} No={self.layer_no}, thickness={self.thickness}, "
            f"{self.skins} skins, {len(self.polygons)} polys, {len(self.shells)} shells, "
            f"{len(self.full_fill_polygons)} fullfill polys, "
            f"{len(self.bridge_polygons)} bridge polys, "
            f"{len(self.skin_full_fill_polygons)} skin fullfill polys, "
            f"{len(self.support_polygons)} support polys"
        )
        if self.previous is not None:
            text += f" prev.No={self.previous.layer_no}"
        return text

    # ------------------------------------------------------------------
    # Infill
    # ------------------------------------------------------------------

    def calc_infill(self, config: SliceConfig, infills: InfillSet) -> LayerInfill:
        """Fill every region with its generator; bridges run across their span."""
        result = LayerInfill()
        if infills.normal is not None:
            result.normal = infills.normal.apply(self.z, self.fill_polygons)
        if infills.full is not None:
            result.full = infills.full.apply(self.z, self.full_fill_polygons)
        if infills.decor is not None:
            result.decor = infills.decor.apply(self.z, self.decor_polygons)

        bridge_factor = config.bridge_width / config.extrusion_width
        for region, angle in zip(self.bridge_polygons, self.bridge_angles):
            bridge_infill = Infill(
                InfillType.PARALLEL,
                config.full_infill_distance,
                angle + math.pi / 2.0,
                infills.cache,
                line_tolerance=config.infill_line_tolerance,
                extrusion_factor=bridge_factor,
            )
            result.bridge.extend(bridge_infill.apply(self.z, region.polys()))

        if self.skins > 1 and infills.skin is not None:
            for skin_z in self.skin_z_values():
                result.skin.extend(infills.skin.apply(skin_z, self.skin_full_fill_polygons))

        if infills.support is not None:
            result.support = infills.support.apply(self.z, self.support_polygons)
        if infills.thin is not None:
            result.thin = infills.thin.apply(self.z, self.thin_polygons)

        self.infill = result
        return result

    def regions(self) -> LayerRegions:
        return LayerRegions(
            layer_no=self.layer_no,
            z=self.z,
            thickness=self.thickness,
            shells=tuple(tuple(ring) for ring in self.shells),
            thin=tuple(self.thin_polygons),
            fill=tuple(self.fill_polygons),
            full_fill=tuple(self.full_fill_polygons),
            decor=tuple(self.decor_polygons),
            bridges=tuple(zip(self.bridge_polygons, self.bridge_angles)),
            support=tuple(self.support_polygons),
            skin=tuple(self.skin_polygons),
            skin_fill=tuple(self.skin_full_fill_polygons),
            skirt=tuple(self.skirt_polygons),
            infill=self.infill,
        )
