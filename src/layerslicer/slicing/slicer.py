"""
Slicing session: turns shapes into a stack of layers.

The session owns the infill pattern cache and runs the layer derivation in
a fixed serial order:

1. cross-sections, shells and fill region of every layer, bottom-up
2. support propagation, top-down
3. surfaces without material below (bridges or solid fill) or above
   (solid or decor fill), detected on all layers before any is modified
4. skin snapshot
5. solid fill copied to the neighbouring layers
6. full fill merged and removed from sparse fill
7. skirt
8. fill lines

Layers only read their predecessor, so step 1 for layer n must finish
before the bridge detection of layer n + 1.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

from layerslicer.core.config import SliceConfig
from layerslicer.core.logging import get_logger, layer_context
from layerslicer.core.progress import Progress
from layerslicer.geometry import clipping
from layerslicer.geometry.polygon import Poly, convex_hull_2d
from layerslicer.geometry.shape import Shape
from layerslicer.slicing.infill import Infill, InfillType, PatternCache
from layerslicer.slicing.layer import InfillSet, Layer

logger = get_logger(__name__)


class Slicer:
    """
    Slices shapes into layers with categorised regions.

    Example:
        >>> config = SliceConfig(layer_height=0.3, shell_count=2)
        >>> layers = Slicer(config).slice([shape])
        >>> layers[0].regions().shells
    """

    def __init__(self, config: SliceConfig, progress: Optional[Progress] = None) -> None:
        self.config = config
        self.progress = progress or Progress(interval=config.progress_interval)
        self.cache: Optional[PatternCache] = None
        self._lower_surfaces: List[List[Poly]] = []
        self._upper_surfaces: List[List[Poly]] = []

    def layer_heights(self, shapes: Sequence[Shape]) -> List[float]:
        """Cut heights: the first at ``first_layer_height`` of a layer, then one per layer."""
        shapes = [s for s in shapes if len(s)]
        if not shapes:
            return []
        thickness = self.config.layer_height
        z_min = min(float(s.min[2]) for s in shapes)
        z_max = max(float(s.max[2]) for s in shapes)
        z0 = z_min + self.config.first_layer_height * thickness
        if z0 > z_max:
            return []
        count = int(math.floor((z_max - z0) / thickness)) + 1
        return [z0 + n * thickness for n in range(count)]

    def slice(self, shapes: Sequence[Shape]) -> List[Layer]:
        """
        Slice ``shapes`` and derive every layer's regions.

        A stop request on the progress token ends the session between
        layers; the layers finished so far are returned.
        """
        shapes = [s for s in shapes if len(s)]
        heights = self.layer_heights(shapes)
        if not heights:
            logger.info("slicing_empty", shapes=len(shapes))
            return []

        x0 = min(float(s.min[0]) for s in shapes)
        y0 = min(float(s.min[1]) for s in shapes)
        x1 = max(float(s.max[0]) for s in shapes)
        y1 = max(float(s.max[1]) for s in shapes)
        self.cache = PatternCache((x0, y0, x1, y1), self.config.pattern_tolerance)

        logger.info("slicing_started", shapes=len(shapes), layers=len(heights))
        layers = self._build_layers(shapes, heights)
        if self.progress.cancelled:
            logger.warning("slicing_cancelled", layers=len(layers))
            return layers

        if self.config.support:
            self._propagate_support(layers)
        self._solid_surfaces(layers)
        for layer in layers:
            layer.make_skin_polygons()
        self._multiply_solid(layers)
        for layer in layers:
            layer.merge_full_polygons(self.config.cleanup_factor)
        if self.config.skirt:
            self._make_skirt(layers)
        self._calc_infill(layers)

        logger.info("slicing_complete", layers=len(layers))
        return layers

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _build_layers(self, shapes: Sequence[Shape], heights: Sequence[float]) -> List[Layer]:
        config = self.config
        support_angle = math.radians(config.support_angle) if config.support else None
        layers: List[Layer] = []
        previous: Optional[Layer] = None

        self.progress.start("Slicing", len(heights))
        for layer_no, z in enumerate(heights):
            if self.progress.cancelled:
                break
            layer = Layer(layer_no, z, config.layer_height, config.skins, previous)
            with layer_context(layer_no, z):
                for shape in shapes:
                    layer.add_shape(shape, config, support_angle, self.progress)
                if self.progress.cancelled:
                    break
                layer.make_shells(config)
            layers.append(layer)
            previous = layer
            self.progress.update(layer_no + 1)
        self.progress.finish()
        return layers

    def _propagate_support(self, layers: List[Layer]) -> None:
        """Carry support down from every overhang until it reaches the platform or the part."""
        config = self.config
        above: List[Poly] = []
        for layer in reversed(layers):
            if above:
                candidates = clipping.union(above, layer.z)
                outline = clipping.offset(layer.polygons, config.support_gap, layer.z)
                support = clipping.subtract(candidates, outline, layer.z) if outline else candidates
                layer.set_support_polygons(
                    support, config.support_min_area_factor, config.cleanup_factor,
                )
            # overhangs found at a layer are supported from the layer below it
            above = layer.support_polygons + layer.to_support_polygons

    def _min_area(self) -> float:
        return self.config.extrusion_width ** 2

    def _significant(self, polys: List[Poly], z: float) -> List[Poly]:
        """Drop slivers narrower than half an extrusion line and tiny islands."""
        margin = 0.25 * self.config.extrusion_width
        opened = clipping.offset(clipping.offset(polys, -margin, z), margin, z)
        regions = clipping.ext_union(opened, z)
        return clipping.region_polys(r for r in regions if r.area >= self._min_area())

    def _solid_surfaces(self, layers: List[Layer]) -> None:
        config = self.config
        lower: List[List[Poly]] = []
        upper: List[List[Poly]] = []
        for i, layer in enumerate(layers):
            if i == 0:
                lower.append(list(layer.fill_polygons))
            else:
                below = clipping.subtract(layer.fill_polygons, layers[i - 1].polygons, layer.z)
                lower.append(self._significant(below, layer.z))
            if i == len(layers) - 1:
                upper.append(list(layer.fill_polygons))
            else:
                top = clipping.subtract(layer.fill_polygons, layers[i + 1].polygons, layer.z)
                upper.append(self._significant(top, layer.z))

        self._lower_surfaces = lower
        self._upper_surfaces = upper
        for i, layer in enumerate(layers):
            if lower[i]:
                if i > 0 and config.bridges:
                    layer.add_bridge_polygons(clipping.ext_union(lower[i], layer.z))
                    layer.calc_bridge_angles(layers[i - 1])
                else:
                    layer.add_full_polygons(lower[i])
            if upper[i]:
                layer.add_full_polygons(upper[i], decor=config.decor_infill)

    def _multiply_solid(self, layers: List[Layer]) -> None:
        """Extend bottom surfaces upwards and top surfaces downwards to ``solid_layers``."""
        reach = self.config.solid_layers - 1
        if reach <= 0:
            return
        for i in range(len(layers)):
            if self._lower_surfaces[i]:
                for j in range(i + 1, min(len(layers), i + 1 + reach)):
                    layers[j].add_full_polygons(self._lower_surfaces[i])
            if self._upper_surfaces[i]:
                for j in range(max(0, i - reach), i):
                    layers[j].add_full_polygons(self._upper_surfaces[i])

    def _make_skirt(self, layers: List[Layer]) -> None:
        config = self.config
        top = layers[0].z + config.skirt_height
        skirt_layers = [layer for layer in layers if layer.z <= top] or layers[:1]
        if not config.skirt_single:
            for layer in skirt_layers:
                layer.make_skirt(config.skirt_distance, single=False)
            return

        sources: List[Poly] = []
        for layer in skirt_layers:
            if layer.hull_polygon is not None:
                sources.append(layer.hull_polygon)
            sources.extend(layer.support_polygons)
        hull = convex_hull_2d(sources)
        if hull is None:
            return
        skirt = clipping.offset([hull], config.skirt_distance, join="round")
        for layer in skirt_layers:
            layer.set_skirt_polygons(skirt[:1])

    def _infill_set(self, layer: Layer) -> InfillSet:
        config = self.config
        angle = math.radians(config.infill_angle) + (layer.layer_no % 2) * math.pi / 2.0
        tolerance = config.infill_line_tolerance

        def parallel(spacing: float) -> Infill:
            return Infill(
                InfillType.PARALLEL, spacing, angle, self.cache, line_tolerance=tolerance,
            )

        return InfillSet(
            cache=self.cache,
            normal=parallel(config.infill_distance) if config.do_infill else None,
            full=parallel(config.full_infill_distance),
            decor=Infill(InfillType.LINES, config.full_infill_distance, angle, self.cache),
            support=Infill(InfillType.SUPPORT, config.support_infill_distance, 0.0, self.cache)
            if config.support else None,
            skin=parallel(config.full_infill_distance),
            thin=parallel(config.full_infill_distance),
        )

    def _calc_infill(self, layers: List[Layer]) -> None:
        self.progress.start("Infill", len(layers))
        for i, layer in enumerate(layers):
            if self.progress.cancelled:
                logger.warning("infill_cancelled", layer=layer.layer_no)
                break
            with layer_context(layer.layer_no, layer.z):
                layer.calc_infill(self.config, self._infill_set(layer))
            self.progress.update(i + 1)
        self.progress.finish()
