"""
Infill patterns: raster generation, caching and clipping to fill regions.

Styles:
1. parallel: zig-zag strip polygon clipped to the region, then reduced to
   the edges running along the fill direction (line raster)
2. lines: open two-point lines clipped as open paths
3. support: the zig-zag strips kept as polygons

A pattern covers a square twice the longer side of the session bounds, so any
rotation still covers every layer. Patterns are cached per session in a
:class:`PatternCache`, keyed by style, spacing and angle within tolerance.

Clipping uses **pyclipper** through :mod:`layerslicer.geometry.clipping`.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from layerslicer.geometry import clipping
from layerslicer.geometry.polygon import Poly

Bounds = Tuple[float, float, float, float]

_TWO_PI = 2.0 * math.pi


class InfillType(Enum):
    """Fill raster styles."""

    PARALLEL = "parallel"
    LINES = "lines"
    SUPPORT = "support"


@dataclass(frozen=True)
class _Pattern:
    infill_type: InfillType
    spacing: float
    angle: float
    polys: Tuple[Poly, ...]


def normalize_angle(angle: float) -> float:
    """Fold an angle in radians into [0, 2π)."""
    angle = math.fmod(angle, _TWO_PI)
    if angle < 0:
        angle += _TWO_PI
    return angle if angle < _TWO_PI else 0.0


class PatternCache:
    """
    Insert-once store of generated patterns for one slicing session.

    Lookups and insertions run under a single lock, so concurrent callers
    asking for the same key all receive the first pattern built for it.
    An entry is never replaced or mutated.

    Args:
        bounds: (min_x, min_y, max_x, max_y) of the sliced objects.
        tolerance: Spacing/angle difference under which keys match.
    """

    def __init__(self, bounds: Bounds, tolerance: float = 0.01) -> None:
        self.bounds = tuple(float(v) for v in bounds)
        self.tolerance = tolerance
        self._patterns: List[_Pattern] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)

    def _find(self, infill_type: InfillType, spacing: float, angle: float) -> Optional[_Pattern]:
        for pattern in self._patterns:
            if (
                pattern.infill_type is infill_type
                and abs(pattern.spacing - spacing) < self.tolerance
                and abs(pattern.angle - angle) < self.tolerance
            ):
                return pattern
        return None

    def get(self, infill_type: InfillType, spacing: float, angle: float) -> Optional[Tuple[Poly, ...]]:
        with self._lock:
            pattern = self._find(infill_type, spacing, normalize_angle(angle))
        return pattern.polys if pattern is not None else None

    def get_or_create(
        self,
        infill_type: InfillType,
        spacing: float,
        angle: float,
        builder: Callable[[], Sequence[Poly]],
    ) -> Tuple[Poly, ...]:
        """Return the cached pattern for the key, building it on a miss."""
        angle = normalize_angle(angle)
        with self._lock:
            pattern = self._find(infill_type, spacing, angle)
            if pattern is None:
                pattern = _Pattern(infill_type, spacing, angle, tuple(builder()))
                self._patterns.append(pattern)
            return pattern.polys

    def clear(self) -> None:
        with self._lock:
            self._patterns.clear()


def _pattern_frame(bounds: Bounds) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Square about the centre of ``bounds``, twice their longer side: (min, max, center).

    Any rotation of the square about the centre still covers the bounds.
    """
    lo = np.array(bounds[:2], dtype=float)
    hi = np.array(bounds[2:], dtype=float)
    center = (lo + hi) / 2.0
    half = max(float(np.max(hi - lo)), 1e-6)
    return center - half, center + half, center


def _strip_pattern(bounds: Bounds, spacing: float, angle: float) -> List[Poly]:
    lo, hi, center = _pattern_frame(bounds)
    points = []
    x = lo[0]
    while x < hi[0]:
        points.extend([
            (x, lo[1]),
            (x + spacing, lo[1]),
            (x + spacing, hi[1]),
            (x + 2 * spacing, hi[1]),
        ])
        x += 2 * spacing
    points.append((hi[0], lo[1] - spacing))
    points.append((lo[0], lo[1] - spacing))
    poly = Poly(np.array(points))
    if poly.area < 0:
        poly = poly.reversed()
    return [poly.rotated(center, angle)]


def _line_pattern(bounds: Bounds, spacing: float, angle: float) -> List[Poly]:
    lo, hi, center = _pattern_frame(bounds)
    lines = []
    x = lo[0]
    while x < hi[0]:
        line = Poly(np.array([(x, lo[1]), (x, hi[1])]), closed=False)
        lines.append(line.rotated(center, angle))
        x += spacing
    return lines


def make_pattern(
    cache: PatternCache,
    infill_type: InfillType,
    spacing: float,
    angle: float,
) -> Tuple[Poly, ...]:
    """
    Cached raster for the style, line spacing and angle (radians).

    Raises:
        ValueError: If ``spacing`` is not positive
    """
    if spacing <= 0:
        raise ValueError(f"Infill spacing must be positive, got {spacing}")
    angle = normalize_angle(angle)
    if infill_type is InfillType.LINES:
        builder = partial(_line_pattern, cache.bounds, spacing, angle)
    else:
        builder = partial(_strip_pattern, cache.bounds, spacing, angle)
    return cache.get_or_create(infill_type, spacing, angle, builder)


def axis_edges(polys: Sequence[Poly], angle: float, tolerance: float = 0.1) -> List[Poly]:
    """
    Edges of ``polys`` that run along the fill direction.

    An edge is kept when, rotated by ``-angle``, its X extent is below
    ``tolerance`` and its Y extent above it. Each kept edge becomes an
    open two-point line.
    """
    c, s = math.cos(-angle), math.sin(-angle)
    lines = []
    for poly in polys:
        for a, b in poly.edges():
            dx, dy = b - a
            rx = dx * c - dy * s
            ry = dy * c + dx * s
            if abs(rx) < tolerance and abs(ry) > tolerance:
                lines.append(Poly(np.array([a, b]), poly.z, closed=False))
    return lines


class Infill:
    """
    One fill request: style, spacing and angle against a session cache.

    Example:
        >>> cache = PatternCache((0, 0, 20, 20))
        >>> infill = Infill(InfillType.PARALLEL, 0.6, math.pi / 4, cache)
        >>> lines = infill.apply(0.3, layer.fill_polygons)
    """

    def __init__(
        self,
        infill_type: InfillType,
        spacing: float,
        angle: float,
        cache: PatternCache,
        offset_distance: float = 0.0,
        line_tolerance: float = 0.1,
        extrusion_factor: float = 1.0,
    ) -> None:
        self.infill_type = infill_type
        self.spacing = spacing
        self.angle = normalize_angle(angle)
        self.cache = cache
        self.offset_distance = offset_distance
        self.line_tolerance = line_tolerance
        self.extrusion_factor = extrusion_factor

    def pattern(self) -> Tuple[Poly, ...]:
        return make_pattern(self.cache, self.infill_type, self.spacing, self.angle)

    def apply(self, z: float, polys: Sequence[Poly]) -> List[Poly]:
        """Clip the pattern to ``polys`` and return the fill at height ``z``."""
        if not polys:
            return []
        targets = list(polys)
        if self.offset_distance > 0:
            targets = clipping.offset(targets, -self.offset_distance / 2.0, z)
            if not targets:
                return []

        pattern = self.pattern()
        if self.infill_type is InfillType.LINES:
            result = clipping.clip_lines(pattern, targets, z)
        else:
            result = clipping.intersect(pattern, targets, z)
            if self.infill_type is InfillType.PARALLEL:
                result = axis_edges(result, self.angle, self.line_tolerance)

        for poly in result:
            poly.extrusion_factor = self.extrusion_factor
        return result
