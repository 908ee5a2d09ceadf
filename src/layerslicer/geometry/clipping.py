"""
Polygon boolean engine: union, intersection, difference and offset.

Uses **pyclipper** (Python bindings for Angus Johnson's Clipper library)
for robust polygon boolean operations over sets of ``Poly`` objects.
Holes are encoded by orientation (clockwise = hole) and every operation
uses the non-zero fill rule, so a set of outer and hole polygons is
interpreted the same way by all functions here.

Results are returned as new ``Poly`` objects tagged with the caller's Z.

References:
- pyclipper: https://github.com/fonttools/pyclipper
- Clipper library: http://www.angusj.com/delphi/clipper.php
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence, Tuple

import pyclipper

from layerslicer.geometry.polygon import Poly, RegionWithHoles

logger = logging.getLogger(__name__)

# pyclipper uses integer coordinates for precision.
# We scale floating-point mm coordinates by this factor.
_CLIPPER_SCALE = 1000  # 1 mm  → 1000 clipper units  → 0.001 mm resolution

_MITER_LIMIT = 2.0
_ARC_TOLERANCE = 0.01 * _CLIPPER_SCALE

_JOIN_TYPES = {
    "miter": pyclipper.JT_MITER,
    "round": pyclipper.JT_ROUND,
    "square": pyclipper.JT_SQUARE,
}

_FILL = pyclipper.PFT_NONZERO


def _to_clipper(poly: Poly) -> List[Tuple[int, int]]:
    """Scale floating-point polygon to pyclipper integer coordinates."""
    return [(int(round(x * _CLIPPER_SCALE)), int(round(y * _CLIPPER_SCALE)))
            for x, y in poly.vertices]


def _from_clipper(path: list, z: float, closed: bool = True) -> Poly:
    """Scale pyclipper integer coordinates back to floating-point mm."""
    return Poly([(x / _CLIPPER_SCALE, y / _CLIPPER_SCALE) for x, y in path], z, closed)


def _add_paths(
    clipper: pyclipper.Pyclipper,
    polys: Iterable[Poly],
    poly_type: int,
    closed: bool = True,
) -> int:
    """Add paths one by one, skipping the ones Clipper rejects as degenerate."""
    added = 0
    for poly in polys:
        if len(poly) < (3 if closed else 2):
            continue
        try:
            clipper.AddPath(_to_clipper(poly), poly_type, closed)
            added += 1
        except pyclipper.ClipperException:
            logger.debug("Skipping degenerate path with %d vertices", len(poly))
    return added


def _execute(
    clip_type: int,
    subject: Sequence[Poly],
    clip: Sequence[Poly],
    z: float,
) -> List[Poly]:
    pc = pyclipper.Pyclipper()
    if not _add_paths(pc, subject, pyclipper.PT_SUBJECT):
        return []
    _add_paths(pc, clip, pyclipper.PT_CLIP)
    result = pc.Execute(clip_type, _FILL, _FILL)
    return [_from_clipper(path, z) for path in result if len(path) >= 3]


def _execute_tree(
    clip_type: int,
    subject: Sequence[Poly],
    clip: Sequence[Poly],
) -> pyclipper.PyPolyNode | None:
    pc = pyclipper.Pyclipper()
    if not _add_paths(pc, subject, pyclipper.PT_SUBJECT):
        return None
    _add_paths(pc, clip, pyclipper.PT_CLIP)
    return pc.Execute2(clip_type, _FILL, _FILL)


def _regions_from_tree(node: pyclipper.PyPolyNode, z: float) -> List[RegionWithHoles]:
    """Flatten a PolyTree into outer/holes groups (islands become new groups)."""
    regions: List[RegionWithHoles] = []
    pending = list(node.Childs)
    while pending:
        outer = pending.pop(0)
        if len(outer.Contour) < 3:
            continue
        holes = []
        for hole in outer.Childs:
            if len(hole.Contour) >= 3:
                holes.append(_from_clipper(hole.Contour, z))
            pending.extend(hole.Childs)
        regions.append(RegionWithHoles(_from_clipper(outer.Contour, z), holes))
    return regions


# ---------------------------------------------------------------------------
# Boolean operations
# ---------------------------------------------------------------------------


def union(polys: Sequence[Poly], z: float = 0.0) -> List[Poly]:
    """Union of all polygons (A ∪ B ∪ ...)."""
    return _execute(pyclipper.CT_UNION, polys, [], z)


def intersect(subject: Sequence[Poly], clip: Sequence[Poly], z: float = 0.0) -> List[Poly]:
    """Intersection of the subject set with the clip set (A ∩ B)."""
    if not clip:
        return []
    return _execute(pyclipper.CT_INTERSECTION, subject, clip, z)


def subtract(subject: Sequence[Poly], clip: Sequence[Poly], z: float = 0.0) -> List[Poly]:
    """Difference of the subject set minus the clip set (A − B)."""
    return _execute(pyclipper.CT_DIFFERENCE, subject, clip, z)


def ext_union(polys: Sequence[Poly], z: float = 0.0) -> List[RegionWithHoles]:
    """Union grouped into regions with their holes."""
    tree = _execute_tree(pyclipper.CT_UNION, polys, [])
    return _regions_from_tree(tree, z) if tree is not None else []


def ext_intersect(
    subject: Sequence[Poly], clip: Sequence[Poly], z: float = 0.0,
) -> List[RegionWithHoles]:
    """Intersection grouped into regions with their holes."""
    if not clip:
        return []
    tree = _execute_tree(pyclipper.CT_INTERSECTION, subject, clip)
    return _regions_from_tree(tree, z) if tree is not None else []


def ext_subtract(
    subject: Sequence[Poly], clip: Sequence[Poly], z: float = 0.0,
) -> List[RegionWithHoles]:
    """Difference grouped into regions with their holes."""
    tree = _execute_tree(pyclipper.CT_DIFFERENCE, subject, clip)
    return _regions_from_tree(tree, z) if tree is not None else []


def clip_lines(lines: Sequence[Poly], clip: Sequence[Poly], z: float = 0.0) -> List[Poly]:
    """Intersect open polylines with closed clip polygons."""
    if not clip:
        return []
    pc = pyclipper.Pyclipper()
    if not _add_paths(pc, lines, pyclipper.PT_SUBJECT, closed=False):
        return []
    _add_paths(pc, clip, pyclipper.PT_CLIP)
    tree = pc.Execute2(pyclipper.CT_INTERSECTION, _FILL, _FILL)
    return [_from_clipper(path, z, closed=False)
            for path in pyclipper.OpenPathsFromPolyTree(tree) if len(path) >= 2]


# ---------------------------------------------------------------------------
# Offsetting
# ---------------------------------------------------------------------------


def offset(
    polys: Sequence[Poly],
    distance: float,
    z: float | None = None,
    join: str = "miter",
) -> List[Poly]:
    """
    Grow (``distance`` > 0) or shrink (``distance`` < 0) a polygon set.

    Outer polygons shrink and holes grow for negative distances; polygons
    that collapse disappear from the result.

    Parameters:
        polys: Polygons with orientation-encoded holes.
        distance: Offset distance in mm.
        z: Z tag for the result (defaults to the first input's Z).
        join: Corner join type: "miter", "round" or "square".
    """
    if z is None:
        z = polys[0].z if polys else 0.0
    if not polys:
        return []

    pco = pyclipper.PyclipperOffset(_MITER_LIMIT, _ARC_TOLERANCE)
    added = 0
    for poly in polys:
        if len(poly) < 3:
            continue
        try:
            pco.AddPath(_to_clipper(poly), _JOIN_TYPES[join], pyclipper.ET_CLOSEDPOLYGON)
            added += 1
        except pyclipper.ClipperException:
            logger.debug("Skipping degenerate offset path with %d vertices", len(poly))
    if not added:
        return []

    result = pco.Execute(distance * _CLIPPER_SCALE)
    return [_from_clipper(path, z) for path in result if len(path) >= 3]


def merged(polys: Sequence[Poly], overlap: float = 0.0, z: float | None = None) -> List[Poly]:
    """
    Union that also closes gaps narrower than ``2 * overlap``.

    The set is grown by ``overlap``, united and shrunk back.
    """
    if z is None:
        z = polys[0].z if polys else 0.0
    if overlap <= 0:
        return union(polys, z)
    grown = offset(polys, overlap, z)
    return offset(union(grown, z), -overlap, z)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def region_polys(regions: Iterable[RegionWithHoles]) -> List[Poly]:
    """Flatten regions into one polygon list (outers and holes)."""
    polys: List[Poly] = []
    for region in regions:
        polys.extend(region.polys())
    return polys


def total_area(polys: Iterable[Poly]) -> float:
    """Signed area sum: solids minus holes."""
    return sum(p.area for p in polys)
