# src/floorplan_editor/geometry.py
"""Geometry kernel: area, validation, overlap and scaling of space polygons.

Every function here is pure. Geometry problems a user can fix are returned
as ``ValidationResult`` data; malformed input raises ``GeometryError``.
"""
from __future__ import annotations

import math
import uuid
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any, Optional, Union

import numpy as np
from shapely.geometry import LineString, Polygon

from floorplan_editor.exceptions import GeometryError, ScaleBoundaryError
from floorplan_editor.models import (
    Coordinate,
    Dimensions,
    FloorPlan,
    FloorPlanSpace,
    OverlapResult,
    ScaleOptions,
    ValidationResult,
)

CLOSURE_EPSILON = 1e-4
COLLINEAR_EPSILON = 1e-12
MIN_HEIGHT_EXTENT = 0.1
MAX_HEIGHT_EXTENT = 10.0
DEFAULT_OVERLAP_TOLERANCE = 0.01
AREA_CACHE_SIZE = 1024
PATH_CACHE_SIZE = 512

CoordinateLike = Union[Coordinate, Mapping[str, Any], Sequence[float]]
Ring = tuple[tuple[float, float, Optional[float]], ...]


# ------------------------------------------------------------------ #
# Input normalisation
# ------------------------------------------------------------------ #

def _as_coordinate(value: Any, index: int) -> Coordinate:
    try:
        if isinstance(value, Coordinate):
            coord = value
        elif isinstance(value, Mapping):
            coord = Coordinate(x=value["x"], y=value["y"], z=value.get("z"))
        elif isinstance(value, (list, tuple)) and len(value) in (2, 3):
            coord = Coordinate(x=value[0], y=value[1], z=value[2] if len(value) == 3 else None)
        else:
            raise TypeError(type(value).__name__)
    except (KeyError, TypeError, ValueError) as exc:
        raise GeometryError(
            f"Coordinate {index} is malformed", details={"index": index, "error": str(exc)}
        ) from exc

    values = [coord.x, coord.y] + ([coord.z] if coord.z is not None else [])
    if not all(math.isfinite(v) for v in values):
        raise GeometryError(f"Coordinate {index} is not finite", details={"index": index})
    return coord


def normalize_coordinates(coordinates: Any) -> list[Coordinate]:
    """Coerce a coordinate sequence to ``Coordinate`` models, rejecting malformed input."""
    if isinstance(coordinates, np.ndarray):
        coordinates = coordinates.tolist()
    if not isinstance(coordinates, (list, tuple)):
        raise GeometryError(
            "Coordinates must be a sequence",
            details={"type": type(coordinates).__name__},
        )
    return [_as_coordinate(c, i) for i, c in enumerate(coordinates)]


def _as_dimensions(dimensions: Union[Dimensions, Mapping[str, Any]]) -> Dimensions:
    if isinstance(dimensions, Dimensions):
        return dimensions
    try:
        return Dimensions.model_validate(dimensions)
    except ValueError as exc:
        raise GeometryError("Dimensions are malformed", details={"error": str(exc)}) from exc


def _require_z(coords: Sequence[Coordinate]) -> None:
    missing = [i for i, c in enumerate(coords) if c.z is None]
    if missing:
        raise GeometryError(
            "3D geometry requires z on every coordinate",
            details={"missing_z": missing},
        )


def _ring_key(coords: Sequence[Coordinate]) -> Ring:
    return tuple((c.x, c.y, c.z) for c in coords)


def _space_coordinates(space: Union[FloorPlanSpace, Sequence[CoordinateLike]]) -> list[Coordinate]:
    if isinstance(space, FloorPlanSpace):
        return list(space.coordinates)
    return normalize_coordinates(space)


# ------------------------------------------------------------------ #
# Area
# ------------------------------------------------------------------ #

@lru_cache(maxsize=AREA_CACHE_SIZE)
def _area_of(ring: Ring, is_3d: bool) -> float:
    pts = np.array([(x, y, z if z is not None else 0.0) for x, y, z in ring], dtype=float)
    if is_3d:
        origin = pts[0]
        edges_a = pts[1:-1] - origin
        edges_b = pts[2:] - origin
        area = np.linalg.norm(np.cross(edges_a, edges_b), axis=1).sum() / 2
    else:
        xs, ys = pts[:, 0], pts[:, 1]
        area = abs(np.dot(xs, np.roll(ys, -1)) - np.dot(np.roll(xs, -1), ys)) / 2
    return round(float(area), 2)


def calculate_space_area(coordinates: Sequence[CoordinateLike], is_3d: bool = False) -> float:
    """Area of a space boundary, rounded to 2 decimals.

    2D uses the shoelace formula over the closed ring. 3D sums a triangle
    fan anchored at vertex 0. Results are memoized per ring in a bounded
    LRU cache.
    """
    coords = normalize_coordinates(coordinates)
    if len(coords) < 3:
        raise GeometryError(
            "Minimum 3 points required for area calculation",
            details={"points": len(coords)},
        )
    if is_3d:
        _require_z(coords)
    return _area_of(_ring_key(coords), is_3d)


# ------------------------------------------------------------------ #
# Segment predicates
# ------------------------------------------------------------------ #

def _orientation(p: tuple[float, float], q: tuple[float, float], r: tuple[float, float]) -> int:
    val = (q[1] - p[1]) * (r[0] - q[0]) - (q[0] - p[0]) * (r[1] - q[1])
    if abs(val) <= COLLINEAR_EPSILON:
        return 0
    return 1 if val > 0 else 2


def _on_segment(p: tuple[float, float], q: tuple[float, float], r: tuple[float, float]) -> bool:
    """True if q lies within the bounding box of segment pr."""
    return (
        min(p[0], r[0]) <= q[0] <= max(p[0], r[0])
        and min(p[1], r[1]) <= q[1] <= max(p[1], r[1])
    )


def _segments_intersect_xy(
    p1: tuple[float, float],
    p2: tuple[float, float],
    p3: tuple[float, float],
    p4: tuple[float, float],
) -> bool:
    o1 = _orientation(p1, p2, p3)
    o2 = _orientation(p1, p2, p4)
    o3 = _orientation(p3, p4, p1)
    o4 = _orientation(p3, p4, p2)

    if o1 != o2 and o3 != o4:
        return True
    if o1 == 0 and _on_segment(p1, p3, p2):
        return True
    if o2 == 0 and _on_segment(p1, p4, p2):
        return True
    if o3 == 0 and _on_segment(p3, p1, p4):
        return True
    if o4 == 0 and _on_segment(p3, p2, p4):
        return True
    return False


def segments_intersect(
    p1: CoordinateLike, p2: CoordinateLike, p3: CoordinateLike, p4: CoordinateLike
) -> bool:
    """Check whether segment p1-p2 touches or crosses segment p3-p4 in plan view."""
    a, b, c, d = normalize_coordinates([p1, p2, p3, p4])
    return _segments_intersect_xy((a.x, a.y), (b.x, b.y), (c.x, c.y), (d.x, d.y))


def is_polygon_closed(coordinates: Sequence[Coordinate], epsilon: float = CLOSURE_EPSILON) -> bool:
    first, last = coordinates[0], coordinates[-1]
    if abs(first.x - last.x) >= epsilon or abs(first.y - last.y) >= epsilon:
        return False
    if first.z is None and last.z is None:
        return True
    if first.z is None or last.z is None:
        return False
    return abs(first.z - last.z) < epsilon


def has_self_intersections(coordinates: Sequence[Coordinate]) -> bool:
    """Pairwise test of non-adjacent boundary edges."""
    pts = [(c.x, c.y) for c in coordinates]
    n_edges = len(pts) - 1
    closed = n_edges > 1 and is_polygon_closed(coordinates)
    for i in range(n_edges):
        for j in range(i + 2, n_edges):
            # first and last edge share the closing vertex
            if closed and i == 0 and j == n_edges - 1:
                continue
            if _segments_intersect_xy(pts[i], pts[i + 1], pts[j], pts[j + 1]):
                return True
    return False


# ------------------------------------------------------------------ #
# Validation
# ------------------------------------------------------------------ #

def _height_warnings(coords: Sequence[Coordinate]) -> list[str]:
    heights = [c.z for c in coords]
    extent = max(heights) - min(heights)
    warnings = []
    if extent < MIN_HEIGHT_EXTENT:
        warnings.append("Space height is very low")
    if extent > MAX_HEIGHT_EXTENT:
        warnings.append("Unusually large space height detected")
    return warnings


def validate_space_coordinates(
    coordinates: Sequence[CoordinateLike],
    dimensions: Union[Dimensions, Mapping[str, Any]],
    is_3d: bool = False,
) -> ValidationResult:
    """Validate a space boundary against the plan bounds and polygon rules.

    Never raises for invalid-but-well-formed geometry; the returned
    ``ValidationResult`` lists every problem found.
    """
    coords = normalize_coordinates(coordinates)
    dims = _as_dimensions(dimensions)

    min_points = 4 if is_3d else 3
    if len(coords) < min_points:
        return ValidationResult(
            is_valid=False,
            errors=[f"Minimum {min_points} points required"],
            warnings=[],
        )
    if is_3d:
        _require_z(coords)

    errors: list[str] = []
    warnings: list[str] = []

    for i, c in enumerate(coords):
        if not (0 <= c.x <= dims.width and 0 <= c.y <= dims.height):
            errors.append(f"Coordinate {i} outside floor plan boundaries")

    if has_self_intersections(coords):
        errors.append("Space boundaries have self-intersections")

    if not is_polygon_closed(coords):
        errors.append("Space boundary is not properly closed")

    if is_3d:
        warnings.extend(_height_warnings(coords))

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


# ------------------------------------------------------------------ #
# Overlap
# ------------------------------------------------------------------ #

def bounding_box(coordinates: Sequence[CoordinateLike]) -> tuple[float, float, float, float]:
    """Return (min_x, min_y, max_x, max_y) of a coordinate set."""
    coords = normalize_coordinates(coordinates)
    if not coords:
        raise GeometryError("Cannot compute the bounding box of no coordinates")
    xs = [c.x for c in coords]
    ys = [c.y for c in coords]
    return min(xs), min(ys), max(xs), max(ys)


def bounding_boxes_overlap(a: Sequence[Coordinate], b: Sequence[Coordinate]) -> bool:
    a_min_x, a_min_y, a_max_x, a_max_y = bounding_box(a)
    b_min_x, b_min_y, b_max_x, b_max_y = bounding_box(b)
    return not (
        a_max_x < b_min_x or b_max_x < a_min_x or a_max_y < b_min_y or b_max_y < a_min_y
    )


def _to_polygon(coords: Sequence[Coordinate]) -> Polygon:
    poly = Polygon([(c.x, c.y) for c in coords])
    if not poly.is_valid:
        poly = poly.buffer(0)
    return poly


def _collect_points(geom, out: list[tuple[float, float]]) -> None:
    if geom.is_empty:
        return
    kind = geom.geom_type
    if kind == "Point":
        out.append((geom.x, geom.y))
    elif kind == "LineString":
        coords = list(geom.coords)
        out.append(coords[0])
        out.append(coords[-1])
    elif kind in ("MultiPoint", "MultiLineString", "GeometryCollection"):
        for part in geom.geoms:
            _collect_points(part, out)


def find_intersection_points(a: Sequence[Coordinate], b: Sequence[Coordinate]) -> list[Coordinate]:
    """Points where the boundaries of two spaces meet, in plan view."""
    line_a = LineString([(c.x, c.y) for c in a])
    line_b = LineString([(c.x, c.y) for c in b])
    raw: list[tuple[float, float]] = []
    _collect_points(line_a.intersection(line_b), raw)

    seen: set[tuple[float, float]] = set()
    points = []
    for x, y in raw:
        key = (round(x, 6), round(y, 6))
        if key in seen:
            continue
        seen.add(key)
        points.append(Coordinate(x=x, y=y))
    return points


def check_space_overlap(
    space_a: Union[FloorPlanSpace, Sequence[CoordinateLike]],
    space_b: Union[FloorPlanSpace, Sequence[CoordinateLike]],
    tolerance: float = DEFAULT_OVERLAP_TOLERANCE,
) -> OverlapResult:
    """Detect overlap between two spaces (sharing an edge is NOT overlap).

    Bounding boxes are compared first so clearly separated spaces skip the
    polygon math. Overlap areas at or below ``tolerance`` are treated as
    floating-point slivers.
    """
    if tolerance < 0:
        raise GeometryError("Overlap tolerance must not be negative", details={"tolerance": tolerance})

    coords_a = _space_coordinates(space_a)
    coords_b = _space_coordinates(space_b)
    for label, coords in (("first", coords_a), ("second", coords_b)):
        if len(coords) < 3:
            raise GeometryError(
                f"Minimum 3 points required for the {label} space",
                details={"points": len(coords)},
            )

    if not bounding_boxes_overlap(coords_a, coords_b):
        return OverlapResult()

    points = find_intersection_points(coords_a, coords_b)
    overlap_area = float(_to_polygon(coords_a).intersection(_to_polygon(coords_b)).area)

    return OverlapResult(
        has_overlap=overlap_area > tolerance,
        overlap_area=overlap_area,
        intersection_points=points,
    )


# ------------------------------------------------------------------ #
# Scaling
# ------------------------------------------------------------------ #

def calculate_centroid(coordinates: Sequence[CoordinateLike]) -> Coordinate:
    """Coordinate-wise mean; z is included only when every point has one."""
    coords = normalize_coordinates(coordinates)
    if not coords:
        raise GeometryError("Cannot compute the centroid of no coordinates")
    n = len(coords)
    z = None
    if all(c.z is not None for c in coords):
        z = sum(c.z for c in coords) / n
    return Coordinate(
        x=sum(c.x for c in coords) / n,
        y=sum(c.y for c in coords) / n,
        z=z,
    )


def _check_boundaries(coords: Sequence[Coordinate], bounds: Dimensions) -> None:
    outside = [
        i for i, c in enumerate(coords)
        if not (0 <= c.x <= bounds.width and 0 <= c.y <= bounds.height)
    ]
    if outside:
        raise ScaleBoundaryError(
            "Scaled coordinates fall outside the boundary constraints",
            details={"indices": outside, "width": bounds.width, "height": bounds.height},
        )


def scale_coordinates(
    coordinates: Sequence[CoordinateLike],
    scale: float,
    options: Optional[ScaleOptions] = None,
) -> list[Coordinate]:
    """Scale a shape about a pivot: ``(p - pivot) * scale + pivot``.

    The pivot defaults to the centroid. Scaling is uniform, so the aspect
    ratio is always preserved and ``preserve_aspect_ratio`` needs no extra
    work. With ``boundary_constraints`` the result must stay inside the
    given dimensions or ``ScaleBoundaryError`` is raised; points are never
    clamped.
    """
    if not isinstance(scale, (int, float)) or not math.isfinite(scale) or scale <= 0:
        raise GeometryError("Scale factor must be positive", details={"scale": scale})

    coords = normalize_coordinates(coordinates)
    if not coords:
        raise GeometryError("Cannot scale an empty coordinate list")

    options = options or ScaleOptions()
    centroid = calculate_centroid(coords)
    pivot = options.center_point or centroid
    pivot_z = pivot.z if pivot.z is not None else centroid.z

    scaled = [
        Coordinate(
            x=(c.x - pivot.x) * scale + pivot.x,
            y=(c.y - pivot.y) * scale + pivot.y,
            z=None if c.z is None else (c.z - (pivot_z or 0.0)) * scale + (pivot_z or 0.0),
        )
        for c in coords
    ]

    if options.boundary_constraints is not None:
        _check_boundaries(scaled, options.boundary_constraints)

    return scaled


# ------------------------------------------------------------------ #
# Rendering helpers
# ------------------------------------------------------------------ #

@lru_cache(maxsize=PATH_CACHE_SIZE)
def _path_of(ring: Ring) -> str:
    parts = [f"{'M' if i == 0 else 'L'} {x:g} {y:g}" for i, (x, y, _) in enumerate(ring)]
    return " ".join(parts) + " Z"


def polygon_path(coordinates: Sequence[CoordinateLike]) -> str:
    """SVG path string for a space outline, memoized per ring."""
    coords = normalize_coordinates(coordinates)
    if not coords:
        return ""
    return _path_of(_ring_key(coords))


def clear_geometry_caches() -> None:
    _area_of.cache_clear()
    _path_of.cache_clear()


def geometry_cache_info() -> dict[str, Any]:
    return {"area": _area_of.cache_info(), "path": _path_of.cache_info()}


def generate_space_id() -> str:
    return str(uuid.uuid4())


# ------------------------------------------------------------------ #
# Whole-plan checks
# ------------------------------------------------------------------ #

def check_usable_area(spaces: Sequence[FloorPlanSpace], usable_area: float) -> ValidationResult:
    """Total space area must fit within the plan's usable area (0 disables the check)."""
    if usable_area <= 0:
        return ValidationResult.ok()
    total = round(
        sum(calculate_space_area(s.coordinates, s.is_3d) for s in spaces if len(s.coordinates) >= 3),
        2,
    )
    if total > usable_area:
        return ValidationResult(
            is_valid=False,
            errors=[f"Total space area {total:.2f} exceeds usable area {usable_area:.2f}"],
        )
    return ValidationResult.ok()


def validate_floor_plan(
    floor_plan: FloorPlan, tolerance: float = DEFAULT_OVERLAP_TOLERANCE
) -> ValidationResult:
    """Validate every space, every space pair, and the usable-area budget."""
    dims = floor_plan.metadata.dimensions
    result = ValidationResult.ok()
    well_formed: list[FloorPlanSpace] = []

    for space in floor_plan.spaces:
        check = validate_space_coordinates(space.coordinates, dims, space.is_3d)
        result = result.merge(ValidationResult(
            is_valid=check.is_valid,
            errors=[f"Space '{space.id}': {e}" for e in check.errors],
            warnings=[f"Space '{space.id}': {w}" for w in check.warnings],
        ))
        if len(space.coordinates) >= 3:
            well_formed.append(space)

    for i, a in enumerate(well_formed):
        for b in well_formed[i + 1:]:
            overlap = check_space_overlap(a, b, tolerance)
            if overlap.has_overlap:
                result = result.merge(ValidationResult(
                    is_valid=False,
                    errors=[
                        f"Space '{a.id}' overlaps space '{b.id}' by {overlap.overlap_area:.2f}"
                    ],
                ))

    return result.merge(check_usable_area(floor_plan.spaces, floor_plan.metadata.usable_area))
