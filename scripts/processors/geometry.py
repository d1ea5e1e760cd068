"""
Geometry pipeline for park boundaries.

Operates on GeoJSON-shaped geometry dictionaries and turns an untrusted feature
geometry into either a storable boundary plus marker coordinates, or a
rejection reason.

Pipeline:
1. Validate structure, numeric/finite coordinates and WGS84 ranges
2. Repair rings (drop consecutive duplicate points, close open rings)
3. Simplify polygon rings with shapely's Douglas-Peucker simplification
4. Estimate marker coordinates from the boundary vertices when needed
5. Encode as EWKT ("SRID=4326;POLYGON((...))") for the store

Validation never raises; it returns a GeometryValidation verdict. Topological
validity (self-intersections, ring orientation) is not checked.
"""

from __future__ import annotations

import logging
import math
from typing import Any, NamedTuple

from shapely import wkt as shapely_wkt
from shapely.errors import ShapelyError
from shapely.geometry import mapping, shape

from config.settings import config

logger = logging.getLogger(__name__)

SUPPORTED_TYPES = ("Point", "LineString", "Polygon", "MultiPolygon")
# Array nesting between the coordinates member and a position
EXPECTED_DEPTHS = {"Point": 0, "LineString": 1, "Polygon": 2, "MultiPolygon": 3}
POLYGON_TYPES = ("Polygon", "MultiPolygon")
MIN_RING_POINTS = 4


class GeometryValidation(NamedTuple):
    valid: bool
    error: str | None = None


class ProcessedGeometry(NamedTuple):
    """Result of running one feature geometry through the pipeline."""

    boundary: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    error: str | None = None
    repaired: bool = False


# =============================================================================
# VALIDATION
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_position(position: list) -> str | None:
    if len(position) < 2:
        return "Coordinate must have at least 2 values [lng, lat]"
    if not all(_is_number(value) for value in position):
        return f"Coordinate values must be numeric, got {position}"
    if not all(math.isfinite(value) for value in position):
        return f"Coordinate values must be finite, got {position}"

    lng, lat = position[0], position[1]
    if not -180 <= lng <= 180:
        return f"Longitude {lng} out of range [-180, 180]"
    if not -90 <= lat <= 90:
        return f"Latitude {lat} out of range [-90, 90]"
    return None


def _check_nested(
    coordinates: Any, depth: int, expected_depth: int, max_depth: int
) -> str | None:
    """
    Walk nested coordinate arrays and validate every position.

    Every position must sit exactly at ``expected_depth``; arrays that mix
    positions with deeper or shallower nesting are rejected.
    """
    if depth > max_depth:
        return f"Coordinate nesting exceeds maximum depth of {max_depth}"
    if not isinstance(coordinates, list):
        return "Coordinates must be an array"
    if not coordinates:
        return "Coordinates array is empty"

    if depth == expected_depth:
        if any(isinstance(value, list) for value in coordinates):
            return f"Coordinates have inconsistent nesting at depth {depth}"
        return _check_position(coordinates)

    if not all(isinstance(child, list) for child in coordinates):
        return f"Coordinates have inconsistent nesting at depth {depth}"
    for child in coordinates:
        error = _check_nested(child, depth + 1, expected_depth, max_depth)
        if error:
            return error
    return None


def _nesting_depth(coordinates: Any) -> int:
    depth = 0
    while isinstance(coordinates, list) and coordinates:
        coordinates = coordinates[0]
        depth += 1
    return depth


def _check_rings(rings: list, label: str) -> str | None:
    if not rings:
        return f"{label} must have at least one ring"
    for index, ring in enumerate(rings):
        if len(ring) < MIN_RING_POINTS:
            if index == 0:
                return f"{label} exterior ring must have at least {MIN_RING_POINTS} points (closed ring)"
            return f"{label} interior ring {index} must have at least {MIN_RING_POINTS} points"
        if ring[0] != ring[-1]:
            return f"{label} ring {index} is not closed (first point must equal last point)"
    return None


def validate_geometry(
    geometry: Any, max_depth: int | None = None
) -> GeometryValidation:
    """
    Validate a GeoJSON geometry's structure and coordinates.

    Args:
        geometry: GeoJSON geometry dictionary
        max_depth: Maximum coordinate nesting depth (defaults to config)

    Returns:
        GeometryValidation: (valid, error) where error is a readable reason
    """
    max_depth = max_depth or config.GEOMETRY_MAX_DEPTH

    if not isinstance(geometry, dict):
        return GeometryValidation(False, "Geometry must be an object")

    geometry_type = geometry.get("type")
    if not geometry_type:
        return GeometryValidation(False, "Geometry missing type")
    if geometry_type not in SUPPORTED_TYPES:
        return GeometryValidation(False, f"Unsupported geometry type '{geometry_type}'")

    if "coordinates" not in geometry or geometry["coordinates"] is None:
        return GeometryValidation(False, "Geometry missing coordinates")

    coordinates = geometry["coordinates"]
    if not isinstance(coordinates, list):
        return GeometryValidation(False, "Coordinates must be an array")

    if geometry_type == "Polygon" and not coordinates:
        return GeometryValidation(False, "Polygon must have at least one ring")
    if geometry_type == "MultiPolygon" and not coordinates:
        return GeometryValidation(False, "MultiPolygon must have at least one polygon")

    expected_depth = EXPECTED_DEPTHS[geometry_type]
    if _nesting_depth(coordinates) - 1 != expected_depth:
        return GeometryValidation(
            False, f"{geometry_type} coordinates have the wrong nesting depth"
        )

    error = _check_nested(coordinates, 0, expected_depth, max_depth)
    if error:
        return GeometryValidation(False, error)

    if geometry_type == "LineString" and len(coordinates) < 2:
        return GeometryValidation(False, "LineString must have at least 2 points")

    if geometry_type == "Polygon":
        error = _check_rings(coordinates, "Polygon")
        if error:
            return GeometryValidation(False, error)

    if geometry_type == "MultiPolygon":
        for index, polygon in enumerate(coordinates):
            error = _check_rings(polygon, f"MultiPolygon polygon {index}")
            if error:
                return GeometryValidation(False, error)

    return GeometryValidation(True)


# =============================================================================
# REPAIR
# =============================================================================


def remove_duplicate_points(ring: list) -> list:
    """Drop consecutive points with exactly equal coordinates."""
    result: list = []
    for point in ring:
        if not result or point != result[-1]:
            result.append(point)
    return result


def close_ring(ring: list) -> list:
    """Append the first point when the ring's first and last points differ."""
    if not ring:
        return []
    if ring[0] != ring[-1]:
        return [*ring, ring[0]]
    return list(ring)


def repair_ring(ring: list) -> list:
    return close_ring(remove_duplicate_points(ring))


def _repair_polygon(rings: list) -> list:
    # Non-list members are kept as-is so revalidation still rejects them
    repaired = [repair_ring(ring) if isinstance(ring, list) else ring for ring in rings]
    if not repaired:
        return repaired
    # Degenerate holes are dropped; a degenerate exterior is left for validation to reject
    exterior, holes = repaired[0], repaired[1:]
    return [
        exterior,
        *[
            hole
            for hole in holes
            if not isinstance(hole, list) or len(hole) >= MIN_RING_POINTS
        ],
    ]


def repair_geometry(geometry: dict) -> dict:
    """
    Best-effort ring repair for Polygon and MultiPolygon geometries.

    Other geometry types are returned unchanged. The operation is idempotent.

    Args:
        geometry: GeoJSON geometry dictionary

    Returns:
        dict: New geometry dictionary with repaired rings
    """
    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list):
        return dict(geometry)

    if geometry_type == "Polygon":
        return {**geometry, "coordinates": _repair_polygon(coordinates)}
    if geometry_type == "MultiPolygon":
        return {
            **geometry,
            "coordinates": [
                _repair_polygon(polygon)
                for polygon in coordinates
                if isinstance(polygon, list)
            ],
        }
    return dict(geometry)


# =============================================================================
# SIMPLIFICATION
# =============================================================================


def _as_lists(coordinates: Any) -> Any:
    if isinstance(coordinates, (list, tuple)):
        return [_as_lists(item) for item in coordinates]
    return coordinates


def simplify_boundary(
    geometry: dict,
    tolerance_meters: float | None = None,
    meters_per_degree: float | None = None,
) -> dict:
    """
    Reduce polygon ring point counts with Douglas-Peucker simplification.

    The tolerance is converted to degrees with a fixed 1 degree ~ 111 km
    approximation. Non-polygon geometries and any simplification failure
    return the input unchanged.

    Args:
        geometry: Polygon or MultiPolygon GeoJSON geometry
        tolerance_meters: Simplification tolerance (default ~152 m / 500 ft)
        meters_per_degree: Meters per degree used for the conversion

    Returns:
        dict: Simplified geometry, or the original geometry
    """
    if not isinstance(geometry, dict) or geometry.get("type") not in POLYGON_TYPES:
        return geometry

    tolerance_meters = (
        config.SIMPLIFY_TOLERANCE_METERS if tolerance_meters is None else tolerance_meters
    )
    meters_per_degree = meters_per_degree or config.METERS_PER_DEGREE
    tolerance_degrees = tolerance_meters / meters_per_degree

    try:
        simplified = shape(geometry).simplify(tolerance_degrees, preserve_topology=True)
        if simplified.is_empty:
            logger.warning("Simplification produced an empty geometry, keeping original")
            return geometry
        result = mapping(simplified)
        return {"type": result["type"], "coordinates": _as_lists(result["coordinates"])}
    except (ShapelyError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Failed to simplify geometry, keeping original: {e}")
        return geometry


# =============================================================================
# CENTROID FALLBACK
# =============================================================================


def _iter_positions(coordinates: Any):
    if isinstance(coordinates, list) and coordinates and _is_number(coordinates[0]):
        yield coordinates
        return
    if isinstance(coordinates, list):
        for child in coordinates:
            yield from _iter_positions(child)


def centroid_fallback(geometry: dict) -> tuple[float, float] | None:
    """
    Approximate a marker location as the mean of every vertex.

    This is not an area-weighted centroid; closing vertices count twice.

    Args:
        geometry: GeoJSON geometry dictionary

    Returns:
        tuple[float, float] | None: (latitude, longitude), or None if no vertices
    """
    if not isinstance(geometry, dict):
        return None

    positions = list(_iter_positions(geometry.get("coordinates")))
    if not positions:
        return None

    longitude = sum(p[0] for p in positions) / len(positions)
    latitude = sum(p[1] for p in positions) / len(positions)
    return latitude, longitude


# =============================================================================
# ENCODING
# =============================================================================


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def _position_text(position: list) -> str:
    return f"{_format_number(position[0])} {_format_number(position[1])}"


def _ring_text(ring: list) -> str:
    return "(" + ", ".join(_position_text(p) for p in ring) + ")"


def _polygon_text(rings: list) -> str:
    return "(" + ", ".join(_ring_text(ring) for ring in rings) + ")"


def geojson_to_wkt(geometry: dict | None, srid: int | None = None) -> str | None:
    """
    Encode a GeoJSON geometry as EWKT with an explicit SRID tag.

    Args:
        geometry: Point, LineString, Polygon or MultiPolygon geometry
        srid: Spatial reference id (default 4326, WGS84)

    Returns:
        str | None: e.g. 'SRID=4326;POLYGON((0 0, 1 0, 1 1, 0 0))', or None
                    for unsupported or empty geometries
    """
    if not isinstance(geometry, dict):
        return None

    srid = srid or config.DEFAULT_SRID
    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if not coordinates:
        return None

    if geometry_type == "Point":
        body = f"POINT({_position_text(coordinates)})"
    elif geometry_type == "LineString":
        body = "LINESTRING" + _ring_text(coordinates)
    elif geometry_type == "Polygon":
        body = "POLYGON" + _polygon_text(coordinates)
    elif geometry_type == "MultiPolygon":
        body = "MULTIPOLYGON(" + ", ".join(_polygon_text(p) for p in coordinates) + ")"
    else:
        return None

    return f"SRID={srid};{body}"


def wkt_to_geojson(text: str | None) -> dict | None:
    """Parse stored (E)WKT back into a GeoJSON geometry dictionary."""
    if not text:
        return None

    body = text.split(";", 1)[1] if text.upper().startswith("SRID=") else text
    try:
        result = mapping(shapely_wkt.loads(body))
    except (ShapelyError, ValueError) as e:
        logger.warning(f"Could not parse stored geometry: {e}")
        return None
    return {"type": result["type"], "coordinates": _as_lists(result["coordinates"])}


# =============================================================================
# FULL PIPELINE
# =============================================================================


def process_feature_geometry(
    geometry: dict | None,
    repair: bool = True,
    tolerance_meters: float | None = None,
    srid: int | None = None,
) -> ProcessedGeometry:
    """
    Run one feature geometry through validate, repair, simplify and encode.

    Args:
        geometry: Feature geometry, or None
        repair: Attempt ring repair when validation fails; if False the
                feature is rejected immediately
        tolerance_meters: Simplification tolerance
        srid: Spatial reference id for the encoded boundary

    Returns:
        ProcessedGeometry: boundary and/or coordinates, or an error reason
    """
    if geometry is None:
        return ProcessedGeometry()

    validation = validate_geometry(geometry)
    repaired = False
    if not validation.valid:
        if not repair or not isinstance(geometry, dict):
            return ProcessedGeometry(error=f"Invalid geometry: {validation.error}")

        fixed = repair_geometry(geometry)
        revalidation = validate_geometry(fixed)
        if not revalidation.valid:
            return ProcessedGeometry(
                error=f"Invalid geometry: {validation.error} (repair failed: {revalidation.error})"
            )
        geometry, repaired = fixed, True

    geometry_type = geometry["type"]
    if geometry_type == "Point":
        lng, lat = geometry["coordinates"][0], geometry["coordinates"][1]
        return ProcessedGeometry(latitude=lat, longitude=lng, repaired=repaired)

    if geometry_type == "LineString":
        centroid = centroid_fallback(geometry)
        lat, lng = centroid if centroid else (None, None)
        return ProcessedGeometry(latitude=lat, longitude=lng, repaired=repaired)

    simplified = simplify_boundary(geometry, tolerance_meters)
    boundary = geojson_to_wkt(simplified, srid)
    centroid = centroid_fallback(simplified)
    lat, lng = centroid if centroid else (None, None)
    return ProcessedGeometry(
        boundary=boundary, latitude=lat, longitude=lng, repaired=repaired
    )
