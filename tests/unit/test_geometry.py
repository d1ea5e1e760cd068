"""
Unit tests for the boundary geometry pipeline.

Tests validation, ring repair, simplification, centroid fallback, EWKT
encoding and the combined process_feature_geometry entry point.
"""

import pytest

from scripts.processors.geometry import (
    centroid_fallback,
    close_ring,
    geojson_to_wkt,
    process_feature_geometry,
    remove_duplicate_points,
    repair_geometry,
    simplify_boundary,
    validate_geometry,
    wkt_to_geojson,
)

SQUARE = [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]


class TestValidateGeometry:
    """Test cases for validate_geometry."""

    def test_valid_polygon(self):
        assert validate_geometry({"type": "Polygon", "coordinates": [SQUARE]}).valid

    def test_valid_point(self):
        assert validate_geometry({"type": "Point", "coordinates": [-78.7, 35.8]}).valid

    def test_longitude_out_of_range(self):
        """Test that a Point at longitude 200 is rejected with a longitude reason."""
        result = validate_geometry({"type": "Point", "coordinates": [200, 45]})

        assert result.valid is False
        assert result.error == "Longitude 200 out of range [-180, 180]"

    def test_latitude_out_of_range(self):
        result = validate_geometry({"type": "Point", "coordinates": [45, -95]})

        assert result.error == "Latitude -95 out of range [-90, 90]"

    def test_unclosed_ring(self):
        result = validate_geometry(
            {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1]]]}
        )

        assert result.error == "Polygon ring 0 is not closed (first point must equal last point)"

    def test_too_few_points(self):
        result = validate_geometry({"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [0, 0]]]})

        assert "at least 4 points" in result.error

    @pytest.mark.parametrize(
        "geometry, message",
        [
            ("not a dict", "Geometry must be an object"),
            ({"coordinates": []}, "Geometry missing type"),
            ({"type": "GeometryCollection", "coordinates": []}, "Unsupported geometry type"),
            ({"type": "Point"}, "Geometry missing coordinates"),
            ({"type": "Point", "coordinates": ["a", "b"]}, "must be numeric"),
            ({"type": "Point", "coordinates": [float("inf"), 1]}, "must be finite"),
            ({"type": "Polygon", "coordinates": []}, "at least one ring"),
            ({"type": "Polygon", "coordinates": SQUARE}, "wrong nesting depth"),
            (
                {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [[1, 1]], [0, 0]]]},
                "inconsistent nesting at depth 2",
            ),
            ({"type": "Polygon", "coordinates": [SQUARE, 7]}, "inconsistent nesting at depth 0"),
            ({"type": "LineString", "coordinates": [[0, 0]]}, "at least 2 points"),
        ],
    )
    def test_invalid_structures(self, geometry, message):
        result = validate_geometry(geometry)

        assert result.valid is False
        assert message in result.error

    def test_multipolygon_reports_polygon_index(self):
        geometry = {
            "type": "MultiPolygon",
            "coordinates": [[SQUARE], [[[0, 0], [2, 0], [2, 2], [0, 2]]]],
        }

        result = validate_geometry(geometry)

        assert result.error.startswith("MultiPolygon polygon 1 ring 0 is not closed")


class TestRepair:
    """Test cases for ring repair."""

    def test_close_unclosed_ring(self):
        """Test that an open ring is closed by repeating its first point."""
        ring = [[0, 0], [1, 0], [1, 1], [0, 1]]

        assert close_ring(ring) == [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]

    def test_remove_consecutive_duplicates(self):
        ring = [[0, 0], [0, 0], [1, 0], [1, 0], [1, 1]]

        assert remove_duplicate_points(ring) == [[0, 0], [1, 0], [1, 1]]

    def test_repair_is_idempotent(self):
        geometry = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 0], [1, 1], [0, 1]]]}

        once = repair_geometry(geometry)
        twice = repair_geometry(once)

        assert once == twice
        assert once["coordinates"][0] == SQUARE

    def test_degenerate_holes_dropped(self):
        geometry = {"type": "Polygon", "coordinates": [SQUARE, [[0.2, 0.2], [0.3, 0.3]]]}

        assert repair_geometry(geometry)["coordinates"] == [SQUARE]

    def test_non_polygon_unchanged(self):
        point = {"type": "Point", "coordinates": [1, 2]}

        assert repair_geometry(point) == point


class TestSimplifyAndCentroid:
    """Test cases for simplification and centroid fallback."""

    def test_simplify_removes_collinear_points(self):
        ring = [[0, 0], [0.5, 0], [1, 0], [1, 1], [0, 1], [0, 0]]

        simplified = simplify_boundary(
            {"type": "Polygon", "coordinates": [ring]}, tolerance_meters=10
        )

        assert [0.5, 0] not in simplified["coordinates"][0]
        assert simplified["type"] == "Polygon"

    def test_simplify_ignores_points(self):
        point = {"type": "Point", "coordinates": [1, 2]}

        assert simplify_boundary(point) is point

    def test_centroid_is_vertex_mean(self):
        """Test that the fallback averages vertices, counting the closing point twice."""
        latitude, longitude = centroid_fallback({"type": "Polygon", "coordinates": [SQUARE]})

        assert latitude == pytest.approx(0.4)
        assert longitude == pytest.approx(0.4)

    def test_centroid_without_vertices(self):
        assert centroid_fallback({"type": "Polygon", "coordinates": []}) is None


class TestEncoding:
    """Test cases for EWKT encoding and decoding."""

    def test_polygon_to_ewkt(self):
        geometry = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]}

        assert geojson_to_wkt(geometry) == "SRID=4326;POLYGON((0 0, 1 0, 1 1, 0 0))"

    def test_point_to_ewkt(self):
        assert geojson_to_wkt({"type": "Point", "coordinates": [-78.5, 35.25]}) == (
            "SRID=4326;POINT(-78.5 35.25)"
        )

    def test_multipolygon_to_ewkt(self):
        geometry = {"type": "MultiPolygon", "coordinates": [[SQUARE]]}

        assert geojson_to_wkt(geometry, srid=4269).startswith("SRID=4269;MULTIPOLYGON(((0 0")

    def test_unsupported_returns_none(self):
        assert geojson_to_wkt({"type": "MultiPoint", "coordinates": [[0, 0]]}) is None
        assert geojson_to_wkt(None) is None

    def test_round_trip_polygon(self):
        text = "SRID=4326;POLYGON((0 0, 1 0, 1 1, 0 1, 0 0))"

        geometry = wkt_to_geojson(text)

        assert geometry["type"] == "Polygon"
        assert geometry["coordinates"][0][0] == [0.0, 0.0]

    def test_invalid_wkt_returns_none(self):
        assert wkt_to_geojson("SRID=4326;NOT A SHAPE") is None


class TestProcessFeatureGeometry:
    """Test cases for the full geometry pipeline."""

    def test_none_geometry(self):
        result = process_feature_geometry(None)

        assert result.boundary is None
        assert result.error is None

    def test_point_sets_coordinates_only(self):
        result = process_feature_geometry({"type": "Point", "coordinates": [-78.7, 35.8]})

        assert (result.latitude, result.longitude) == (35.8, -78.7)
        assert result.boundary is None

    def test_polygon_encoded_with_centroid(self):
        result = process_feature_geometry({"type": "Polygon", "coordinates": [SQUARE]})

        assert result.boundary.startswith("SRID=4326;POLYGON((")
        assert result.latitude == pytest.approx(0.4)

    def test_unclosed_ring_repaired(self):
        """Test that the repair policy closes an open ring instead of rejecting it."""
        geometry = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1]]]}

        result = process_feature_geometry(geometry, tolerance_meters=0)

        assert result.error is None
        assert result.repaired is True
        assert wkt_to_geojson(result.boundary)["coordinates"][0][-1] == [0.0, 0.0]

    def test_unclosed_ring_rejected_without_repair(self):
        geometry = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1]]]}

        result = process_feature_geometry(geometry, repair=False)

        assert result.error.startswith("Invalid geometry: Polygon ring 0 is not closed")

    def test_unrepairable_geometry(self):
        result = process_feature_geometry({"type": "Point", "coordinates": [200, 45]})

        assert "Longitude 200 out of range" in result.error
        assert "repair failed" in result.error

    def test_mixed_nesting_returns_error(self):
        """Test that a position nested one level too deep is reported, not encoded."""
        geometry = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [[1, 1]], [0, 0]]]}

        result = process_feature_geometry(geometry)

        assert result.boundary is None
        assert "inconsistent nesting" in result.error

    def test_non_list_ring_survives_repair(self):
        result = process_feature_geometry({"type": "Polygon", "coordinates": [SQUARE, 7]})

        assert result.boundary is None
        assert "repair failed: Coordinates have inconsistent nesting" in result.error
