"""
Unit tests for the coordinate backfill.
"""

from unittest.mock import Mock

import pytest

from scripts.collectors.api_client import UpstreamAPIError
from scripts.collectors.geocoder import GeocodeResult
from scripts.collectors.park_schemas import ParkRecord
from scripts.database.park_store import InMemoryParkStore
from scripts.processors.coordinate_backfill import backfill_missing_coordinates

SQUARE_BOUNDARY = "SRID=4326;POLYGON((-79 35, -78 35, -78 36, -79 36, -79 35))"


def _record(name, state="NC", **fields):
    defaults = dict(name=name, state=state, data_source_priority=80, data_quality_score=30)
    defaults.update(fields)
    return ParkRecord(**defaults)


class TestBackfillMissingCoordinates:
    """Test cases for backfill_missing_coordinates."""

    def test_nothing_to_do(self, memory_store):
        memory_store.insert(_record("Umstead", latitude=35.8, longitude=-78.7))

        summary = backfill_missing_coordinates(memory_store, geocoder=Mock())

        assert summary.processed == 0
        assert summary.fixed == 0

    def test_boundary_centroid_used_first(self):
        store = InMemoryParkStore([_record("Square Park", boundary=SQUARE_BOUNDARY)])
        geocoder = Mock()

        summary = backfill_missing_coordinates(store, geocoder=geocoder, delay_seconds=0)

        assert summary.fixed == 1
        assert summary.from_boundary == 1
        geocoder.geocode.assert_not_called()
        stored = store.get(1)
        assert stored.latitude == pytest.approx(35.4)
        assert stored.longitude == pytest.approx(-78.6)

    def test_geocodes_address_or_name(self):
        store = InMemoryParkStore(
            [
                _record("Falls Lake", address="13304 Creedmoor Rd, Wake Forest, NC"),
                _record("Eno River"),
            ]
        )
        geocoder = Mock()
        geocoder.geocode.return_value = GeocodeResult(36.0, -78.7, 0.9, "somewhere")

        summary = backfill_missing_coordinates(store, geocoder=geocoder, delay_seconds=0)

        assert summary.fixed == 2
        assert summary.from_geocoding == 2
        queries = [c.args[0] for c in geocoder.geocode.call_args_list]
        assert queries == ["13304 Creedmoor Rd, Wake Forest, NC", "Eno River, NC"]
        assert store.get(2).latitude == 36.0

    def test_only_coordinates_are_filled(self):
        """Test that a low-priority geocode never touches other fields."""
        store = InMemoryParkStore([_record("Eno River", website="https://eno.example")])
        geocoder = Mock()
        geocoder.geocode.return_value = GeocodeResult(36.0, -78.7, 0.9, "somewhere")

        backfill_missing_coordinates(store, geocoder=geocoder, delay_seconds=0)

        stored = store.get(1)
        assert stored.website == "https://eno.example"
        assert stored.data_source_priority == 80

    def test_unresolved_counted_as_skipped(self):
        store = InMemoryParkStore([_record("Nowhere Park")])
        geocoder = Mock()
        geocoder.geocode.return_value = None

        summary = backfill_missing_coordinates(store, geocoder=geocoder, delay_seconds=0)

        assert summary.skipped == 1
        assert store.get(1).latitude is None

    def test_without_geocoder_only_boundaries(self):
        store = InMemoryParkStore([_record("Nowhere Park"), _record("Square", boundary=SQUARE_BOUNDARY)])

        summary = backfill_missing_coordinates(store, geocoder=None)

        assert summary.processed == 2
        assert summary.fixed == 1
        assert summary.skipped == 1

    def test_geocoding_error_recorded(self):
        store = InMemoryParkStore([_record("Eno River"), _record("Falls Lake")])
        geocoder = Mock()
        geocoder.geocode.side_effect = [
            UpstreamAPIError("HTTP 500"),
            GeocodeResult(36.0, -78.7, 0.9, "somewhere"),
        ]

        summary = backfill_missing_coordinates(store, geocoder=geocoder, delay_seconds=0)

        assert summary.failed == 1
        assert summary.errors[0].name == "Eno River"
        assert summary.fixed == 1

    def test_state_and_limit_filters(self):
        store = InMemoryParkStore(
            [_record("A"), _record("B", state="VA"), _record("C"), _record("D")]
        )
        geocoder = Mock()
        geocoder.geocode.return_value = None

        summary = backfill_missing_coordinates(
            store, geocoder=geocoder, state="NC", limit=2, delay_seconds=0
        )

        assert summary.processed == 2
        queries = [c.args[0] for c in geocoder.geocode.call_args_list]
        assert queries == ["A, NC", "C, NC"]
