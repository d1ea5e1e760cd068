"""
Unit tests for the Mapbox geocoder and the state resolver.
"""

from unittest.mock import Mock, patch

import pytest

from scripts.collectors.geocoder import (
    GeocodeResult,
    MapboxGeocoder,
    StateResolver,
    extract_region_code,
)
from scripts.collectors.park_schemas import ParkCandidate
from utils.cache import TTLCache


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("scripts.collectors.api_client.time.sleep"):
        yield


def _forward_payload(relevance=0.95):
    return {
        "features": [
            {
                "center": [-78.75, 35.88],
                "relevance": relevance,
                "place_name": "William B. Umstead State Park, Raleigh, North Carolina",
            }
        ]
    }


class TestExtractRegionCode:
    """Test cases for parsing Mapbox feature context."""

    def test_region_short_code(self):
        context = [
            {"id": "place.1", "text": "Raleigh"},
            {"id": "region.2", "short_code": "US-NC"},
        ]

        assert extract_region_code(context) == "NC"

    def test_no_region(self):
        assert extract_region_code([{"id": "country.1", "short_code": "us"}]) is None
        assert extract_region_code(None) is None


class TestMapboxGeocoder:
    """Test cases for forward and reverse geocoding."""

    def test_requires_token(self, monkeypatch):
        from config.settings import config

        monkeypatch.setattr(config, "MAPBOX_ACCESS_TOKEN", None)

        with pytest.raises(ValueError, match="Mapbox token is required"):
            MapboxGeocoder()

    def test_forward_geocode(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(200, _forward_payload())
        geocoder = MapboxGeocoder(session=mock_session)

        result = geocoder.geocode("Umstead State Park, NC")

        assert result == GeocodeResult(
            35.88, -78.75, 0.95, "William B. Umstead State Park, Raleigh, North Carolina"
        )
        url = mock_session.get.call_args[0][0]
        assert url.endswith("/Umstead%20State%20Park%2C%20NC.json")
        assert mock_session.get.call_args[1]["params"]["access_token"] == "test_mapbox_token"

    def test_low_relevance_rejected(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(200, _forward_payload(relevance=0.4))
        geocoder = MapboxGeocoder(session=mock_session)

        assert geocoder.geocode("Somewhere vague") is None

    def test_no_results(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(200, {"features": []})
        geocoder = MapboxGeocoder(session=mock_session)

        assert geocoder.geocode("Nowhere") is None

    def test_blank_query_skips_request(self, mock_session):
        geocoder = MapboxGeocoder(session=mock_session)

        assert geocoder.geocode("   ") is None
        mock_session.get.assert_not_called()

    def test_results_cached_case_insensitively(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(200, _forward_payload())
        geocoder = MapboxGeocoder(session=mock_session, cache=TTLCache(ttl_seconds=60))

        geocoder.geocode("Umstead State Park")
        geocoder.geocode("umstead state park")

        assert mock_session.get.call_count == 1

    def test_reverse_geocode_from_context(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(
            200,
            {"features": [{"place_type": ["poi"], "context": [{"id": "region.9", "short_code": "US-VA"}]}]},
        )
        geocoder = MapboxGeocoder(session=mock_session)

        assert geocoder.reverse_geocode(37.5, -79.1) == "VA"
        assert mock_session.get.call_args[0][0].endswith("/-79.1,37.5.json")

    def test_reverse_geocode_region_feature(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(
            200,
            {"features": [{"place_type": ["region"], "properties": {"short_code": "US-TN"}}]},
        )
        geocoder = MapboxGeocoder(session=mock_session)

        assert geocoder.reverse_geocode(35.6, -83.5) == "TN"


class TestStateResolver:
    """Test cases for filling missing states from coordinates."""

    def test_resolves_unknown_state(self):
        geocoder = Mock()
        geocoder.reverse_geocode.return_value = "NC"
        candidate = ParkCandidate(name="Mystery Park", latitude=35.5, longitude=-80.0)
        resolver = StateResolver(lambda item: (item, None), geocoder)

        resolved, geometry = resolver(candidate)

        assert resolved.state == "NC"
        assert geometry is None
        geocoder.reverse_geocode.assert_called_once_with(35.5, -80.0)

    def test_known_state_not_geocoded(self):
        geocoder = Mock()
        candidate = ParkCandidate(name="Umstead", state="NC", latitude=35.5, longitude=-80.0)

        StateResolver(lambda item: (item, None), geocoder)(candidate)

        geocoder.reverse_geocode.assert_not_called()

    def test_without_coordinates_left_unknown(self):
        geocoder = Mock()
        candidate = ParkCandidate(name="Mystery Park")

        resolved, _ = StateResolver(lambda item: (item, None), geocoder)(candidate)

        assert resolved.state == "N/A"
        geocoder.reverse_geocode.assert_not_called()
