"""
Shared test fixtures and configuration for the Park Reconciler test suite.

This file contains pytest fixtures that can be used across all test modules.
Fixtures defined here are automatically available to all test files.
"""

import os
from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock

import pytest
from dotenv import load_dotenv

# Load test environment variables (if any)
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


@pytest.fixture(autouse=True)
def test_environment(monkeypatch):
    """
    Keep tests independent of real credentials and local configuration.

    API keys and the database password are replaced with test values so
    client construction never depends on a developer's .env file.
    """
    from config.settings import config

    monkeypatch.setattr(config, "NPS_API_KEY", "test_nps_key")
    monkeypatch.setattr(config, "RECREATION_GOV_API_KEY", "test_ridb_key")
    monkeypatch.setattr(config, "MAPBOX_ACCESS_TOKEN", "test_mapbox_token")
    monkeypatch.setattr(config, "DB_PASSWORD", "test_password")
    yield


@pytest.fixture
def fixed_now():
    """A fixed timestamp for records created in tests."""
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def memory_store():
    """Provide an empty in-memory park store."""
    from scripts.database.park_store import InMemoryParkStore

    return InMemoryParkStore()


@pytest.fixture
def blue_ridge_record():
    """Stored record for the fuzzy-match merge scenario."""
    from scripts.collectors.park_schemas import ParkRecord

    return ParkRecord(
        name="Blue Ridge SP",
        state="NC",
        agency="NC State Parks",
        website="https://x",
        latitude=35.9,
        longitude=-81.5,
        data_source="NC State Parks",
        data_source_priority=90,
        data_quality_score=40,
    )


@pytest.fixture
def sample_nps_park():
    """
    Provide a realistic NPS API /parks record.

    Mirrors the fields the NPS API returns with the fields query parameter.
    """
    return {
        "parkCode": "blri",
        "fullName": "Blue Ridge Parkway",
        "name": "Blue Ridge",
        "states": "NC,VA",
        "url": "https://www.nps.gov/blri/index.htm",
        "description": "The Blue Ridge Parkway winds 469 miles through the Appalachian Highlands.",
        "designation": "Parkway",
        "latLong": "lat:35.56, long:-82.49",
        "latitude": "35.56",
        "longitude": "-82.49",
        "addresses": [
            {
                "line1": "199 Hemphill Knob Road",
                "city": "Asheville",
                "stateCode": "NC",
                "postalCode": "28803",
                "type": "Physical",
            }
        ],
        "contacts": {
            "phoneNumbers": [
                {"phoneNumber": "8282718001", "type": "Voice"},
                {"phoneNumber": "8282718002", "type": "Fax"},
            ],
            "emailAddresses": [{"emailAddress": "blri_info@nps.gov"}],
        },
        "activities": [{"id": "1", "name": "Hiking"}, {"id": "2", "name": "Camping"}],
    }


@pytest.fixture
def sample_recreation_gov_facility():
    """Provide a realistic Recreation.gov /facilities record (full=true)."""
    return {
        "FacilityID": 232448,
        "FacilityName": "Linville Falls Campground",
        "FacilityDescription": "Tent and RV camping with hiking trails to the falls.",
        "FacilityTypeDescription": "Campground",
        "FacilityAccessibilityText": "Accessible restrooms available.",
        "FacilityPhone": "828-765-7818",
        "FacilityEmail": "",
        "FacilityLatitude": 35.95,
        "FacilityLongitude": -81.93,
        "OrgAbbrevName": "NPS",
        "OrgName": "National Park Service",
        "FACILITYADDRESS": [{"AddressType": "Physical", "AddressStateCode": "NC"}],
        "ACTIVITY": [{"ActivityName": "CAMPING"}, {"ActivityName": "FISHING"}],
        "CAMPSITE": [{"CampsiteID": "1"}],
    }


@pytest.fixture
def sample_feature():
    """Provide a GeoJSON feature as found in a state GIS upload."""
    return {
        "type": "Feature",
        "properties": {
            "PARK_NAME": "Jordan Lake State Recreation Area",
            "STATE": "North Carolina",
            "MANAGING_AGENCY": "NC Division of Parks and Recreation",
            "GIS_ACRES": "4558.2",
            "COUNTY": "Chatham",
        },
        "geometry": {
            "type": "Polygon",
            "coordinates": [
                [
                    [-79.05, 35.70],
                    [-79.00, 35.70],
                    [-79.00, 35.75],
                    [-79.05, 35.75],
                    [-79.05, 35.70],
                ]
            ],
        },
    }


@pytest.fixture
def mock_session():
    """
    Provide a mock requests.Session.

    Tests set ``mock_session.get.side_effect`` or ``return_value`` to script
    upstream responses.
    """
    session = MagicMock()
    session.headers = {}
    return session


def make_response(status_code=200, json_data=None, headers=None):
    """Build a mock requests.Response."""
    import requests

    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = json_data if json_data is not None else {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=response
        )
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def response_factory():
    """Expose make_response as a fixture."""
    return make_response


@pytest.fixture
def mock_engine():
    """
    Provide a mock SQLAlchemy engine.

    ``engine.begin()`` and ``engine.connect()`` return context managers whose
    connection is available as ``mock_engine.conn``.
    """
    engine = MagicMock()
    conn = MagicMock()
    engine.begin.return_value.__enter__.return_value = conn
    engine.connect.return_value.__enter__.return_value = conn
    engine.conn = conn
    return engine
