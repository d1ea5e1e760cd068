"""
Unit tests for the upstream API clients.

Tests the shared request loop (rate limiting, auth failures, retries) and the
pagination of the NPS and Recreation.gov clients. All HTTP traffic goes
through a mocked requests session.
"""

from unittest.mock import patch

import pytest
import requests

from scripts.collectors.api_client import (
    UpstreamAPIClient,
    UpstreamAPIError,
    UpstreamAuthError,
)
from scripts.collectors.nps_client import NPSClient
from scripts.collectors.recreation_gov_client import RecreationGovClient


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("scripts.collectors.api_client.time.sleep") as mock_sleep:
        yield mock_sleep


class TestUpstreamAPIClient:
    """Test cases for the shared request loop."""

    def test_sets_user_agent_and_headers(self, mock_session):
        UpstreamAPIClient("https://api.example.com/", headers={"X-Key": "k"}, session=mock_session)

        assert mock_session.headers["X-Key"] == "k"
        assert mock_session.headers["User-Agent"].startswith("Park-Reconciler/")

    def test_successful_request(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(200, {"ok": True})
        client = UpstreamAPIClient("https://api.example.com/", session=mock_session)

        assert client._request("/things", {"a": 1}) == {"ok": True}
        url = mock_session.get.call_args[0][0]
        assert url == "https://api.example.com/things"

    def test_rate_limit_waits_for_retry_after(self, mock_session, response_factory, no_sleep):
        """Test that a 429 sleeps for Retry-After and re-issues the request."""
        mock_session.get.side_effect = [
            response_factory(429, headers={"Retry-After": "7"}),
            response_factory(200, {"ok": True}),
        ]
        client = UpstreamAPIClient("https://api.example.com", session=mock_session, max_retries=0)

        assert client._request("/things") == {"ok": True}
        no_sleep.assert_called_once_with(7.0)

    def test_rate_limit_gives_up_after_max_waits(self, mock_session, response_factory):
        from config.settings import config

        mock_session.get.return_value = response_factory(429)
        client = UpstreamAPIClient("https://api.example.com", session=mock_session)

        with pytest.raises(UpstreamAPIError, match="rate limit persisted"):
            client._request("/things")
        assert mock_session.get.call_count == config.RATE_LIMIT_MAX_WAITS + 1

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors_not_retried(self, mock_session, response_factory, status):
        mock_session.get.return_value = response_factory(status)
        client = UpstreamAPIClient("https://api.example.com", session=mock_session)

        with pytest.raises(UpstreamAuthError):
            client._request("/things")
        assert mock_session.get.call_count == 1

    def test_client_error_not_retried(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(404)
        client = UpstreamAPIClient("https://api.example.com", session=mock_session)

        with pytest.raises(UpstreamAPIError, match="HTTP 404"):
            client._request("/missing")
        assert mock_session.get.call_count == 1

    def test_server_errors_retried_then_raise(self, mock_session, response_factory, no_sleep):
        mock_session.get.return_value = response_factory(503)
        client = UpstreamAPIClient(
            "https://api.example.com", session=mock_session, max_retries=2, retry_delay=0.5
        )

        with pytest.raises(UpstreamAPIError, match="after 3 attempts"):
            client._request("/things")
        assert mock_session.get.call_count == 3
        assert no_sleep.call_count == 2

    def test_timeout_then_success(self, mock_session, response_factory):
        mock_session.get.side_effect = [
            requests.exceptions.Timeout("slow"),
            response_factory(200, {"ok": 1}),
        ]
        client = UpstreamAPIClient("https://api.example.com", session=mock_session)

        assert client._request("/things") == {"ok": 1}

    def test_network_error_exhausts_retries(self, mock_session):
        mock_session.get.side_effect = requests.exceptions.ConnectionError("refused")
        client = UpstreamAPIClient("https://api.example.com", session=mock_session, max_retries=1)

        with pytest.raises(UpstreamAPIError):
            client._request("/things")
        assert mock_session.get.call_count == 2


class TestNPSClient:
    """Test cases for NPSClient."""

    def test_requires_api_key(self, monkeypatch):
        from config.settings import config

        monkeypatch.setattr(config, "NPS_API_KEY", None)

        with pytest.raises(ValueError, match="API key is required"):
            NPSClient()

    def test_api_key_header(self, mock_session):
        NPSClient(api_key="abc", session=mock_session)

        assert mock_session.headers["X-Api-Key"] == "abc"

    def test_iter_parks_paginates(self, mock_session, response_factory):
        """Test that pages are requested until start reaches total."""
        mock_session.get.side_effect = [
            response_factory(200, {"total": "3", "data": [{"parkCode": "a"}, {"parkCode": "b"}]}),
            response_factory(200, {"total": "3", "data": [{"parkCode": "c"}]}),
        ]
        client = NPSClient(session=mock_session)

        parks = list(client.iter_parks(state_code="NC", limit=2))

        assert [p["parkCode"] for p in parks] == ["a", "b", "c"]
        second_params = mock_session.get.call_args_list[1][1]["params"]
        assert second_params["start"] == 2
        assert second_params["stateCode"] == "NC"

    def test_iter_parks_stops_on_empty_page(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(200, {"total": "10", "data": []})
        client = NPSClient(session=mock_session)

        assert list(client.iter_parks()) == []
        assert mock_session.get.call_count == 1


class TestRecreationGovClient:
    """Test cases for RecreationGovClient."""

    def test_api_key_header(self, mock_session):
        RecreationGovClient(api_key="ridb", session=mock_session)

        assert mock_session.headers["apikey"] == "ridb"

    def test_iter_facilities_stops_on_short_page(self, mock_session, response_factory):
        mock_session.get.side_effect = [
            response_factory(200, {"RECDATA": [{"FacilityID": 1}, {"FacilityID": 2}]}),
            response_factory(200, {"RECDATA": [{"FacilityID": 3}]}),
        ]
        client = RecreationGovClient(session=mock_session)

        facilities = list(client.iter_facilities(state_code="NC", query="falls", limit=2))

        assert [f["FacilityID"] for f in facilities] == [1, 2, 3]
        first_params = mock_session.get.call_args_list[0][1]["params"]
        assert first_params == {
            "limit": 2,
            "offset": 0,
            "full": "true",
            "state": "NC",
            "query": "falls",
        }

    def test_iter_facilities_stops_at_total_count(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(
            200,
            {
                "RECDATA": [{"FacilityID": 1}, {"FacilityID": 2}],
                "METADATA": {"RESULTS": {"TOTAL_COUNT": 2}},
            },
        )
        client = RecreationGovClient(session=mock_session)

        assert len(list(client.iter_facilities(limit=2))) == 2
        assert mock_session.get.call_count == 1
