"""
Unit tests for quality scoring and source priority lookup.
"""

import pytest

from scripts.collectors.park_schemas import ParkCandidate, ParkRecord
from scripts.processors.quality_scorer import (
    MAX_QUALITY_SCORE,
    calculate_quality_score,
    get_source_priority,
    normalize_source_type,
    score_breakdown,
)


def _full_record():
    return ParkRecord(
        name="Umstead State Park",
        state="NC",
        agency="NC State Parks",
        latitude=35.88,
        longitude=-78.75,
        description="Forested park between Raleigh and Durham.",
        website="https://www.ncparks.gov/umstead",
        phone="919-571-4170",
        address="8801 Glenwood Ave, Raleigh, NC",
        acres=5599.0,
        boundary="SRID=4326;POLYGON((0 0, 1 0, 1 1, 0 0))",
        email="umstead@ncparks.gov",
        county="Wake",
        amenities=["Camping"],
        activities=["Hiking"],
        category="State Park",
        public_access="Open",
    )


class TestCalculateQualityScore:
    """Test cases for calculate_quality_score."""

    def test_empty_record_scores_zero(self):
        """Test that a record with only placeholders scores 0."""
        assert calculate_quality_score(ParkCandidate()) == 0

    def test_fully_populated_record_scores_100(self):
        assert calculate_quality_score(_full_record()) == MAX_QUALITY_SCORE

    def test_partial_record(self):
        """Test the point values of name, state and coordinates."""
        candidate = ParkCandidate(
            name="Umstead", state="NC", latitude=35.88, longitude=-78.75
        )

        assert calculate_quality_score(candidate) == 30

    def test_zero_acres_not_scored(self):
        candidate = ParkCandidate(name="Umstead", acres=0)

        assert score_breakdown(candidate)["acres"] == 0

    def test_whitespace_strings_not_scored(self):
        candidate = ParkCandidate(name="Umstead", description="   ", website="")

        breakdown = score_breakdown(candidate)

        assert breakdown["description"] == 0
        assert breakdown["website"] == 0

    def test_score_within_bounds(self):
        for record in (ParkCandidate(), _full_record(), ParkCandidate(name="X", state="TX")):
            assert 0 <= calculate_quality_score(record) <= MAX_QUALITY_SCORE


class TestSourcePriority:
    """Test cases for source type normalization and priority lookup."""

    @pytest.mark.parametrize(
        "source_type, expected",
        [
            ("nps_api", 100),
            ("recreation_gov_api", 95),
            ("state_park_api", 90),
            ("agency_upload", 80),
            ("web_scrape", 40),
            ("geocoding", 30),
            ("user_generated", 20),
        ],
    )
    def test_known_tiers(self, source_type, expected):
        assert get_source_priority(source_type) == expected

    @pytest.mark.parametrize(
        "label, expected",
        [
            ("State Agency", "agency_upload"),
            ("county-agency", "agency_upload"),
            ("NPS API", "nps_api"),
            ("Recreation.gov API", "recreation_gov_api"),
            ("Official website scrape", "official_website_scrape"),
            (None, "web_scrape"),
            ("something else", "web_scrape"),
        ],
    )
    def test_free_text_labels(self, label, expected):
        """Test that free-text labels resolve onto priority keys."""
        assert normalize_source_type(label) == expected
