"""
Data quality scoring and source priority lookup.

The quality score is a deterministic 0-100 completeness metric computed from
which fields of a park record are populated. The source priority table maps a
source-type label to an integer trust tier. Together they gate whether a
candidate may change an existing record (see merge_policy).

Score table:
    Required-ish (40): real name 10, state 10, agency 10, coordinates 10
    Important (40): description 10, website 5, phone 5, address 5,
                    acres > 0 5, boundary 10
    Supplementary (20): email 3, county 2, amenities 5, activities 5,
                        category 2, public access 3
"""

from __future__ import annotations

from typing import TypedDict

from scripts.collectors.park_schemas import (
    UNKNOWN_STATE,
    ParkCandidate,
    is_placeholder_name,
)

MAX_QUALITY_SCORE = 100

SOURCE_PRIORITIES: dict[str, int] = {
    "nps_api": 100,
    "recreation_gov_api": 95,
    "state_park_api": 90,
    "agency_upload": 80,
    "file_upload": 80,
    "manual_curation": 80,
    "email_response": 75,
    "official_website_scrape": 60,
    "web_scrape": 40,
    "geocoding": 30,
    "user_generated": 20,
}
DEFAULT_SOURCE_TYPE = "web_scrape"

# Free-text labels used by upload forms and API syncs
SOURCE_TYPE_ALIASES: dict[str, str] = {
    "nps_api": "nps_api",
    "recreation_gov_api": "recreation_gov_api",
    "state_agency": "agency_upload",
    "county_agency": "agency_upload",
    "city_agency": "agency_upload",
    "federal_agency": "agency_upload",
    "public_state": "agency_upload",
    "public_federal": "agency_upload",
}


class ScoreBreakdown(TypedDict):
    """Per-field contributions to a quality score."""

    name: int
    state: int
    agency: int
    coordinates: int
    description: int
    website: int
    phone: int
    address: int
    acres: int
    boundary: int
    email: int
    county: int
    amenities: int
    activities: int
    category: int
    public_access: int


def _present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set)):
        return len(value) > 0
    return True


def score_breakdown(record: ParkCandidate) -> ScoreBreakdown:
    """
    Compute the point contribution of every scored field.

    Args:
        record: Candidate or stored record

    Returns:
        ScoreBreakdown: Points awarded per field
    """
    return ScoreBreakdown(
        name=10 if not is_placeholder_name(record.name) else 0,
        state=10 if _present(record.state) and record.state != UNKNOWN_STATE else 0,
        agency=10 if _present(record.agency) else 0,
        coordinates=(
            10 if record.latitude is not None and record.longitude is not None else 0
        ),
        description=10 if _present(record.description) else 0,
        website=5 if _present(record.website) else 0,
        phone=5 if _present(record.phone) else 0,
        address=5 if _present(record.address) else 0,
        acres=5 if record.acres is not None and record.acres > 0 else 0,
        boundary=10 if _present(record.boundary) else 0,
        email=3 if _present(record.email) else 0,
        county=2 if _present(record.county) else 0,
        amenities=5 if _present(record.amenities) else 0,
        activities=5 if _present(record.activities) else 0,
        category=2 if _present(record.category) else 0,
        public_access=3 if _present(record.public_access) else 0,
    )


def calculate_quality_score(record: ParkCandidate) -> int:
    """
    Calculate the 0-100 completeness score for a park record.

    Pure function: no I/O and no side effects.

    Args:
        record: Candidate or stored record

    Returns:
        int: Score in [0, 100]
    """
    return min(MAX_QUALITY_SCORE, sum(score_breakdown(record).values()))


def normalize_source_type(source_type: str | None) -> str:
    """
    Resolve a free-text source label onto a key of SOURCE_PRIORITIES.

    Exact keys and known aliases are matched first, then substring heuristics
    ('nps', 'recreation.gov', 'agency', 'scrape'); anything else is treated as
    a web scrape.
    """
    if not source_type:
        return DEFAULT_SOURCE_TYPE

    key = source_type.strip().lower().replace("-", "_").replace(" ", "_")
    if key in SOURCE_PRIORITIES:
        return key
    if key in SOURCE_TYPE_ALIASES:
        return SOURCE_TYPE_ALIASES[key]

    text = source_type.lower()
    if "national park service" in text or "nps" in key.split("_"):
        return "nps_api"
    if "recreation.gov" in text or "ridb" in text:
        return "recreation_gov_api"
    if "state park api" in text:
        return "state_park_api"
    if "agency" in text or "upload" in text:
        return "agency_upload"
    if "official" in text and "scrape" in text:
        return "official_website_scrape"
    if "user" in text:
        return "user_generated"
    return DEFAULT_SOURCE_TYPE


def get_source_priority(source_type: str | None) -> int:
    """Look up the priority tier for a source-type label."""
    return SOURCE_PRIORITIES[normalize_source_type(source_type)]
