"""
Schema Normalizer for park source data.

This module maps the property bags produced by every supported source onto the
canonical ParkCandidate shape. Three conventions are handled:

1. Generic GIS attribute tables (GeoJSON / Shapefile uploads from PAD-US,
   ParkServe, state and county GIS portals)
2. NPS API /parks records
3. Recreation.gov (RIDB) /facilities records

Key Features:
- Alias table as data: an ordered list of (canonical_field, [aliases]) tuples
  evaluated by one generic, case-insensitive lookup
- Missing keys map to None and never raise
- Numeric strings (acres, coordinates) parsed with invalid values mapped to None
- Array fields accept lists or comma-separated strings and are deduplicated
- Unresolved state becomes the 'N/A' sentinel, unresolved name 'Unnamed Park'
- Federal agency names normalized to a small controlled vocabulary
- Unknown keys surfaced for diagnostic logging only
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from scripts.collectors.nps_schemas import NPSParkResponse
from scripts.collectors.park_schemas import (
    PLACEHOLDER_NAME,
    UNKNOWN_STATE,
    ParkCandidate,
    dedupe_case_insensitive,
)
from scripts.collectors.recreation_gov_schemas import RecreationGovFacility
from scripts.collectors.state_normalizer import normalize_state_to_code

logger = logging.getLogger(__name__)

NPS_DATA_SOURCE = "NPS API"
RECREATION_GOV_DATA_SOURCE = "Recreation.gov API"
RECREATION_GOV_PLACEHOLDER_NAME = "Unnamed Recreation Area"

# Ordered (canonical_field, aliases) table. Aliases are compared case-insensitively
# and the first alias with a non-empty value wins.
FIELD_ALIASES: list[tuple[str, list[str]]] = [
    (
        "name",
        [
            "name",
            "unit_nm",
            "unit_name",
            "unitname",
            "loc_nm",
            "loc_name",
            "locname",
            "park_name",
            "parkname",
            "site_name",
            "sitename",
            "facility_name",
        ],
    ),
    ("description", ["description", "desc", "comments", "notes", "remarks"]),
    (
        "state",
        ["state", "state_code", "statecode", "state_abbr", "state_nm", "st", "province"],
    ),
    (
        "agency",
        [
            "agency",
            "managing_agency",
            "managingagency",
            "mgmt_agency",
            "mang_name",
            "owner",
            "owner_type",
            "ownertype",
            "agency_type",
        ],
    ),
    ("agency_full_name", ["agency_full_name", "agency_name", "loc_mang", "d_mang_nam"]),
    ("website", ["website", "url", "website_url", "homepage", "link", "web_url"]),
    ("phone", ["phone", "telephone", "phone_number", "contact_phone", "tel"]),
    ("email", ["email", "contact_email", "e_mail"]),
    ("address", ["address", "street_address", "full_address", "addr"]),
    ("county", ["county", "county_name", "countyname", "cnty"]),
    ("acres", ["acres", "gis_acres", "gis_acre", "acreage", "area_acres", "area"]),
    ("category", ["category", "park_type", "parktype", "type"]),
    ("designation_type", ["designation", "designation_type", "des_tp", "d_des_tp"]),
    ("public_access", ["public_access", "pub_access", "d_pub_acce"]),
    ("amenities", ["amenities", "amenity", "facilities", "facility", "features"]),
    (
        "activities",
        ["activities", "activity", "recreation", "recreational_activities"],
    ),
    ("latitude", ["latitude", "lat", "point_y"]),
    ("longitude", ["longitude", "lon", "lng", "long", "point_x"]),
    ("source_id", ["source_id", "park_id", "parkid", "objectid", "fid", "id"]),
]

# ParkServe marks open-access parks with ParkAccess == 3
PARK_ACCESS_KEYS = ["parkaccess", "park_access"]
OPEN_ACCESS_VALUES = {"3", "3.0"}

ARRAY_FIELDS = {"amenities", "activities"}
FLOAT_FIELDS = {"acres", "latitude", "longitude"}

# Upload source types and the agency name they imply when the file has none
AGENCY_TEMPLATES = {
    "state agency": "{state} State Parks",
    "public state": "{state} State Parks",
    "county agency": "{state} County Parks",
    "city agency": "{state} City Parks",
    "public federal": "Federal Agency",
    "federal agency": "Federal Agency",
}

# Controlled vocabulary for federal managing agencies, checked in order
FEDERAL_AGENCY_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("USFS", re.compile(r"\b(usfs|forest service)\b", re.IGNORECASE)),
    ("BLM", re.compile(r"\b(blm|bureau of land management)\b", re.IGNORECASE)),
    ("NPS", re.compile(r"\b(nps|national park service)\b", re.IGNORECASE)),
    ("FWS", re.compile(r"\b(fws|usfws|fish and wildlife)\b", re.IGNORECASE)),
    ("ARMY", re.compile(r"\b(army|usace|corps of engineers)\b", re.IGNORECASE)),
    ("NAVY", re.compile(r"\bnavy\b", re.IGNORECASE)),
]

AMENITY_KEYWORDS: dict[str, list[str]] = {
    "camping": ["camping", "campsite", "campground", "rv", "tent"],
    "hiking": ["hiking", "trail", "trails", "hike"],
    "fishing": ["fishing", "fish", "angler", "fisherman"],
    "swimming": ["swimming", "swim", "beach"],
    "boating": ["boating", "boat launch", "boat ramp", "marina", "dock"],
    "picnicking": ["picnic", "picnicking"],
    "playground": ["playground", "play area"],
    "visitor center": ["visitor center", "visitor centre", "information center"],
    "restrooms": ["restroom", "restrooms", "bathroom", "toilet"],
}


# =============================================================================
# GENERIC LOOKUP HELPERS
# =============================================================================


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple)) and not value:
        return True
    return False


def lookup_first(properties: Mapping[str, Any], aliases: list[str]) -> Any:
    """
    Return the value of the first alias present with a non-empty value.

    Args:
        properties: Raw source property bag
        aliases: Candidate keys in priority order (compared case-insensitively)

    Returns:
        The raw value, or None when no alias matches
    """
    lowered: dict[str, Any] = {}
    for key, value in properties.items():
        lowered.setdefault(str(key).lower(), value)

    for alias in aliases:
        value = lowered.get(alias.lower())
        if not _is_blank(value):
            return value
    return None


def parse_float(value: Any) -> float | None:
    """Parse a numeric or numeric-looking string; invalid input maps to None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace(",", "").strip())
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_string_list(value: Any) -> list[str]:
    """Accept a list or a comma-separated string and return a deduplicated list."""
    if _is_blank(value):
        return []
    if isinstance(value, (list, tuple, set)):
        items = [str(item) for item in value if not _is_blank(item)]
    else:
        items = str(value).split(",")
    return dedupe_case_insensitive(items)


def _clean_string(value: Any) -> str | None:
    if _is_blank(value):
        return None
    return str(value).strip()


def _valid_coordinates(
    latitude: float | None, longitude: float | None
) -> tuple[float | None, float | None]:
    if latitude is None or longitude is None:
        return None, None
    if not (-90 <= latitude <= 90) or not (-180 <= longitude <= 180):
        logger.warning(
            f"Discarding out-of-range coordinates lat={latitude}, lon={longitude}"
        )
        return None, None
    return latitude, longitude


def normalize_agency(agency: str | None, agency_full_name: str | None = None) -> str | None:
    """
    Normalize federal agency names to USFS/BLM/NPS/FWS/ARMY/NAVY.

    Non-federal agency names are returned unchanged. A bare 'Federal' label is
    refined from the full agency name when possible.
    """
    for text in (agency, agency_full_name):
        if not text:
            continue
        for code, pattern in FEDERAL_AGENCY_PATTERNS:
            if pattern.search(text):
                return code

    if agency and agency.strip().lower() in ("federal", "federal land"):
        return "Federal"
    return _clean_string(agency)


def derive_agency(source_type: str | None, state: str | None) -> str | None:
    """Build an agency name from an upload's source type and state."""
    if not source_type:
        return None
    if not state or state == UNKNOWN_STATE:
        return source_type
    template = AGENCY_TEMPLATES.get(source_type.strip().lower())
    if template is None:
        return source_type
    return template.format(state=state)


def is_open_access(properties: Mapping[str, Any]) -> bool:
    """False only when a ParkServe access code is present and is not open access."""
    access = lookup_first(properties, PARK_ACCESS_KEYS)
    if access is None:
        return True
    return str(access).strip() in OPEN_ACCESS_VALUES


def find_unmapped_properties(properties: Mapping[str, Any]) -> dict[str, Any]:
    """Return non-empty keys that no alias covers, for diagnostic logging."""
    known = {alias.lower() for _, aliases in FIELD_ALIASES for alias in aliases}
    known.update(PARK_ACCESS_KEYS)
    return {
        key: value
        for key, value in properties.items()
        if str(key).lower() not in known and not _is_blank(value)
    }


# =============================================================================
# GENERIC GIS FEATURES
# =============================================================================


def map_feature_properties(
    properties: Mapping[str, Any] | None,
    source_type: str | None = None,
    default_state: str | None = None,
) -> ParkCandidate:
    """
    Map a GIS feature's attribute table onto a ParkCandidate.

    Args:
        properties: Feature properties (None is treated as empty)
        source_type: Upload source label, used as data_source and to derive agency
        default_state: State to use when the feature has none

    Returns:
        ParkCandidate: Candidate with every resolvable field populated
    """
    properties = properties or {}
    values: dict[str, Any] = {}

    for field, aliases in FIELD_ALIASES:
        raw = lookup_first(properties, aliases)
        if field in ARRAY_FIELDS:
            values[field] = parse_string_list(raw)
        elif field in FLOAT_FIELDS:
            values[field] = parse_float(raw)
        else:
            values[field] = _clean_string(raw)

    values["name"] = values["name"] or PLACEHOLDER_NAME
    values["state"] = (
        normalize_state_to_code(values["state"])
        or normalize_state_to_code(default_state)
        or UNKNOWN_STATE
    )

    if values["acres"] is not None and values["acres"] < 0:
        values["acres"] = None

    values["latitude"], values["longitude"] = _valid_coordinates(
        values["latitude"], values["longitude"]
    )

    agency = normalize_agency(values["agency"], values["agency_full_name"])
    values["agency"] = agency or derive_agency(source_type, values["state"])
    values["data_source"] = source_type

    unmapped = find_unmapped_properties(properties)
    if unmapped:
        logger.debug(f"Unmapped properties for '{values['name']}': {sorted(unmapped)}")

    return ParkCandidate(**values)


# =============================================================================
# NPS API
# =============================================================================


def _nps_phone(park: NPSParkResponse) -> str | None:
    numbers = [p for p in park.contacts.phoneNumbers if p.phoneNumber.strip()]
    for number in numbers:
        if number.type.lower() in ("voice", "phone"):
            return number.phoneNumber.strip()
    return numbers[0].phoneNumber.strip() if numbers else None


def _nps_email(park: NPSParkResponse) -> str | None:
    for email in park.contacts.emailAddresses:
        if email.emailAddress.strip():
            return email.emailAddress.strip()
    return None


def _nps_address(park: NPSParkResponse) -> str | None:
    if not park.addresses:
        return None
    address = next(
        (a for a in park.addresses if a.type.lower() == "physical"), park.addresses[0]
    )
    parts = [
        address.line1,
        address.line2,
        address.line3,
        address.city,
        address.stateCode,
        address.postalCode,
    ]
    joined = ", ".join(part.strip() for part in parts if part and part.strip())
    return joined or None


def _nps_state(park: NPSParkResponse) -> str:
    for state in park.states.split(","):
        code = normalize_state_to_code(state)
        if code:
            return code
    for address in park.addresses:
        code = normalize_state_to_code(address.stateCode)
        if code:
            return code
    return UNKNOWN_STATE


def map_nps_park(park: Mapping[str, Any]) -> ParkCandidate:
    """
    Map an NPS API /parks record onto a ParkCandidate.

    Args:
        park: Raw park dictionary from the NPS API

    Returns:
        ParkCandidate: Candidate with data_source 'NPS API'

    Raises:
        pydantic.ValidationError: If the record fails NPSParkResponse validation
    """
    validated = NPSParkResponse(**park)
    latitude, longitude = validated.coordinates()

    return ParkCandidate(
        name=validated.fullName or validated.name or PLACEHOLDER_NAME,
        state=_nps_state(validated),
        source_id=validated.parkCode,
        agency="NPS",
        agency_full_name="National Park Service",
        description=_clean_string(validated.description),
        website=_clean_string(validated.url),
        phone=_nps_phone(validated),
        email=_nps_email(validated),
        address=_nps_address(validated),
        activities=[a.name for a in validated.activities if a.name],
        latitude=latitude,
        longitude=longitude,
        designation_type=_clean_string(validated.designation),
        category="National Park",
        data_source=NPS_DATA_SOURCE,
    )


# =============================================================================
# RECREATION.GOV API
# =============================================================================


def _contains_keyword(text: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text) is not None


def infer_recreation_gov_amenities(facility: RecreationGovFacility) -> list[str]:
    """Infer amenities from campsites, facility type, description and accessibility text."""
    amenities: list[str] = []
    if facility.CAMPSITE:
        amenities.append("camping")

    facility_type = facility.FacilityTypeDescription.lower()
    if "camp" in facility_type:
        amenities.append("camping")
    if "day use" in facility_type or "picnic" in facility_type:
        amenities.append("picnicking")
    if "boat" in facility_type or "marina" in facility_type:
        amenities.append("boating")

    description = facility.FacilityDescription.lower()
    for amenity, keywords in AMENITY_KEYWORDS.items():
        if any(_contains_keyword(description, keyword) for keyword in keywords):
            amenities.append(amenity)

    accessibility = facility.FacilityAccessibilityText.lower()
    if "restroom" in accessibility or "toilet" in accessibility:
        amenities.append("restrooms")

    return dedupe_case_insensitive(amenities)


def _recreation_gov_state(facility: RecreationGovFacility) -> str:
    code = normalize_state_to_code(facility.FacilityState)
    if code:
        return code

    addresses = facility.FACILITYADDRESS
    preferred = [a for a in addresses if a.AddressType.lower() == "physical"]
    for address in preferred + addresses:
        code = normalize_state_to_code(address.state_value())
        if code:
            return code
    return UNKNOWN_STATE


def map_recreation_gov_facility(facility: Mapping[str, Any]) -> ParkCandidate:
    """
    Map a Recreation.gov facility onto a ParkCandidate.

    Args:
        facility: Raw facility dictionary from the RIDB API

    Returns:
        ParkCandidate: Candidate with data_source 'Recreation.gov API'

    Raises:
        pydantic.ValidationError: If the record fails RecreationGovFacility validation
    """
    validated = RecreationGovFacility(**facility)
    latitude, longitude = _valid_coordinates(*validated.coordinates())

    agency = normalize_agency(validated.OrgAbbrevName, validated.OrgName) or "Federal"

    return ParkCandidate(
        name=validated.FacilityName.strip() or RECREATION_GOV_PLACEHOLDER_NAME,
        state=_recreation_gov_state(validated),
        source_id=validated.FacilityID,
        agency=agency,
        agency_full_name=_clean_string(validated.OrgName),
        description=_clean_string(validated.FacilityDescription),
        website=_clean_string(validated.FacilityURL),
        phone=_clean_string(validated.FacilityPhone),
        email=_clean_string(validated.FacilityEmail),
        activities=[a.ActivityName for a in validated.ACTIVITY if a.ActivityName],
        amenities=infer_recreation_gov_amenities(validated),
        latitude=latitude,
        longitude=longitude,
        data_source=RECREATION_GOV_DATA_SOURCE,
    )
