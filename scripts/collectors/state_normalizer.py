"""
State name normalization.

Sources spell states every possible way ("North Carolina", "north carolina",
"NC", "nc"). Matching restricts candidates to records sharing the exact
2-letter code, so every state value is converted here before it reaches a
ParkCandidate.
"""

from __future__ import annotations

STATE_NAME_TO_CODE: dict[str, str] = {
    "alabama": "AL",
    "alaska": "AK",
    "arizona": "AZ",
    "arkansas": "AR",
    "california": "CA",
    "colorado": "CO",
    "connecticut": "CT",
    "delaware": "DE",
    "district of columbia": "DC",
    "florida": "FL",
    "georgia": "GA",
    "hawaii": "HI",
    "idaho": "ID",
    "illinois": "IL",
    "indiana": "IN",
    "iowa": "IA",
    "kansas": "KS",
    "kentucky": "KY",
    "louisiana": "LA",
    "maine": "ME",
    "maryland": "MD",
    "massachusetts": "MA",
    "michigan": "MI",
    "minnesota": "MN",
    "mississippi": "MS",
    "missouri": "MO",
    "montana": "MT",
    "nebraska": "NE",
    "nevada": "NV",
    "new hampshire": "NH",
    "new jersey": "NJ",
    "new mexico": "NM",
    "new york": "NY",
    "north carolina": "NC",
    "north dakota": "ND",
    "ohio": "OH",
    "oklahoma": "OK",
    "oregon": "OR",
    "pennsylvania": "PA",
    "rhode island": "RI",
    "south carolina": "SC",
    "south dakota": "SD",
    "tennessee": "TN",
    "texas": "TX",
    "utah": "UT",
    "vermont": "VT",
    "virginia": "VA",
    "washington": "WA",
    "west virginia": "WV",
    "wisconsin": "WI",
    "wyoming": "WY",
}

STATE_CODE_TO_NAME: dict[str, str] = {
    code: name.title().replace(" Of ", " of ")
    for name, code in STATE_NAME_TO_CODE.items()
}


def normalize_state_to_code(state: str | None) -> str | None:
    """
    Convert a state name or code to its 2-letter code.

    Args:
        state: Full state name or 2-letter code, any casing

    Returns:
        str | None: Upper-case 2-letter code, or None if unrecognized
    """
    if state is None:
        return None

    cleaned = " ".join(str(state).split())
    if not cleaned:
        return None

    # Territories (PR, GU, VI...) pass through as codes
    if len(cleaned) == 2 and cleaned.isalpha():
        return cleaned.upper()

    return STATE_NAME_TO_CODE.get(cleaned.lower())


def state_code_to_name(code: str | None) -> str | None:
    if not code:
        return None
    return STATE_CODE_TO_NAME.get(code.strip().upper())


def is_valid_state_code(code: str | None) -> bool:
    return bool(code) and code.strip().upper() in STATE_CODE_TO_NAME
