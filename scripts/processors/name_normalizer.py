"""
Park name normalization for entity matching.

Produces a matching token, not a display name: "Blue Ridge SP",
"Blue Ridge State Park" and "blue ridge state park" all normalize to
"blue ridge". The function is pure and deterministic.
"""

from __future__ import annotations

import re

# Jurisdiction abbreviations expanded before stopword removal
ABBREVIATIONS: list[tuple[str, str]] = [
    ("np", "national park"),
    ("nm", "national monument"),
    ("nf", "national forest"),
    ("nwr", "national wildlife refuge"),
    ("nra", "national recreation area"),
    ("nps", "national park service"),
    ("sp", "state park"),
    ("sf", "state forest"),
    ("sra", "state recreation area"),
    ("cp", "county park"),
    ("cr", "county recreation"),
    ("co", "county"),
    ("st", "state"),
]

STOPWORDS = (
    "state",
    "county",
    "city",
    "park",
    "recreation",
    "area",
    "preserve",
    "reserve",
    "forest",
    "wildlife",
    "refuge",
    "national",
    "monument",
    "memorial",
    "historic",
    "site",
    "center",
    "centre",
)

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")
_ABBREVIATION_PATTERNS = [
    (re.compile(rf"\b{abbreviation}\b"), expansion)
    for abbreviation, expansion in ABBREVIATIONS
]
_STOPWORD_PATTERN = re.compile(rf"\b(?:{'|'.join(STOPWORDS)})\b")


def normalize_park_name(name: str | None) -> str:
    """
    Canonicalize a park name into a matching token.

    Steps: lower-case, collapse whitespace, strip punctuation, expand
    jurisdiction abbreviations on word boundaries, remove generic stopwords,
    then collapse whitespace again.

    Args:
        name: Raw park name

    Returns:
        str: Matching token (may be empty for fully generic names)
    """
    if not name:
        return ""

    token = _WHITESPACE.sub(" ", name.lower()).strip()
    token = _PUNCTUATION.sub("", token)

    for pattern, expansion in _ABBREVIATION_PATTERNS:
        token = pattern.sub(expansion, token)

    token = _STOPWORD_PATTERN.sub(" ", token)
    return _WHITESPACE.sub(" ", token).strip()
