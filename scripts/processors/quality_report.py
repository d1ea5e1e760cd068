"""
Data-quality reporting over stored park records.

Stored records are flattened into a pandas DataFrame (validated with a
pandera schema) so the quality distribution, per-agency or per-state
breakdowns and cleanup filters can be computed with ordinary dataframe
operations.

Scores here are recomputed from the current record contents, so the report
reflects what the record holds now rather than the score stored at write
time.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, NamedTuple

import pandas as pd
import pandera.pandas as pa
from pandera.pandas import Check, Column, DataFrameSchema
from pydantic import BaseModel, Field

from scripts.collectors.park_schemas import ParkRecord
from scripts.processors.quality_scorer import MAX_QUALITY_SCORE, calculate_quality_score

logger = logging.getLogger(__name__)

# Name fragments that suggest an office or facility rather than a park
NON_PARK_KEYWORDS = [
    "office",
    "offices",
    "headquarters",
    "hq",
    "admin",
    "administration",
    "facility",
    "facilities",
    "service center",
    "city hall",
    "county office",
    "county building",
    "municipal building",
    "government center",
    "courthouse",
    "maintenance",
    "equipment yard",
    "warehouse",
    "storage",
    "depot",
]
MIN_PARK_ACRES = 0.1

QUALITY_BANDS = (("excellent", 80), ("good", 60), ("fair", 40), ("poor", 0))
LOW_QUALITY_THRESHOLD = 40


class NonParkVerdict(NamedTuple):
    likely: bool
    reason: str | None = None
    confidence: str | None = None


class CleanupCriteria(BaseModel):
    """Filters for selecting records an operator may want to review or delete.

    Every set criterion must hold. Acreage bounds only apply to records
    with a known, non-zero acreage.
    """

    name_keywords: list[str] = Field(default_factory=list)
    state: str | None = None
    agency: str | None = None
    min_acres: float | None = None
    max_acres: float | None = None
    max_quality_score: int | None = Field(default=None, ge=0, le=MAX_QUALITY_SCORE)
    missing_fields: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.name_keywords
            or self.state
            or self.agency
            or self.min_acres is not None
            or self.max_acres is not None
            or self.max_quality_score is not None
            or self.missing_fields
        )


ParkQualityFrameSchema = DataFrameSchema(
    columns={
        "id": Column("Int64", nullable=True, description="Store-assigned id"),
        "name": Column(
            pa.String,
            nullable=False,
            checks=[
                Check(
                    lambda s: s.str.strip().str.len() > 0,
                    error="Park name cannot be empty or whitespace",
                )
            ],
        ),
        "state": Column(pa.String, nullable=False),
        "agency": Column(pa.String, nullable=True),
        "acres": Column(
            pa.Float64,
            checks=[Check.greater_than_or_equal_to(0, error="acres cannot be negative")],
            nullable=True,
        ),
        "has_coordinates": Column(pa.Bool, nullable=False),
        "has_boundary": Column(pa.Bool, nullable=False),
        "has_description": Column(pa.Bool, nullable=False),
        "has_website": Column(pa.Bool, nullable=False),
        "has_phone": Column(pa.Bool, nullable=False),
        "has_address": Column(pa.Bool, nullable=False),
        "quality_score": Column(
            pa.Int64,
            checks=[
                Check.in_range(
                    0, MAX_QUALITY_SCORE, error="quality_score must be between 0 and 100"
                )
            ],
            nullable=False,
        ),
    },
    strict=False,
)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def is_likely_non_park(record: ParkRecord) -> NonParkVerdict:
    """
    Flag records whose name or size suggests an office or facility.

    Returns:
        NonParkVerdict: likely flag plus reason and 'high'/'medium' confidence
    """
    if not record.name:
        return NonParkVerdict(False)

    name_lower = record.name.lower()
    for keyword in NON_PARK_KEYWORDS:
        if keyword in name_lower:
            return NonParkVerdict(True, f'Name contains "{keyword}"', "high")

    if record.acres and record.acres < MIN_PARK_ACRES:
        return NonParkVerdict(
            True,
            f"Very small size ({record.acres} acres) - likely office/facility",
            "medium",
        )
    return NonParkVerdict(False)


def records_to_frame(records: Sequence[ParkRecord]) -> pd.DataFrame:
    """Flatten records into a validated quality DataFrame."""
    frame = pd.DataFrame(
        {
            "id": pd.array([r.id for r in records], dtype="Int64"),
            "name": pd.Series([r.name for r in records], dtype="object"),
            "state": pd.Series([r.state for r in records], dtype="object"),
            "agency": pd.Series([r.agency for r in records], dtype="object"),
            "acres": pd.Series(
                [r.acres if r.acres is not None else float("nan") for r in records],
                dtype="float64",
            ),
            "has_coordinates": pd.Series([r.has_coordinates for r in records], dtype="bool"),
            "has_boundary": pd.Series([_present(r.boundary) for r in records], dtype="bool"),
            "has_description": pd.Series(
                [_present(r.description) for r in records], dtype="bool"
            ),
            "has_website": pd.Series([_present(r.website) for r in records], dtype="bool"),
            "has_phone": pd.Series([_present(r.phone) for r in records], dtype="bool"),
            "has_address": pd.Series([_present(r.address) for r in records], dtype="bool"),
            "quality_score": pd.Series(
                [calculate_quality_score(r) for r in records], dtype="int64"
            ),
        }
    )
    return ParkQualityFrameSchema.validate(frame)


def quality_band(score: int) -> str:
    for band, minimum in QUALITY_BANDS:
        if score >= minimum:
            return band
    return "poor"


def _percentage(count: int, total: int) -> int:
    return round(count / total * 100) if total else 0


def analyze_parks_quality(records: Sequence[ParkRecord]) -> dict[str, Any]:
    """
    Summarize completeness and quality across a set of records.

    Args:
        records: Stored park records

    Returns:
        dict: total, field counts and percentages, quality distribution,
              average score, likely non-parks and per-record issues
    """
    frame = records_to_frame(records)
    total = len(frame)

    with_counts = {
        "coordinates": int(frame["has_coordinates"].sum()),
        "description": int(frame["has_description"].sum()),
        "website": int(frame["has_website"].sum()),
        "phone": int(frame["has_phone"].sum()),
        "address": int(frame["has_address"].sum()),
        "boundary": int(frame["has_boundary"].sum()),
    }

    bands = frame["quality_score"].apply(quality_band)
    distribution = {band: int((bands == band).sum()) for band, _ in QUALITY_BANDS}

    likely_non_parks = []
    issues = []
    for record, score in zip(records, frame["quality_score"]):
        verdict = is_likely_non_park(record)
        if verdict.likely:
            likely_non_parks.append(
                {
                    "id": record.id,
                    "name": record.name,
                    "state": record.state,
                    "agency": record.agency,
                    "reason": verdict.reason,
                    "confidence": verdict.confidence,
                    "acres": record.acres,
                }
            )

        record_issues = []
        if not record.has_coordinates:
            record_issues.append("Missing coordinates")
        if not _present(record.description):
            record_issues.append("Missing description")
        if not _present(record.boundary):
            record_issues.append("Missing boundary geometry")
        if record.acres and record.acres < MIN_PARK_ACRES:
            record_issues.append(f"Very small size (< {MIN_PARK_ACRES} acres)")
        if score < LOW_QUALITY_THRESHOLD:
            record_issues.append("Low quality score")
        if record_issues:
            issues.append(
                {
                    "id": record.id,
                    "name": record.name,
                    "state": record.state,
                    "agency": record.agency,
                    "score": int(score),
                    "issues": record_issues,
                }
            )

    average = round(float(frame["quality_score"].mean()), 2) if total else 0.0
    logger.info(
        f"Analyzed {total} parks: average quality {average}, "
        f"{len(likely_non_parks)} likely non-parks, {len(issues)} with issues"
    )

    return {
        "total": total,
        "with": with_counts,
        "missing": {field: total - count for field, count in with_counts.items()},
        "percentages": {
            field: _percentage(count, total) for field, count in with_counts.items()
        },
        "average_quality_score": average,
        "quality_distribution": distribution,
        "likely_non_parks": likely_non_parks,
        "issues": issues,
    }


def breakdown_by_group(
    records: Sequence[ParkRecord], group_by: str = "agency"
) -> pd.DataFrame:
    """
    Per-group counts, average quality and field coverage.

    Args:
        records: Stored park records
        group_by: 'agency' or 'state'

    Returns:
        pd.DataFrame: One row per group, sorted by count descending
    """
    if group_by not in ("agency", "state"):
        raise ValueError(f"group_by must be 'agency' or 'state', got '{group_by}'")

    frame = records_to_frame(records)
    if frame.empty:
        return pd.DataFrame(
            columns=[group_by, "count", "average_score", "coordinates_pct",
                     "boundary_pct", "description_pct"]
        )

    frame[group_by] = frame[group_by].fillna("Unknown")
    grouped = frame.groupby(group_by).agg(
        count=("name", "size"),
        average_score=("quality_score", "mean"),
        coordinates_pct=("has_coordinates", "mean"),
        boundary_pct=("has_boundary", "mean"),
        description_pct=("has_description", "mean"),
    )
    for column in ("coordinates_pct", "boundary_pct", "description_pct"):
        grouped[column] = (grouped[column] * 100).round().astype(int)
    grouped["average_score"] = grouped["average_score"].round(2)

    return (
        grouped.reset_index()
        .sort_values(["count", group_by], ascending=[False, True])
        .reset_index(drop=True)
    )


def _missing(record: ParkRecord, field: str) -> bool:
    if field == "coordinates":
        return not record.has_coordinates
    if field in ("geometry", "boundary"):
        return not _present(record.boundary)
    return not _present(getattr(record, field, None))


def filter_parks_for_cleanup(
    records: Sequence[ParkRecord], criteria: CleanupCriteria
) -> list[ParkRecord]:
    """Return the records that satisfy every set criterion."""
    selected = []
    for record in records:
        if criteria.name_keywords:
            name_lower = (record.name or "").lower()
            if not any(k.lower() in name_lower for k in criteria.name_keywords):
                continue
        if criteria.state and record.state != criteria.state:
            continue
        if criteria.agency and record.agency != criteria.agency:
            continue
        if criteria.max_acres is not None and record.acres and record.acres > criteria.max_acres:
            continue
        if criteria.min_acres is not None and record.acres and record.acres < criteria.min_acres:
            continue
        if (
            criteria.max_quality_score is not None
            and calculate_quality_score(record) > criteria.max_quality_score
        ):
            continue
        if criteria.missing_fields and not all(
            _missing(record, field) for field in criteria.missing_fields
        ):
            continue
        selected.append(record)
    return selected
