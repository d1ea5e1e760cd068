"""
Merge/Protect policy for park candidates.

Decides what happens to a normalized candidate given the stored record it
matched (if any):

- insert: no existing match
- merge:  a match exists and the candidate may change it
- skip:   a match exists and the candidate has nothing it is allowed to change

Protection rules:
- A strictly higher source priority may overwrite populated scalar fields.
- An equal or lower priority may only fill fields that are empty on the
  existing record, and add new amenity/activity entries.
- Coordinates are only replaced when the existing pair is missing or (0, 0).
- A boundary is write-once: it is only set when the existing one is empty.
- data_source_priority and data_quality_score never decrease.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, NamedTuple

from scripts.collectors.park_schemas import (
    ARRAY_FIELDS,
    PROTECTED_FIELDS,
    UNKNOWN_STATE,
    ParkCandidate,
    ParkRecord,
    dedupe_case_insensitive,
    is_placeholder_name,
)
from scripts.processors.quality_scorer import (
    calculate_quality_score,
    get_source_priority,
)

MergeAction = Literal["insert", "merge", "skip"]


class MergeDecision(NamedTuple):
    """Outcome of the merge policy for one candidate.

    ``record`` is the full record to insert or the merged record; ``changes``
    holds only the fields a store update needs to write, and is None for skips.
    """

    action: MergeAction
    reason: str
    record: ParkRecord | None = None
    changes: dict[str, Any] | None = None


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def _coordinates_replaceable(existing: ParkRecord) -> bool:
    if existing.latitude is None or existing.longitude is None:
        return True
    return existing.latitude == 0 and existing.longitude == 0


def _new_array_entries(existing: list[str], incoming: list[str]) -> list[str]:
    known = {value.lower() for value in existing}
    return [value for value in incoming if value.lower() not in known]


def _validate_candidate(candidate: ParkCandidate) -> None:
    if is_placeholder_name(candidate.name):
        raise ValueError("Candidate is missing a park name")
    if is_empty(candidate.state):
        raise ValueError(f"Candidate '{candidate.name}' is missing a state")


def fillable_fields(existing: ParkRecord, candidate: ParkCandidate) -> list[str]:
    """
    List the fields a candidate could change without priority privileges.

    Returns:
        list[str]: Empty scalar fields the candidate populates, array fields
                   with new entries, 'coordinates' and 'boundary' when those
                   may be set
    """
    fields = []
    if is_placeholder_name(existing.name) and not is_placeholder_name(candidate.name):
        fields.append("name")
    if existing.state == UNKNOWN_STATE and candidate.state != UNKNOWN_STATE:
        fields.append("state")

    for field in PROTECTED_FIELDS:
        if is_empty(getattr(existing, field)) and not is_empty(getattr(candidate, field)):
            fields.append(field)

    for field in ARRAY_FIELDS:
        if _new_array_entries(getattr(existing, field), getattr(candidate, field)):
            fields.append(field)

    if _coordinates_replaceable(existing) and candidate.has_coordinates:
        if (existing.latitude, existing.longitude) != (candidate.latitude, candidate.longitude):
            fields.append("coordinates")

    if is_empty(existing.boundary) and not is_empty(candidate.boundary):
        fields.append("boundary")

    return fields


def should_update_park(
    existing: ParkRecord, candidate: ParkCandidate, candidate_priority: int
) -> tuple[bool, str]:
    """
    Decide whether a matched candidate may update the existing record.

    Args:
        existing: Stored record the candidate matched
        candidate: Normalized candidate
        candidate_priority: Source priority tier of the candidate

    Returns:
        tuple[bool, str]: (update allowed, human-readable reason)
    """
    existing_priority = existing.data_source_priority
    if candidate_priority > existing_priority:
        return True, (
            f"Higher priority source ({candidate_priority} > {existing_priority})"
        )

    fillable = fillable_fields(existing, candidate)
    if fillable:
        return True, f"Fills empty fields: {', '.join(fillable)}"

    if candidate_priority < existing_priority:
        return False, (
            f"Existing data has higher priority ({existing_priority} > {candidate_priority})"
        )
    return False, "No quality improvement"


def merge_park_data(
    existing: ParkRecord,
    candidate: ParkCandidate,
    candidate_priority: int,
    candidate_quality: int,
    now: datetime | None = None,
) -> tuple[ParkRecord, dict[str, Any]]:
    """
    Merge a candidate into an existing record field by field.

    Args:
        existing: Stored record
        candidate: Normalized candidate
        candidate_priority: Source priority tier of the candidate
        candidate_quality: Quality score of the candidate
        now: Timestamp for last_updated_at (defaults to current UTC time)

    Returns:
        tuple[ParkRecord, dict]: Merged record and the changed fields
    """
    now = now or datetime.now(timezone.utc)
    overwrite = candidate_priority > existing.data_source_priority
    changes: dict[str, Any] = {}

    if is_placeholder_name(existing.name) and not is_placeholder_name(candidate.name):
        changes["name"] = candidate.name
    if existing.state == UNKNOWN_STATE and candidate.state != UNKNOWN_STATE:
        changes["state"] = candidate.state

    for field in PROTECTED_FIELDS:
        current = getattr(existing, field)
        incoming = getattr(candidate, field)
        if is_empty(incoming):
            continue
        if is_empty(current) or (overwrite and incoming != current):
            changes[field] = incoming

    for field in ARRAY_FIELDS:
        current = getattr(existing, field)
        additions = _new_array_entries(current, getattr(candidate, field))
        if additions:
            changes[field] = dedupe_case_insensitive([*current, *additions])

    if _coordinates_replaceable(existing) and candidate.has_coordinates:
        if (existing.latitude, existing.longitude) != (candidate.latitude, candidate.longitude):
            changes["latitude"] = candidate.latitude
            changes["longitude"] = candidate.longitude

    if is_empty(existing.boundary) and not is_empty(candidate.boundary):
        changes["boundary"] = candidate.boundary

    if overwrite and candidate.data_source:
        changes["data_source"] = candidate.data_source

    changes["data_source_priority"] = max(existing.data_source_priority, candidate_priority)
    changes["data_quality_score"] = max(existing.data_quality_score, candidate_quality)
    changes["last_updated_at"] = now

    return existing.model_copy(update=changes, deep=True), changes


def build_new_record(
    candidate: ParkCandidate,
    priority: int,
    quality: int,
    now: datetime | None = None,
) -> ParkRecord:
    now = now or datetime.now(timezone.utc)
    return ParkRecord(
        **candidate.model_dump(),
        data_source_priority=priority,
        data_quality_score=quality,
        created_at=now,
        last_updated_at=now,
    )


def decide(
    existing: ParkRecord | None,
    candidate: ParkCandidate,
    source_type: str | None,
    now: datetime | None = None,
) -> MergeDecision:
    """
    Apply the merge/protect policy to one candidate.

    Args:
        existing: Matched stored record, or None when no match was found
        candidate: Normalized candidate
        source_type: Source-type label used for the priority lookup
        now: Timestamp applied to created/updated records

    Returns:
        MergeDecision: insert, merge or skip with a reason

    Raises:
        ValueError: If the candidate has no real name or no state
    """
    _validate_candidate(candidate)

    priority = get_source_priority(source_type)
    quality = calculate_quality_score(candidate)

    if existing is None:
        record = build_new_record(candidate, priority, quality, now)
        return MergeDecision(
            "insert",
            f"New park (priority {priority}, quality {quality})",
            record,
            record.model_dump(exclude={"id"}),
        )

    allowed, reason = should_update_park(existing, candidate, priority)
    if not allowed:
        return MergeDecision("skip", reason, existing)

    merged, changes = merge_park_data(existing, candidate, priority, quality, now)
    return MergeDecision("merge", reason, merged, changes)
