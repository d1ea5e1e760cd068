"""
Entity matching of park candidates against stored records.

A candidate matches an existing record when both are in the same state and
their normalized names are either identical or, optionally, one contains the
other with a length difference below a configurable threshold. Matching is a
linear scan of same-state records; no index structure is needed at the
expected update cadence.

When several records qualify, the winner is chosen deterministically:
exact matches before containment matches, then the smallest length
difference, then the highest quality score, then the lexically smallest
normalized name, then the smallest id.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NamedTuple

from config.settings import config
from scripts.collectors.park_schemas import ParkRecord, is_placeholder_name
from scripts.database.park_store import ParkQuery, ParkStore
from scripts.processors.name_normalizer import normalize_park_name

logger = logging.getLogger(__name__)


class MatchResult(NamedTuple):
    record: ParkRecord
    exact: bool
    length_difference: int
    normalized_name: str


def _raw_key(name: str) -> str:
    return " ".join(name.lower().split())


class EntityMatcher:
    """Find the stored record a candidate (name, state) refers to."""

    def __init__(
        self,
        store: ParkStore,
        max_length_difference: int | None = None,
        allow_containment: bool | None = None,
    ):
        """
        Args:
            store: Store to read same-state records from
            max_length_difference: Containment matches require a normalized
                length difference strictly below this value
            allow_containment: Disable to only accept exact normalized matches
        """
        self.store = store
        self.max_length_difference = (
            config.MATCH_MAX_LENGTH_DIFFERENCE
            if max_length_difference is None
            else max_length_difference
        )
        self.allow_containment = (
            config.MATCH_ALLOW_CONTAINMENT
            if allow_containment is None
            else allow_containment
        )

    def _same_state_records(
        self, state: str, pending: Sequence[ParkRecord]
    ) -> list[ParkRecord]:
        stored = self.store.query(ParkQuery(state=state))
        pending_same_state = [p for p in pending if p.state == state]

        # Pending versions of stored records shadow what the store returned
        shadowed = {p.id for p in pending_same_state if p.id is not None}
        records = [r for r in stored if r.id not in shadowed]
        records.extend(pending_same_state)
        return records

    def evaluate(self, name: str, record: ParkRecord) -> MatchResult | None:
        """Score one stored record against a candidate name, or None if no match."""
        if is_placeholder_name(record.name):
            return None

        candidate_token = normalize_park_name(name)
        record_token = normalize_park_name(record.name)
        difference = abs(len(candidate_token) - len(record_token))

        if not candidate_token or not record_token:
            # Fully generic names ("State Park") only match verbatim
            if _raw_key(name) == _raw_key(record.name):
                return MatchResult(record, True, 0, record_token)
            return None

        if candidate_token == record_token:
            return MatchResult(record, True, 0, record_token)

        if (
            self.allow_containment
            and (candidate_token in record_token or record_token in candidate_token)
            and difference < self.max_length_difference
        ):
            return MatchResult(record, False, difference, record_token)

        return None

    def find_all(
        self, name: str, state: str, pending: Sequence[ParkRecord] = ()
    ) -> list[MatchResult]:
        """Return every qualifying record, best match first."""
        if is_placeholder_name(name) or not state:
            return []

        matches = []
        for record in self._same_state_records(state, pending):
            result = self.evaluate(name, record)
            if result is not None:
                matches.append(result)

        matches.sort(
            key=lambda m: (
                not m.exact,
                m.length_difference,
                -m.record.data_quality_score,
                m.normalized_name,
                str(m.record.id) if m.record.id is not None else "",
            )
        )
        return matches

    def find(
        self, name: str, state: str, pending: Sequence[ParkRecord] = ()
    ) -> ParkRecord | None:
        """
        Find the existing record a candidate refers to.

        Args:
            name: Candidate park name
            state: Candidate state code (exact, case-sensitive comparison)
            pending: Records staged but not yet flushed to the store

        Returns:
            ParkRecord | None: Best match, or None when nothing qualifies
        """
        matches = self.find_all(name, state, pending)
        if not matches:
            return None

        if len(matches) > 1:
            logger.debug(
                f"{len(matches)} records match '{name}' ({state}); "
                f"using '{matches[0].record.name}'"
            )
        return matches[0].record
