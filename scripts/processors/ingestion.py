"""
Batch ingestion of park candidates into the park store.

This module drives a stream of raw source items (GeoJSON features, NPS API
parks, Recreation.gov facilities) through the reconciliation pipeline:

    normalize -> reject -> geometry -> match -> decide -> stage -> flush

Items are processed strictly in source order by a single logical worker.
Writes are staged and flushed every ``batch_size`` items; staged records are
visible to the matcher so duplicates inside one batch fold into each other
instead of producing two inserts. A failure on one item is recorded in the
summary and never aborts the run.

Key Features:
- Placeholder names, closed-access parcels and coordinate-less items skipped
  with an auditable reason
- Geometry policy: repair invalid rings, or skip the feature
- Store writes retried with exponential backoff on StoreError
- Optional per-item timeout for API-sourced runs (items persist one at a time)
- Parcel collapsing: keep the largest parcel per (name, state) in an upload

Example Usage:
    store = InMemoryParkStore()
    ingestor = ParkIngestor(store, source_type="agency_upload")
    summary = ingestor.ingest_features(features, default_state="NC")
    print(summary.added, summary.updated, summary.skipped, summary.errored)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from config.settings import config
from scripts.collectors.field_mapper import (
    is_open_access,
    map_feature_properties,
    map_nps_park,
    map_recreation_gov_facility,
)
from scripts.collectors.park_schemas import (
    ParkCandidate,
    ParkRecord,
    is_placeholder_name,
)
from scripts.database.park_store import ParkStore, StoreError
from scripts.processors.entity_matcher import EntityMatcher
from scripts.processors.geometry import process_feature_geometry
from scripts.processors.merge_policy import MergeDecision, decide
from scripts.processors.name_normalizer import normalize_park_name

logger = logging.getLogger(__name__)

GeometryPolicy = Literal["repair", "skip"]
NormalizedItem = tuple[ParkCandidate, dict | None]
Normalizer = Callable[[Any], NormalizedItem]

MISSING_NAME_REASON = "Missing park name"
MISSING_COORDINATES_REASON = "Missing coordinates"
CLOSED_ACCESS_REASON = "Not publicly accessible"
COLLAPSED_PARCEL_REASON = "Smaller parcel of a park already in this upload"


class SkipItem(Exception):
    """Raised by a normalizer to skip an item with an auditable reason."""

    def __init__(self, name: str, reason: str):
        super().__init__(reason)
        self.name = name
        self.reason = reason


class IngestionEntry(BaseModel):
    name: str
    reason: str


class IngestionSummary(BaseModel):
    """Counts and audit trail for one ingestion run."""

    found: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[IngestionEntry] = Field(default_factory=list)
    skips: list[IngestionEntry] = Field(default_factory=list)

    @property
    def errored(self) -> int:
        return len(self.errors)

    def record_skip(self, name: str, reason: str) -> None:
        self.skipped += 1
        self.skips.append(IngestionEntry(name=name, reason=reason))

    def record_error(self, name: str, reason: str) -> None:
        self.errors.append(IngestionEntry(name=name, reason=reason))


@dataclass
class _PendingWrite:
    """A staged insert or update plus the items folded into it."""

    action: Literal["insert", "update"]
    record: ParkRecord
    changes: dict[str, Any] = field(default_factory=dict)
    items: list[tuple[str, str]] = field(default_factory=list)


def _item_label(item: Any) -> str:
    """Best-effort display name for an item that failed before normalization."""
    if isinstance(item, tuple) and item:
        return _item_label(item[0])
    if isinstance(item, Mapping):
        properties = item.get("properties")
        if isinstance(properties, Mapping):
            for key in ("name", "NAME", "Name", "park_name", "Unit_Nm"):
                if properties.get(key):
                    return str(properties[key])
        for key in ("fullName", "FacilityName", "name"):
            if item.get(key):
                return str(item[key])
    return "Unknown"


def collapse_parcels(entries: Iterable[NormalizedItem]) -> list[NormalizedItem]:
    """
    Keep only the largest parcel for each (normalized name, state).

    Agency GIS layers often split one park into many parcels that share a
    name. The first-seen order of keys is preserved.

    Args:
        entries: (candidate, geometry) pairs from one upload

    Returns:
        list: One (candidate, geometry) pair per park
    """
    largest: dict[tuple[str, str], NormalizedItem] = {}
    for candidate, geometry in entries:
        key = (normalize_park_name(candidate.name) or candidate.name.lower(), candidate.state)
        current = largest.get(key)
        if current is None:
            largest[key] = (candidate, geometry)
            continue
        current_acres = current[0].acres if current[0].acres is not None else -1.0
        new_acres = candidate.acres if candidate.acres is not None else -1.0
        if new_acres > current_acres:
            largest[key] = (candidate, geometry)

    collapsed = list(largest.values())
    logger.debug(f"Collapsed parcels to {len(collapsed)} unique parks")
    return collapsed


class ParkIngestor:
    """
    Reconcile a stream of source items into a ParkStore.

    One instance handles one source type; the source type sets the priority
    tier every candidate is reconciled with.
    """

    def __init__(
        self,
        store: ParkStore,
        source_type: str,
        data_source: str | None = None,
        batch_size: int | None = None,
        item_timeout: float | None = None,
        geometry_policy: GeometryPolicy = "repair",
        simplify_tolerance_meters: float | None = None,
        matcher: EntityMatcher | None = None,
        store_max_attempts: int | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the ingestor.

        Args:
            store: Destination park store
            source_type: Source-type label used for the priority lookup
            data_source: Provenance label applied to candidates that have none
            batch_size: Items between flushes (ignored when item_timeout is set)
            item_timeout: Seconds allowed for each item's match/decide/write
            geometry_policy: 'repair' invalid rings or 'skip' the feature
            simplify_tolerance_meters: Boundary simplification tolerance
            matcher: Entity matcher (defaults to one over ``store``)
            store_max_attempts: Attempts per store write before giving up
            logger: Logger for progress and errors
        """
        if geometry_policy not in ("repair", "skip"):
            raise ValueError(f"Unknown geometry policy: {geometry_policy}")

        self.store = store
        self.source_type = source_type
        self.data_source = data_source
        self.item_timeout = item_timeout
        self.batch_size = 1 if item_timeout else (batch_size or config.INGEST_BATCH_SIZE)
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.geometry_policy = geometry_policy
        self.simplify_tolerance_meters = simplify_tolerance_meters
        self.matcher = matcher or EntityMatcher(store)
        self.store_max_attempts = store_max_attempts or config.STORE_MAX_ATTEMPTS
        self.logger = logger or logging.getLogger(__name__)
        # (state, future) of timed-out items whose worker may still be writing
        self._abandoned: list[tuple[str, Future]] = []

    # ====================================
    # PER-ITEM PREPARATION
    # ====================================

    def prepare(self, candidate: ParkCandidate, geometry: dict | None) -> ParkCandidate:
        """
        Apply rejection rules and the geometry pipeline to one candidate.

        Raises:
            SkipItem: If the item must not be reconciled
        """
        if is_placeholder_name(candidate.name):
            raise SkipItem(candidate.name, MISSING_NAME_REASON)

        updates: dict[str, Any] = {}
        if self.data_source and not candidate.data_source:
            updates["data_source"] = self.data_source

        processed = process_feature_geometry(
            geometry,
            repair=self.geometry_policy == "repair",
            tolerance_meters=self.simplify_tolerance_meters,
        )
        if processed.error:
            raise SkipItem(candidate.name, processed.error)
        if processed.repaired:
            self.logger.debug(f"Repaired geometry for '{candidate.name}'")

        if processed.boundary:
            updates["boundary"] = processed.boundary
        if not candidate.has_coordinates and processed.latitude is not None:
            updates["latitude"] = processed.latitude
            updates["longitude"] = processed.longitude

        if updates:
            candidate = candidate.model_copy(update=updates)

        if not candidate.has_coordinates:
            raise SkipItem(candidate.name, MISSING_COORDINATES_REASON)
        return candidate

    # ====================================
    # STORE WRITES
    # ====================================

    def _write_with_retry(self, write: Callable[[], ParkRecord], description: str) -> ParkRecord:
        """
        Run a store write, retrying StoreError with exponential backoff.

        Raises:
            StoreError: When every attempt failed
        """
        for attempt in range(1, self.store_max_attempts + 1):
            try:
                return write()
            except StoreError as e:
                if attempt == self.store_max_attempts:
                    self.logger.error(
                        f"Store write failed for {description} after {attempt} attempts: {e}"
                    )
                    raise
                delay = config.STORE_RETRY_BASE_DELAY * (2 ** (attempt - 1))
                self.logger.warning(
                    f"Store write failed for {description} "
                    f"(attempt {attempt}/{self.store_max_attempts}), retrying in {delay}s: {e}"
                )
                time.sleep(delay)
        raise StoreError(f"No write attempts made for {description}")

    def _apply(self, op: _PendingWrite) -> ParkRecord:
        if op.action == "insert":
            return self._write_with_retry(
                lambda: self.store.insert(op.record), f"insert of '{op.record.name}'"
            )
        return self._write_with_retry(
            lambda: self.store.update(op.record.id, op.changes),
            f"update of record {op.record.id}",
        )

    def _flush(self, pending: list[_PendingWrite], summary: IngestionSummary) -> None:
        if not pending:
            return
        for op in pending:
            try:
                self._apply(op)
            except StoreError as e:
                for name, _ in op.items:
                    summary.record_error(name, f"Store write failed: {e}")
                continue
            except Exception as e:
                self.logger.error(f"Unexpected error writing '{op.record.name}': {e}")
                for name, _ in op.items:
                    summary.record_error(name, f"Store write failed: {e}")
                continue

            for name, action in op.items:
                if action == "insert":
                    summary.added += 1
                else:
                    summary.updated += 1
                self.logger.debug(f"{action.capitalize()} '{name}' committed")

        self.logger.info(
            f"Flushed {len(pending)} writes "
            f"(added={summary.added}, updated={summary.updated})"
        )
        pending.clear()

    # ====================================
    # RECONCILIATION
    # ====================================

    def _stage(
        self, candidate: ParkCandidate, pending: list[_PendingWrite]
    ) -> MergeDecision:
        """Match and decide one candidate, staging any resulting write."""
        staged_records = [op.record for op in pending]
        existing = self.matcher.find(candidate.name, candidate.state, staged_records)
        decision = decide(existing, candidate, self.source_type)

        if decision.action == "skip":
            return decision

        if decision.action == "insert":
            pending.append(
                _PendingWrite(
                    "insert", decision.record, items=[(candidate.name, "insert")]
                )
            )
            return decision

        for op in pending:
            if op.record is existing:
                op.record = decision.record
                op.changes.update(decision.changes)
                op.items.append((candidate.name, "merge"))
                return decision

        pending.append(
            _PendingWrite(
                "update",
                decision.record,
                changes=dict(decision.changes),
                items=[(candidate.name, "merge")],
            )
        )
        return decision

    def _reconcile_one(self, candidate: ParkCandidate) -> MergeDecision:
        """Match, decide and persist one candidate immediately."""
        pending: list[_PendingWrite] = []
        decision = self._stage(candidate, pending)
        for op in pending:
            self._apply(op)
        return decision

    def _record_decision(
        self, candidate: ParkCandidate, decision: MergeDecision, summary: IngestionSummary
    ) -> None:
        if decision.action == "skip":
            summary.record_skip(candidate.name, decision.reason)
            self.logger.debug(f"Skipped '{candidate.name}': {decision.reason}")
        else:
            self.logger.debug(
                f"{decision.action.capitalize()} '{candidate.name}' ({candidate.state}): "
                f"{decision.reason}"
            )

    def ingest(self, items: Iterable[Any], normalize: Normalizer) -> IngestionSummary:
        """
        Reconcile every item into the store.

        Args:
            items: Raw source items, consumed in order
            normalize: Maps one raw item to (candidate, geometry or None);
                       may raise SkipItem

        Returns:
            IngestionSummary: Counts plus the skip and error audit lists
        """
        summary = IngestionSummary()
        pending: list[_PendingWrite] = []
        executor = ThreadPoolExecutor(max_workers=1) if self.item_timeout else None
        self._abandoned = []

        self.logger.info(
            f"Starting ingestion for source '{self.source_type}' "
            f"(batch size {self.batch_size})"
        )

        try:
            for item in items:
                summary.found += 1
                name = _item_label(item)
                try:
                    candidate, geometry = normalize(item)
                    name = candidate.name
                    candidate = self.prepare(candidate, geometry)
                except SkipItem as skip:
                    summary.record_skip(skip.name or name, skip.reason)
                    self.logger.debug(f"Skipped '{skip.name or name}': {skip.reason}")
                    continue
                except (ValidationError, ValueError) as e:
                    summary.record_error(name, f"Invalid record: {e}")
                    self.logger.error(f"Invalid record '{name}': {e}")
                    continue
                except Exception as e:
                    summary.record_error(name, f"Failed to process record: {e}")
                    self.logger.error(f"Error processing '{name}': {e}")
                    continue

                if executor is not None:
                    executor = self._ingest_timed(executor, candidate, summary)
                    continue

                try:
                    decision = self._stage(candidate, pending)
                except (StoreError, ValueError) as e:
                    summary.record_error(candidate.name, str(e))
                    self.logger.error(f"Failed to reconcile '{candidate.name}': {e}")
                    continue
                except Exception as e:
                    summary.record_error(candidate.name, f"Failed to reconcile: {e}")
                    self.logger.error(f"Error reconciling '{candidate.name}': {e}")
                    continue
                self._record_decision(candidate, decision, summary)

                if summary.found % self.batch_size == 0:
                    self._flush(pending, summary)
        finally:
            # Writes staged for earlier items are committed even if the
            # source iterator itself raised.
            self._flush(pending, summary)
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)

        self.logger.info(
            f"Ingestion complete for '{self.source_type}': found={summary.found}, "
            f"added={summary.added}, updated={summary.updated}, "
            f"skipped={summary.skipped}, errored={summary.errored}"
        )
        return summary

    def _wait_for_abandoned(self, state: str) -> None:
        """Give a timed-out item in the same state up to item_timeout to finish."""
        still_running = []
        for abandoned_state, future in self._abandoned:
            if abandoned_state == state and not future.done():
                wait([future], timeout=self.item_timeout)
            if not future.done():
                still_running.append((abandoned_state, future))
        self._abandoned = still_running

    def _ingest_timed(
        self,
        executor: ThreadPoolExecutor,
        candidate: ParkCandidate,
        summary: IngestionSummary,
    ) -> ThreadPoolExecutor:
        """
        Reconcile one candidate on the worker thread within item_timeout.

        Returns:
            ThreadPoolExecutor: Executor for the next item. A timed-out item
                still occupies its worker, so a fresh executor replaces it.
        """
        self._wait_for_abandoned(candidate.state)
        future = executor.submit(self._reconcile_one, candidate)
        try:
            decision = future.result(timeout=self.item_timeout)
        except FutureTimeoutError:
            reason = f"Timed out after {self.item_timeout:g}s"
            summary.record_error(candidate.name, reason)
            self.logger.error(f"'{candidate.name}': {reason}")
            self._abandoned.append((candidate.state, future))
            executor.shutdown(wait=False, cancel_futures=True)
            return ThreadPoolExecutor(max_workers=1)
        except (StoreError, ValueError) as e:
            summary.record_error(candidate.name, str(e))
            self.logger.error(f"Failed to reconcile '{candidate.name}': {e}")
            return executor
        except Exception as e:
            summary.record_error(candidate.name, f"Failed to reconcile: {e}")
            self.logger.error(f"Error reconciling '{candidate.name}': {e}")
            return executor

        self._record_decision(candidate, decision, summary)
        if decision.action == "insert":
            summary.added += 1
        elif decision.action == "merge":
            summary.updated += 1
        return executor

    # ====================================
    # SOURCE CONVENIENCES
    # ====================================

    def ingest_features(
        self,
        features: Iterable[Mapping[str, Any]],
        default_state: str | None = None,
        collapse: bool = False,
    ) -> IngestionSummary:
        """
        Reconcile GeoJSON-style features from an uploaded file.

        Args:
            features: Feature dictionaries with 'properties' and 'geometry'
            default_state: State applied to features without one
            collapse: Keep only the largest parcel per (name, state)

        Returns:
            IngestionSummary: Run summary
        """

        def normalize(feature: Mapping[str, Any]) -> NormalizedItem:
            properties = feature.get("properties") or {}
            candidate = map_feature_properties(
                properties, source_type=self.data_source or self.source_type,
                default_state=default_state,
            )
            if not is_open_access(properties):
                raise SkipItem(candidate.name, CLOSED_ACCESS_REASON)
            return candidate, feature.get("geometry")

        if not collapse:
            return self.ingest(features, normalize)

        # Collapsing needs the whole upload. Rejected features are re-run so
        # their reasons reach the summary; smaller parcels are skipped.
        staged: list[tuple[Mapping[str, Any], NormalizedItem | None]] = []
        for feature in features:
            try:
                staged.append((feature, normalize(feature)))
            except Exception:
                staged.append((feature, None))

        entries = [entry for _, entry in staged if entry is not None]
        kept = {id(candidate) for candidate, _ in collapse_parcels(entries)}

        def normalize_collapsed(
            item: tuple[Mapping[str, Any], NormalizedItem | None],
        ) -> NormalizedItem:
            feature, entry = item
            if entry is None:
                return normalize(feature)
            if id(entry[0]) not in kept:
                raise SkipItem(entry[0].name, COLLAPSED_PARCEL_REASON)
            return entry

        return self.ingest(staged, normalize_collapsed)

    def ingest_nps_parks(self, parks: Iterable[Mapping[str, Any]]) -> IngestionSummary:
        """Reconcile raw NPS API /parks records."""
        return self.ingest(parks, lambda park: (map_nps_park(park), None))

    def ingest_recreation_gov_facilities(
        self, facilities: Iterable[Mapping[str, Any]]
    ) -> IngestionSummary:
        """Reconcile raw Recreation.gov facility records."""
        return self.ingest(
            facilities, lambda facility: (map_recreation_gov_facility(facility), None)
        )
