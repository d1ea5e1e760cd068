"""
Park store interface and in-memory implementation.

The reconciliation pipeline treats the store as a key-addressable table with
query/filter capability. Everything it needs is expressed by ParkStore:

    query(ParkQuery) -> list[ParkRecord]
    insert(record)   -> ParkRecord (with id assigned)
    update(id, fields) -> ParkRecord
    delete(ids)      -> int

PostgresParkStore (db_writer.py) is the production implementation;
InMemoryParkStore backs tests, dry runs and small local jobs.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field

from scripts.collectors.park_schemas import ParkRecord


class StoreError(Exception):
    """Raised when a store read or write fails. Treated as transient by callers."""


class ParkQuery(BaseModel):
    """Filter predicates supported by every store implementation.

    All set predicates are combined with AND. ``missing_coordinates=True``
    selects records lacking latitude or longitude; ``False`` selects records
    with both.
    """

    state: str | None = None
    agency: str | None = None
    data_source: str | None = None
    ids: list[int] | None = None
    missing_coordinates: bool | None = None
    min_latitude: float | None = None
    max_latitude: float | None = None
    min_longitude: float | None = None
    max_longitude: float | None = None
    limit: int | None = Field(default=None, gt=0)

    def matches(self, record: ParkRecord) -> bool:
        if self.state is not None and record.state != self.state:
            return False
        if self.agency is not None and record.agency != self.agency:
            return False
        if self.data_source is not None and record.data_source != self.data_source:
            return False
        if self.ids is not None and record.id not in self.ids:
            return False

        has_coordinates = record.latitude is not None and record.longitude is not None
        if self.missing_coordinates is True and has_coordinates:
            return False
        if self.missing_coordinates is False and not has_coordinates:
            return False

        ranges = (
            (self.min_latitude, self.max_latitude, record.latitude),
            (self.min_longitude, self.max_longitude, record.longitude),
        )
        for low, high, value in ranges:
            if low is None and high is None:
                continue
            if value is None:
                return False
            if low is not None and value < low:
                return False
            if high is not None and value > high:
                return False
        return True


class ParkStore(ABC):
    """Abstract park record store."""

    @abstractmethod
    def query(self, filters: ParkQuery | None = None) -> list[ParkRecord]:
        """Return records matching ``filters`` ordered by id."""

    @abstractmethod
    def insert(self, record: ParkRecord) -> ParkRecord:
        """Persist a new record and return it with its assigned id."""

    @abstractmethod
    def update(self, record_id: int, fields: dict[str, Any]) -> ParkRecord:
        """Apply ``fields`` to an existing record and return the stored result."""

    @abstractmethod
    def delete(self, record_ids: Iterable[int]) -> int:
        """Delete records by id and return the number removed."""

    def get(self, record_id: int) -> ParkRecord | None:
        records = self.query(ParkQuery(ids=[record_id]))
        return records[0] if records else None


class InMemoryParkStore(ParkStore):
    """Dictionary-backed store with the same contract as the PostGIS store."""

    def __init__(
        self,
        records: Iterable[ParkRecord] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self._records: dict[int, ParkRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        for record in records or []:
            self.insert(record)

    def query(self, filters: ParkQuery | None = None) -> list[ParkRecord]:
        filters = filters or ParkQuery()
        with self._lock:
            matched = [
                record.model_copy(deep=True)
                for _, record in sorted(self._records.items())
                if filters.matches(record)
            ]
        if filters.limit is not None:
            matched = matched[: filters.limit]
        return matched

    def insert(self, record: ParkRecord) -> ParkRecord:
        if not record.name or not record.state:
            raise StoreError("Records require a name and a state")

        with self._lock:
            record_id = record.id if record.id is not None else self._next_id
            if record_id in self._records:
                raise StoreError(f"Record {record_id} already exists")
            stored = record.model_copy(update={"id": record_id}, deep=True)
            self._records[record_id] = stored
            self._next_id = max(self._next_id, record_id + 1)

        self.logger.debug(f"Inserted park {record_id}: {stored.name} ({stored.state})")
        return stored.model_copy(deep=True)

    def update(self, record_id: int, fields: dict[str, Any]) -> ParkRecord:
        unknown = set(fields) - set(ParkRecord.model_fields)
        if unknown:
            raise StoreError(f"Unknown fields for update: {sorted(unknown)}")

        with self._lock:
            existing = self._records.get(record_id)
            if existing is None:
                raise StoreError(f"Record {record_id} does not exist")
            updated = existing.model_copy(
                update={k: v for k, v in fields.items() if k != "id"}, deep=True
            )
            self._records[record_id] = updated

        self.logger.debug(f"Updated park {record_id}: {sorted(fields)}")
        return updated.model_copy(deep=True)

    def delete(self, record_ids: Iterable[int]) -> int:
        removed = 0
        with self._lock:
            for record_id in record_ids:
                if self._records.pop(record_id, None) is not None:
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._records)
