"""
Fill in coordinates for stored parks that have none.

For each record missing latitude or longitude, the boundary centroid is used
when a boundary exists; otherwise the address (or "name, state") is forward
geocoded. The result goes through the merge policy as a 'geocoding'
candidate, so the backfill can only fill the empty coordinate pair and never
overwrite anything else.
"""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel, Field

from scripts.collectors.api_client import UpstreamAPIError
from scripts.collectors.geocoder import MapboxGeocoder
from scripts.collectors.park_schemas import ParkCandidate, ParkRecord
from scripts.database.park_store import ParkQuery, ParkStore, StoreError
from scripts.processors.geometry import centroid_fallback, wkt_to_geojson
from scripts.processors.ingestion import IngestionEntry
from scripts.processors.merge_policy import decide

logger = logging.getLogger(__name__)

GEOCODING_SOURCE_TYPE = "geocoding"
DEFAULT_BACKFILL_LIMIT = 50
GEOCODE_DELAY_SECONDS = 0.1


class BackfillSummary(BaseModel):
    processed: int = 0
    fixed: int = 0
    from_boundary: int = 0
    from_geocoding: int = 0
    skipped: int = 0
    errors: list[IngestionEntry] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)


def _boundary_centroid(record: ParkRecord) -> tuple[float, float] | None:
    geometry = wkt_to_geojson(record.boundary)
    if geometry is None or geometry.get("type") not in ("Polygon", "MultiPolygon"):
        return None
    return centroid_fallback(geometry)


def backfill_missing_coordinates(
    store: ParkStore,
    geocoder: MapboxGeocoder | None = None,
    state: str | None = None,
    limit: int = DEFAULT_BACKFILL_LIMIT,
    use_geometry: bool = True,
    delay_seconds: float = GEOCODE_DELAY_SECONDS,
) -> BackfillSummary:
    """
    Resolve coordinates for records that lack them.

    Args:
        store: Park store to read and update
        geocoder: Forward geocoder; when None only boundary centroids are used
        state: Restrict to one state
        limit: Maximum number of records to process
        use_geometry: Try the boundary centroid before geocoding
        delay_seconds: Pause between geocoding requests

    Returns:
        BackfillSummary: processed/fixed/skipped counts and per-record errors
    """
    summary = BackfillSummary()
    records = store.query(ParkQuery(state=state, missing_coordinates=True, limit=limit))
    if not records:
        logger.info("No parks found missing coordinates")
        return summary

    logger.info(f"Found {len(records)} parks missing coordinates")

    for index, record in enumerate(records, start=1):
        summary.processed += 1
        logger.debug(f"[{index}/{len(records)}] Processing: {record.name} ({record.state})")

        coordinates = _boundary_centroid(record) if use_geometry and record.boundary else None
        from_boundary = coordinates is not None

        if coordinates is None and geocoder is not None:
            query = record.address or f"{record.name}, {record.state}"
            try:
                result = geocoder.geocode(query)
            except UpstreamAPIError as e:
                logger.warning(f"Geocoding error for '{record.name}': {e}")
                summary.errors.append(IngestionEntry(name=record.name, reason=str(e)))
                continue
            if result is not None:
                coordinates = (result.latitude, result.longitude)
            if delay_seconds > 0:
                time.sleep(delay_seconds)

        if coordinates is None:
            logger.info(f"Could not find coordinates for '{record.name}'")
            summary.skipped += 1
            continue

        candidate = ParkCandidate(
            name=record.name,
            state=record.state,
            latitude=coordinates[0],
            longitude=coordinates[1],
        )
        try:
            decision = decide(record, candidate, GEOCODING_SOURCE_TYPE)
            if decision.action != "merge":
                summary.skipped += 1
                continue
            store.update(record.id, decision.changes)
        except (StoreError, ValueError) as e:
            logger.error(f"Failed to update '{record.name}': {e}")
            summary.errors.append(IngestionEntry(name=record.name, reason=str(e)))
            continue

        summary.fixed += 1
        if from_boundary:
            summary.from_boundary += 1
        else:
            summary.from_geocoding += 1

    logger.info(
        f"Coordinate backfill complete: fixed={summary.fixed}, "
        f"skipped={summary.skipped}, failed={summary.failed}"
    )
    return summary
