#!/usr/bin/env python3
"""
Park Reconciliation Orchestrator

Command-line entry point for the park record reconciliation pipeline. Each
subcommand runs one operation against the park store and logs a summary.

Commands:
1. ingest-file          - Reconcile a GeoJSON/shapefile upload into the store
2. sync-nps             - Pull parks from the NPS API and reconcile them
3. sync-recreation-gov  - Pull facilities from Recreation.gov and reconcile them
4. upload               - Stage a large file in object storage as chunks
5. process-upload       - Download, parse and ingest a staged upload
6. backfill-coordinates - Fill in missing coordinates from boundaries/geocoding
7. quality-report       - Summarize data quality and list cleanup candidates

Usage:
    python scripts/orchestrator.py --database ingest-file parks.geojson --state NC
    python scripts/orchestrator.py --database sync-nps --state NC
    python scripts/orchestrator.py upload big_parks.zip --destination uploads/big_parks.zip
    python scripts/orchestrator.py --database quality-report --group-by agency

Without --database the run uses an in-memory store, which is only useful to
inspect what a run would do.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

# Add project root to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv

from config.settings import config
from scripts.collectors.api_client import UpstreamAPIError
from scripts.collectors.file_parser import FileParseError, parse_park_file
from scripts.collectors.geocoder import MapboxGeocoder, StateResolver
from scripts.collectors.field_mapper import map_nps_park
from scripts.collectors.nps_client import NPSClient
from scripts.collectors.recreation_gov_client import RecreationGovClient
from scripts.database.db_writer import PostgresParkStore, get_postgres_engine
from scripts.database.park_store import InMemoryParkStore, ParkQuery, ParkStore, StoreError
from scripts.processors.coordinate_backfill import backfill_missing_coordinates
from scripts.processors.ingestion import IngestionSummary, ParkIngestor
from scripts.processors.quality_report import (
    CleanupCriteria,
    analyze_parks_quality,
    breakdown_by_group,
    filter_parks_for_cleanup,
)
from scripts.storage.chunked_transfer import ChunkedTransferManager, TransferError
from scripts.storage.job_runner import ParkFileJobRunner
from scripts.storage.object_storage import LocalObjectStorage, StorageError
from utils.cache import TTLCache
from utils.logging import (
    setup_ingestion_logging,
    setup_logging,
    setup_sync_logging,
    setup_transfer_logging,
)

PIPELINE_ERRORS = (
    FileParseError,
    UpstreamAPIError,
    TransferError,
    StorageError,
    StoreError,
    ValueError,
)


class ReconciliationOrchestrator:
    """Run reconciliation operations and log their outcomes."""

    def __init__(self, use_database: bool = False, log_level: str | None = None):
        """
        Args:
            use_database: Use the PostGIS store instead of an in-memory one
            log_level: Overrides config.LOG_LEVEL
        """
        self.log_level = log_level
        self.logger = setup_logging(
            log_level=log_level,
            log_file=config.ORCHESTRATOR_LOG_FILE,
        )
        self.use_database = use_database
        self._store: ParkStore | None = None
        self.start_time = time.time()

    @property
    def store(self) -> ParkStore:
        if self._store is None:
            if self.use_database:
                store = PostgresParkStore(get_postgres_engine(), self.logger)
                store.ensure_table_exists()
                self._store = store
            else:
                self.logger.warning(
                    "Using an in-memory store; results are discarded when the run ends. "
                    "Pass --database to write to PostgreSQL/PostGIS."
                )
                self._store = InMemoryParkStore(logger=self.logger)
        return self._store

    def _make_geocoder(self) -> MapboxGeocoder | None:
        if not config.MAPBOX_ACCESS_TOKEN:
            self.logger.warning("MAPBOX_ACCESS_TOKEN not set; geocoding disabled")
            return None
        cache = TTLCache(
            config.GEOCODE_CACHE_TTL_SECONDS, config.GEOCODE_CACHE_MAX_ENTRIES
        )
        return MapboxGeocoder(cache=cache)

    def _log_summary(self, label: str, summary: IngestionSummary) -> None:
        elapsed = time.time() - self.start_time
        self.logger.info(f"{label} finished in {elapsed:.1f} seconds")
        self.logger.info(
            f"Found {summary.found}: added={summary.added}, updated={summary.updated}, "
            f"skipped={summary.skipped}, errored={summary.errored}"
        )
        for entry in summary.errors:
            self.logger.warning(f"Error - {entry.name}: {entry.reason}")
        for entry in summary.skips:
            self.logger.debug(f"Skipped - {entry.name}: {entry.reason}")

    # ====================================
    # FILE INGESTION
    # ====================================

    def ingest_file(
        self,
        path: str,
        source_type: str,
        default_state: str | None = None,
        collapse: bool = False,
        geometry_policy: str = "repair",
    ) -> IngestionSummary:
        logger = setup_ingestion_logging(self.log_level)
        features = parse_park_file(path)
        ingestor = ParkIngestor(
            self.store,
            source_type=source_type,
            geometry_policy=geometry_policy,
            logger=logger,
        )
        summary = ingestor.ingest_features(
            features, default_state=default_state, collapse=collapse
        )
        self._log_summary(f"Ingestion of {path}", summary)
        return summary

    # ====================================
    # UPSTREAM API SYNC
    # ====================================

    def sync_nps(self, state_code: str | None = None, resolve_states: bool = False) -> IngestionSummary:
        logger = setup_sync_logging(self.log_level)
        config.validate_for_api_operations("nps")
        client = NPSClient()
        ingestor = ParkIngestor(
            self.store,
            source_type="nps_api",
            item_timeout=config.API_ITEM_TIMEOUT_SECONDS,
            logger=logger,
        )

        geocoder = self._make_geocoder() if resolve_states else None
        if geocoder is not None:
            normalize = StateResolver(lambda park: (map_nps_park(park), None), geocoder)
            summary = ingestor.ingest(client.iter_parks(state_code=state_code), normalize)
        else:
            summary = ingestor.ingest_nps_parks(client.iter_parks(state_code=state_code))

        self._log_summary("NPS sync", summary)
        return summary

    def sync_recreation_gov(
        self, state_code: str | None = None, query: str | None = None
    ) -> IngestionSummary:
        logger = setup_sync_logging(self.log_level)
        config.validate_for_api_operations("recreation_gov")
        client = RecreationGovClient()
        ingestor = ParkIngestor(
            self.store,
            source_type="recreation_gov_api",
            item_timeout=config.API_ITEM_TIMEOUT_SECONDS,
            logger=logger,
        )
        summary = ingestor.ingest_recreation_gov_facilities(
            client.iter_facilities(state_code=state_code, query=query)
        )
        self._log_summary("Recreation.gov sync", summary)
        return summary

    # ====================================
    # CHUNKED UPLOADS
    # ====================================

    def upload(self, path: str, destination: str) -> None:
        logger = setup_transfer_logging(self.log_level)
        manager = ChunkedTransferManager(LocalObjectStorage(), logger=logger)

        def report(progress) -> None:
            logger.info(
                f"Chunk {progress.chunk_number}/{progress.total_chunks} "
                f"({progress.percentage}%)"
            )

        result = manager.upload_file(path, destination, progress_callback=report)
        self.logger.info(
            f"Upload of {path} to {destination}: {result.uploaded_chunks} uploaded, "
            f"{result.skipped_chunks} already present, {result.total_chunks} total"
        )

    def process_upload(
        self,
        destination: str,
        file_name: str | None,
        source_type: str,
        default_state: str | None = None,
    ) -> IngestionSummary:
        logger = setup_transfer_logging(self.log_level)
        runner = ParkFileJobRunner(LocalObjectStorage(), self.store, logger=logger)
        try:
            future = runner.submit(destination, file_name, source_type, default_state)
            summary = future.result()
        finally:
            runner.shutdown()
        self._log_summary(f"Processing of {destination}", summary)
        return summary

    # ====================================
    # MAINTENANCE & REPORTING
    # ====================================

    def backfill_coordinates(
        self, state: str | None = None, limit: int = 50, use_geometry: bool = True
    ) -> None:
        geocoder = self._make_geocoder()
        summary = backfill_missing_coordinates(
            self.store, geocoder, state=state, limit=limit, use_geometry=use_geometry
        )
        self.logger.info(
            f"Processed {summary.processed} parks: fixed={summary.fixed} "
            f"(boundary={summary.from_boundary}, geocoded={summary.from_geocoding}), "
            f"skipped={summary.skipped}, failed={summary.failed}"
        )

    def quality_report(
        self,
        state: str | None = None,
        group_by: str = "agency",
        criteria: CleanupCriteria | None = None,
    ) -> None:
        records = self.store.query(ParkQuery(state=state))
        analysis = analyze_parks_quality(records)

        self.logger.info(f"Total parks: {analysis['total']}")
        self.logger.info(f"Average quality score: {analysis['average_quality_score']}")
        self.logger.info(f"Quality distribution: {analysis['quality_distribution']}")
        self.logger.info(f"Field coverage (%): {analysis['percentages']}")
        self.logger.info(f"Likely non-parks: {len(analysis['likely_non_parks'])}")
        for entry in analysis["likely_non_parks"]:
            self.logger.info(
                f"  {entry['name']} ({entry['state']}): {entry['reason']} "
                f"[{entry['confidence']}]"
            )

        breakdown = breakdown_by_group(records, group_by)
        if not breakdown.empty:
            self.logger.info(f"Breakdown by {group_by}:\n{breakdown.to_string(index=False)}")

        if criteria is not None and not criteria.is_empty():
            selected = filter_parks_for_cleanup(records, criteria)
            self.logger.info(f"{len(selected)} parks match the cleanup criteria")
            for record in selected:
                self.logger.info(f"  [{record.id}] {record.name} ({record.state})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Park Record Reconciliation Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --database ingest-file parks.geojson --state NC
  %(prog)s --database sync-nps --state NC
  %(prog)s upload big_parks.zip --destination uploads/big_parks.zip
  %(prog)s --database process-upload uploads/big_parks.zip
  %(prog)s --database backfill-coordinates --limit 100
  %(prog)s --database quality-report --group-by state

Notes:
  - Without --database results are kept in memory only
  - Check logs/ for detailed progress
        """,
    )
    parser.add_argument(
        "--database",
        action="store_true",
        help="Read and write the PostgreSQL/PostGIS park store",
    )
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest-file", help="Reconcile a GeoJSON or shapefile")
    ingest.add_argument("path", help="Path to a .geojson, .json, .zip or .shp file")
    ingest.add_argument("--source-type", default="agency_upload")
    ingest.add_argument("--state", help="State for features without one")
    ingest.add_argument(
        "--collapse-parcels",
        action="store_true",
        help="Keep only the largest parcel per park name",
    )
    ingest.add_argument(
        "--geometry-policy", choices=["repair", "skip"], default="repair"
    )

    nps = subparsers.add_parser("sync-nps", help="Sync parks from the NPS API")
    nps.add_argument("--state", help="2-letter state code")
    nps.add_argument(
        "--resolve-states",
        action="store_true",
        help="Reverse geocode parks without a state (needs MAPBOX_ACCESS_TOKEN)",
    )

    ridb = subparsers.add_parser(
        "sync-recreation-gov", help="Sync facilities from Recreation.gov"
    )
    ridb.add_argument("--state", help="2-letter state code")
    ridb.add_argument("--query", help="Free-text facility search")

    upload = subparsers.add_parser("upload", help="Stage a file in storage as chunks")
    upload.add_argument("path", help="Local file to upload")
    upload.add_argument("--destination", required=True, help="Object storage path")

    process = subparsers.add_parser("process-upload", help="Ingest a staged upload")
    process.add_argument("destination", help="Object storage path of the upload")
    process.add_argument("--file-name", help="Original file name (selects the parser)")
    process.add_argument("--source-type", default="agency_upload")
    process.add_argument("--state", help="State for features without one")

    backfill = subparsers.add_parser(
        "backfill-coordinates", help="Fill in missing park coordinates"
    )
    backfill.add_argument("--state", help="2-letter state code")
    backfill.add_argument("--limit", type=int, default=50)
    backfill.add_argument(
        "--no-geometry",
        action="store_true",
        help="Skip boundary centroids and geocode every park",
    )

    report = subparsers.add_parser("quality-report", help="Report on data quality")
    report.add_argument("--state", help="2-letter state code")
    report.add_argument("--group-by", choices=["agency", "state"], default="agency")
    report.add_argument(
        "--name-keywords", help="Comma-separated keywords for cleanup candidates"
    )
    report.add_argument("--max-acres", type=float)
    report.add_argument("--max-quality-score", type=int)
    report.add_argument(
        "--missing-fields", help="Comma-separated fields that must all be missing"
    )

    return parser


def _split(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def main(argv: list[str] | None = None) -> int:
    """
    Main function for the orchestrator script.

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        orchestrator = ReconciliationOrchestrator(
            use_database=args.database, log_level=args.log_level
        )

        if args.command == "ingest-file":
            orchestrator.ingest_file(
                args.path,
                source_type=args.source_type,
                default_state=args.state,
                collapse=args.collapse_parcels,
                geometry_policy=args.geometry_policy,
            )
        elif args.command == "sync-nps":
            orchestrator.sync_nps(state_code=args.state, resolve_states=args.resolve_states)
        elif args.command == "sync-recreation-gov":
            orchestrator.sync_recreation_gov(state_code=args.state, query=args.query)
        elif args.command == "upload":
            orchestrator.upload(args.path, args.destination)
        elif args.command == "process-upload":
            orchestrator.process_upload(
                args.destination, args.file_name, args.source_type, args.state
            )
        elif args.command == "backfill-coordinates":
            orchestrator.backfill_coordinates(
                state=args.state, limit=args.limit, use_geometry=not args.no_geometry
            )
        elif args.command == "quality-report":
            criteria = CleanupCriteria(
                name_keywords=_split(args.name_keywords),
                max_acres=args.max_acres,
                max_quality_score=args.max_quality_score,
                missing_fields=_split(args.missing_fields),
            )
            orchestrator.quality_report(
                state=args.state, group_by=args.group_by, criteria=criteria
            )
        return 0

    except PIPELINE_ERRORS as e:
        logging.getLogger().error(f"{args.command} failed: {e!s}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
