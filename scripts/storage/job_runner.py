"""
Background processing of uploaded park files.

A job downloads an uploaded file from object storage (reassembling chunks),
parses it, and ingests the features with a larger batch size than
interactive runs. At most two jobs run at once and jobs for the same
destination path never overlap. A job that fails on a transient error is
retried from the start; ingestion itself is idempotent under the merge
policy, so a retried job does not duplicate records.
"""

from __future__ import annotations

import logging
import tempfile
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path, PurePosixPath

from config.settings import config
from scripts.collectors.file_parser import FileParseError, parse_park_file
from scripts.database.park_store import ParkStore, StoreError
from scripts.processors.ingestion import IngestionSummary, ParkIngestor
from scripts.storage.chunked_transfer import ChunkedTransferManager, TransferError
from scripts.storage.object_storage import ObjectStorage, StorageError

RETRYABLE_ERRORS = (StorageError, TransferError, StoreError, OSError)


class ParkFileJobRunner:
    """Run file-ingestion jobs on a small thread pool."""

    def __init__(
        self,
        storage: ObjectStorage,
        store: ParkStore,
        max_concurrent_jobs: int | None = None,
        max_retries: int | None = None,
        retry_delay: float = 1.0,
        transfer_manager: ChunkedTransferManager | None = None,
        logger: logging.Logger | None = None,
    ):
        self.storage = storage
        self.store = store
        self.max_retries = config.JOB_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = retry_delay
        self.logger = logger or logging.getLogger(__name__)
        self.transfer_manager = transfer_manager or ChunkedTransferManager(
            storage, logger=self.logger
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_jobs or config.JOB_MAX_CONCURRENCY,
            thread_name_prefix="park-file-job",
        )
        self._path_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, destination_path: str) -> threading.Lock:
        with self._locks_guard:
            if destination_path not in self._path_locks:
                self._path_locks[destination_path] = threading.Lock()
            return self._path_locks[destination_path]

    def submit(
        self,
        destination_path: str,
        file_name: str | None = None,
        source_type: str = "agency_upload",
        default_state: str | None = None,
    ) -> Future:
        """
        Queue a job for an uploaded file.

        Args:
            destination_path: Object key the file (or its chunks) was uploaded to
            file_name: Original file name; its suffix selects the parser
            source_type: Source-type label for the priority lookup
            default_state: State applied to features without one

        Returns:
            Future: Resolves to the job's IngestionSummary
        """
        file_name = file_name or PurePosixPath(destination_path).name
        self.logger.info(f"Queued processing job for {destination_path} ({source_type})")
        return self._executor.submit(
            self._run_with_retries, destination_path, file_name, source_type, default_state
        )

    def _run_with_retries(
        self,
        destination_path: str,
        file_name: str,
        source_type: str,
        default_state: str | None,
    ) -> IngestionSummary:
        with self._lock_for(destination_path):
            for attempt in range(self.max_retries + 1):  # +1 for initial attempt
                try:
                    return self.run_job(
                        destination_path, file_name, source_type, default_state
                    )
                except RETRYABLE_ERRORS as e:
                    if attempt == self.max_retries:
                        self.logger.error(
                            f"Job for {destination_path} failed after {attempt + 1} attempts: {e}"
                        )
                        raise
                    self.logger.warning(
                        f"Job for {destination_path} failed (attempt {attempt + 1}), "
                        f"retrying in {self.retry_delay}s: {e}"
                    )
                    time.sleep(self.retry_delay)
        raise RuntimeError(f"Job for {destination_path} did not run")

    def run_job(
        self,
        destination_path: str,
        file_name: str,
        source_type: str,
        default_state: str | None = None,
    ) -> IngestionSummary:
        """
        Download, parse and ingest one uploaded file.

        Raises:
            FileParseError: If the file has no readable features
            StorageError, TransferError: If the download fails
        """
        self.logger.info(f"Processing {destination_path} as {source_type}")
        data = self.transfer_manager.download_and_reassemble(destination_path)

        suffix = Path(file_name).suffix
        with tempfile.TemporaryDirectory() as tmp_dir:
            local_path = Path(tmp_dir) / f"upload{suffix}"
            local_path.write_bytes(data)
            try:
                features = parse_park_file(local_path, file_name)
            except FileParseError as e:
                self.logger.error(f"Could not parse {file_name}: {e}")
                raise

        ingestor = ParkIngestor(
            self.store,
            source_type=source_type,
            batch_size=config.BACKGROUND_BATCH_SIZE,
            logger=self.logger,
        )
        summary = ingestor.ingest_features(features, default_state=default_state)
        self.transfer_manager.cleanup_chunks(destination_path)

        self.logger.info(
            f"Finished {destination_path}: added={summary.added}, updated={summary.updated}, "
            f"skipped={summary.skipped}, errored={summary.errored}"
        )
        return summary

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
