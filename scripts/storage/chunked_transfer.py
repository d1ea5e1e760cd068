"""
Chunked transfer of large files to object storage.

Files are split into fixed-size byte ranges and uploaded one chunk at a time
to "{destination}.chunk.{index}". Before uploading, the destination directory
is listed and chunks that already exist are skipped, so an interrupted
transfer resumes where it stopped. When at least 90% of the expected chunks
are already present, the transfer is treated as complete.

Each chunk gets one initial attempt plus up to three retries with exponential
backoff (1s, 2s, 4s). When every attempt fails, the whole transfer is aborted
with a TransferError naming the chunk.

Example Usage:
    manager = ChunkedTransferManager(LocalObjectStorage())
    result = manager.upload_file("parks.zip", "uploads/parks.zip")
    data = manager.download_and_reassemble("uploads/parks.zip")
"""

from __future__ import annotations

import logging
import math
import re
import time
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from typing import NamedTuple

from config.settings import config
from scripts.storage.object_storage import ObjectStorage, StorageError, parent_directory

logger = logging.getLogger(__name__)


class TransferError(Exception):
    """Raised when a chunked transfer cannot be completed."""


class TransferProgress(NamedTuple):
    chunk_number: int
    total_chunks: int
    bytes_uploaded: int
    total_bytes: int
    percentage: int


class TransferResult(NamedTuple):
    total_chunks: int
    uploaded_chunks: int
    skipped_chunks: int
    already_complete: bool = False


def chunk_path(destination_path: str, index: int) -> str:
    return f"{destination_path}.chunk.{index}"


def _chunk_pattern(destination_path: str) -> re.Pattern:
    base = PurePosixPath(destination_path).name
    return re.compile(rf"^{re.escape(base)}\.chunk\.(\d+)$")


class ChunkedTransferManager:
    """Upload, reassemble and clean up chunked objects."""

    def __init__(
        self,
        storage: ObjectStorage,
        chunk_size: int | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        chunk_delay: float | None = None,
        resume_threshold: float | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Args:
            storage: Destination object storage
            chunk_size: Bytes per chunk (default 20 MiB)
            max_retries: Retries after the first attempt for each chunk
            retry_base_delay: First backoff delay; doubles on each retry
            chunk_delay: Pause between successful chunk uploads
            resume_threshold: Fraction of existing chunks that counts as complete
            logger: Logger for progress and retries
        """
        self.storage = storage
        self.chunk_size = chunk_size or config.CHUNK_SIZE_BYTES
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.max_retries = config.CHUNK_MAX_RETRIES if max_retries is None else max_retries
        self.retry_base_delay = (
            config.CHUNK_RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        )
        self.chunk_delay = config.CHUNK_DELAY_SECONDS if chunk_delay is None else chunk_delay
        self.resume_threshold = (
            config.CHUNK_RESUME_THRESHOLD if resume_threshold is None else resume_threshold
        )
        self.logger = logger or logging.getLogger(__name__)

    # ====================================
    # CHUNK DISCOVERY
    # ====================================

    def existing_chunk_indices(self, destination_path: str) -> set[int]:
        """Indices of chunks already present for ``destination_path``."""
        pattern = _chunk_pattern(destination_path)
        indices = set()
        for name in self.storage.list(parent_directory(destination_path)):
            match = pattern.match(name)
            if match:
                indices.add(int(match.group(1)))
        return indices

    def count_existing_chunks(self, destination_path: str) -> int:
        return len(self.existing_chunk_indices(destination_path))

    # ====================================
    # UPLOAD
    # ====================================

    def _upload_chunk(self, path: str, data: bytes, number: int, total: int) -> None:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                self.storage.upload(path, data, resumable=True)
                return
            except StorageError as e:
                if attempt == attempts - 1:
                    raise TransferError(
                        f"Failed to upload chunk {number}/{total} after {attempts} attempts: {e}"
                    ) from e
                wait = self.retry_base_delay * (2**attempt)
                self.logger.warning(
                    f"Chunk {number} upload failed, retrying in {wait:g}s... "
                    f"({attempts - attempt - 1} retries left)"
                )
                time.sleep(wait)

    def upload_file(
        self,
        source: str | Path,
        destination_path: str,
        progress_callback: Callable[[TransferProgress], None] | None = None,
    ) -> TransferResult:
        """
        Upload a local file as chunks, skipping chunks already in storage.

        Args:
            source: Local file to upload
            destination_path: Object key of the reassembled file
            progress_callback: Called after each chunk with a TransferProgress

        Returns:
            TransferResult: Chunk counts for this transfer

        Raises:
            TransferError: If a chunk fails after every retry
            ValueError: If the source file is empty
        """
        source = Path(source)
        total_bytes = source.stat().st_size
        if total_bytes == 0:
            raise ValueError(f"Cannot upload empty file {source}")

        total_chunks = math.ceil(total_bytes / self.chunk_size)
        existing = {
            i for i in self.existing_chunk_indices(destination_path) if i < total_chunks
        }

        if existing and len(existing) >= total_chunks * self.resume_threshold:
            self.logger.info(
                f"{len(existing)}/{total_chunks} chunks of {destination_path} already "
                "uploaded; treating transfer as complete"
            )
            return TransferResult(total_chunks, 0, len(existing), already_complete=True)

        if existing:
            self.logger.info(
                f"Resuming {destination_path}: {len(existing)}/{total_chunks} chunks already uploaded"
            )

        uploaded = 0
        with source.open("rb") as f:
            for index in range(total_chunks):
                start = index * self.chunk_size
                end = min(start + self.chunk_size, total_bytes)

                if index in existing:
                    continue

                f.seek(start)
                data = f.read(end - start)
                self._upload_chunk(
                    chunk_path(destination_path, index), data, index + 1, total_chunks
                )
                uploaded += 1
                self.logger.debug(f"Uploaded chunk {index + 1}/{total_chunks} of {destination_path}")

                if progress_callback:
                    progress_callback(
                        TransferProgress(
                            chunk_number=index + 1,
                            total_chunks=total_chunks,
                            bytes_uploaded=end,
                            total_bytes=total_bytes,
                            percentage=round(end / total_bytes * 100),
                        )
                    )

                if index < total_chunks - 1 and self.chunk_delay > 0:
                    time.sleep(self.chunk_delay)

        self.logger.info(
            f"Uploaded {uploaded} chunks of {destination_path} "
            f"({len(existing)} skipped, {total_chunks} total)"
        )
        return TransferResult(total_chunks, uploaded, len(existing))

    # ====================================
    # DOWNLOAD & CLEANUP
    # ====================================

    def download_and_reassemble(self, destination_path: str) -> bytes:
        """
        Download every chunk in index order and join them.

        Falls back to the plain object when no chunks exist.

        Raises:
            TransferError: If chunk indices are not contiguous from 0
            StorageError: If a download fails
        """
        indices = sorted(self.existing_chunk_indices(destination_path))
        if not indices:
            return self.storage.download(destination_path)

        if indices != list(range(len(indices))):
            missing = sorted(set(range(indices[-1] + 1)) - set(indices))
            raise TransferError(
                f"Missing chunks {missing} for {destination_path}; upload is incomplete"
            )

        parts = [self.storage.download(chunk_path(destination_path, i)) for i in indices]
        data = b"".join(parts)
        self.logger.info(
            f"Reassembled {destination_path} from {len(parts)} chunks ({len(data)} bytes)"
        )
        return data

    def cleanup_chunks(self, destination_path: str) -> int:
        """Remove chunk objects for ``destination_path``; returns the number removed."""
        paths = [
            chunk_path(destination_path, i)
            for i in sorted(self.existing_chunk_indices(destination_path))
        ]
        if not paths:
            return 0
        try:
            removed = self.storage.remove(paths)
        except StorageError as e:
            self.logger.warning(f"Failed to clean up chunks for {destination_path}: {e}")
            return 0
        self.logger.info(f"Removed {removed} chunks for {destination_path}")
        return removed
